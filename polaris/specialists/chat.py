"""
General chat specialist.
"""
import logging

from ..models import SpecialistRequest, SpecialistResult
from .base import Specialist

logger = logging.getLogger(__name__)

DEFAULT_AGENT = "Default"
FALLBACK_PERSONA = "You are a helpful assistant."


class ChatSpecialist(Specialist):
    """Answers free-form text with the Default persona from DataAgents."""

    error_message = "⚠️ General chat error."

    def __init__(self, config_store, prediction, agent_name: str = DEFAULT_AGENT):
        self.config_store = config_store
        self.prediction = prediction
        self.agent_name = agent_name

    def _persona(self) -> str:
        agent = self.config_store.find_agent(self.agent_name)
        if agent and agent.instructions:
            return agent.instructions
        return FALLBACK_PERSONA

    async def handle(self, request: SpecialistRequest) -> SpecialistResult:
        result = await self.prediction.predict(self._persona(), request.text, prompt_name="general_chat")
        if not result.ok:
            return SpecialistResult(ok=False, message=f"⚠️ AI Error: {result.error}")
        return SpecialistResult(ok=True, message=result.text)
