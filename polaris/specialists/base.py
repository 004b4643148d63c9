"""
Shared pieces for specialists: the base class, structured-command parsing
and reply-language selection.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..models import SpecialistRequest, SpecialistResult

logger = logging.getLogger(__name__)

SUPPORTED_LANGS = ("en", "he")
DEFAULT_LANG = "en"

_CODE_FENCE = re.compile(r"```(?:json)?\s*|```", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text or "").strip()


def parse_command(text: str) -> Optional[Dict[str, Any]]:
    """
    Parse a model reply into a command dict.

    Returns:
        The decoded object when it is a JSON object with an ``action``,
        otherwise None
    """
    try:
        parsed = json.loads(strip_code_fences(text))
    except (ValueError, TypeError):
        return None
    if not isinstance(parsed, dict) or not parsed.get("action"):
        return None
    return parsed


def reply_lang(command: Dict[str, Any]) -> str:
    lang = str(command.get("reply_lang") or DEFAULT_LANG).lower()
    return lang if lang in SUPPORTED_LANGS else DEFAULT_LANG


def pick(lang: str, en: str, he: str) -> str:
    return he if lang == "he" else en


class Specialist(ABC):
    """
    A capability handler.

    Subclasses implement ``handle``; calling the instance runs it and turns
    any escaped exception into the specialist's static error message.
    """

    error_message = "⚠️ Handler error."

    @abstractmethod
    async def handle(self, request: SpecialistRequest) -> SpecialistResult:
        pass

    async def __call__(self, request: SpecialistRequest) -> SpecialistResult:
        try:
            return await self.handle(request)
        except Exception as e:
            logger.exception(
                f"{self.__class__.__name__} failed: {e}",
                extra={"evt": f"{self.__class__.__name__}_error", "details": {"err": str(e)}},
            )
            return SpecialistResult(ok=False, message=self.error_message)
