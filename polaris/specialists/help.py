"""
Help and version specialists.
"""
from typing import Sequence

from ..config import settings
from ..models import HandlerDescriptor, SpecialistRequest, SpecialistResult
from ..router.router import CORE_HANDLERS, merge_handlers
from .base import Specialist


class HelpSpecialist(Specialist):
    """Lists every handler the router can choose from."""

    error_message = "⚠️ Error getting help."

    def __init__(self, config_store, core_handlers: Sequence[HandlerDescriptor] = CORE_HANDLERS):
        self.config_store = config_store
        self.core_handlers = tuple(core_handlers)

    async def handle(self, request: SpecialistRequest) -> SpecialistResult:
        manifest = self.config_store.load_manifest()
        if not manifest.ok:
            return SpecialistResult(ok=False, message="⚠️ Cannot read handlers from the Handlers table.")

        handlers = merge_handlers(self.core_handlers, manifest.value)
        commands = "\n".join(
            f"• **{h.key}**: {h.description or 'No description.'}" for h in handlers
        )
        return SpecialistResult(ok=True, message=f"Here's what I can do:\n{commands}")


class VersionSpecialist(Specialist):
    """Reports the running version."""

    error_message = "⚠️ Could not retrieve version information."

    def __init__(self, version: str = None):
        self.version = version or settings.app_version

    async def handle(self, request: SpecialistRequest) -> SpecialistResult:
        return SpecialistResult(ok=True, message=f"✅ Polaris is running version: **{self.version or 'unknown'}**")
