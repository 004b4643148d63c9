"""
Handler registry.

Maps target names from the Handlers table to the coroutines that implement
them. Entries are registered explicitly at startup; nothing is looked up by
reflection or imported by name.
"""
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from ..models import SpecialistRequest, SpecialistResult

logger = logging.getLogger(__name__)

SpecialistFn = Callable[[SpecialistRequest], Awaitable[SpecialistResult]]

TRAILING_MARKER = "_"


class HandlerRegistry:
    """Explicit target name -> specialist coroutine mapping."""

    def __init__(self):
        self._handlers: Dict[str, SpecialistFn] = {}

    def register(self, name: str, fn: SpecialistFn) -> None:
        if name in self._handlers:
            logger.warning(f"Handler {name!r} re-registered")
        self._handlers[name] = fn

    def resolve(self, name: str) -> Optional[SpecialistFn]:
        """
        Resolve a target name, tolerating a trailing ``_``.

        Tries the exact name first; then the name without its trailing marker,
        or with one appended when it has none.

        Returns:
            The registered coroutine, or None when nothing matches
        """
        if not name:
            return None
        fn = self._handlers.get(name)
        if fn is not None:
            return fn
        if name.endswith(TRAILING_MARKER):
            return self._handlers.get(name[: -len(TRAILING_MARKER)])
        return self._handlers.get(name + TRAILING_MARKER)

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, name: str) -> bool:
        return self.resolve(name) is not None
