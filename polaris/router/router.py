"""
Intent router.

Classifies free text into exactly one handler key with a single prediction
call, then validates the answer against the merged handler manifest.
Unknown keys fall back to ``general_chat``.
"""
import logging
import re
from typing import Iterable, List, Sequence, Tuple

from ..models import HandlerDescriptor
from .schemas import RouteDecision, RouteFailure, RouteMatch

logger = logging.getLogger(__name__)

FALLBACK_KEY = "general_chat"

CORE_HANDLERS: Tuple[HandlerDescriptor, ...] = (
    HandlerDescriptor(
        key="handle_gmail",
        target_name="cmd_HandleGmail_",
        description="Use to search, read, draft, or send emails.",
    ),
    HandlerDescriptor(
        key="handle_calendar",
        target_name="cmd_HandleCalendar_",
        description="Use to create, read, or manage calendar events.",
    ),
    HandlerDescriptor(
        key="sheets",
        target_name="cmd_HandleSheetData_",
        description='Use to add or list items in a list (e.g., "add milk to groceries").',
    ),
    HandlerDescriptor(
        key="general_chat",
        target_name="cmd_GeneralChat_",
        description="Use for general conversation or questions not covered by other tools.",
    ),
    HandlerDescriptor(
        key="help",
        target_name="cmd_Help_",
        description="Use to ask for help or a list of capabilities.",
    ),
)

SYSTEM_PROMPT_TEMPLATE = """You are a "Query 1" router. Your ONLY job is to analyze the user's text and choose the single best HandlerKey from the provided list.
You must respond with ONLY the chosen HandlerKey and nothing else.
For example, if the user says "help me", you will respond with "help".
If you cannot find a good match, you MUST respond with "general_chat".
Here is the list of available handlers:
{tools}"""

_STRAY_CHARS = re.compile(r"[.\"'`]")


def merge_handlers(
    core: Iterable[HandlerDescriptor],
    custom: Iterable[HandlerDescriptor],
) -> List[HandlerDescriptor]:
    """
    Core handlers first, then custom ones, unique by key.

    A custom row that repeats a core key cannot change its target or
    description, but may supply fallback help text the core entry lacks.
    """
    merged: List[HandlerDescriptor] = [h.model_copy() for h in core]
    by_key = {h.key: h for h in merged}

    for handler in custom:
        existing = by_key.get(handler.key)
        if existing is None:
            merged.append(handler)
            by_key[handler.key] = handler
        elif not existing.fallback_text and handler.fallback_text:
            existing.fallback_text = handler.fallback_text

    return merged


def sanitize_key(raw: str) -> str:
    return _STRAY_CHARS.sub("", (raw or "").strip()).strip()


def render_tool_list(handlers: Sequence[HandlerDescriptor]) -> str:
    return "\n---\n".join(
        f"HandlerKey: {h.key}\nDescription: {h.description}" for h in handlers
    )


class IntentRouter:
    """Thin routing layer that delegates the decision to the prediction client."""

    def __init__(self, config_store, prediction, core_handlers: Sequence[HandlerDescriptor] = CORE_HANDLERS):
        self.config_store = config_store
        self.prediction = prediction
        self.core_handlers = tuple(core_handlers)

    async def route(self, text: str) -> RouteDecision:
        """
        Pick exactly one handler for the text.

        Returns:
            RouteMatch, or RouteFailure with one of: handlers-unavailable,
            prediction-error, no-match, internal-exception
        """
        try:
            manifest = self.config_store.load_manifest()
            if not manifest.ok:
                logger.error(
                    f"Handler manifest unavailable: {manifest.error}",
                    extra={"evt": "router_handlers_unavailable", "details": {"err": manifest.error}},
                )
                return RouteFailure(reason="handlers-unavailable", detail=manifest.error or "")

            handlers = merge_handlers(self.core_handlers, manifest.value)
            system_prompt = SYSTEM_PROMPT_TEMPLATE.format(tools=render_tool_list(handlers))

            result = await self.prediction.predict(system_prompt, text, prompt_name="router")
            if not result.ok:
                return RouteFailure(reason="prediction-error", detail=result.error)

            chosen_key = sanitize_key(result.text)
            by_key = {h.key: h for h in handlers}
            chosen = by_key.get(chosen_key)
            debug = {"raw": result.text, "chosen_key": chosen_key}

            if chosen is None:
                logger.warning(
                    f"Router returned unknown handler key {chosen_key!r}",
                    extra={"evt": "router_mismatch", "details": {"text": text, "chosen_key": chosen_key}},
                )
                chosen = by_key.get(FALLBACK_KEY)
                if chosen is None:
                    return RouteFailure(
                        reason="no-match",
                        detail=f"AI returned invalid key: {chosen_key}",
                    )
                debug["fallback"] = True

            return RouteMatch(handler=chosen.target_name, handler_key=chosen.key, debug=debug)

        except Exception as e:
            logger.exception(
                f"Router failed: {e}",
                extra={"evt": "router_exception", "details": {"err": str(e)}},
            )
            return RouteFailure(reason="internal-exception", detail=str(e))
