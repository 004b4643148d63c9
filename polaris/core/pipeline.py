"""
Pipeline: the single entry point for inbound messages.

Sequences router -> access gate -> registry dispatch for every message and
turns the result into one printable reply. Every terminal branch has its own
prefix so callers (and tests) can tell them apart:

  - router failure        "⚠️ Router Fail: "
  - access denied         "⚠️ Access Denied: "
  - handler not resolved  "⚠️ Internal Error: Handler function not found: "
  - anything unexpected   "⚠️ Critical Error: "
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..models import SpecialistRequest
from ..router.schemas import RouteFailure

logger = logging.getLogger(__name__)

ROUTER_FAIL_PREFIX = "⚠️ Router Fail: "
ACCESS_DENIED_PREFIX = "⚠️ "
HANDLER_NOT_FOUND_PREFIX = "⚠️ Internal Error: Handler function not found: "
CRITICAL_MESSAGE = "⚠️ Critical Error: An unexpected exception occurred while processing your request."


class OutcomeKind(str, Enum):
    HANDLED = "handled"
    ROUTER_FAILURE = "router-failure"
    ACCESS_DENIED = "access-denied"
    HANDLER_NOT_FOUND = "handler-not-found"
    CRITICAL = "critical"


@dataclass
class PipelineOutcome:
    kind: OutcomeKind
    message: str
    card: Optional[Dict[str, Any]] = None


class Pipeline:
    """Routes, gates and dispatches one message."""

    def __init__(self, router, gate, registry):
        self.router = router
        self.gate = gate
        self.registry = registry

    def _router_failure(self, text: str, decision: RouteFailure) -> PipelineOutcome:
        if decision.reason == "no-match":
            reply = f"🤖 Echo: {text}"
        else:
            reply = f"Router error: {decision.reason}"
        return PipelineOutcome(OutcomeKind.ROUTER_FAILURE, f"{ROUTER_FAIL_PREFIX}{reply}")

    async def run(self, text: str, caller_identity: str, space_id: Optional[str] = None) -> PipelineOutcome:
        """
        Handle one message end to end.

        Returns:
            PipelineOutcome; never raises
        """
        text = (text or "").strip()
        try:
            decision = await self.router.route(text)

            logger.info(
                f"Route decision for {caller_identity}: {decision}",
                extra={"evt": "route_decision", "details": {
                    "text": text,
                    "decision": decision.model_dump(),
                }},
            )

            if isinstance(decision, RouteFailure):
                return self._router_failure(text, decision)

            access = self.gate.check_access(caller_identity, decision.handler_key)
            if not access.allowed:
                return PipelineOutcome(OutcomeKind.ACCESS_DENIED, f"{ACCESS_DENIED_PREFIX}{access.message}")

            fn = self.registry.resolve(decision.handler)
            if fn is None:
                logger.error(
                    f"Handler function not found: {decision.handler}",
                    extra={"evt": "handler_not_found", "details": {
                        "handler": decision.handler, "key": decision.handler_key,
                    }},
                )
                return PipelineOutcome(OutcomeKind.HANDLER_NOT_FOUND, f"{HANDLER_NOT_FOUND_PREFIX}{decision.handler}")

            result = await fn(SpecialistRequest(text=text, user_id=caller_identity, space_id=space_id))

            message = result.message or json.dumps(result.model_dump(), ensure_ascii=False)
            card = result.card if result.ok else None
            return PipelineOutcome(OutcomeKind.HANDLED, message, card)

        except Exception as e:
            logger.exception(
                f"Pipeline failed: {e}",
                extra={"evt": "pipeline_critical", "details": {"err": str(e), "user": caller_identity}},
            )
            return PipelineOutcome(OutcomeKind.CRITICAL, CRITICAL_MESSAGE)

    async def route_user_query(self, text: str, caller_identity: str) -> str:
        """Primary entry point: always returns a printable string."""
        outcome = await self.run(text, caller_identity)
        return outcome.message
