"""
Confirmation flow for pending actions.

The approval link lands here. The action is claimed (PENDING -> COMPLETED)
before its side effect runs, so a double click cannot send twice. When the
side effect fails the claim is released and the same link can be retried.
"""
import html
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping

from .integration.base import IntegrationError, MailPort

logger = logging.getLogger(__name__)

Executor = Callable[[Dict[str, Any]], Awaitable[str]]


class InvalidPayloadError(ValueError):
    """The stored payload can never be executed."""


@dataclass
class ConfirmationPage:
    ok: bool
    title: str
    body: str

    def to_html(self) -> str:
        return f"<h1>{html.escape(self.title)}</h1><p>{html.escape(self.body)}</p>"


def invalid_link_page() -> ConfirmationPage:
    return ConfirmationPage(ok=False, title="❌ Invalid Link", body="The link is missing a required action ID.")


def critical_error_page() -> ConfirmationPage:
    return ConfirmationPage(
        ok=False,
        title="🚨 Critical Server Error",
        body="An unexpected error occurred during execution.",
    )


class GmailSendExecutor:
    """Sends the mail described by a ``handle_gmail`` pending action."""

    def __init__(self, mail: MailPort):
        self.mail = mail

    async def __call__(self, payload: Dict[str, Any]) -> str:
        to = payload.get("to")
        subject = payload.get("subject")
        body = payload.get("body")
        if not to or not subject or not body:
            raise InvalidPayloadError("The action payload was incomplete or corrupted.")

        await self.mail.send(to, subject, body)
        return f'Email sent to {to} with subject "{subject}". You can now close this window.'


class ConfirmationService:
    """Executes a pending action at most once."""

    def __init__(self, store, executors: Mapping[str, Executor]):
        self.store = store
        self.executors = dict(executors)

    async def confirm(self, action_id: str) -> ConfirmationPage:
        if not action_id:
            return invalid_link_page()

        claim = self.store.claim(action_id)
        if not claim.ok:
            logger.warning(
                f"Confirmation refused for {action_id}: {claim.failure.value}",
                extra={"evt": "confirm_refused", "details": {"id": action_id, "reason": claim.failure.value}},
            )
            return ConfirmationPage(ok=False, title="❌ Action Failed", body=claim.error)

        action = claim.action
        executor = self.executors.get(action.handler_key)
        if executor is None:
            logger.error(
                f"No executor for handler {action.handler_key}",
                extra={"evt": "confirm_no_executor", "details": {"id": action_id, "handler": action.handler_key}},
            )
            return ConfirmationPage(
                ok=False,
                title="❌ Action Failed",
                body=f"No executor is registered for '{action.handler_key}'.",
            )

        try:
            message = await executor(action.payload)
        except InvalidPayloadError as e:
            logger.error(
                f"Pending action {action_id} has an unusable payload",
                extra={"evt": "confirm_invalid_payload", "details": {"id": action_id}},
            )
            return ConfirmationPage(ok=False, title="❌ Action Failed", body=str(e))
        except IntegrationError as e:
            self.store.release(action_id)
            logger.error(
                f"Pending action {action_id} failed: {e}",
                extra={"evt": "confirm_execution_failed", "details": {"id": action_id, "err": str(e)}},
            )
            return ConfirmationPage(
                ok=False,
                title="❌ Execution Failed",
                body=f"Error sending email: {e}. Please inform the Polaris owner.",
            )
        except Exception:
            self.store.release(action_id)
            raise

        logger.info(
            f"Pending action {action_id} completed",
            extra={"evt": "confirm_completed", "details": {"id": action_id, "handler": action.handler_key}},
        )
        return ConfirmationPage(ok=True, title="✅ Success!", body=message)
