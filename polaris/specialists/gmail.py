"""
Mail specialist.

``read`` runs a search directly. ``draft`` never sends: it stores a pending
action and replies with an approval link; the send happens only when that
link is confirmed.
"""
import logging
from typing import Any, Dict, Optional

from ..config import settings
from ..integration.base import IntegrationError, MailPort
from ..models import SpecialistRequest, SpecialistResult
from .base import Specialist, parse_command, pick, reply_lang

logger = logging.getLogger(__name__)

HANDLER_KEY = "handle_gmail"
CONFIRM_ACTION = "gmail_send_confirm"
ACTION_PREFIX = "gmail-send"
DEFAULT_COUNT = 3
MAX_COUNT = 10
DEFAULT_HELP = "Please be more specific. I may need a recipient, subject, and body."
DEFAULT_HELP_HE = "אנא פרט יותר. ייתכן שאצטרך נמען, נושא ותוכן."

SYSTEM_PROMPT = """You are a "Query 2" Gmail specialist. Your ONLY job is to convert the user's request into a single, valid JSON command.

You must respond with ONLY the JSON object and nothing else.
You must choose one of the following actions: "read" or "draft".
You MUST also include a "reply_lang" key set to the detected language of the user's prompt (e.g., "en", "he").

1.  **"read" action**:
    *   User: "show me my last 3 unread emails from 'hello@world.com'"
        -> {"action": "read", "query": "is:unread from:hello@world.com", "count": 3, "reply_lang": "en"}

2.  **"draft" action**:
    *   User: "draft an email to alice@example.com with the subject 'Status' and the body 'All done.'"
        -> {"action": "draft", "to": "alice@example.com", "subject": "Status", "body": "All done.", "reply_lang": "en"}
    *   User: "שלח מייל ל-test@example.com עם נושא 'בדיקה' ותוכן 'זוהי הודעת בדיקה'"
        -> {"action": "draft", "to": "test@example.com", "subject": "בדיקה", "body": "זוהי הודעת בדיקה", "reply_lang": "he"}

If any required field for a draft (to, subject, body) is missing from the user's text, you MUST return that field as null in the JSON.
For example, if the user says "draft an email to bob":
-> {"action": "draft", "to": "bob", "subject": null, "body": null, "reply_lang": "en"}"""


def clamp_count(value: Any) -> int:
    try:
        count = int(value or DEFAULT_COUNT)
    except (TypeError, ValueError):
        count = DEFAULT_COUNT
    return min(max(count, 1), MAX_COUNT)


class GmailSpecialist(Specialist):
    """Searches mail and prepares sends that need approval."""

    error_message = "⚠️ Gmail handler error."

    def __init__(
        self,
        config_store,
        prediction,
        mail: MailPort,
        pending_store,
        public_base_url: Optional[str] = None,
        pending_ttl_seconds: Optional[int] = None,
    ):
        self.config_store = config_store
        self.prediction = prediction
        self.mail = mail
        self.pending_store = pending_store
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.pending_ttl_seconds = pending_ttl_seconds or settings.pending_action_ttl_seconds

    def help_message(self, lang: str = "en") -> str:
        handler = self.config_store.find_handler(HANDLER_KEY)
        if handler and handler.fallback_text:
            return f"⚠️ {handler.fallback_text}"
        return f"⚠️ {pick(lang, DEFAULT_HELP, DEFAULT_HELP_HE)}"

    def approval_url(self, action_id: str) -> str:
        return f"{self.public_base_url}/confirm?action={CONFIRM_ACTION}&id={action_id}"

    async def handle(self, request: SpecialistRequest) -> SpecialistResult:
        result = await self.prediction.predict(SYSTEM_PROMPT, request.text, prompt_name="gmail")
        if not result.ok:
            return SpecialistResult(ok=False, message=self.help_message())

        command = parse_command(result.text)
        if command is None:
            logger.error(
                "Gmail command could not be parsed",
                extra={"evt": "gmail_parse_error", "details": {"response": result.text[:500]}},
            )
            return SpecialistResult(ok=False, message=self.help_message())

        logger.info("Gmail command parsed", extra={"evt": "gmail_command", "details": {"cmd": command}})

        action = command.get("action")
        if action == "read":
            return await self.read(command)
        if action == "draft":
            return self.draft(command, request)

        logger.warning(f"Unknown gmail action {action!r}")
        return SpecialistResult(ok=False, message=self.help_message(reply_lang(command)))

    async def read(self, command: Dict[str, Any]) -> SpecialistResult:
        lang = reply_lang(command)
        query = str(command.get("query") or "")
        count = clamp_count(command.get("count"))

        try:
            threads = await self.mail.search(query, count)
        except IntegrationError as e:
            logger.error(f"Mail search failed: {e}", extra={"evt": "gmail_read_error", "details": {"err": str(e), "query": query}})
            return SpecialistResult(ok=False, message=f"⚠️ Error reading emails: {e}")

        threads = threads[:count]
        if not threads:
            return SpecialistResult(ok=True, message=pick(
                lang,
                f'📭 No emails found for query: "{query}"',
                f'📭 לא נמצאו אימיילים עבור השאילתה: "{query}"',
            ))

        if len(threads) == 1:
            thread = threads[0]
            link_text = pick(lang, "Open in Gmail", "פתח ב-Gmail")
            return SpecialistResult(ok=True, message=pick(
                lang,
                f"Found 1 email:\n• *{thread.subject}* (from {thread.sender}) [{link_text}]({thread.permalink})",
                f"נמצא אימייל 1:\n• *{thread.subject}* (מאת {thread.sender}) [{link_text}]({thread.permalink})",
            ))

        from_text = pick(lang, "from", "מאת")
        body = "\n".join(f"• *{t.subject}* ({from_text} {t.sender})" for t in threads)
        return SpecialistResult(ok=True, message=pick(
            lang,
            f"Found {len(threads)} emails:\n{body}",
            f"נמצאו {len(threads)} אימיילים:\n{body}",
        ))

    def draft(self, command: Dict[str, Any], request: SpecialistRequest) -> SpecialistResult:
        lang = reply_lang(command)
        to = command.get("to")
        subject = command.get("subject")
        body = command.get("body")
        if not to or not subject or not body:
            return SpecialistResult(ok=False, message=self.help_message(lang))

        action = self.pending_store.save(
            handler_key=HANDLER_KEY,
            payload={"to": to, "subject": subject, "body": body, "reply_lang": lang},
            ttl_seconds=self.pending_ttl_seconds,
            user_id=request.user_id,
            space_id=request.space_id,
            prefix=ACTION_PREFIX,
        )
        logger.info(
            f"Mail send awaiting approval: {action.action_id}",
            extra={"evt": "gmail_pending", "details": {"id": action.action_id, "user": request.user_id, "to": to}},
        )

        link_text = pick(lang, "CLICK HERE TO SEND NOW", "לחץ כאן לשליחה מיידית")
        message = (
            f"*Gmail Approval Needed*\n> **To:** {to}\n> **Subject:** {subject}\n\n"
            f"[{link_text}]({self.approval_url(action.action_id)})"
        )
        return SpecialistResult(ok=True, message=message)
