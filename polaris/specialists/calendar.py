"""
Calendar specialist.

Turns free text into a ``read`` or ``create`` command with a second
prediction call, then runs it against the calendar port. Replies follow the
language the model detected (English or Hebrew).
"""
import base64
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from ..config import settings
from ..integration.base import CalendarPort, IntegrationError
from ..models import CalendarEvent, SpecialistRequest, SpecialistResult
from .base import Specialist, parse_command, pick, reply_lang

logger = logging.getLogger(__name__)

HANDLER_KEY = "handle_calendar"
DEFAULT_HELP = "Please be more specific. I may need a date, time, and title."
DEFAULT_HELP_HE = "אנא פרט יותר. ייתכן שאצטרך תאריך, שעה וכותרת."
EVENT_LINK_BASE = "https://www.google.com/calendar/event?eid="

SYSTEM_PROMPT_TEMPLATE = """You are a "Query 2" Calendar specialist. Your ONLY job is to convert the user's request into a single, valid JSON command based on the current time.

The current date and time is: {now}

You must respond in a valid ISO 8601 date-time format (YYYY-MM-DDTHH:MM:SS).
You must choose one of the following actions: "read" or "create".
You MUST also include a "reply_lang" key set to the detected language of the user's prompt (e.g., "en", "he").

1.  **"read" action**:
    * User: "what's on my calendar today?"
        -> {{"action": "read", "start": "2025-10-30T00:00:00", "end": "2025-10-30T23:59:59", "reply_lang": "en"}}
    * User: "מה יש לי בלוז מחר?"
        -> {{"action": "read", "start": "2025-10-31T00:00:00", "end": "2025-10-31T23:59:59", "reply_lang": "he"}}

2.  **"create" action**:
    * User: "schedule a dentist appointment tomorrow at 3pm for 1 hour"
        -> {{"action": "create", "title": "Dentist Appointment", "start": "2025-10-31T15:00:00", "end": "2025-10-31T16:00:00", "reply_lang": "en"}}
    * User: "קבע פגישת צוות בשישי ב-10 בבוקר"
        -> {{"action": "create", "title": "פגישת צוות", "start": "2025-11-01T10:00:00", "end": "2025-11-01T10:30:00", "reply_lang": "he"}}

Respond with ONLY the JSON object and nothing else."""


def resolve_timezone(name: str):
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def format_time(value: datetime) -> str:
    """h:mm AM/PM"""
    hour = value.hour % 12 or 12
    return f"{hour}:{value.minute:02d} {'AM' if value.hour < 12 else 'PM'}"


def format_day(value: datetime) -> str:
    """MMM d"""
    return f"{value:%b} {value.day}"


def format_date(value: datetime) -> str:
    """MMM d, yyyy"""
    return f"{value:%b} {value.day}, {value.year}"


def build_event_link(event: CalendarEvent) -> str:
    event_id = event.event_id.split("@")[0]
    eid = base64.b64encode(f"{event_id} {event.calendar_id}".encode("utf-8")).decode("ascii")
    return f"{EVENT_LINK_BASE}{eid}"


class CalendarSpecialist(Specialist):
    """Reads and creates calendar events."""

    error_message = "⚠️ Calendar handler error."

    def __init__(
        self,
        config_store,
        prediction,
        calendar: CalendarPort,
        timezone_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config_store = config_store
        self.prediction = prediction
        self.calendar = calendar
        self.tz = resolve_timezone(timezone_name or settings.timezone)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def help_message(self, lang: str = "en") -> str:
        handler = self.config_store.find_handler(HANDLER_KEY)
        if handler and handler.fallback_text:
            return f"⚠️ {handler.fallback_text}"
        return f"⚠️ {pick(lang, DEFAULT_HELP, DEFAULT_HELP_HE)}"

    def _parse_datetime(self, value: Any) -> datetime:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self.tz)
        return parsed

    def system_prompt(self) -> str:
        now = self._clock().astimezone(self.tz)
        return SYSTEM_PROMPT_TEMPLATE.format(now=now.strftime("%Y-%m-%dT%H:%M:%S"))

    async def handle(self, request: SpecialistRequest) -> SpecialistResult:
        result = await self.prediction.predict(self.system_prompt(), request.text, prompt_name="calendar")
        if not result.ok:
            return SpecialistResult(ok=False, message=self.help_message())

        command = parse_command(result.text)
        if command is None:
            logger.error(
                "Calendar command could not be parsed",
                extra={"evt": "calendar_parse_error", "details": {"response": result.text[:500]}},
            )
            return SpecialistResult(ok=False, message=self.help_message())

        logger.info("Calendar command parsed", extra={"evt": "calendar_command", "details": {"cmd": command}})

        action = command.get("action")
        if action == "read":
            return await self.read(command)
        if action == "create":
            return await self.create(command)

        logger.warning(f"Unknown calendar action {action!r}")
        return SpecialistResult(ok=False, message=self.help_message(reply_lang(command)))

    async def read(self, command: Dict[str, Any]) -> SpecialistResult:
        lang = reply_lang(command)
        try:
            start = self._parse_datetime(command["start"])
            end = self._parse_datetime(command["end"])
        except (KeyError, TypeError, ValueError):
            return SpecialistResult(ok=False, message=self.help_message(lang))

        try:
            events = await self.calendar.list_events(start, end)
        except IntegrationError as e:
            logger.error(f"Calendar read failed: {e}", extra={"evt": "calendar_read_error", "details": {"err": str(e)}})
            return SpecialistResult(ok=False, message=f"⚠️ Error reading calendar events: {e}")

        if not events:
            start_str = format_day(start.astimezone(self.tz))
            end_str = format_day(end.astimezone(self.tz))
            range_str = start_str if start_str == end_str else f"{start_str} to {end_str}"
            return SpecialistResult(ok=True, message=pick(
                lang,
                f"🗓️ No events found for {range_str}.",
                f"🗓️ לא נמצאו אירועים עבור {range_str}.",
            ))

        if len(events) == 1:
            event = events[0]
            link_text = pick(lang, "Open in Calendar", "פתח ביומן")
            line = f"• *{event.title}* [{self._event_time(event, lang)}] [{link_text}]({build_event_link(event)})"
            return SpecialistResult(ok=True, message=pick(
                lang, f"Found 1 event:\n{line}", f"נמצא אירוע 1:\n{line}"
            ))

        link_text = pick(lang, "link", "קישור")
        summaries: List[str] = [
            f"• *{e.title}* [{self._event_time(e, lang)}] [[{link_text}]]({build_event_link(e)})"
            for e in events
        ]
        body = "\n".join(summaries)
        return SpecialistResult(ok=True, message=pick(
            lang,
            f"Found {len(summaries)} events:\n{body}",
            f"נמצאו {len(summaries)} אירועים:\n{body}",
        ))

    def _event_time(self, event: CalendarEvent, lang: str) -> str:
        if event.all_day:
            return pick(lang, "(All Day)", "(כל היום)")
        return format_time(event.start.astimezone(self.tz))

    async def create(self, command: Dict[str, Any]) -> SpecialistResult:
        lang = reply_lang(command)
        title = command.get("title")
        if not title or not command.get("start") or not command.get("end"):
            return SpecialistResult(ok=False, message=self.help_message(lang))
        try:
            start = self._parse_datetime(command["start"])
            end = self._parse_datetime(command["end"])
        except ValueError:
            return SpecialistResult(ok=False, message=self.help_message(lang))

        try:
            event = await self.calendar.create_event(str(title), start, end)
        except IntegrationError as e:
            logger.error(f"Calendar create failed: {e}", extra={"evt": "calendar_create_error", "details": {"err": str(e)}})
            return SpecialistResult(ok=False, message=f"⚠️ Error creating calendar event: {e}")

        local_start = start.astimezone(self.tz)
        date_str = format_date(local_start)
        time_str = format_time(local_start)
        return SpecialistResult(ok=True, message=pick(
            lang,
            f"✅ Event created successfully: *{event.title}* on {date_str} at {time_str}.",
            f"✅ אירוע נוצר בהצלחה: *{event.title}* ב-{date_str} בשעה {time_str}.",
        ))
