"""
Google Workspace bindings for the mail and calendar ports.

Thin wrappers over the Gmail and Calendar REST APIs using a bearer token.
Token acquisition and refresh are handled outside this process.
"""
import asyncio
import base64
import logging
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from ..config import settings
from ..models import CalendarEvent, MailThread
from .base import CalendarPort, IntegrationError, MailPort

logger = logging.getLogger(__name__)

GOOGLE_API_URL = "https://www.googleapis.com"
GMAIL_PERMALINK = "https://mail.google.com/mail/#all/{thread_id}"


class GoogleSession:
    """Lazily created aiohttp session carrying the bearer token."""

    def __init__(self, token: Optional[str], base_url: str = GOOGLE_API_URL, timeout_seconds: float = 30):
        self.token = token
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            headers = {}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self.session = aiohttp.ClientSession(
                base_url=self.base_url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
        return self.session

    async def close(self):
        """Close aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: Any = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Call the API and return the decoded JSON body.

        Raises:
            IntegrationError: On transport failure or a non-2xx status
        """
        if not self.token:
            raise IntegrationError("Google access token is not configured.")
        try:
            session = await self._get_session()
            async with session.request(method, path, params=params, json=json) as response:
                if response.status >= 300:
                    error_text = await response.text()
                    logger.error(f"Google API error: {response.status} - {error_text[:500]}")
                    raise IntegrationError(f"Google API error: {response.status}", status=response.status)
                if response.status == 204:
                    return {}
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise IntegrationError(f"Google API unreachable: {e}") from e


def _raw_message(to: str, subject: str, body: str) -> str:
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


def _header(headers: List[Dict[str, str]], name: str) -> str:
    return next((h.get("value", "") for h in headers if h.get("name", "").lower() == name.lower()), "")


class GoogleMailIntegration(GoogleSession, MailPort):
    """Gmail REST binding."""

    def __init__(self, config: Dict[str, Any] = None):
        MailPort.__init__(self, config)
        GoogleSession.__init__(
            self,
            token=self.config.get("token", settings.google_access_token),
            base_url=self.config.get("url", GOOGLE_API_URL),
        )

    async def search(self, query: str, limit: int) -> List[MailThread]:
        listing = await self._request(
            "GET", "/gmail/v1/users/me/threads", params={"q": query, "maxResults": limit}
        )
        threads = []
        for item in listing.get("threads", [])[:limit]:
            thread_id = item["id"]
            detail = await self._request(
                "GET",
                f"/gmail/v1/users/me/threads/{thread_id}",
                params=[("format", "metadata"), ("metadataHeaders", "Subject"), ("metadataHeaders", "From")],
            )
            messages = detail.get("messages") or [{}]
            headers = messages[0].get("payload", {}).get("headers", [])
            threads.append(MailThread(
                thread_id=thread_id,
                subject=_header(headers, "Subject"),
                sender=_header(headers, "From").split("<")[0].strip().strip('"'),
                permalink=GMAIL_PERMALINK.format(thread_id=thread_id),
            ))
        return threads

    async def create_draft(self, to: str, subject: str, body: str) -> str:
        result = await self._request(
            "POST",
            "/gmail/v1/users/me/drafts",
            json={"message": {"raw": _raw_message(to, subject, body)}},
        )
        return result.get("id", "")

    async def send(self, to: str, subject: str, body: str) -> None:
        await self._request(
            "POST",
            "/gmail/v1/users/me/messages/send",
            json={"raw": _raw_message(to, subject, body)},
        )
        logger.info(f"Mail sent to {to}")

    async def health_check(self) -> bool:
        """Check if Gmail is accessible."""
        try:
            await self._request("GET", "/gmail/v1/users/me/profile")
            return True
        except IntegrationError as e:
            logger.error(f"Gmail health check failed: {e}")
            return False


def _parse_event_time(value: Dict[str, str]) -> datetime:
    if "dateTime" in value:
        return datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
    return datetime.fromisoformat(value["date"]).replace(tzinfo=timezone.utc)


class GoogleCalendarIntegration(GoogleSession, CalendarPort):
    """Google Calendar REST binding."""

    def __init__(self, config: Dict[str, Any] = None):
        CalendarPort.__init__(self, config)
        GoogleSession.__init__(
            self,
            token=self.config.get("token", settings.google_access_token),
            base_url=self.config.get("url", GOOGLE_API_URL),
        )
        self.calendar_id = self.config.get("calendar_id", settings.google_calendar_id)

    @property
    def _events_path(self) -> str:
        return f"/calendar/v3/calendars/{quote(self.calendar_id, safe='')}/events"

    def _to_event(self, item: Dict[str, Any]) -> CalendarEvent:
        start = item.get("start", {})
        return CalendarEvent(
            event_id=item["id"],
            calendar_id=item.get("organizer", {}).get("email") or self.calendar_id,
            title=item.get("summary", ""),
            start=_parse_event_time(start),
            end=_parse_event_time(item.get("end", start)),
            all_day="date" in start and "dateTime" not in start,
        )

    async def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        result = await self._request(
            "GET",
            self._events_path,
            params={
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return [self._to_event(item) for item in result.get("items", [])]

    async def create_event(self, title: str, start: datetime, end: datetime) -> CalendarEvent:
        result = await self._request(
            "POST",
            self._events_path,
            json={
                "summary": title,
                "start": {"dateTime": start.isoformat()},
                "end": {"dateTime": end.isoformat()},
            },
        )
        logger.info(f"Calendar event created: {title}")
        return self._to_event(result)

    async def health_check(self) -> bool:
        """Check if the calendar is accessible."""
        try:
            await self._request("GET", f"/calendar/v3/calendars/{quote(self.calendar_id, safe='')}")
            return True
        except IntegrationError as e:
            logger.error(f"Calendar health check failed: {e}")
            return False
