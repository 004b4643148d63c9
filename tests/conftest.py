"""
Pytest configuration and shared fixtures for Polaris tests.
"""
import pytest
import pytest_asyncio
import tempfile
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List
from unittest.mock import AsyncMock, MagicMock, patch
from httpx import AsyncClient, ASGITransport

from polaris.integration.base import CalendarPort, IntegrationError, MailPort
from polaris.models import CalendarEvent, MailThread
from polaris.prediction import PredictionErrorKind, PredictionResult
from polaris.router.manifest import ConfigStore
from polaris.storage import PendingActionStore, SQLiteTableStore, TTLCache
from polaris.storage.tables import HANDLERS_TABLE, SETTINGS_TABLE


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeUTCClock:
    """Manually advanced aware-datetime clock."""

    def __init__(self, start: datetime = datetime(2025, 10, 30, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeMailPort(MailPort):
    """In-memory mail port that records calls."""

    def __init__(self, threads: List[MailThread] = None, fail_send: bool = False):
        super().__init__()
        self.threads = threads or []
        self.fail_send = fail_send
        self.searches = []
        self.sent = []

    async def search(self, query, limit):
        self.searches.append((query, limit))
        return self.threads[:limit]

    async def create_draft(self, to, subject, body):
        return "draft-1"

    async def send(self, to, subject, body):
        if self.fail_send:
            raise IntegrationError("Google API error: 500", status=500)
        self.sent.append((to, subject, body))

    async def health_check(self):
        return True


class FakeCalendarPort(CalendarPort):
    """In-memory calendar port that records calls."""

    def __init__(self, events: List[CalendarEvent] = None):
        super().__init__()
        self.events = events or []
        self.listed = []
        self.created = []

    async def list_events(self, start, end):
        self.listed.append((start, end))
        return list(self.events)

    async def create_event(self, title, start, end):
        self.created.append((title, start, end))
        return CalendarEvent(
            event_id="evt-new@google.com",
            calendar_id="me@example.com",
            title=title,
            start=start,
            end=end,
        )

    async def health_check(self):
        return True


def ok(text: str) -> PredictionResult:
    return PredictionResult(ok=True, text=text, status=200)


def failed(kind: PredictionErrorKind = PredictionErrorKind.HTTP, error: str = "API Error 500: boom") -> PredictionResult:
    return PredictionResult.failure(kind, error, status=500)


def make_prediction(*results) -> MagicMock:
    """Prediction client stub answering each call with the next result."""
    mock = MagicMock()
    mock.predict = AsyncMock(side_effect=list(results))
    return mock


HANDLER_HEADER = ["HandlerKey", "GAS_Function", "Description", "FallbackHelpText"]


def seed_config(store: SQLiteTableStore, handlers=None):
    """Write a minimal Settings and Handlers table."""
    store.replace_table(SETTINGS_TABLE, ["Key", "Value"], [
        {"Key": "OPENAI_API_KEY", "Value": "sk-test"},
        {"Key": "OPENAI_MODEL", "Value": "gpt-4o-mini"},
    ])
    store.replace_table(HANDLERS_TABLE, HANDLER_HEADER, handlers if handlers is not None else [
        {"HandlerKey": "help", "GAS_Function": "cmd_Help_", "Description": "List commands", "FallbackHelpText": ""},
        {"HandlerKey": "general_chat", "GAS_Function": "cmd_GeneralChat_", "Description": "Chat", "FallbackHelpText": ""},
        {"HandlerKey": "version", "GAS_Function": "cmd_GetVersion_", "Description": "Show version", "FallbackHelpText": ""},
    ])


@pytest.fixture
def in_memory_db():
    """
    Provide a temp file-based database for testing.

    Note: We use a temp file instead of ":memory:" because each
    connection to ":memory:" creates a separate database, which
    doesn't work with the connection-per-operation stores.
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup
    if os.path.exists(db_path):
        os.remove(db_path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def utc_clock():
    return FakeUTCClock()


@pytest.fixture
def table_store(in_memory_db):
    return SQLiteTableStore(db_path=in_memory_db)


@pytest.fixture
def seeded_store(table_store):
    seed_config(table_store)
    return table_store


@pytest.fixture
def config_store(seeded_store, clock):
    return ConfigStore(seeded_store, TTLCache(clock=clock), ttl_seconds=600)


@pytest.fixture
def pending_store(in_memory_db, utc_clock):
    return PendingActionStore(db_path=in_memory_db, clock=utc_clock)


API_TOKEN = "test-service-token"


@pytest_asyncio.fixture
async def test_app():
    """Provide a test FastAPI app instance with a known service token."""
    # Import here to avoid circular imports
    from polaris.config import settings
    from polaris.main import app
    with patch.object(settings, "api_token", API_TOKEN):
        yield app


@pytest_asyncio.fixture
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an authenticated async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {API_TOKEN}"},
    ) as client:
        yield client


@pytest_asyncio.fixture
async def anonymous_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Client that sends no credentials."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test"
    ) as client:
        yield client
