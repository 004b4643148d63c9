"""
Settings and handler manifest, sourced from tables and cached with a TTL.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Generic, List, Optional, TypeVar

from ..models import AgentProfile, HandlerDescriptor
from ..rows import (
    AGENT_COLUMNS,
    HANDLER_COLUMNS,
    SETTINGS_COLUMNS,
    MissingColumnError,
    parse_rows,
)
from ..storage.cache import TTLCache
from ..storage.tables import DATA_AGENTS_TABLE, HANDLERS_TABLE, SETTINGS_TABLE

logger = logging.getLogger(__name__)

T = TypeVar("T")

SETTINGS_CACHE_KEY = "polaris_settings"
HANDLERS_CACHE_KEY = "polaris_handlers"
DEFAULT_TTL_SECONDS = 600

API_KEY_SETTING = "OPENAI_API_KEY"
MODEL_SETTING = "OPENAI_MODEL"


@dataclass
class LoadResult(Generic[T]):
    """Either a loaded value or the reason it could not be loaded."""
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None


class ConfigStore:
    """Loads the Settings and Handlers tables through a TTL cache."""

    def __init__(self, tables, cache: Optional[TTLCache] = None, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.tables = tables
        self.cache = cache or TTLCache()
        self.ttl_seconds = ttl_seconds

    def load_settings(self) -> LoadResult[Dict[str, str]]:
        """Return the Settings table as a flat key/value map."""
        cached = self.cache.get(SETTINGS_CACHE_KEY)
        if cached is not None:
            return LoadResult(ok=True, value=cached)

        table = self.tables.read_table(SETTINGS_TABLE)
        if not table.ok or not table.rows:
            return LoadResult(ok=False, error="Settings table is empty or unreadable.")

        try:
            records = parse_rows(SETTINGS_TABLE, table, SETTINGS_COLUMNS)
        except MissingColumnError as exc:
            logger.error(str(exc), extra={"evt": "load_settings", "details": {"err": str(exc)}})
            return LoadResult(ok=False, error=str(exc))

        values = {r["key"]: r["value"] for r in records}

        if not values.get(API_KEY_SETTING) or not values.get(MODEL_SETTING):
            logger.warning(
                f"{API_KEY_SETTING} or {MODEL_SETTING} missing from Settings",
                extra={"evt": "load_settings", "details": {"missing": [
                    k for k in (API_KEY_SETTING, MODEL_SETTING) if not values.get(k)
                ]}},
            )

        self.cache.put(SETTINGS_CACHE_KEY, values, self.ttl_seconds)
        return LoadResult(ok=True, value=values)

    def load_manifest(self) -> LoadResult[List[HandlerDescriptor]]:
        """Return the registered handlers, in table order, unique by key."""
        cached = self.cache.get(HANDLERS_CACHE_KEY)
        if cached is not None:
            return LoadResult(ok=True, value=cached)

        table = self.tables.read_table(HANDLERS_TABLE)
        if not table.ok or not table.rows:
            return LoadResult(ok=False, error="Handlers table is empty or unreadable.")

        try:
            records = parse_rows(HANDLERS_TABLE, table, HANDLER_COLUMNS)
        except MissingColumnError as exc:
            logger.error(str(exc), extra={"evt": "load_manifest", "details": {"err": str(exc)}})
            return LoadResult(ok=False, error=str(exc))

        handlers: List[HandlerDescriptor] = []
        seen = set()
        for r in records:
            if r["key"] in seen:
                logger.warning(f"Duplicate handler key {r['key']!r} ignored")
                continue
            seen.add(r["key"])
            handlers.append(HandlerDescriptor(
                key=r["key"],
                target_name=r["target"],
                description=r["description"],
                fallback_text=r["fallback"],
            ))

        if not handlers:
            return LoadResult(ok=False, error="No valid handlers found in Handlers table.")

        self.cache.put(HANDLERS_CACHE_KEY, handlers, self.ttl_seconds)
        return LoadResult(ok=True, value=handlers)

    def find_handler(self, key: str) -> Optional[HandlerDescriptor]:
        """Look up one manifest entry; None when missing or unloadable."""
        manifest = self.load_manifest()
        if not manifest.ok:
            return None
        return next((h for h in manifest.value if h.key == key), None)

    def load_agents(self) -> List[AgentProfile]:
        """
        Read the DataAgents table.

        Returns an empty list when the table is missing, empty or malformed;
        callers fall back to their defaults.
        """
        table = self.tables.read_table(DATA_AGENTS_TABLE)
        if not table.ok or not table.rows:
            return []
        try:
            records = parse_rows(DATA_AGENTS_TABLE, table, AGENT_COLUMNS)
        except MissingColumnError as exc:
            logger.warning(str(exc), extra={"evt": "load_agents", "details": {"err": str(exc)}})
            return []
        return [
            AgentProfile(name=r["name"], instructions=r["instructions"], sheet_name=r["sheet"] or None)
            for r in records
        ]

    def find_agent(self, name: str) -> Optional[AgentProfile]:
        """Case-insensitive lookup of a DataAgents row by agent name."""
        wanted = (name or "").lower()
        return next((a for a in self.load_agents() if a.name.lower() == wanted), None)

    def invalidate(self) -> None:
        """Drop cached settings and manifest."""
        self.cache.remove(SETTINGS_CACHE_KEY)
        self.cache.remove(HANDLERS_CACHE_KEY)
