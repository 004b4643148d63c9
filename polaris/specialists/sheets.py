"""
List specialist: "add <item> to <list>" and "list <list>".

Pattern matching only, no model call. A list name may be an agent name from
DataAgents, in which case the agent's sheet name is the physical table.
Configuration and audit tables are never reachable as lists.
"""
import json
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from ..models import SpecialistRequest, SpecialistResult
from ..storage.tables import SYSTEM_TABLES
from .base import Specialist

logger = logging.getLogger(__name__)

ADD_PATTERN = re.compile(r"add\s+(.*)\s+to\s+([\w-]+)", re.IGNORECASE)
LIST_PATTERN = re.compile(r"list\s+([\w-]+)", re.IGNORECASE)

LIST_HEADER = ["ts", "item"]
MAX_LISTED_ITEMS = 20

USAGE_HINT = "I can add/list items.\nTry: 'add milk to HomeErrands' or 'list HomeErrands'"

_RESERVED = {name.casefold() for name in SYSTEM_TABLES}


class SheetSpecialist(Specialist):
    """Appends to and lists simple item tables."""

    error_message = "⚠️ Sheet handler error."

    def __init__(self, tables, config_store, clock=None):
        self.tables = tables
        self.config_store = config_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve_table(self, list_name: str) -> Optional[str]:
        """Physical table for a list name, or None when it names a system table."""
        agent = self.config_store.find_agent(list_name)
        table_name = agent.sheet_name if agent and agent.sheet_name else list_name
        if table_name.casefold() in _RESERVED:
            logger.warning(
                f"Refused list access to system table {table_name}",
                extra={"evt": "sheet_reserved_table", "details": {"list": list_name, "table": table_name}},
            )
            return None
        return table_name

    async def handle(self, request: SpecialistRequest) -> SpecialistResult:
        text = request.text or ""

        add_match = ADD_PATTERN.search(text)
        if add_match:
            item = add_match.group(1).strip()
            table_name = self.resolve_table(add_match.group(2).strip())
            if table_name is None:
                return SpecialistResult(ok=False, message=USAGE_HINT)
            self.tables.append_row(table_name, LIST_HEADER, {"ts": self._clock(), "item": item})
            logger.info(f"Added item to {table_name}")
            return SpecialistResult(ok=True, message=f"✅ Added to {table_name}: {item}")

        list_match = LIST_PATTERN.search(text)
        if list_match:
            table_name = self.resolve_table(list_match.group(1).strip())
            if table_name is None:
                return SpecialistResult(ok=False, message=USAGE_HINT)
            table = self.tables.read_table(table_name)
            rows = table.rows if table.ok else []
            items = [f"• {r.get('item') or json.dumps(r, ensure_ascii=False)}" for r in rows[:MAX_LISTED_ITEMS]]
            if not items:
                return SpecialistResult(ok=True, message=f"📭 No items in {table_name}.")
            return SpecialistResult(ok=True, message=f"📋 {table_name}\n" + "\n".join(items))

        return SpecialistResult(ok=False, message=USAGE_HINT)
