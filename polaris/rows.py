"""
Typed parsing of table rows.

Operators edit tables by hand, so the same logical column can appear under a
few header spellings. Each logical column lists the spellings it accepts; a
required column with none of them in the header is a hard error rather than a
silent default.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .storage.tables import TableReadResult


class MissingColumnError(ValueError):
    """A required logical column is absent under every accepted header."""

    def __init__(self, table: str, column: "Column"):
        self.table = table
        self.column = column
        super().__init__(
            f"{table} table has no '{column.name}' column "
            f"(expected one of: {', '.join(column.aliases)})"
        )


@dataclass(frozen=True)
class Column:
    """A logical column and the header spellings that map to it."""
    name: str
    aliases: Tuple[str, ...]
    required: bool = True


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first_value(row: Dict[str, Any], aliases: Sequence[str]) -> str:
    for alias in aliases:
        value = _clean(row.get(alias))
        if value:
            return value
    return ""


def parse_rows(
    table_name: str,
    table: TableReadResult,
    columns: Sequence[Column],
) -> List[Dict[str, str]]:
    """
    Map raw rows to dicts keyed by logical column name.

    Rows missing a value for a required column are dropped.

    Raises:
        MissingColumnError: If a required column is absent from the header
    """
    header = set(table.header)
    present: Dict[str, Optional[Tuple[str, ...]]] = {}
    for column in columns:
        aliases = tuple(a for a in column.aliases if a in header)
        if not aliases and column.required:
            raise MissingColumnError(table_name, column)
        present[column.name] = aliases or None

    records = []
    for row in table.rows:
        record = {
            column.name: _first_value(row, present[column.name]) if present[column.name] else ""
            for column in columns
        }
        if any(column.required and not record[column.name] for column in columns):
            continue
        records.append(record)
    return records


SETTINGS_COLUMNS = (
    Column("key", ("Key", "key")),
    Column("value", ("Value", "value"), required=False),
)

HANDLER_COLUMNS = (
    Column("key", ("HandlerKey", "name")),
    Column("target", ("GAS_Function", "fnName")),
    Column("description", ("Description", "description"), required=False),
    Column("fallback", ("FallbackHelpText", "fallback"), required=False),
)

AGENT_COLUMNS = (
    Column("name", ("agentName", "AgentName")),
    Column("instructions", ("Instructions", "instructions"), required=False),
    Column("sheet", ("sheetName", "SheetName", "TargetSheet"), required=False),
)

USER_ACCESS_COLUMNS = (
    Column("user", ("User_Email",)),
    Column("level", ("Access_Level",), required=False),
    Column("handlers", ("Allowed_Handlers",), required=False),
)
