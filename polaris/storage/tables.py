"""
SQLite-backed tabular store.

Each named table is a header plus a list of rows keyed by that header, the
same shape a spreadsheet tab has. Tables are created on first write; reading
a table that was never written yields an empty result.
"""
import json
import sqlite3
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SETTINGS_TABLE = "Settings"
HANDLERS_TABLE = "Handlers"
DATA_AGENTS_TABLE = "DataAgents"
USER_ACCESS_TABLE = "UserAccess"
LOG_TABLE = "Log"

# Configuration and audit tables; never readable or writable as user lists.
SYSTEM_TABLES = frozenset({SETTINGS_TABLE, HANDLERS_TABLE, DATA_AGENTS_TABLE, USER_ACCESS_TABLE, LOG_TABLE})

LOG_HEADER = ["ts", "level", "evt", "details"]


class TableStoreError(Exception):
    """Raised when a table cannot be written."""


@dataclass
class TableReadResult:
    """Result of reading a whole table."""
    ok: bool
    header: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None


def _cell(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SQLiteTableStore:
    """SQLite-based storage for named tables."""

    def __init__(self, db_path: str = ":memory:"):
        """
        Initialize table store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=10)

    def _init_db(self):
        """Initialize database schema."""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS table_headers (
                table_name TEXT PRIMARY KEY,
                header TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS table_rows (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                table_name TEXT NOT NULL,
                data TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_table_rows_name
            ON table_rows (table_name)
        """)

        conn.commit()
        conn.close()
        logger.info(f"Initialized table store at {self.db_path}")

    def ensure_table(self, name: str, header: List[str]) -> None:
        """Create the table with the given header if it does not exist yet."""
        conn = self._connect()
        try:
            conn.execute(
                "INSERT OR IGNORE INTO table_headers (table_name, header) VALUES (?, ?)",
                (name, json.dumps(list(header))),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise TableStoreError(f"Cannot create table {name}: {exc}") from exc
        finally:
            conn.close()

    def read_table(self, name: str) -> TableReadResult:
        """
        Read every row of a table.

        Returns:
            TableReadResult; ok=False only when the database itself fails.
        """
        try:
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT header FROM table_headers WHERE table_name = ?", (name,)
                )
                found = cursor.fetchone()
                if not found:
                    return TableReadResult(ok=True)
                header = [str(h).strip() for h in json.loads(found[0])]

                cursor.execute(
                    "SELECT data FROM table_rows WHERE table_name = ? ORDER BY id",
                    (name,),
                )
                rows = []
                for (data,) in cursor.fetchall():
                    values = json.loads(data)
                    rows.append({h: values.get(h, "") for h in header})
            finally:
                conn.close()
        except (sqlite3.Error, ValueError) as exc:
            logger.error(f"Failed to read table {name}: {exc}")
            return TableReadResult(ok=False, error=str(exc))

        return TableReadResult(ok=True, header=header, rows=rows)

    def append_row(self, name: str, header: List[str], values: Dict[str, Any]) -> None:
        """
        Append one row, creating the table with `header` when missing.

        Raises:
            TableStoreError: If the row cannot be written
        """
        self.ensure_table(name, header)
        row = {h: _cell(values.get(h, "")) for h in header}

        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO table_rows (table_name, data) VALUES (?, ?)",
                (name, json.dumps(row, default=str, ensure_ascii=False)),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise TableStoreError(f"Cannot append to table {name}: {exc}") from exc
        finally:
            conn.close()

    def replace_table(self, name: str, header: List[str], rows: List[Dict[str, Any]]) -> None:
        """
        Overwrite a table's header and rows in one transaction.

        Raises:
            TableStoreError: If the table cannot be written
        """
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR REPLACE INTO table_headers (table_name, header) VALUES (?, ?)",
                (name, json.dumps(list(header))),
            )
            cursor.execute("DELETE FROM table_rows WHERE table_name = ?", (name,))
            cursor.executemany(
                "INSERT INTO table_rows (table_name, data) VALUES (?, ?)",
                [
                    (name, json.dumps({h: _cell(r.get(h, "")) for h in header},
                                      default=str, ensure_ascii=False))
                    for r in rows
                ],
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise TableStoreError(f"Cannot replace table {name}: {exc}") from exc
        finally:
            conn.close()

        logger.info(f"Replaced table {name} with {len(rows)} rows")
