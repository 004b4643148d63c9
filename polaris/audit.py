"""
Audit sink: mirrors structured log events into the Log table.

Any record logged with ``extra={"evt": ..., "details": {...}}`` is appended
as a ``ts, level, evt, details`` row. Plain log lines are left to the normal
handlers.
"""
import json
import logging
from datetime import datetime, timezone

from .storage.tables import LOG_HEADER, LOG_TABLE

MAX_DETAILS_CHARS = 3000


class TableLogHandler(logging.Handler):
    """Logging handler that appends audit events to a table."""

    def __init__(self, store, table_name: str = LOG_TABLE, level: int = logging.INFO):
        super().__init__(level=level)
        self.store = store
        self.table_name = table_name

    def emit(self, record: logging.LogRecord) -> None:
        evt = getattr(record, "evt", None)
        if not evt:
            return
        try:
            details = getattr(record, "details", None)
            if details is None:
                details = {"msg": record.getMessage()}
            self.store.append_row(
                self.table_name,
                LOG_HEADER,
                {
                    "ts": datetime.fromtimestamp(record.created, tz=timezone.utc),
                    "level": record.levelname,
                    "evt": evt,
                    "details": json.dumps(details, default=str, ensure_ascii=False)[:MAX_DETAILS_CHARS],
                },
            )
        except Exception:
            self.handleError(record)


def install_audit_handler(store, logger_name: str = "polaris") -> TableLogHandler:
    """Attach a TableLogHandler to the package logger, once."""
    target = logging.getLogger(logger_name)
    for handler in target.handlers:
        if isinstance(handler, TableLogHandler):
            handler.store = store
            return handler
    handler = TableLogHandler(store)
    target.addHandler(handler)
    return handler
