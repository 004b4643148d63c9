"""
Storage module: tabular store, TTL cache and pending action store.
"""
from .tables import SQLiteTableStore, TableReadResult, TableStoreError
from .cache import TTLCache
from .pending import PendingActionStore, ClaimResult, ClaimFailure

__all__ = [
    "SQLiteTableStore",
    "TableReadResult",
    "TableStoreError",
    "TTLCache",
    "PendingActionStore",
    "ClaimResult",
    "ClaimFailure",
]
