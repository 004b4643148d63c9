"""
SQLite-based store for actions awaiting human confirmation.

State machine: (none) -> PENDING -> COMPLETED. The PENDING -> COMPLETED
transition is a single conditional UPDATE, so of two concurrent confirmations
for the same id exactly one wins.
"""
import json
import sqlite3
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..models import ActionStatus, PendingAction

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    # Fixed-width UTC text so SQL string comparison orders correctly
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class ClaimFailure(str, Enum):
    NOT_FOUND = "not-found"
    ALREADY_COMPLETED = "already-completed"
    EXPIRED = "expired"


@dataclass
class ClaimResult:
    """Outcome of trying to take ownership of a pending action."""
    ok: bool
    action: Optional[PendingAction] = None
    failure: Optional[ClaimFailure] = None

    @property
    def error(self) -> str:
        if self.failure == ClaimFailure.EXPIRED:
            return "The approval link has expired."
        if self.failure == ClaimFailure.ALREADY_COMPLETED:
            return "This action was already completed."
        return "Action ID not found or already completed."


class PendingActionStore:
    """SQLite-based storage for pending actions."""

    def __init__(self, db_path: str = ":memory:", clock: Callable[[], datetime] = _utcnow):
        """
        Initialize pending action store.

        Args:
            db_path: Path to SQLite database file
            clock: Returns the current aware UTC datetime
        """
        self.db_path = db_path
        self._clock = clock
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=10)

    def _init_db(self):
        """Initialize database schema."""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS pending_actions (
                action_id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                status TEXT NOT NULL,
                handler_key TEXT NOT NULL,
                user_id TEXT,
                space_id TEXT,
                payload TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_pending_actions_status
            ON pending_actions (status)
        """)

        conn.commit()
        conn.close()
        logger.info(f"Initialized pending action store at {self.db_path}")

    def save(
        self,
        handler_key: str,
        payload: Dict[str, Any],
        ttl_seconds: int,
        user_id: str = "",
        space_id: Optional[str] = None,
        prefix: str = "action",
    ) -> PendingAction:
        """
        Persist a new PENDING action.

        Args:
            handler_key: Handler that created the action (selects the executor)
            payload: Structured command to run on confirmation
            ttl_seconds: Lifetime of the approval link
            user_id: Requesting user
            space_id: Chat space the request came from
            prefix: Prefix of the generated action id

        Returns:
            The stored PendingAction
        """
        now = self._clock()
        action = PendingAction(
            action_id=f"{prefix}-{uuid.uuid4()}",
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
            status=ActionStatus.PENDING,
            handler_key=handler_key,
            user_id=user_id or "",
            space_id=space_id,
            payload=payload,
        )

        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute(
            """INSERT INTO pending_actions
               (action_id, created_at, expires_at, status, handler_key, user_id, space_id, payload)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                action.action_id,
                _iso(action.created_at),
                _iso(action.expires_at),
                action.status.value,
                action.handler_key,
                action.user_id,
                action.space_id,
                json.dumps(action.payload, ensure_ascii=False),
            ),
        )
        conn.commit()
        conn.close()

        logger.info(f"Saved pending action {action.action_id} for {handler_key}")
        return action

    def get(self, action_id: str) -> Optional[PendingAction]:
        """Return the action with this id, or None."""
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute(
            """SELECT action_id, created_at, expires_at, status, handler_key,
                      user_id, space_id, payload
               FROM pending_actions WHERE action_id = ?""",
            (action_id,),
        )
        row = cursor.fetchone()
        conn.close()

        if not row:
            return None
        action_id, created_at, expires_at, status, handler_key, user_id, space_id, payload = row
        return PendingAction(
            action_id=action_id,
            created_at=datetime.fromisoformat(created_at),
            expires_at=datetime.fromisoformat(expires_at),
            status=ActionStatus(status),
            handler_key=handler_key,
            user_id=user_id or "",
            space_id=space_id,
            payload=json.loads(payload),
        )

    def claim(self, action_id: str) -> ClaimResult:
        """
        Atomically move a live PENDING action to COMPLETED.

        Returns:
            ClaimResult with the claimed action, or the reason it was refused
        """
        now_iso = _iso(self._clock())

        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute(
            """UPDATE pending_actions SET status = ?
               WHERE action_id = ? AND status = ? AND expires_at > ?""",
            (ActionStatus.COMPLETED.value, action_id, ActionStatus.PENDING.value, now_iso),
        )
        claimed = cursor.rowcount == 1
        conn.commit()
        conn.close()

        action = self.get(action_id)
        if claimed:
            return ClaimResult(ok=True, action=action)
        if action is None:
            return ClaimResult(ok=False, failure=ClaimFailure.NOT_FOUND)
        if action.status == ActionStatus.COMPLETED:
            return ClaimResult(ok=False, action=action, failure=ClaimFailure.ALREADY_COMPLETED)
        return ClaimResult(ok=False, action=action, failure=ClaimFailure.EXPIRED)

    def release(self, action_id: str) -> bool:
        """
        Return a claimed action to PENDING after its side effect failed.

        Returns:
            True if the action was released
        """
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE pending_actions SET status = ? WHERE action_id = ? AND status = ?",
            (ActionStatus.PENDING.value, action_id, ActionStatus.COMPLETED.value),
        )
        released = cursor.rowcount == 1
        conn.commit()
        conn.close()

        if released:
            logger.info(f"Released pending action {action_id} back to PENDING")
        return released

    def purge(self, retention_hours: int) -> int:
        """
        Delete completed or expired actions older than the retention window.

        Args:
            retention_hours: Age (by creation time) after which finished rows go

        Returns:
            Number of actions deleted
        """
        now = self._clock()
        cutoff_iso = _iso(now - timedelta(hours=retention_hours))

        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute(
            """DELETE FROM pending_actions
               WHERE created_at < ? AND (status = ? OR expires_at <= ?)""",
            (cutoff_iso, ActionStatus.COMPLETED.value, _iso(now)),
        )
        deleted_count = cursor.rowcount
        conn.commit()
        conn.close()

        if deleted_count > 0:
            logger.info(f"Purged {deleted_count} finished pending actions")

        return deleted_count
