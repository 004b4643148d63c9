"""
Access policy gate.

Sits between routing and dispatch: a denied request never reaches a
specialist. Policies come from the UserAccess table, one row per identity.
"""
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .models import AccessLevel, UserPolicy
from .rows import USER_ACCESS_COLUMNS, MissingColumnError, parse_rows
from .storage.tables import USER_ACCESS_TABLE

logger = logging.getLogger(__name__)

HANDLER_WILDCARD = "*"


class PolicyLoadError(Exception):
    """The UserAccess table could not be read or a row could not be parsed."""


@dataclass
class AccessDecision:
    allowed: bool
    message: Optional[str] = None


class PolicyStore:
    """Reads user policies from the UserAccess table."""

    def __init__(self, tables, table_name: str = USER_ACCESS_TABLE):
        self.tables = tables
        self.table_name = table_name

    def load_policy(self, user_id: str) -> UserPolicy:
        """
        Look up the policy for one identity (exact match).

        Returns:
            The user's policy; FREE with no handlers when there is no row

        Raises:
            PolicyLoadError: If the table is unreadable or the row is malformed
        """
        table = self.tables.read_table(self.table_name)
        if not table.ok:
            raise PolicyLoadError(table.error or f"{self.table_name} table is unreadable.")
        if not table.rows:
            return UserPolicy()

        try:
            records = parse_rows(self.table_name, table, USER_ACCESS_COLUMNS)
        except MissingColumnError as e:
            raise PolicyLoadError(str(e)) from e

        row = next((r for r in records if r["user"] == user_id), None)
        if row is None:
            return UserPolicy()

        try:
            handlers = json.loads(row["handlers"] or "[]")
        except json.JSONDecodeError as e:
            raise PolicyLoadError(f"Allowed_Handlers for {user_id} is not valid JSON: {e}") from e
        if not isinstance(handlers, list):
            raise PolicyLoadError(f"Allowed_Handlers for {user_id} is not a JSON array")

        level_text = (row["level"] or AccessLevel.FREE.value).upper()
        try:
            level = AccessLevel(level_text)
        except ValueError:
            logger.warning(f"Unknown access level {level_text!r} for {user_id}; treating as FREE")
            level = AccessLevel.FREE

        return UserPolicy(access_level=level, allowed_handlers=[str(h) for h in handlers])


class AccessGate:
    """Allows or denies a routed handler for a caller."""

    def __init__(self, policy_store: PolicyStore, break_glass_admins: Iterable[str] = ()):
        self.policy_store = policy_store
        self.break_glass_admins = frozenset(break_glass_admins)

    def _policy_for(self, user_id: str) -> UserPolicy:
        try:
            return self.policy_store.load_policy(user_id)
        except PolicyLoadError as e:
            logger.error(
                f"Policy lookup failed for {user_id}: {e}",
                extra={"evt": "policy_load_error", "details": {"user": user_id, "err": str(e)}},
            )
            if user_id in self.break_glass_admins:
                logger.warning(
                    f"Break-glass ADMIN granted to {user_id}",
                    extra={"evt": "break_glass_admin", "details": {"user": user_id, "err": str(e)}},
                )
                return UserPolicy(access_level=AccessLevel.ADMIN, allowed_handlers=[HANDLER_WILDCARD])
            return UserPolicy()

    def check_access(self, user_id: str, handler_key: str) -> AccessDecision:
        policy = self._policy_for(user_id)

        if policy.access_level == AccessLevel.ADMIN or HANDLER_WILDCARD in policy.allowed_handlers:
            return AccessDecision(allowed=True)

        if handler_key in policy.allowed_handlers:
            return AccessDecision(allowed=True)

        logger.warning(
            f"Access denied: {user_id} -> {handler_key}",
            extra={"evt": "access_denied", "details": {"user": user_id, "handler": handler_key}},
        )
        return AccessDecision(
            allowed=False,
            message=f"Access Denied: The handler '{handler_key}' requires a subscription upgrade.",
        )
