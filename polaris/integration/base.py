"""
Capability ports for mail and calendar providers.
All provider bindings should inherit from MailPort or CalendarPort.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import CalendarEvent, MailThread


class IntegrationError(Exception):
    """A provider call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class MailPort(ABC):
    """Abstract mail capability."""

    def __init__(self, config: Dict[str, Any] = None):
        """Initialize integration with configuration."""
        self.config = config or {}
        self.name = self.__class__.__name__

    @abstractmethod
    async def search(self, query: str, limit: int) -> List[MailThread]:
        """
        Search mail threads.

        Args:
            query: Provider search expression (e.g. "is:unread from:bob")
            limit: Maximum number of threads

        Returns:
            Matching threads, newest first
        """
        pass

    @abstractmethod
    async def create_draft(self, to: str, subject: str, body: str) -> str:
        """
        Create a draft without sending it.

        Returns:
            Provider id of the draft
        """
        pass

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        """Send a message immediately."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the provider is reachable.

        Returns:
            True if healthy, False otherwise
        """
        pass


class CalendarPort(ABC):
    """Abstract calendar capability."""

    def __init__(self, config: Dict[str, Any] = None):
        """Initialize integration with configuration."""
        self.config = config or {}
        self.name = self.__class__.__name__

    @abstractmethod
    async def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        """
        List events overlapping [start, end).

        Args:
            start: Aware start datetime
            end: Aware end datetime

        Returns:
            Events ordered by start time
        """
        pass

    @abstractmethod
    async def create_event(self, title: str, start: datetime, end: datetime) -> CalendarEvent:
        """Create an event and return it as stored by the provider."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass
