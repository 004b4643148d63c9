"""
Data models for handlers, policies, specialist requests and pending actions.
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum


class AccessLevel(str, Enum):
    """Entitlement tiers understood by the access gate."""
    FREE = "FREE"
    ADMIN = "ADMIN"


class ActionStatus(str, Enum):
    """Lifecycle of a deferred action."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class HandlerDescriptor(BaseModel):
    """One row of the handler manifest."""
    key: str
    target_name: str
    description: str = ""
    fallback_text: str = ""


class AgentProfile(BaseModel):
    """One row of the DataAgents table (chat persona / list alias)."""
    name: str
    instructions: str = ""
    sheet_name: Optional[str] = None


class UserPolicy(BaseModel):
    """Entitlement record for a single user identity."""
    access_level: AccessLevel = AccessLevel.FREE
    allowed_handlers: List[str] = Field(default_factory=list)


class SpecialistRequest(BaseModel):
    """Normalized request handed to a specialist."""
    text: str
    user_id: str = ""
    space_id: Optional[str] = None


class SpecialistResult(BaseModel):
    """What every specialist returns."""
    ok: bool
    message: str
    card: Optional[Dict[str, Any]] = None


class PendingAction(BaseModel):
    """An action waiting for human confirmation before it takes effect."""
    action_id: str
    created_at: datetime
    expires_at: datetime
    status: ActionStatus = ActionStatus.PENDING
    handler_key: str
    user_id: str = ""
    space_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class MailThread(BaseModel):
    """A mail thread as returned by the mail port."""
    thread_id: str
    subject: str
    sender: str
    permalink: str = ""


class CalendarEvent(BaseModel):
    """A calendar event as returned by the calendar port."""
    event_id: str
    calendar_id: str
    title: str
    start: datetime
    end: datetime
    all_day: bool = False


class QueryRequest(BaseModel):
    """Body of POST /query."""
    text: str
    user_id: str = ""
    space_id: Optional[str] = None


class QueryResponse(BaseModel):
    """Reply of POST /query."""
    reply: str


class ChatUser(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class ChatSpace(BaseModel):
    name: Optional[str] = None


class ChatMessage(BaseModel):
    text: Optional[str] = None


class ChatEvent(BaseModel):
    """Event posted by the chat surface."""
    type: str = "MESSAGE"
    message: Optional[ChatMessage] = None
    user: Optional[ChatUser] = None
    space: Optional[ChatSpace] = None
