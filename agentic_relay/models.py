"""
Data models for relayed activities, backend fragments and stored sessions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from botbuilder.schema import Activity
from pydantic import BaseModel, ConfigDict, Field


class NotificationKind(str, Enum):
    """Kinds of inbound events the router distinguishes."""

    CHAT_MESSAGE = "chat_message"
    DOCUMENT_COMMENT = "document_comment"
    EMAIL_NOTIFICATION = "email_notification"
    UNKNOWN = "unknown"


class FragmentKind(str, Enum):
    """Kinds of streamed backend response fragments."""

    MESSAGE = "message"
    SESSION_UPDATE = "session_update"
    OTHER = "other"


class InboundActivity(BaseModel):
    """Normalized inbound unit of work."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: NotificationKind
    activity: Activity
    channel_id: Optional[str] = None
    conversation_id: str
    sender: Optional[Dict[str, Any]] = None
    text: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_message(self) -> bool:
        return self.activity.type == "message"


class ResponseFragment(BaseModel):
    """One streamed activity from the backend."""

    kind: FragmentKind
    text: Optional[str] = None
    session_id: Optional[str] = None
    activity_type: Optional[str] = None


class SessionRecord(BaseModel):
    """Backend session bound to a channel conversation."""

    session_id: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
