"""Notification records.

One row per recipient per domain event. Rows are written before any
real-time broadcast is attempted; the broadcast outcome is recorded on the
row through sent_at / failed_at.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Any
from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from crosspost.db.models.base import UUIDModel, TimestampMixin


# =============================================================================
# Enums
# =============================================================================


class NotificationType(str, Enum):
    """Types of notifications that can be sent."""

    # Inbox
    INBOX_NEW_MESSAGE = "inbox_new_message"
    INBOX_ASSIGNED = "inbox_assigned"
    INBOX_REPLY = "inbox_reply"

    # Publishing
    POST_PUBLISHED = "post_published"
    POST_FAILED = "post_failed"

    # Accounts
    ACCOUNT_RECONNECT_REQUIRED = "account_reconnect_required"


class NotificationPriority(str, Enum):
    """Priority levels for notifications."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


# =============================================================================
# Notification
# =============================================================================


class NotificationBase(SQLModel):
    """Base fields for notifications."""

    notification_type: str  # NotificationType value
    title: str
    message: str
    priority: str = Field(default=NotificationPriority.NORMAL.value)

    # Optional link to related resource
    resource_type: Optional[str] = None  # e.g., "post", "inbox_conversation"
    resource_id: Optional[UUID] = None


class Notification(UUIDModel, NotificationBase, TimestampMixin, table=True):
    """Individual notification records."""

    __tablename__ = "notifications"

    # Who receives this notification
    user_id: UUID = Field(foreign_key="users.id", index=True)
    workspace_id: UUID = Field(foreign_key="workspaces.id", index=True)

    # Who triggered it (system notifications have none)
    actor_id: Optional[UUID] = Field(default=None, foreign_key="users.id")

    data: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # Read state
    read_at: Optional[datetime] = Field(default=None, index=True)

    # Broadcast outcome
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    broadcast_attempts: int = Field(default=0)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None


class NotificationRead(NotificationBase):
    """Schema for reading a notification."""

    id: UUID
    user_id: UUID
    workspace_id: UUID
    actor_id: Optional[UUID]
    data: Optional[dict[str, Any]]
    read_at: Optional[datetime]
    sent_at: Optional[datetime]
    failed_at: Optional[datetime]
    created_at: datetime
