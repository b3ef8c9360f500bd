"""Inbox models: inbound items and the conversations grouping them.

InboxItem is one inbound comment, mention or direct message. It is unique
per (social_account_id, platform_item_id) so webhook redelivery never
duplicates a row. InboxConversation buckets items by a derived
conversation_key (thread, post or participant).
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Any
from uuid import UUID

from sqlalchemy import JSON, Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from crosspost.db.models.base import UUIDModel, TimestampMixin, utcnow
from crosspost.db.models.social import SocialPlatform


class InboxItemType(str, Enum):
    """Kind of inbound item."""

    comment = "comment"
    mention = "mention"
    direct_message = "direct_message"
    whatsapp_message = "whatsapp_message"


class InboxItemStatus(str, Enum):
    """Agent-facing triage state of a single item."""

    unread = "unread"
    read = "read"
    resolved = "resolved"
    archived = "archived"


class ConversationStatus(str, Enum):
    """Conversation lifecycle; resolved/archived reopen to active."""

    active = "active"
    resolved = "resolved"
    archived = "archived"


# =============================================================================
# InboxConversation
# =============================================================================


class InboxConversation(UUIDModel, TimestampMixin, table=True):
    """A group of inbox items sharing a conversation key.

    message_count always equals the number of linked items and
    last_message_at never moves backwards.
    """

    __tablename__ = "inbox_conversations"
    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "social_account_id", "conversation_key",
            name="uq_inbox_conversation_key",
        ),
    )

    workspace_id: UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    social_account_id: UUID = Field(foreign_key="social_accounts.id", nullable=False, index=True)
    platform: SocialPlatform = Field(nullable=False)
    conversation_key: str = Field(nullable=False, index=True)

    status: ConversationStatus = Field(default=ConversationStatus.active, index=True)
    subject: Optional[str] = Field(default=None)
    participant_name: Optional[str] = Field(default=None)
    participant_username: Optional[str] = Field(default=None)

    message_count: int = Field(default=0)
    first_message_at: Optional[datetime] = Field(default=None)
    last_message_at: Optional[datetime] = Field(default=None, index=True)

    assigned_to_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id", index=True)
    assigned_at: Optional[datetime] = Field(default=None)
    resolved_at: Optional[datetime] = Field(default=None)
    resolved_by_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")
    archived_at: Optional[datetime] = Field(default=None)

    @property
    def is_open(self) -> bool:
        return self.status == ConversationStatus.active

    def record_message(self, message_at: datetime) -> None:
        """Count one more item and advance the timestamps."""
        self.message_count += 1
        if self.first_message_at is None or message_at < self.first_message_at:
            self.first_message_at = message_at
        if self.last_message_at is None or message_at > self.last_message_at:
            self.last_message_at = message_at

    def resolve(self, user_id: Optional[UUID] = None) -> None:
        self.status = ConversationStatus.resolved
        self.resolved_at = utcnow()
        self.resolved_by_user_id = user_id

    def archive(self) -> None:
        self.status = ConversationStatus.archived
        self.archived_at = utcnow()

    def reopen(self) -> None:
        self.status = ConversationStatus.active
        self.resolved_at = None
        self.resolved_by_user_id = None
        self.archived_at = None


class InboxConversationRead(SQLModel):
    """Schema for reading a conversation."""

    id: UUID
    workspace_id: UUID
    social_account_id: UUID
    platform: SocialPlatform
    conversation_key: str
    status: ConversationStatus
    subject: Optional[str]
    participant_name: Optional[str]
    participant_username: Optional[str]
    message_count: int
    first_message_at: Optional[datetime]
    last_message_at: Optional[datetime]
    assigned_to_user_id: Optional[UUID]
    resolved_at: Optional[datetime]


# =============================================================================
# InboxItem
# =============================================================================


class InboxItem(UUIDModel, TimestampMixin, table=True):
    """A single inbound comment, mention or message."""

    __tablename__ = "inbox_items"
    __table_args__ = (
        UniqueConstraint(
            "social_account_id", "platform_item_id",
            name="uq_inbox_item_account_platform_item",
        ),
    )

    workspace_id: UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    social_account_id: UUID = Field(foreign_key="social_accounts.id", nullable=False, index=True)
    conversation_id: Optional[UUID] = Field(
        default=None, foreign_key="inbox_conversations.id", index=True
    )
    post_target_id: Optional[UUID] = Field(default=None, foreign_key="post_targets.id")

    platform: SocialPlatform = Field(nullable=False)
    item_type: InboxItemType = Field(nullable=False)
    status: InboxItemStatus = Field(default=InboxItemStatus.unread, index=True)

    platform_item_id: str = Field(nullable=False)
    platform_post_id: Optional[str] = Field(default=None, index=True)

    author_name: str = Field(nullable=False)
    author_username: Optional[str] = Field(default=None)
    author_profile_url: Optional[str] = Field(default=None)
    author_avatar_url: Optional[str] = Field(default=None)

    content_text: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    platform_created_at: datetime = Field(default_factory=utcnow, index=True)

    assigned_to_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")
    read_at: Optional[datetime] = Field(default=None)
    resolved_at: Optional[datetime] = Field(default=None)

    # Open-ended platform extras (thread ids, parent comment ids, raw type)
    item_metadata: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )


class InboxItemRead(SQLModel):
    """Schema for reading an inbox item."""

    id: UUID
    workspace_id: UUID
    social_account_id: UUID
    conversation_id: Optional[UUID]
    post_target_id: Optional[UUID]
    platform: SocialPlatform
    item_type: InboxItemType
    status: InboxItemStatus
    platform_item_id: str
    platform_post_id: Optional[str]
    author_name: str
    author_username: Optional[str]
    content_text: Optional[str]
    platform_created_at: datetime
    assigned_to_user_id: Optional[UUID]
