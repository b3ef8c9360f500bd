"""WhatsApp Business conversation and message models.

WhatsApp only allows free-form replies inside the 24-hour service window
opened by the customer's last inbound message. Outside it, only approved
templates may be sent.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import JSON, Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from crosspost.db.models.base import UUIDModel, TimestampMixin, utcnow


class WhatsAppConversationStatus(str, Enum):
    active = "active"
    closed = "closed"


class WhatsAppMessageDirection(str, Enum):
    inbound = "inbound"
    outbound = "outbound"


class WhatsAppMessageType(str, Enum):
    text = "text"
    image = "image"
    video = "video"
    audio = "audio"
    document = "document"
    sticker = "sticker"
    location = "location"
    contacts = "contacts"
    interactive = "interactive"
    reaction = "reaction"
    template = "template"
    unknown = "unknown"


class WhatsAppMessageStatus(str, Enum):
    """Delivery status; only ever moves forward (failed is final)."""

    pending = "pending"
    sent = "sent"
    delivered = "delivered"
    read = "read"
    failed = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    WhatsAppMessageStatus.pending: 0,
    WhatsAppMessageStatus.sent: 1,
    WhatsAppMessageStatus.delivered: 2,
    WhatsAppMessageStatus.read: 3,
    WhatsAppMessageStatus.failed: 4,
}


class TemplateParameter(BaseModel):
    """A body/header parameter of a template message."""

    type: str = "text"
    text: Optional[str] = None


class TemplateComponent(BaseModel):
    """One component (header/body/button) of a template message."""

    type: str
    sub_type: Optional[str] = None
    index: Optional[int] = None
    parameters: list[TemplateParameter] = []


# =============================================================================
# Conversation
# =============================================================================


class WhatsAppConversation(UUIDModel, TimestampMixin, table=True):
    """A thread with one customer phone number on one business number."""

    __tablename__ = "whatsapp_conversations"
    __table_args__ = (
        UniqueConstraint(
            "social_account_id", "customer_phone",
            name="uq_whatsapp_conversation_account_phone",
        ),
    )

    workspace_id: UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    social_account_id: UUID = Field(foreign_key="social_accounts.id", nullable=False, index=True)
    inbox_conversation_id: Optional[UUID] = Field(
        default=None, foreign_key="inbox_conversations.id"
    )

    customer_phone: str = Field(nullable=False, index=True)
    customer_name: Optional[str] = Field(default=None)
    status: WhatsAppConversationStatus = Field(default=WhatsAppConversationStatus.active)

    last_customer_message_at: Optional[datetime] = Field(default=None)
    last_message_at: Optional[datetime] = Field(default=None)
    conversation_expires_at: Optional[datetime] = Field(default=None)
    is_within_service_window: bool = Field(default=False)
    message_count: int = Field(default=0)

    assigned_to_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")

    def open_service_window(self, at: datetime, hours: int = 24) -> None:
        """Customer wrote in: the free-form reply window restarts."""
        self.last_customer_message_at = at
        self.conversation_expires_at = at + timedelta(hours=hours)
        self.is_within_service_window = True
        self.status = WhatsAppConversationStatus.active

    def service_window_open(self, now: Optional[datetime] = None) -> bool:
        if not self.is_within_service_window or self.conversation_expires_at is None:
            return False
        return self.conversation_expires_at > (now or utcnow())


class WhatsAppConversationRead(SQLModel):
    id: UUID
    workspace_id: UUID
    social_account_id: UUID
    customer_phone: str
    customer_name: Optional[str]
    status: WhatsAppConversationStatus
    last_customer_message_at: Optional[datetime]
    conversation_expires_at: Optional[datetime]
    is_within_service_window: bool
    message_count: int


# =============================================================================
# Message
# =============================================================================


class WhatsAppMessage(UUIDModel, TimestampMixin, table=True):
    """One inbound or outbound WhatsApp message."""

    __tablename__ = "whatsapp_messages"

    workspace_id: UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    conversation_id: UUID = Field(
        foreign_key="whatsapp_conversations.id", nullable=False, index=True
    )
    wamid: Optional[str] = Field(default=None, unique=True, index=True)

    direction: WhatsAppMessageDirection = Field(nullable=False)
    message_type: WhatsAppMessageType = Field(default=WhatsAppMessageType.text)
    content_text: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    media_id: Optional[str] = Field(default=None)
    media_mime_type: Optional[str] = Field(default=None)
    template_name: Optional[str] = Field(default=None)
    payload: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    status: WhatsAppMessageStatus = Field(default=WhatsAppMessageStatus.pending)
    sent_at: Optional[datetime] = Field(default=None)
    delivered_at: Optional[datetime] = Field(default=None)
    read_at: Optional[datetime] = Field(default=None)
    failed_at: Optional[datetime] = Field(default=None)
    error_code: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None)

    sent_by_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")
    platform_timestamp: datetime = Field(default_factory=utcnow)

    def advance_status(
        self,
        status: WhatsAppMessageStatus,
        at: datetime,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Apply a delivery receipt; returns False when it would move backwards."""
        if self.status == WhatsAppMessageStatus.failed or status.rank <= self.status.rank:
            return False
        # Failure after the customer read it is noise
        if status == WhatsAppMessageStatus.failed and self.status == WhatsAppMessageStatus.read:
            return False

        self.status = status
        if status == WhatsAppMessageStatus.sent:
            self.sent_at = at
        elif status == WhatsAppMessageStatus.delivered:
            self.delivered_at = at
        elif status == WhatsAppMessageStatus.read:
            self.read_at = at
        elif status == WhatsAppMessageStatus.failed:
            self.failed_at = at
            self.error_code = error_code
            self.error_message = error_message
        return True


class WhatsAppMessageRead(SQLModel):
    id: UUID
    conversation_id: UUID
    wamid: Optional[str]
    direction: WhatsAppMessageDirection
    message_type: WhatsAppMessageType
    content_text: Optional[str]
    template_name: Optional[str]
    status: WhatsAppMessageStatus
    sent_at: Optional[datetime]
    delivered_at: Optional[datetime]
    read_at: Optional[datetime]
    platform_timestamp: datetime
