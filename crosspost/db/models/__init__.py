"""SQLModel table definitions.

This module exports all SQLModel table classes and their Create/Read variants.
All primary keys use UUID.

Model Categories:
- Tenancy: Tenant, User, Workspace, WorkspaceMembership
- Social: SocialAccount
- Content: Post, PostTarget
- Inbox: InboxItem, InboxConversation
- WhatsApp: WhatsAppConversation, WhatsAppMessage
- Notifications: Notification
- Queue: Job
"""

# Base class
from crosspost.db.models.base import UUIDModel, TimestampMixin, SoftDeleteMixin, utcnow

# Multi-tenancy models
from crosspost.db.models.tenant import (
    Tenant, TenantCreate, TenantRead,
    User, UserCreate, UserRead,
)
from crosspost.db.models.workspace import Workspace, WorkspaceCreate, WorkspaceRead
from crosspost.db.models.membership import (
    WorkspaceMembership, WorkspaceMembershipCreate, WorkspaceMembershipRead,
    WorkspaceRole, InviteStatus,
)

# Social accounts
from crosspost.db.models.social import (
    SocialPlatform,
    SocialAccountStatus,
    SocialAccount, SocialAccountCreate, SocialAccountRead,
)

# Content
from crosspost.db.models.content import (
    PostStatus,
    PostTargetStatus,
    POST_TRANSITIONS,
    MediaItem,
    Post, PostCreate, PostUpdate, PostRead,
    PostTarget, PostTargetRead,
)

# Inbox
from crosspost.db.models.inbox import (
    InboxItemType,
    InboxItemStatus,
    ConversationStatus,
    InboxConversation, InboxConversationRead,
    InboxItem, InboxItemRead,
)

# WhatsApp
from crosspost.db.models.whatsapp import (
    WhatsAppConversationStatus,
    WhatsAppMessageDirection,
    WhatsAppMessageType,
    WhatsAppMessageStatus,
    TemplateComponent,
    TemplateParameter,
    WhatsAppConversation, WhatsAppConversationRead,
    WhatsAppMessage, WhatsAppMessageRead,
)

# Notifications
from crosspost.db.models.notification import (
    NotificationType,
    NotificationPriority,
    Notification, NotificationRead,
)

# Queue
from crosspost.db.models.job import Job, JobType, JobStatus

__all__ = [
    # Base
    "UUIDModel",
    "TimestampMixin",
    "SoftDeleteMixin",
    "utcnow",
    # Tenancy
    "Tenant",
    "TenantCreate",
    "TenantRead",
    "User",
    "UserCreate",
    "UserRead",
    "Workspace",
    "WorkspaceCreate",
    "WorkspaceRead",
    "WorkspaceMembership",
    "WorkspaceMembershipCreate",
    "WorkspaceMembershipRead",
    "WorkspaceRole",
    "InviteStatus",
    # Social
    "SocialPlatform",
    "SocialAccountStatus",
    "SocialAccount",
    "SocialAccountCreate",
    "SocialAccountRead",
    # Content
    "PostStatus",
    "PostTargetStatus",
    "POST_TRANSITIONS",
    "MediaItem",
    "Post",
    "PostCreate",
    "PostUpdate",
    "PostRead",
    "PostTarget",
    "PostTargetRead",
    # Inbox
    "InboxItemType",
    "InboxItemStatus",
    "ConversationStatus",
    "InboxConversation",
    "InboxConversationRead",
    "InboxItem",
    "InboxItemRead",
    # WhatsApp
    "WhatsAppConversationStatus",
    "WhatsAppMessageDirection",
    "WhatsAppMessageType",
    "WhatsAppMessageStatus",
    "TemplateComponent",
    "TemplateParameter",
    "WhatsAppConversation",
    "WhatsAppConversationRead",
    "WhatsAppMessage",
    "WhatsAppMessageRead",
    # Notifications
    "NotificationType",
    "NotificationPriority",
    "Notification",
    "NotificationRead",
    # Queue
    "Job",
    "JobType",
    "JobStatus",
]
