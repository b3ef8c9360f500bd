"""Post and PostTarget models.

A Post is one logical piece of content owned by a workspace. Each
PostTarget is one platform destination for it (post x social account) and
moves through its own status machine, so a post can be partially published.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Any, Literal
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import JSON, Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from crosspost.db.models.base import UUIDModel, TimestampMixin, SoftDeleteMixin, utcnow
from crosspost.db.models.social import SocialPlatform


# =============================================================================
# Post status machine
# =============================================================================


class PostStatus(str, Enum):
    """Lifecycle of a post.

    draft -> submitted -> approved -> scheduled -> publishing -> published,
    with rejected/cancelled side branches and failed when every target fails.
    """

    draft = "draft"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    scheduled = "scheduled"
    publishing = "publishing"
    published = "published"
    failed = "failed"
    cancelled = "cancelled"

    def allowed_transitions(self) -> frozenset["PostStatus"]:
        return POST_TRANSITIONS[self]

    def can_transition_to(self, target: "PostStatus") -> bool:
        return target in POST_TRANSITIONS[self]

    @property
    def can_edit(self) -> bool:
        return self in (PostStatus.draft, PostStatus.rejected)

    @property
    def can_delete(self) -> bool:
        return self in (PostStatus.draft, PostStatus.cancelled)

    @property
    def can_publish(self) -> bool:
        return self in (PostStatus.approved, PostStatus.scheduled)

    @property
    def is_terminal(self) -> bool:
        return not POST_TRANSITIONS[self]


POST_TRANSITIONS: dict[PostStatus, frozenset[PostStatus]] = {
    PostStatus.draft: frozenset({PostStatus.submitted, PostStatus.cancelled}),
    PostStatus.submitted: frozenset(
        {PostStatus.approved, PostStatus.rejected, PostStatus.draft}
    ),
    PostStatus.approved: frozenset(
        {PostStatus.scheduled, PostStatus.publishing, PostStatus.cancelled}
    ),
    PostStatus.rejected: frozenset({PostStatus.draft}),
    # scheduled -> approved is "unschedule"
    PostStatus.scheduled: frozenset(
        {PostStatus.publishing, PostStatus.cancelled, PostStatus.approved}
    ),
    PostStatus.publishing: frozenset({PostStatus.published, PostStatus.failed}),
    PostStatus.failed: frozenset({PostStatus.publishing}),
    PostStatus.published: frozenset(),
    PostStatus.cancelled: frozenset(),
}


class PostTargetStatus(str, Enum):
    """Per-destination publishing state."""

    pending = "pending"
    publishing = "publishing"
    published = "published"
    failed = "failed"


class MediaItem(BaseModel):
    """One attached media file."""

    type: Literal["image", "video"]
    url: str
    thumbnail_url: Optional[str] = None
    alt_text: Optional[str] = None


# =============================================================================
# Post
# =============================================================================


class PostBase(SQLModel):
    """Editable post fields."""

    content_text: Optional[str] = None
    link_url: Optional[str] = Field(default=None)


class Post(UUIDModel, PostBase, SoftDeleteMixin, TimestampMixin, table=True):
    """Post table - content owned by a workspace."""

    __tablename__ = "posts"

    content_text: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    workspace_id: UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    created_by_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")

    status: PostStatus = Field(default=PostStatus.draft, nullable=False, index=True)

    # List of MediaItem dicts
    media: Optional[list[dict[str, Any]]] = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )

    scheduled_at: Optional[datetime] = Field(default=None, index=True)
    timezone: str = Field(default="UTC", nullable=False)

    submitted_at: Optional[datetime] = Field(default=None)
    approved_at: Optional[datetime] = Field(default=None)
    approved_by_user_id: Optional[UUID] = Field(default=None, foreign_key="users.id")
    rejected_at: Optional[datetime] = Field(default=None)
    rejection_reason: Optional[str] = Field(default=None)
    published_at: Optional[datetime] = Field(default=None)

    @property
    def media_items(self) -> list[MediaItem]:
        return [MediaItem.model_validate(m) for m in (self.media or [])]

    def has_content(self) -> bool:
        return bool((self.content_text or "").strip()) or bool(self.media)

    def is_due(self, now: Optional[datetime] = None) -> bool:
        return (
            self.status == PostStatus.scheduled
            and self.scheduled_at is not None
            and self.scheduled_at <= (now or utcnow())
        )


class PostCreate(PostBase):
    """Schema for creating a post."""

    media: Optional[list[MediaItem]] = None
    social_account_ids: list[UUID] = []


class PostUpdate(SQLModel):
    """Schema for updating an editable post."""

    content_text: Optional[str] = None
    link_url: Optional[str] = None
    media: Optional[list[MediaItem]] = None


class PostRead(PostBase):
    """Schema for reading post data."""

    id: UUID
    workspace_id: UUID
    created_by_user_id: Optional[UUID]
    status: PostStatus
    media: Optional[list[dict[str, Any]]]
    scheduled_at: Optional[datetime]
    timezone: str
    submitted_at: Optional[datetime]
    approved_at: Optional[datetime]
    rejection_reason: Optional[str]
    published_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]


# =============================================================================
# PostTarget
# =============================================================================


class PostTarget(UUIDModel, TimestampMixin, table=True):
    """One platform destination of a post.

    Status is independent of sibling targets.
    """

    __tablename__ = "post_targets"
    __table_args__ = (
        UniqueConstraint("post_id", "social_account_id", name="uq_post_target_post_account"),
    )

    post_id: UUID = Field(foreign_key="posts.id", nullable=False, index=True)
    social_account_id: UUID = Field(
        foreign_key="social_accounts.id", nullable=False, index=True
    )
    workspace_id: UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    platform: SocialPlatform = Field(nullable=False)

    status: PostTargetStatus = Field(default=PostTargetStatus.pending, nullable=False, index=True)
    platform_post_id: Optional[str] = Field(default=None, index=True)
    platform_post_url: Optional[str] = Field(default=None)
    published_at: Optional[datetime] = Field(default=None)
    last_attempt_at: Optional[datetime] = Field(default=None)

    error_code: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None)
    retryable: bool = Field(default=False)
    retry_count: int = Field(default=0)

    metrics: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    metrics_updated_at: Optional[datetime] = Field(default=None)

    def mark_publishing(self) -> None:
        self.status = PostTargetStatus.publishing
        self.last_attempt_at = utcnow()

    def mark_published(self, platform_post_id: str, platform_post_url: Optional[str] = None) -> None:
        self.status = PostTargetStatus.published
        self.platform_post_id = platform_post_id
        self.platform_post_url = platform_post_url
        self.published_at = utcnow()
        self.error_code = None
        self.error_message = None
        self.retryable = False

    def mark_failed(self, error_code: str, error_message: str, retryable: bool = False) -> None:
        self.status = PostTargetStatus.failed
        self.error_code = error_code
        self.error_message = error_message
        self.retryable = retryable

    def can_retry(self, max_retries: int) -> bool:
        return (
            self.status == PostTargetStatus.failed
            and self.retryable
            and self.retry_count < max_retries
        )


class PostTargetRead(SQLModel):
    """Schema for reading a post target."""

    id: UUID
    post_id: UUID
    social_account_id: UUID
    platform: SocialPlatform
    status: PostTargetStatus
    platform_post_id: Optional[str]
    platform_post_url: Optional[str]
    published_at: Optional[datetime]
    error_code: Optional[str]
    error_message: Optional[str]
    retryable: bool
    retry_count: int
    metrics: Optional[dict[str, Any]]
