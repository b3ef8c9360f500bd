"""Post service - content lifecycle and bulk operations.

Provides:
- CRUD for workspace posts and their platform targets
- Status transitions (submit, approve, reject, schedule, cancel)
- Bulk delete / submit / schedule with exact mutation counts

Every method takes workspace_id and only touches rows of that workspace;
a post from another workspace is reported as not found.
"""

from datetime import datetime, timezone as dt_timezone
from typing import Any, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import update
from sqlmodel import Session, select

from api.exceptions import CrosspostException, InvalidStateError, NotFoundError, ValidationError
from crosspost.content import PostRepository, SocialAccountRepository
from crosspost.db.models import (
    Post,
    PostCreate,
    PostStatus,
    PostTarget,
    PostUpdate,
    SocialAccount,
    utcnow,
)
from crosspost.logging import get_logger

logger = get_logger(__name__)


class BulkResult(BaseModel):
    """Outcome of a bulk operation.

    ``succeeded`` is the number of rows actually changed.
    """

    requested: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = []


def to_utc_naive(value: datetime) -> datetime:
    """Store datetimes as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(dt_timezone.utc).replace(tzinfo=None)
    return value


def _unique_ids(ids: Sequence[UUID]) -> list[UUID]:
    return list(dict.fromkeys(ids))


class PostService:
    """Service for managing posts and their targets."""

    # ==========================================================================
    # Reads
    # ==========================================================================

    def get(self, session: Session, workspace_id: UUID, post_id: UUID) -> Post:
        post = PostRepository(session).get(workspace_id, post_id)
        if not post:
            raise NotFoundError(f"Post {post_id} not found")
        return post

    def list_posts(
        self,
        session: Session,
        workspace_id: UUID,
        status: Optional[PostStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Post]:
        return PostRepository(session).list_for_workspace(
            workspace_id, status=status, limit=limit, offset=offset
        )

    def get_targets(self, session: Session, workspace_id: UUID, post_id: UUID) -> list[PostTarget]:
        self.get(session, workspace_id, post_id)
        return PostRepository(session).get_targets(workspace_id, post_id)

    # ==========================================================================
    # Create / update / delete
    # ==========================================================================

    def _resolve_accounts(
        self, session: Session, workspace_id: UUID, account_ids: Sequence[UUID]
    ) -> list[SocialAccount]:
        unique = _unique_ids(account_ids)
        accounts = SocialAccountRepository(session).list_by_ids(workspace_id, unique)
        found = {a.id for a in accounts}
        missing = [str(a) for a in unique if a not in found]
        if missing:
            raise ValidationError(
                "Unknown social accounts for this workspace",
                details={"social_account_ids": missing},
            )
        return accounts

    def _add_targets(self, session: Session, post: Post, accounts: Sequence[SocialAccount]) -> list[PostTarget]:
        existing = {t.social_account_id for t in PostRepository(session).get_targets(post.workspace_id, post.id)}
        created = []
        for account in accounts:
            if account.id in existing:
                continue
            target = PostTarget(
                post_id=post.id,
                social_account_id=account.id,
                workspace_id=post.workspace_id,
                platform=account.platform,
            )
            session.add(target)
            created.append(target)
        return created

    def create(
        self,
        session: Session,
        workspace_id: UUID,
        data: PostCreate,
        user_id: Optional[UUID] = None,
    ) -> Post:
        """Create a draft post with one target per selected account."""
        accounts = self._resolve_accounts(session, workspace_id, data.social_account_ids)

        post = Post(
            workspace_id=workspace_id,
            created_by_user_id=user_id,
            content_text=data.content_text,
            link_url=data.link_url,
            media=[m.model_dump(exclude_none=True) for m in data.media] if data.media else None,
        )
        session.add(post)
        session.flush()
        self._add_targets(session, post, accounts)
        session.commit()
        session.refresh(post)

        logger.info(
            "post_created",
            post_id=str(post.id),
            workspace_id=str(workspace_id),
            targets=len(accounts),
        )
        return post

    def update(
        self, session: Session, workspace_id: UUID, post_id: UUID, data: PostUpdate
    ) -> Post:
        """Edit content; editing a rejected post moves it back to draft."""
        post = self.get(session, workspace_id, post_id)
        if not post.status.can_edit:
            raise InvalidStateError(f"Cannot edit a post in status '{post.status.value}'")

        updates = data.model_dump(exclude_unset=True)
        if "content_text" in updates:
            post.content_text = updates["content_text"]
        if "link_url" in updates:
            post.link_url = updates["link_url"]
        if "media" in updates:
            post.media = [m.model_dump(exclude_none=True) for m in data.media] if data.media else None

        if post.status == PostStatus.rejected:
            post.status = PostStatus.draft
            post.rejected_at = None
            post.rejection_reason = None

        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    def delete(self, session: Session, workspace_id: UUID, post_id: UUID) -> None:
        """Soft-delete a draft or cancelled post."""
        post = self.get(session, workspace_id, post_id)
        if not post.status.can_delete:
            raise InvalidStateError(f"Cannot delete a post in status '{post.status.value}'")
        post.deleted_at = utcnow()
        session.add(post)
        session.commit()
        logger.info("post_deleted", post_id=str(post_id), workspace_id=str(workspace_id))

    def duplicate(
        self, session: Session, workspace_id: UUID, post_id: UUID, user_id: Optional[UUID] = None
    ) -> Post:
        """Copy content and targets into a new draft."""
        source = self.get(session, workspace_id, post_id)
        copy = Post(
            workspace_id=workspace_id,
            created_by_user_id=user_id or source.created_by_user_id,
            content_text=source.content_text,
            link_url=source.link_url,
            media=list(source.media) if source.media else None,
            timezone=source.timezone,
        )
        session.add(copy)
        session.flush()

        account_ids = [t.social_account_id for t in PostRepository(session).get_targets(workspace_id, post_id)]
        # Disconnected or deleted accounts are not carried over
        accounts = SocialAccountRepository(session).list_by_ids(workspace_id, account_ids)
        self._add_targets(session, copy, [a for a in accounts if a.is_connected()])
        session.commit()
        session.refresh(copy)
        return copy

    def add_targets(
        self, session: Session, workspace_id: UUID, post_id: UUID, account_ids: Sequence[UUID]
    ) -> list[PostTarget]:
        post = self.get(session, workspace_id, post_id)
        if not post.status.can_edit:
            raise InvalidStateError(f"Cannot change targets of a post in status '{post.status.value}'")
        accounts = self._resolve_accounts(session, workspace_id, account_ids)
        self._add_targets(session, post, accounts)
        session.commit()
        return PostRepository(session).get_targets(workspace_id, post_id)

    def remove_target(
        self, session: Session, workspace_id: UUID, post_id: UUID, target_id: UUID
    ) -> None:
        post = self.get(session, workspace_id, post_id)
        if not post.status.can_edit:
            raise InvalidStateError(f"Cannot change targets of a post in status '{post.status.value}'")
        target = PostRepository(session).get_target(workspace_id, target_id)
        if not target or target.post_id != post.id:
            raise NotFoundError(f"Post target {target_id} not found")
        session.delete(target)
        session.commit()

    # ==========================================================================
    # Transitions
    # ==========================================================================

    def _transition(self, post: Post, target: PostStatus) -> None:
        if not post.status.can_transition_to(target):
            raise InvalidStateError(
                f"Cannot move post from '{post.status.value}' to '{target.value}'",
                details={"from": post.status.value, "to": target.value},
            )
        post.status = target

    def _require_publishable(self, session: Session, post: Post) -> None:
        """Content and targets must be present and within every platform's rules."""
        if not post.has_content():
            raise ValidationError("Post has no text or media")

        targets = PostRepository(session).get_targets(post.workspace_id, post.id)
        if not targets:
            raise ValidationError("Post has no target accounts")

        problems = []
        text_length = len(post.content_text or "")
        for target in targets:
            limit = target.platform.max_text_length
            if limit is not None and text_length > limit:
                problems.append(
                    {"platform": target.platform.value, "error": f"Text exceeds {limit} characters"}
                )
            if target.platform.requires_media and not post.media:
                problems.append({"platform": target.platform.value, "error": "Media is required"})
        if problems:
            raise ValidationError(
                "Post content is not valid for every target", details={"targets": problems}
            )

    def submit(self, session: Session, workspace_id: UUID, post_id: UUID) -> Post:
        post = self.get(session, workspace_id, post_id)
        self._require_publishable(session, post)
        self._transition(post, PostStatus.submitted)
        post.submitted_at = utcnow()
        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    def approve(
        self, session: Session, workspace_id: UUID, post_id: UUID, user_id: Optional[UUID] = None
    ) -> Post:
        post = self.get(session, workspace_id, post_id)
        self._transition(post, PostStatus.approved)
        post.approved_at = utcnow()
        post.approved_by_user_id = user_id
        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    def reject(
        self, session: Session, workspace_id: UUID, post_id: UUID, reason: Optional[str] = None
    ) -> Post:
        post = self.get(session, workspace_id, post_id)
        self._transition(post, PostStatus.rejected)
        post.rejected_at = utcnow()
        post.rejection_reason = reason
        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    def schedule(
        self,
        session: Session,
        workspace_id: UUID,
        post_id: UUID,
        scheduled_at: datetime,
        timezone: Optional[str] = None,
    ) -> Post:
        """Schedule an approved post (or move an already scheduled one)."""
        post = self.get(session, workspace_id, post_id)
        when = to_utc_naive(scheduled_at)
        if when <= utcnow():
            raise ValidationError("scheduled_at must be in the future")
        self._require_publishable(session, post)

        if post.status != PostStatus.scheduled:
            self._transition(post, PostStatus.scheduled)
        post.scheduled_at = when
        if timezone:
            post.timezone = timezone

        session.add(post)
        session.commit()
        session.refresh(post)
        logger.info("post_scheduled", post_id=str(post.id), scheduled_at=when.isoformat())
        return post

    def reschedule(
        self, session: Session, workspace_id: UUID, post_id: UUID, scheduled_at: datetime
    ) -> Post:
        post = self.get(session, workspace_id, post_id)
        if post.status != PostStatus.scheduled:
            raise InvalidStateError("Only scheduled posts can be rescheduled")
        return self.schedule(session, workspace_id, post_id, scheduled_at)

    def unschedule(self, session: Session, workspace_id: UUID, post_id: UUID) -> Post:
        post = self.get(session, workspace_id, post_id)
        if post.status != PostStatus.scheduled:
            raise InvalidStateError("Only scheduled posts can be unscheduled")
        self._transition(post, PostStatus.approved)
        post.scheduled_at = None
        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    def cancel(self, session: Session, workspace_id: UUID, post_id: UUID) -> Post:
        post = self.get(session, workspace_id, post_id)
        self._transition(post, PostStatus.cancelled)
        session.add(post)
        session.commit()
        session.refresh(post)
        return post

    # ==========================================================================
    # Bulk operations
    # ==========================================================================

    def bulk_delete(self, session: Session, workspace_id: UUID, post_ids: Sequence[UUID]) -> BulkResult:
        """Soft-delete deletable posts in one conditional UPDATE.

        ``succeeded`` is the statement's rowcount; ids that were missing,
        already deleted, in another workspace or not deletable are failures.
        """
        ids = _unique_ids(post_ids)
        if not ids:
            return BulkResult()

        now = utcnow()
        result = session.exec(
            update(Post)
            .where(
                Post.id.in_(ids),
                Post.workspace_id == workspace_id,
                Post.deleted_at.is_(None),
                Post.status.in_([PostStatus.draft, PostStatus.cancelled]),
            )
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        succeeded = result.rowcount

        errors = []
        if succeeded < len(ids):
            deleted_now = set(
                session.exec(
                    select(Post.id).where(
                        Post.id.in_(ids),
                        Post.workspace_id == workspace_id,
                        Post.deleted_at == now,
                    )
                ).all()
            )
            errors = [
                {"post_id": str(post_id), "error": "Not found or not deletable"}
                for post_id in ids
                if post_id not in deleted_now
            ]

        logger.info(
            "posts_bulk_deleted",
            workspace_id=str(workspace_id),
            requested=len(ids),
            deleted=succeeded,
        )
        return BulkResult(
            requested=len(ids),
            succeeded=succeeded,
            failed=len(ids) - succeeded,
            errors=errors,
        )

    def _bulk(self, post_ids: Sequence[UUID], operation) -> BulkResult:
        ids = _unique_ids(post_ids)
        result = BulkResult(requested=len(ids))
        for post_id in ids:
            try:
                operation(post_id)
            except CrosspostException as e:
                result.failed += 1
                result.errors.append(
                    {"post_id": str(post_id), "error": e.message, "code": e.error_code}
                )
                continue
            result.succeeded += 1
        return result

    def bulk_submit(self, session: Session, workspace_id: UUID, post_ids: Sequence[UUID]) -> BulkResult:
        return self._bulk(post_ids, lambda pid: self.submit(session, workspace_id, pid))

    def bulk_schedule(
        self,
        session: Session,
        workspace_id: UUID,
        post_ids: Sequence[UUID],
        scheduled_at: datetime,
    ) -> BulkResult:
        return self._bulk(
            post_ids, lambda pid: self.schedule(session, workspace_id, pid, scheduled_at)
        )
