"""Publishing service - fans one post out to its platform targets.

Each PostTarget is published independently: a failure on one platform is
recorded on that target and never stops the others. The post's own status
is derived from its targets once none is in flight.

Adapter calls run concurrently and never touch the database session;
everything that reads or writes rows happens before and after the fan-out.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session

from api.exceptions import InvalidStateError, NotFoundError, ValidationError
from api.middleware.metrics import record_publish
from api.services.job_service import JobService, publish_job_key
from crosspost.config import MAX_TARGET_RETRIES
from crosspost.content import PostRepository, SocialAccountRepository
from crosspost.db.crypto import TokenUnavailableError
from crosspost.db.models import (
    JobType,
    Post,
    PostStatus,
    PostTarget,
    PostTargetStatus,
    SocialPlatform,
    utcnow,
)
from crosspost.logging import get_logger
from crosspost.platforms import (
    AccountRef,
    PlatformAdapter,
    PlatformError,
    PostContent,
    PublishResult,
    UnknownPlatformError,
    get_adapter,
)

logger = get_logger(__name__)

AdapterFactory = Callable[[SocialPlatform], PlatformAdapter]

IN_FLIGHT = (PostTargetStatus.pending, PostTargetStatus.publishing)


@dataclass
class PublishSummary:
    """What one process_post run did."""

    post_id: UUID
    post_status: PostStatus
    published: int = 0
    failed: int = 0
    partial: bool = False
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def failed_platforms(self) -> list[str]:
        return sorted({key.split(":", 1)[0] for key in self.errors})


@dataclass
class _PreparedTarget:
    target: PostTarget
    adapter: PlatformAdapter
    account: AccountRef


def resolve_post_status(
    current: PostStatus, statuses: Sequence[PostTargetStatus]
) -> tuple[PostStatus, bool]:
    """Derive the post status from its target statuses.

    Returns:
        (status, partial). Status is ``current`` while any target is still
        pending or publishing, or when there are no targets.
    """
    if not statuses or any(s in IN_FLIGHT for s in statuses):
        return current, False
    published = sum(1 for s in statuses if s == PostTargetStatus.published)
    if published == len(statuses):
        return PostStatus.published, False
    if published:
        return PostStatus.published, True
    return PostStatus.failed, False


class PublishingService:
    """Publishes posts and manages publish retries."""

    def __init__(
        self,
        adapter_factory: AdapterFactory = get_adapter,
        max_target_retries: int = MAX_TARGET_RETRIES,
        job_service: Optional[JobService] = None,
    ):
        self.adapter_factory = adapter_factory
        self.max_target_retries = max_target_retries
        self.job_service = job_service or JobService()

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    async def process_post(self, session: Session, post: Post) -> PublishSummary:
        """Publish every unfinished target of a post and settle its status."""
        repo = PostRepository(session)
        targets = [
            t for t in repo.get_targets(post.workspace_id, post.id) if t.status in IN_FLIGHT
        ]
        log = logger.bind(post_id=str(post.id), workspace_id=str(post.workspace_id))
        log.info("post_publish_started", targets=len(targets))

        prepared = [p for p in (self._prepare(session, post, t) for t in targets) if p]
        session.commit()

        content = PostContent.from_post(post)
        outcomes = await asyncio.gather(
            *(p.adapter.publish_post(p.account, content) for p in prepared),
            return_exceptions=True,
        )
        for item, outcome in zip(prepared, outcomes):
            self._record(item.target, outcome)
            session.add(item.target)

        all_targets = repo.get_targets(post.workspace_id, post.id)
        summary = self._settle(post, all_targets)
        session.add(post)
        session.commit()
        session.refresh(post)

        if summary.partial:
            log.warning(
                "post_partially_published",
                published=summary.published,
                failed=summary.failed,
                errors=summary.errors,
            )
        else:
            log.info(
                "post_publish_finished",
                status=summary.post_status.value,
                published=summary.published,
                failed=summary.failed,
            )
        return summary

    def _prepare(
        self, session: Session, post: Post, target: PostTarget
    ) -> Optional[_PreparedTarget]:
        """Resolve adapter, account and live token; record a failure otherwise."""
        log = logger.bind(target_id=str(target.id), platform=target.platform.value)
        target.last_attempt_at = utcnow()

        try:
            adapter = self.adapter_factory(target.platform)
        except UnknownPlatformError as e:
            self._fail(target, "UNKNOWN_PLATFORM", str(e))
            session.add(target)
            log.warning("target_unknown_platform")
            return None

        account = SocialAccountRepository(session).get(post.workspace_id, target.social_account_id)
        if account is None or not account.is_connected():
            self._fail(target, "ACCOUNT_UNAVAILABLE", "Social account is missing or not connected")
            session.add(target)
            log.warning("target_account_unavailable")
            return None

        if account.is_token_expired():
            account.mark_token_expired()
            session.add(account)
            self._fail(target, "TOKEN_EXPIRED", "Access token expired; reconnect the account")
            session.add(target)
            log.warning("target_token_expired", account_id=str(account.id))
            return None

        try:
            ref = AccountRef.from_account(account)
        except TokenUnavailableError as e:
            self._fail(target, "TOKEN_UNAVAILABLE", str(e))
            session.add(target)
            log.error("target_token_unavailable", account_id=str(account.id))
            return None

        target.mark_publishing()
        session.add(target)
        return _PreparedTarget(target=target, adapter=adapter, account=ref)

    def _record(self, target: PostTarget, outcome) -> None:
        log = logger.bind(target_id=str(target.id), platform=target.platform.value)
        if isinstance(outcome, PublishResult):
            target.mark_published(outcome.platform_post_id, outcome.platform_post_url)
            record_publish(target.platform.value, "published")
            log.info("target_published", platform_post_id=outcome.platform_post_id)
        elif isinstance(outcome, PlatformError):
            self._fail(target, outcome.code, outcome.message, outcome.retryable)
            log.warning(
                "target_publish_failed",
                error_code=outcome.code,
                retryable=outcome.retryable,
                error=outcome.message,
            )
        elif isinstance(outcome, Exception):
            self._fail(target, "EXCEPTION", str(outcome) or type(outcome).__name__)
            log.error("target_publish_exception", error=str(outcome), exc_info=outcome)
        else:
            # CancelledError and other BaseExceptions are not ours to swallow
            raise outcome

    def _fail(self, target: PostTarget, code: str, message: str, retryable: bool = False) -> None:
        target.mark_failed(code, message, retryable)
        record_publish(target.platform.value, code)

    def _settle(self, post: Post, targets: Sequence[PostTarget]) -> PublishSummary:
        status, partial = resolve_post_status(post.status, [t.status for t in targets])
        summary = PublishSummary(post_id=post.id, post_status=status, partial=partial)
        for target in targets:
            if target.status == PostTargetStatus.published:
                summary.published += 1
            elif target.status == PostTargetStatus.failed:
                summary.failed += 1
                summary.errors[f"{target.platform.value}:{target.id}"] = (
                    f"{target.error_code}: {target.error_message}"
                )

        if status != post.status:
            post.status = status
            if status == PostStatus.published and post.published_at is None:
                post.published_at = utcnow()
        return summary

    # ==========================================================================
    # Triggers
    # ==========================================================================

    def _attempt(self, targets: Sequence[PostTarget]) -> int:
        return max((t.retry_count for t in targets), default=0) + 1

    def publish_now(self, session: Session, workspace_id: UUID, post_id: UUID) -> Post:
        """Move an approved or scheduled post straight to publishing and queue it."""
        repo = PostRepository(session)
        post = repo.get(workspace_id, post_id)
        if not post:
            raise NotFoundError(f"Post {post_id} not found")
        targets = repo.get_targets(workspace_id, post_id)
        if not targets:
            raise ValidationError("Post has no target accounts")
        current = post.status

        result = session.exec(
            update(Post)
            .where(
                Post.id == post_id,
                Post.workspace_id == workspace_id,
                Post.status.in_([PostStatus.approved, PostStatus.scheduled]),
            )
            .values(status=PostStatus.publishing, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise InvalidStateError(
                f"Cannot publish a post in status '{current.value}'",
                details={"status": current.value},
            )

        for target in targets:
            if target.status == PostTargetStatus.pending:
                target.status = PostTargetStatus.publishing
                session.add(target)

        self.job_service.enqueue(
            session,
            JobType.publish_post,
            {"post_id": str(post_id), "workspace_id": str(workspace_id)},
            workspace_id=workspace_id,
            idempotency_key=publish_job_key(post_id, self._attempt(targets)),
            commit=False,
        )
        session.commit()
        session.refresh(post)
        logger.info("post_publish_requested", post_id=str(post_id), workspace_id=str(workspace_id))
        return post

    def retry_failed(self, session: Session, workspace_id: UUID, post_id: UUID) -> Post:
        """Requeue retryable failed targets that are under the retry bound.

        The move to publishing is a compare-and-set on the status read, so
        concurrent retries enqueue at most once.
        """
        repo = PostRepository(session)
        post = repo.get(workspace_id, post_id)
        if not post:
            raise NotFoundError(f"Post {post_id} not found")
        if post.status not in (PostStatus.failed, PostStatus.published):
            raise InvalidStateError(f"Cannot retry a post in status '{post.status.value}'")

        targets = repo.get_targets(workspace_id, post_id)
        retryable = [t for t in targets if t.can_retry(self.max_target_retries)]
        if not retryable:
            raise InvalidStateError("No failed targets can be retried")

        current = post.status
        result = session.exec(
            update(Post)
            .where(
                Post.id == post_id,
                Post.workspace_id == workspace_id,
                Post.status == current,
            )
            .values(status=PostStatus.publishing, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise InvalidStateError(
                "Post is already being published",
                details={"status": current.value},
            )

        for target in retryable:
            target.status = PostTargetStatus.pending
            target.retry_count += 1
            session.add(target)

        self.job_service.enqueue(
            session,
            JobType.publish_post,
            {"post_id": str(post_id), "workspace_id": str(workspace_id)},
            workspace_id=workspace_id,
            idempotency_key=publish_job_key(post_id, self._attempt(targets)),
            commit=False,
        )
        session.commit()
        session.refresh(post)
        logger.info(
            "post_retry_requested",
            post_id=str(post_id),
            targets=[str(t.id) for t in retryable],
        )
        return post

    # ==========================================================================
    # Engagement
    # ==========================================================================

    async def refresh_metrics(self, session: Session, workspace_id: UUID, post_id: UUID) -> int:
        """Pull engagement for each published target. Returns targets updated."""
        repo = PostRepository(session)
        if not repo.get(workspace_id, post_id):
            raise NotFoundError(f"Post {post_id} not found")

        accounts = SocialAccountRepository(session)
        updated = 0
        for target in repo.get_targets(workspace_id, post_id):
            if target.status != PostTargetStatus.published or not target.platform_post_id:
                continue
            account = accounts.get(workspace_id, target.social_account_id)
            if account is None or not account.is_connected():
                continue
            try:
                ref = AccountRef.from_account(account)
                metrics = await self.adapter_factory(target.platform).fetch_engagement(
                    ref, target.platform_post_id
                )
            except (PlatformError, TokenUnavailableError) as e:
                logger.warning(
                    "target_metrics_failed",
                    target_id=str(target.id),
                    platform=target.platform.value,
                    error=str(e),
                )
                continue
            target.metrics = metrics.model_dump()
            target.metrics_updated_at = utcnow()
            session.add(target)
            updated += 1

        session.commit()
        return updated
