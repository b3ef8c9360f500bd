"""Scheduling service - turns due scheduled posts into publish jobs.

A sweep moves each due post scheduled -> publishing with a conditional
UPDATE, so when two sweeps overlap only one of them wins a given post.
The winner enqueues exactly one publish_post job in the same transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session

from api.services.job_service import JobService, publish_job_key
from crosspost.config import SCHEDULER_BATCH_SIZE
from crosspost.content import PostRepository
from crosspost.db.models import JobType, Post, PostStatus, PostTarget, PostTargetStatus, utcnow
from crosspost.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    """Outcome of one scheduler sweep."""

    due: int = 0
    dispatched: int = 0
    skipped: int = 0
    job_ids: list[str] = field(default_factory=list)


class SchedulingService:
    """Dispatches scheduled posts whose time has come."""

    def __init__(self, job_service: Optional[JobService] = None):
        self.job_service = job_service or JobService()

    def dispatch_due_posts(
        self,
        session: Session,
        now: Optional[datetime] = None,
        limit: int = SCHEDULER_BATCH_SIZE,
    ) -> DispatchResult:
        now = now or utcnow()
        due = PostRepository(session).list_due(now, limit)
        result = DispatchResult(due=len(due))

        for post in due:
            post_id, workspace_id = post.id, post.workspace_id

            claimed = session.exec(
                update(Post)
                .where(
                    Post.id == post_id,
                    Post.workspace_id == workspace_id,
                    Post.status == PostStatus.scheduled,
                    Post.deleted_at.is_(None),
                )
                .values(status=PostStatus.publishing, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                session.rollback()
                result.skipped += 1
                logger.info("scheduled_post_already_claimed", post_id=str(post_id))
                continue

            session.exec(
                update(PostTarget)
                .where(
                    PostTarget.post_id == post_id,
                    PostTarget.workspace_id == workspace_id,
                    PostTarget.status == PostTargetStatus.pending,
                )
                .values(status=PostTargetStatus.publishing, last_attempt_at=now)
                .execution_options(synchronize_session=False)
            )

            job = self.job_service.enqueue(
                session,
                JobType.publish_post,
                {"post_id": str(post_id), "workspace_id": str(workspace_id)},
                workspace_id=workspace_id,
                idempotency_key=publish_job_key(post_id, 1),
                commit=False,
            )
            session.commit()

            result.dispatched += 1
            result.job_ids.append(str(job.id))
            logger.info(
                "scheduled_post_dispatched",
                post_id=str(post_id),
                workspace_id=str(workspace_id),
                job_id=str(job.id),
            )

        if result.due:
            logger.info(
                "scheduler_sweep_completed",
                due=result.due,
                dispatched=result.dispatched,
                skipped=result.skipped,
            )
        return result
