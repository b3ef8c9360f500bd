"""Job handlers.

Payloads carry identifiers only. Every handler reloads current state,
scoped by workspace, and does nothing when that state no longer calls
for work.
"""

from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlmodel import Session

from crosspost.content import PostRepository
from crosspost.db.models import Job, PostStatus
from crosspost.logging import get_logger

if TYPE_CHECKING:
    from api.jobs.registry import JobContext

logger = get_logger(__name__)


def _uuid(payload: dict, key: str, required: bool = True) -> Optional[UUID]:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValueError(f"Missing {key} in job payload")
        return None
    return UUID(str(value))


async def process_publish_post(session: Session, job: Job, context: "JobContext") -> None:
    """Publish a post that a trigger moved to publishing, then tell its author."""
    post_id = _uuid(job.payload, "post_id")
    workspace_id = _uuid(job.payload, "workspace_id")
    log = logger.bind(job_id=str(job.id), post_id=str(post_id), workspace_id=str(workspace_id))

    post = PostRepository(session).get(workspace_id, post_id)
    if post is None:
        log.warning("publish_job_post_missing")
        return
    if post.status != PostStatus.publishing:
        log.info("publish_job_skipped", status=post.status.value)
        return

    summary = await context.publishing.process_post(session, post)

    if summary.post_status == PostStatus.published:
        await context.notifications.notify_post_published(
            session, post, partial=summary.partial, failed_platforms=summary.failed_platforms
        )
    elif summary.post_status == PostStatus.failed:
        await context.notifications.notify_post_failed(session, post, summary.errors)


async def process_refresh_tokens(session: Session, job: Job, context: "JobContext") -> None:
    """Refresh tokens about to expire (one workspace, or all when unscoped)."""
    workspace_id = _uuid(job.payload, "workspace_id", required=False)
    summary = await context.social_accounts.refresh_expiring_tokens(session, workspace_id)
    logger.info(
        "refresh_tokens_job_completed",
        job_id=str(job.id),
        refreshed=summary.refreshed,
        reconnect_required=summary.reconnect_required,
    )
