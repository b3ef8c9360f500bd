"""
Background worker for queued jobs and the publishing scheduler.

Usage:
    python -m api.worker

Polls the jobs table for due work, and every SCHEDULER_INTERVAL_SECONDS
turns due scheduled posts into publish jobs. Run it as its own process
next to the API.
"""

import asyncio
from datetime import datetime, time
from typing import Optional

from sqlmodel import Session

from api.jobs import JobContext, resolve_job_handler
from api.services.job_service import JobService
from api.services.scheduling_service import SchedulingService
from crosspost.config import (
    LOG_JSON,
    LOG_LEVEL,
    SCHEDULER_INTERVAL_SECONDS,
    WORKER_BATCH_SIZE,
    WORKER_POLL_INTERVAL_SECONDS,
)
from crosspost.db.engine import engine
from crosspost.db.models import Job, JobType, utcnow
from crosspost.logging import bind_context, clear_context, configure_structlog, get_logger

logger = get_logger(__name__)

job_service = JobService()


async def process_job(session: Session, job: Job, context: JobContext) -> bool:
    """Claim and run one job. Returns False when another worker had it."""
    if not job_service.claim(session, job):
        return False

    log = logger.bind(job_id=str(job.id), job_type=job.job_type.value, attempt=job.attempts)
    bind_context(job_id=job.id, workspace_id=job.workspace_id)
    log.info("job_started")
    try:
        handler = resolve_job_handler(job.job_type)
        await handler(session, job, context)
    except Exception as e:
        session.rollback()
        job_service.mark_failed(session, job, f"{type(e).__name__}: {e}")
        log.error("job_failed", error=str(e), status=job.status.value, exc_info=True)
        clear_context()
        return True

    job_service.mark_completed(session, job)
    log.info("job_completed")
    clear_context()
    return True


async def process_batch(
    session: Session,
    context: JobContext,
    limit: int = WORKER_BATCH_SIZE,
    now: Optional[datetime] = None,
) -> int:
    """Run the due jobs of one poll. Returns jobs processed."""
    processed = 0
    for job in job_service.get_pending_jobs(session, limit=limit, now=now):
        if await process_job(session, job, context):
            processed += 1
    return processed


def enqueue_daily_token_refresh(session: Session, now: Optional[datetime] = None) -> Job:
    """At most one unscoped refresh_tokens job per day."""
    now = now or utcnow()
    return job_service.enqueue(
        session,
        JobType.refresh_tokens,
        {},
        run_at=datetime.combine(now.date(), time.min),
        idempotency_key=f"refresh_tokens:{now.date().isoformat()}",
    )


def run_scheduler_tick(session: Session, now: Optional[datetime] = None) -> int:
    """One scheduler pass: dispatch due posts and keep the daily refresh queued."""
    result = SchedulingService(job_service).dispatch_due_posts(session, now=now)
    enqueue_daily_token_refresh(session, now)
    return result.dispatched


async def run_worker(
    stop_event: Optional[asyncio.Event] = None,
    context: Optional[JobContext] = None,
    poll_interval: float = WORKER_POLL_INTERVAL_SECONDS,
    scheduler_interval: float = SCHEDULER_INTERVAL_SECONDS,
) -> None:
    """Main loop: poll jobs, and run the scheduler on its own interval."""
    context = context or JobContext()
    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    next_tick = 0.0

    logger.info(
        "worker_started",
        poll_interval=poll_interval,
        scheduler_interval=scheduler_interval,
        batch_size=WORKER_BATCH_SIZE,
    )

    while not stop_event.is_set():
        with Session(engine) as session:
            try:
                if loop.time() >= next_tick:
                    run_scheduler_tick(session)
                    next_tick = loop.time() + scheduler_interval
                processed = await process_batch(session, context)
                if processed:
                    logger.info("worker_batch_processed", jobs=processed)
            except Exception as e:
                session.rollback()
                logger.error("worker_iteration_failed", error=str(e), exc_info=True)

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
        except asyncio.TimeoutError:
            pass

    logger.info("worker_stopped")


def main() -> None:
    """Entry point for the worker."""
    configure_structlog(json_format=LOG_JSON, log_level=LOG_LEVEL)
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("worker_shutting_down")


if __name__ == "__main__":
    main()
