"""Job service - DB-backed background job queue.

Jobs are rows in the ``jobs`` table polled by api.worker. Enqueueing with
an idempotency key is a no-op when a job with that key already exists, so
overlapping scheduler sweeps cannot queue the same work twice.
"""

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from crosspost.config import JOB_MAX_ATTEMPTS
from crosspost.db.models import Job, JobStatus, JobType, utcnow
from crosspost.logging import get_logger

logger = get_logger(__name__)


def publish_job_key(post_id: UUID, attempt: int) -> str:
    """Idempotency key of the publish job for one publish attempt of a post."""
    return f"publish_post:{post_id}:{attempt}"


class JobService:
    """Enqueue, claim and settle background jobs."""

    def get_by_idempotency_key(self, session: Session, key: str) -> Optional[Job]:
        return session.exec(select(Job).where(Job.idempotency_key == key)).first()

    def enqueue(
        self,
        session: Session,
        job_type: JobType,
        payload: dict[str, Any],
        workspace_id: Optional[UUID] = None,
        run_at: Optional[datetime] = None,
        idempotency_key: Optional[str] = None,
        max_attempts: int = JOB_MAX_ATTEMPTS,
        commit: bool = True,
    ) -> Job:
        """Queue a job.

        If run_at is None the job is due immediately. With an idempotency
        key, an existing job for that key is returned instead of a new one.

        With commit=False the job is only added to the session so it lands
        in the caller's transaction.
        """
        if idempotency_key:
            existing = self.get_by_idempotency_key(session, idempotency_key)
            if existing:
                logger.info(
                    "job_already_enqueued",
                    job_id=str(existing.id),
                    idempotency_key=idempotency_key,
                )
                return existing

        job = Job(
            job_type=job_type,
            workspace_id=workspace_id,
            payload=payload,
            run_at=run_at or utcnow(),
            status=JobStatus.pending,
            max_attempts=max_attempts,
            idempotency_key=idempotency_key,
        )
        session.add(job)
        if not commit:
            return job

        try:
            session.commit()
        except IntegrityError:
            # Another process inserted the same key between check and insert
            session.rollback()
            existing = self.get_by_idempotency_key(session, idempotency_key or "")
            if existing is None:
                raise
            return existing

        session.refresh(job)
        logger.info(
            "job_enqueued",
            job_id=str(job.id),
            job_type=job.job_type.value,
            workspace_id=str(workspace_id) if workspace_id else None,
        )
        return job

    def get_pending_jobs(
        self, session: Session, limit: int = 10, now: Optional[datetime] = None
    ) -> list[Job]:
        """Pending jobs that are due, oldest first."""
        statement = (
            select(Job)
            .where(Job.status == JobStatus.pending, Job.run_at <= (now or utcnow()))
            .order_by(Job.run_at)
            .limit(limit)
        )
        return list(session.exec(statement).all())

    def get_job(
        self, session: Session, job_id: UUID, workspace_id: Optional[UUID] = None
    ) -> Optional[Job]:
        statement = select(Job).where(Job.id == job_id)
        if workspace_id is not None:
            statement = statement.where(Job.workspace_id == workspace_id)
        return session.exec(statement).first()

    def list_jobs(
        self,
        session: Session,
        workspace_id: UUID,
        status: Optional[JobStatus] = None,
        job_type: Optional[JobType] = None,
        limit: int = 50,
    ) -> list[Job]:
        statement = select(Job).where(Job.workspace_id == workspace_id)
        if status is not None:
            statement = statement.where(Job.status == status)
        if job_type is not None:
            statement = statement.where(Job.job_type == job_type)
        statement = statement.order_by(Job.created_at.desc()).limit(limit)
        return list(session.exec(statement).all())

    def claim(self, session: Session, job: Job) -> bool:
        """Move a pending job to running; False if another worker got it first."""
        now = utcnow()
        result = session.exec(
            update(Job)
            .where(Job.id == job.id, Job.status == JobStatus.pending)
            .values(status=JobStatus.running, attempts=Job.attempts + 1, started_at=now)
        )
        session.commit()
        if result.rowcount != 1:
            return False
        session.refresh(job)
        return True

    def mark_completed(self, session: Session, job: Job) -> Job:
        job.status = JobStatus.completed
        job.completed_at = utcnow()
        job.last_error = None
        session.add(job)
        session.commit()
        session.refresh(job)
        return job

    def mark_failed(self, session: Session, job: Job, error: str) -> Job:
        """Record a failure; retry later with backoff until attempts run out."""
        job.last_error = error
        if job.attempts < job.max_attempts:
            job.status = JobStatus.pending
            job.run_at = utcnow() + timedelta(seconds=30 * (2 ** max(job.attempts - 1, 0)))
        else:
            job.status = JobStatus.failed
            job.completed_at = utcnow()
        session.add(job)
        session.commit()
        session.refresh(job)
        return job
