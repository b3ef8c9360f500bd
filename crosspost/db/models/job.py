"""Background job queue table.

Jobs are rows polled by the worker. The payload carries identifiers only;
handlers reload current state before acting.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Any
from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import Column, Field

from crosspost.db.models.base import UUIDModel, TimestampMixin, utcnow


class JobType(str, Enum):
    """Registered job handlers."""

    publish_post = "publish_post"
    refresh_tokens = "refresh_tokens"


class JobStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class Job(UUIDModel, TimestampMixin, table=True):
    """A queued unit of background work."""

    __tablename__ = "jobs"

    job_type: JobType = Field(nullable=False, index=True)
    workspace_id: Optional[UUID] = Field(default=None, foreign_key="workspaces.id", index=True)
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    status: JobStatus = Field(default=JobStatus.pending, index=True)
    run_at: datetime = Field(default_factory=utcnow, index=True)
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=3)
    last_error: Optional[str] = Field(default=None)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    # Same key never enqueues twice
    idempotency_key: Optional[str] = Field(default=None, unique=True, index=True)
