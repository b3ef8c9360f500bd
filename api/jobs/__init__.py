"""Background job handlers run by api.worker."""

from api.jobs.registry import JOB_HANDLERS, JobContext, resolve_job_handler

__all__ = ["JOB_HANDLERS", "JobContext", "resolve_job_handler"]
