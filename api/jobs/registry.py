"""Job handler registry."""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping, Optional, Union

from sqlmodel import Session

from api.jobs import handlers
from api.services.notification_service import NotificationService
from api.services.publishing_service import PublishingService
from api.services.social_account_service import SocialAccountService
from crosspost.db.models import Job, JobType


@dataclass
class JobContext:
    """Services handed to every handler (tests swap in fakes)."""

    notifications: NotificationService = field(default_factory=NotificationService)
    publishing: PublishingService = field(default_factory=PublishingService)
    social_accounts: Optional[SocialAccountService] = None

    def __post_init__(self):
        if self.social_accounts is None:
            self.social_accounts = SocialAccountService(notification_service=self.notifications)


JobHandler = Callable[[Session, Job, JobContext], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.publish_post.value: handlers.process_publish_post,
    JobType.refresh_tokens.value: handlers.process_refresh_tokens,
}


def resolve_job_handler(job_type: Union[JobType, str]) -> JobHandler:
    key = job_type.value if isinstance(job_type, JobType) else job_type
    handler = JOB_HANDLERS.get(key)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
