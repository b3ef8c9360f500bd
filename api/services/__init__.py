"""API services module."""

from api.services.job_service import JobService, publish_job_key
from api.services.notification_service import NotificationService
from api.services.post_service import BulkResult, PostService
from api.services.publishing_service import PublishingService, PublishSummary, resolve_post_status
from api.services.scheduling_service import DispatchResult, SchedulingService
from api.services.social_account_service import RefreshSummary, SocialAccountService
from api.services.conversation_service import ConversationService, conversation_key
from api.services.webhook_ingestion_service import WebhookIngestionService, WebhookResult
from api.services.whatsapp_service import WhatsAppService, WhatsAppWebhookResult

__all__ = [
    "JobService",
    "publish_job_key",
    "NotificationService",
    "BulkResult",
    "PostService",
    "PublishingService",
    "PublishSummary",
    "resolve_post_status",
    "DispatchResult",
    "SchedulingService",
    "RefreshSummary",
    "SocialAccountService",
    "ConversationService",
    "conversation_key",
    "WebhookIngestionService",
    "WebhookResult",
    "WhatsAppService",
    "WhatsAppWebhookResult",
]
