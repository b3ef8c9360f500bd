"""WhatsApp Business Cloud API adapter.

WhatsApp is a messaging channel, not a feed: there is nothing to publish
and inbound messages arrive only through webhooks. The adapter exposes
send_text/send_template for replies.
"""

from datetime import datetime
from typing import Any, Optional

from crosspost.config import GRAPH_API_VERSION
from crosspost.db.models import SocialPlatform, TemplateComponent
from crosspost.platforms.base import (
    AccountRef,
    EngagementMetrics,
    InboundItem,
    PlatformAdapter,
    PlatformError,
    PostContent,
    PublishResult,
)
from crosspost.platforms.facebook import graph_error_details

# Cloud API error codes
WHATSAPP_WINDOW_CLOSED_CODE = 131047
WHATSAPP_RATE_LIMIT_CODES = {130429, 131048, 131056}


class WhatsAppAdapter(PlatformAdapter):
    """``platform_account_id`` is the business phone_number_id."""

    platform = SocialPlatform.whatsapp
    base_url = f"https://graph.facebook.com/{GRAPH_API_VERSION}"

    def _error_details(self, body):
        code, message, retryable = graph_error_details(body)
        error = body.get("error", {}) if isinstance(body, dict) else {}
        if error.get("code") == WHATSAPP_WINDOW_CLOSED_CODE:
            return "WHATSAPP_WINDOW_CLOSED", message, False
        if error.get("code") in WHATSAPP_RATE_LIMIT_CODES:
            return "RATE_LIMITED", message, True
        return code, message, retryable

    async def _send(self, account: AccountRef, payload: dict[str, Any]) -> str:
        body = await self._json(
            "POST",
            f"/{account.platform_account_id}/messages",
            token=account.access_token,
            json={"messaging_product": "whatsapp", "recipient_type": "individual", **payload},
        )
        messages = body.get("messages") or []
        if not messages or not messages[0].get("id"):
            raise PlatformError(
                "INVALID_RESPONSE",
                "WhatsApp did not return a message id",
                platform=self.platform,
            )
        return messages[0]["id"]

    async def send_text(
        self, account: AccountRef, to: str, text: str, preview_url: bool = False
    ) -> str:
        """Send a free-form text message; returns the wamid."""
        return await self._send(
            account,
            {"to": to, "type": "text", "text": {"body": text, "preview_url": preview_url}},
        )

    async def send_template(
        self,
        account: AccountRef,
        to: str,
        template_name: str,
        language_code: str = "en_US",
        components: Optional[list[TemplateComponent]] = None,
    ) -> str:
        """Send an approved template message; returns the wamid."""
        template: dict[str, Any] = {"name": template_name, "language": {"code": language_code}}
        if components:
            template["components"] = [c.model_dump(exclude_none=True) for c in components]
        return await self._send(account, {"to": to, "type": "template", "template": template})

    async def mark_read(self, account: AccountRef, wamid: str) -> None:
        await self._json(
            "POST",
            f"/{account.platform_account_id}/messages",
            token=account.access_token,
            json={"messaging_product": "whatsapp", "status": "read", "message_id": wamid},
        )

    async def publish_post(self, account: AccountRef, content: PostContent) -> PublishResult:
        raise PlatformError(
            "WHATSAPP_USE_TEMPLATE",
            "WhatsApp does not support feed posts; send a template message instead",
            platform=self.platform,
        )

    async def fetch_engagement(
        self,
        account: AccountRef,
        platform_post_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> EngagementMetrics:
        return EngagementMetrics()

    async def fetch_inbound_items(
        self, account: AccountRef, since: Optional[datetime] = None
    ) -> list[InboundItem]:
        # Messages are delivered by webhook only
        return []
