"""Public webhook receivers for platform push events.

Mounted at /api/webhooks/{platform}; no user auth. Every POST body is
verified against the platform signature header before it is parsed.

- GET: subscription handshake (Meta ``hub.challenge``, Twitter CRC)
- POST: comments, mentions and DMs (Facebook, Instagram, Twitter) and
  WhatsApp messages and delivery statuses
"""

import json
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse

from api.exceptions import ValidationError
from api.routes.v1.dependencies import (
    DbSession,
    get_webhook_ingestion_service,
    get_whatsapp_service,
)
from api.services.webhook_ingestion_service import (
    PAYLOAD_PARSERS,
    WebhookIngestionService,
    twitter_crc_response,
    verify_meta_signature,
    verify_subscription,
    verify_twitter_signature,
)
from api.services.whatsapp_service import WhatsAppService
from crosspost.db.models import SocialPlatform
from crosspost.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["platform-webhooks"])

META_PLATFORMS = (SocialPlatform.facebook, SocialPlatform.instagram, SocialPlatform.whatsapp)


def _require_push_platform(platform: SocialPlatform) -> None:
    if platform != SocialPlatform.whatsapp and platform not in PAYLOAD_PARSERS:
        raise ValidationError(f"Webhooks are not supported for {platform.value}")


@router.get("/{platform}")
async def verify_webhook(
    platform: SocialPlatform,
    hub_mode: Annotated[Optional[str], Query(alias="hub.mode")] = None,
    hub_verify_token: Annotated[Optional[str], Query(alias="hub.verify_token")] = None,
    hub_challenge: Annotated[Optional[str], Query(alias="hub.challenge")] = None,
    crc_token: Optional[str] = None,
):
    """Answer the platform's subscription check."""
    _require_push_platform(platform)
    if platform == SocialPlatform.twitter:
        return twitter_crc_response(crc_token or "")
    challenge = verify_subscription(hub_mode, hub_verify_token, hub_challenge)
    logger.info("webhook_subscription_verified", platform=platform.value)
    return PlainTextResponse(challenge)


@router.post("/{platform}")
async def receive_webhook(
    platform: SocialPlatform,
    request: Request,
    session: DbSession,
    ingestion: Annotated[WebhookIngestionService, Depends(get_webhook_ingestion_service)],
    whatsapp: Annotated[WhatsAppService, Depends(get_whatsapp_service)],
    hub_signature: Annotated[Optional[str], Header(alias="X-Hub-Signature-256")] = None,
    twitter_signature: Annotated[
        Optional[str], Header(alias="x-twitter-webhooks-signature")
    ] = None,
) -> dict[str, Any]:
    """Verify, parse and store a webhook delivery.

    Redeliveries are acknowledged without creating duplicates.
    """
    _require_push_platform(platform)
    body = await request.body()

    if platform in META_PLATFORMS:
        verify_meta_signature(body, hub_signature)
    else:
        verify_twitter_signature(body, twitter_signature)

    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    if platform == SocialPlatform.whatsapp:
        wa_result = await whatsapp.handle_webhook(session, payload)
        return {
            "status": "ok",
            "messages": wa_result.messages,
            "duplicates": wa_result.duplicates,
            "statuses_applied": wa_result.statuses_applied,
        }

    result = await ingestion.handle_payload(session, platform, payload)
    return {
        "status": "ok",
        "received": result.received,
        "created": result.created,
        "duplicates": result.duplicates,
    }
