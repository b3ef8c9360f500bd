"""Webhook ingestion service - inbound platform events into the inbox.

Provides:
- Signature checks (Meta X-Hub-Signature-256, Twitter webhooks signature)
- Subscription handshakes (hub.challenge, Twitter CRC)
- Parsers from Facebook, Instagram and Twitter payloads to InboundItem
- Idempotent upsert of InboxItem plus conversation grouping
- Polling fallback through the platform adapters

Signatures are computed over the raw request body, never a re-encoded
copy of the parsed JSON.
"""

import base64
import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from api.exceptions import AuthorizationError, ValidationError, WebhookSignatureError
from api.middleware.metrics import record_webhook_item
from api.services.conversation_service import ConversationService
from api.services.notification_service import NotificationService
from crosspost import config
from crosspost.content import InboxRepository, PostRepository, SocialAccountRepository
from crosspost.db.models import (
    InboxConversation,
    InboxItem,
    InboxItemType,
    SocialAccount,
    SocialPlatform,
)
from crosspost.logging import get_logger
from crosspost.platforms import AccountRef, InboundItem, PlatformAdapter, get_adapter
from crosspost.platforms.base import parse_timestamp

logger = get_logger(__name__)

AdapterFactory = Callable[[SocialPlatform], PlatformAdapter]


# =============================================================================
# Signatures and handshakes
# =============================================================================


def _hmac_sha256(secret: str, body: bytes) -> bytes:
    return hmac.new(secret.encode(), body, hashlib.sha256).digest()


def verify_meta_signature(body: bytes, header: Optional[str], secret: Optional[str] = None) -> None:
    """Check ``X-Hub-Signature-256: sha256=<hex>`` (Facebook, Instagram, WhatsApp).

    Raises:
        WebhookSignatureError: Missing, malformed or wrong signature
    """
    secret = secret if secret is not None else config.META_APP_SECRET
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not header or not header.startswith("sha256="):
        raise WebhookSignatureError()
    expected = _hmac_sha256(secret, body).hex()
    if not hmac.compare_digest(header[len("sha256="):], expected):
        raise WebhookSignatureError()


def verify_twitter_signature(body: bytes, header: Optional[str], secret: Optional[str] = None) -> None:
    """Check ``x-twitter-webhooks-signature: sha256=<base64>``."""
    secret = secret if secret is not None else config.TWITTER_CONSUMER_SECRET
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not header or not header.startswith("sha256="):
        raise WebhookSignatureError()
    expected = base64.b64encode(_hmac_sha256(secret, body)).decode()
    if not hmac.compare_digest(header[len("sha256="):], expected):
        raise WebhookSignatureError()


def verify_subscription(
    mode: Optional[str],
    verify_token: Optional[str],
    challenge: Optional[str],
    expected_token: Optional[str] = None,
) -> str:
    """Meta subscription handshake; returns the challenge to echo back."""
    expected_token = expected_token if expected_token is not None else config.META_VERIFY_TOKEN
    if (
        mode != "subscribe"
        or not expected_token
        or not verify_token
        or not hmac.compare_digest(verify_token, expected_token)
    ):
        raise AuthorizationError("Webhook verification failed")
    return challenge or ""


def twitter_crc_response(crc_token: str, secret: Optional[str] = None) -> dict[str, str]:
    """Answer a Twitter CRC check."""
    secret = secret if secret is not None else config.TWITTER_CONSUMER_SECRET
    if not crc_token:
        raise ValidationError("crc_token is required")
    digest = base64.b64encode(_hmac_sha256(secret, crc_token.encode())).decode()
    return {"response_token": f"sha256={digest}"}


# =============================================================================
# Payload parsers
# =============================================================================

# (platform account id the event belongs to, item)
ParsedItem = tuple[str, InboundItem]


def _twitter_time(value: Any) -> datetime:
    """Twitter v1.1 dates look like 'Wed Oct 10 20:19:24 +0000 2018'."""
    if isinstance(value, str) and value[:3].isalpha():
        parsed = datetime.strptime(value, "%a %b %d %H:%M:%S %z %Y")
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parse_timestamp(value)


def parse_facebook_payload(payload: dict[str, Any]) -> list[ParsedItem]:
    """Page feed comments. The page's own comments are skipped."""
    items: list[ParsedItem] = []
    for entry in payload.get("entry") or []:
        page_id = str(entry.get("id") or "")
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            if change.get("field") != "feed" or value.get("item") != "comment":
                continue
            if value.get("verb", "add") != "add":
                continue
            comment_id = value.get("comment_id")
            author = value.get("from") or {}
            if not page_id or not comment_id or str(author.get("id")) == page_id:
                continue

            parent_id = value.get("parent_id")
            post_id = value.get("post_id")
            metadata = {"webhook": True}
            if parent_id and parent_id != post_id:
                metadata["parent_id"] = parent_id
            items.append((page_id, InboundItem(
                platform=SocialPlatform.facebook,
                external_item_id=str(comment_id),
                author_name=author.get("name") or "Unknown",
                author_id=author.get("id"),
                author_profile_url=f"https://facebook.com/{author['id']}" if author.get("id") else None,
                content=value.get("message") or "",
                timestamp=parse_timestamp(value.get("created_time")),
                item_type=InboxItemType.comment,
                platform_post_id=post_id,
                metadata=metadata,
            )))
    return items


def parse_instagram_payload(payload: dict[str, Any]) -> list[ParsedItem]:
    """Media comments and @mentions."""
    items: list[ParsedItem] = []
    for entry in payload.get("entry") or []:
        account_id = str(entry.get("id") or "")
        if not account_id:
            continue
        for change in entry.get("changes") or []:
            field_name = change.get("field")
            value = change.get("value") or {}

            if field_name == "comments" and value.get("id"):
                author = value.get("from") or {}
                if str(author.get("id")) == account_id:
                    continue
                media = value.get("media") or {}
                username = author.get("username")
                items.append((account_id, InboundItem(
                    platform=SocialPlatform.instagram,
                    external_item_id=str(value["id"]),
                    author_name=username or "Unknown",
                    author_username=username,
                    author_id=author.get("id"),
                    author_profile_url=f"https://instagram.com/{username}" if username else None,
                    content=value.get("text") or "",
                    timestamp=parse_timestamp(entry.get("time")),
                    item_type=InboxItemType.comment,
                    platform_post_id=media.get("id") or value.get("media_id"),
                    metadata={"webhook": True},
                )))

            elif field_name == "mentions" and value.get("media_id"):
                media_id = str(value["media_id"])
                comment_id = value.get("comment_id")
                items.append((account_id, InboundItem(
                    platform=SocialPlatform.instagram,
                    external_item_id=str(comment_id) if comment_id else f"mention_{media_id}",
                    author_name="Unknown",
                    content="You were mentioned" if comment_id else "You were mentioned in a story",
                    timestamp=parse_timestamp(entry.get("time")),
                    item_type=InboxItemType.mention,
                    platform_post_id=media_id,
                    metadata={"webhook": True, "type": "comment_mention" if comment_id else "story_mention"},
                )))
    return items


def parse_twitter_payload(payload: dict[str, Any]) -> list[ParsedItem]:
    """Account Activity tweet and direct message events for ``for_user_id``."""
    for_user_id = str(payload.get("for_user_id") or "")
    if not for_user_id:
        return []
    users = payload.get("users") or {}
    items: list[ParsedItem] = []

    for tweet in payload.get("tweet_create_events") or []:
        user = tweet.get("user") or {}
        tweet_id = tweet.get("id_str")
        if not tweet_id or str(user.get("id_str")) == for_user_id:
            continue
        screen_name = user.get("screen_name")
        reply_to = tweet.get("in_reply_to_status_id_str")
        items.append((for_user_id, InboundItem(
            platform=SocialPlatform.twitter,
            external_item_id=str(tweet_id),
            author_name=user.get("name") or screen_name or "Unknown",
            author_username=screen_name,
            author_id=user.get("id_str"),
            author_profile_url=f"https://x.com/{screen_name}" if screen_name else None,
            author_avatar_url=user.get("profile_image_url_https"),
            content=tweet.get("text") or "",
            timestamp=_twitter_time(tweet.get("created_at") or tweet.get("timestamp_ms")),
            item_type=InboxItemType.comment if reply_to else InboxItemType.mention,
            platform_post_id=reply_to,
            metadata={"webhook": True},
        )))

    for event in payload.get("direct_message_events") or []:
        if event.get("type") != "message_create":
            continue
        message = event.get("message_create") or {}
        sender_id = str(message.get("sender_id") or "")
        if not event.get("id") or not sender_id or sender_id == for_user_id:
            continue
        sender = users.get(sender_id) or {}
        screen_name = sender.get("screen_name")
        items.append((for_user_id, InboundItem(
            platform=SocialPlatform.twitter,
            external_item_id=str(event["id"]),
            author_name=sender.get("name") or screen_name or "Unknown",
            author_username=screen_name,
            author_id=sender_id,
            author_avatar_url=sender.get("profile_image_url_https"),
            content=(message.get("message_data") or {}).get("text") or "",
            timestamp=parse_timestamp(event.get("created_timestamp")),
            item_type=InboxItemType.direct_message,
            thread_id=f"dm:{sender_id}",
            metadata={"webhook": True},
        )))
    return items


PAYLOAD_PARSERS: dict[SocialPlatform, Callable[[dict[str, Any]], list[ParsedItem]]] = {
    SocialPlatform.facebook: parse_facebook_payload,
    SocialPlatform.instagram: parse_instagram_payload,
    SocialPlatform.twitter: parse_twitter_payload,
}


# =============================================================================
# Ingestion
# =============================================================================


@dataclass
class IngestResult:
    item: InboxItem
    created: bool
    conversation: Optional[InboxConversation] = None


@dataclass
class WebhookResult:
    """Outcome of one webhook delivery or poll."""

    received: int = 0
    created: int = 0
    duplicates: int = 0
    unmatched: int = 0
    item_ids: list[str] = field(default_factory=list)


class WebhookIngestionService:
    """Stores inbound items exactly once and notifies the workspace."""

    def __init__(
        self,
        conversation_service: Optional[ConversationService] = None,
        notification_service: Optional[NotificationService] = None,
        adapter_factory: AdapterFactory = get_adapter,
    ):
        self.notification_service = notification_service or NotificationService()
        self.conversation_service = conversation_service or ConversationService(
            self.notification_service
        )
        self.adapter_factory = adapter_factory

    def ingest(self, session: Session, account: SocialAccount, inbound: InboundItem) -> IngestResult:
        """Upsert one item on (social_account_id, platform_item_id).

        A redelivered item returns the stored row and leaves conversation
        counts untouched.
        """
        repo = InboxRepository(session)
        existing = repo.find_item(account.workspace_id, account.id, inbound.external_item_id)
        if existing is not None:
            record_webhook_item(account.platform.value, created=False)
            return IngestResult(item=existing, created=False, conversation=self._conversation_of(session, existing))

        post_target_id: Optional[UUID] = None
        if inbound.platform_post_id:
            target = PostRepository(session).find_target_by_platform_post(
                account.workspace_id, account.id, inbound.platform_post_id
            )
            post_target_id = target.id if target else None

        metadata = dict(inbound.metadata)
        if inbound.thread_id:
            metadata["thread_id"] = inbound.thread_id
        if inbound.author_id:
            metadata["author_id"] = inbound.author_id

        item = InboxItem(
            workspace_id=account.workspace_id,
            social_account_id=account.id,
            post_target_id=post_target_id,
            platform=account.platform,
            item_type=inbound.item_type,
            platform_item_id=inbound.external_item_id,
            platform_post_id=inbound.platform_post_id,
            author_name=inbound.author_name,
            author_username=inbound.author_username,
            author_profile_url=inbound.author_profile_url,
            author_avatar_url=inbound.author_avatar_url,
            content_text=inbound.content,
            platform_created_at=inbound.timestamp,
            item_metadata=metadata or None,
        )
        session.add(item)
        try:
            session.flush()
        except IntegrityError:
            # Concurrent delivery of the same item won the insert
            session.rollback()
            existing = repo.find_item(account.workspace_id, account.id, inbound.external_item_id)
            if existing is None:
                raise
            record_webhook_item(account.platform.value, created=False)
            return IngestResult(item=existing, created=False, conversation=self._conversation_of(session, existing))

        conversation = self.conversation_service.group_item(session, item)
        session.commit()
        session.refresh(item)
        session.refresh(conversation)

        record_webhook_item(account.platform.value, created=True)
        logger.info(
            "inbox_item_ingested",
            item_id=str(item.id),
            workspace_id=str(account.workspace_id),
            platform=account.platform.value,
            item_type=item.item_type.value,
            conversation_id=str(conversation.id),
        )
        return IngestResult(item=item, created=True, conversation=conversation)

    def _conversation_of(self, session: Session, item: InboxItem) -> Optional[InboxConversation]:
        if item.conversation_id is None:
            return None
        return InboxRepository(session).get_conversation(item.workspace_id, item.conversation_id)

    async def _ingest_and_notify(
        self, session: Session, account: SocialAccount, inbound: InboundItem, result: WebhookResult
    ) -> None:
        ingested = self.ingest(session, account, inbound)
        if not ingested.created:
            result.duplicates += 1
            return
        result.created += 1
        result.item_ids.append(str(ingested.item.id))
        await self.notification_service.notify_new_inbox_item(
            session, ingested.item, ingested.conversation
        )

    async def handle_payload(
        self, session: Session, platform: SocialPlatform, payload: dict[str, Any]
    ) -> WebhookResult:
        """Parse a verified webhook body and ingest every item it carries."""
        parser = PAYLOAD_PARSERS.get(platform)
        if parser is None:
            raise ValidationError(f"Webhooks are not supported for {platform.value}")

        parsed = parser(payload)
        result = WebhookResult(received=len(parsed))
        accounts = SocialAccountRepository(session)

        for platform_account_id, inbound in parsed:
            matches = accounts.resolve_webhook_accounts(platform, platform_account_id)
            if not matches:
                result.unmatched += 1
                logger.warning(
                    "webhook_account_not_found",
                    platform=platform.value,
                    platform_account_id=platform_account_id,
                )
                continue
            # The same page may be connected in several workspaces
            for account in matches:
                await self._ingest_and_notify(session, account, inbound, result)

        logger.info(
            "webhook_processed",
            platform=platform.value,
            received=result.received,
            created=result.created,
            duplicates=result.duplicates,
            unmatched=result.unmatched,
        )
        return result

    async def poll_inbound(
        self, session: Session, account: SocialAccount, since: Optional[datetime] = None
    ) -> WebhookResult:
        """Fetch recent items through the adapter for platforms without push."""
        adapter = self.adapter_factory(account.platform)
        items = await adapter.fetch_inbound_items(AccountRef.from_account(account), since)

        result = WebhookResult(received=len(items))
        for inbound in items:
            await self._ingest_and_notify(session, account, inbound, result)

        logger.info(
            "inbox_polled",
            account_id=str(account.id),
            platform=account.platform.value,
            received=result.received,
            created=result.created,
        )
        return result
