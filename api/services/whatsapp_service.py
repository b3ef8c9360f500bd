"""WhatsApp service - Cloud API webhooks and outbound messaging.

Inbound messages open (or restart) the 24-hour customer service window
and are mirrored into the shared inbox. Free-form replies are only sent
while that window is open; template messages are always allowed.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from api.exceptions import NotFoundError, ServiceWindowClosedError, ValidationError
from api.services.conversation_service import ConversationService
from api.services.notification_service import NotificationService
from crosspost.config import WHATSAPP_SERVICE_WINDOW_HOURS
from crosspost.content import SocialAccountRepository
from crosspost.db.models import (
    InboxItem,
    InboxItemType,
    SocialAccount,
    SocialPlatform,
    TemplateComponent,
    WhatsAppConversation,
    WhatsAppMessage,
    WhatsAppMessageDirection,
    WhatsAppMessageStatus,
    WhatsAppMessageType,
    utcnow,
)
from crosspost.logging import get_logger
from crosspost.platforms import AccountRef, PlatformAdapter, get_adapter
from crosspost.platforms.base import parse_timestamp
from crosspost.platforms.whatsapp import WhatsAppAdapter

logger = get_logger(__name__)

MEDIA_TYPES = ("image", "video", "audio", "document", "sticker")


@dataclass
class WhatsAppWebhookResult:
    messages: int = 0
    duplicates: int = 0
    statuses_applied: int = 0
    statuses_ignored: int = 0
    unmatched: int = 0
    conversation_ids: list[str] = field(default_factory=list)


def _message_content(message: dict[str, Any]) -> tuple[WhatsAppMessageType, Optional[str], dict[str, Any]]:
    """(type, text, extra payload) for an inbound Cloud API message."""
    raw_type = message.get("type") or "unknown"
    try:
        message_type = WhatsAppMessageType(raw_type)
    except ValueError:
        message_type = WhatsAppMessageType.unknown

    body = message.get(raw_type) or {}
    if raw_type == "text":
        return message_type, body.get("body") or "", {}
    if raw_type in MEDIA_TYPES:
        return message_type, body.get("caption"), {
            "media_id": body.get("id"),
            "mime_type": body.get("mime_type"),
            "sha256": body.get("sha256"),
        }
    if raw_type == "location":
        name = body.get("name") or body.get("address")
        return message_type, name or "Shared a location", {"location": body}
    if raw_type == "interactive":
        reply = body.get("button_reply") or body.get("list_reply") or {}
        return message_type, reply.get("title"), {"interactive": body}
    if raw_type == "reaction":
        return message_type, body.get("emoji"), {"reaction": body}
    if raw_type == "contacts":
        return message_type, "Shared contacts", {"contacts": message.get("contacts")}
    return message_type, None, {"raw": message}


class WhatsAppService:
    """Inbound webhook processing and window-aware sending."""

    def __init__(
        self,
        adapter_factory: Callable[[SocialPlatform], PlatformAdapter] = get_adapter,
        conversation_service: Optional[ConversationService] = None,
        notification_service: Optional[NotificationService] = None,
        window_hours: int = WHATSAPP_SERVICE_WINDOW_HOURS,
    ):
        self.adapter_factory = adapter_factory
        self.notification_service = notification_service or NotificationService()
        self.conversation_service = conversation_service or ConversationService(
            self.notification_service
        )
        self.window_hours = window_hours

    # ==========================================================================
    # Webhooks
    # ==========================================================================

    async def handle_webhook(self, session: Session, payload: dict[str, Any]) -> WhatsAppWebhookResult:
        """Process a verified Cloud API webhook (messages and delivery statuses)."""
        result = WhatsAppWebhookResult()
        accounts = SocialAccountRepository(session)

        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                if change.get("field") != "messages":
                    continue
                value = change.get("value") or {}
                phone_number_id = str((value.get("metadata") or {}).get("phone_number_id") or "")
                matches = accounts.resolve_webhook_accounts(SocialPlatform.whatsapp, phone_number_id)
                if not matches:
                    result.unmatched += 1
                    logger.warning("whatsapp_account_not_found", phone_number_id=phone_number_id)
                    continue

                names = {
                    c.get("wa_id"): (c.get("profile") or {}).get("name")
                    for c in value.get("contacts") or []
                }
                # wamids are globally unique, so a number is served by one workspace
                account = matches[0]
                for message in value.get("messages") or []:
                    await self._handle_message(session, account, message, names, result)
                for status in value.get("statuses") or []:
                    self._handle_status(session, account, status, result)

        logger.info(
            "whatsapp_webhook_processed",
            messages=result.messages,
            duplicates=result.duplicates,
            statuses_applied=result.statuses_applied,
        )
        return result

    def _find_message(self, session: Session, workspace_id: UUID, wamid: str) -> Optional[WhatsAppMessage]:
        return session.exec(
            select(WhatsAppMessage).where(
                WhatsAppMessage.workspace_id == workspace_id,
                WhatsAppMessage.wamid == wamid,
            )
        ).first()

    def _get_or_create_conversation(
        self, session: Session, account: SocialAccount, phone: str, name: Optional[str]
    ) -> WhatsAppConversation:
        conversation = session.exec(
            select(WhatsAppConversation).where(
                WhatsAppConversation.workspace_id == account.workspace_id,
                WhatsAppConversation.social_account_id == account.id,
                WhatsAppConversation.customer_phone == phone,
            )
        ).first()
        if conversation is None:
            conversation = WhatsAppConversation(
                workspace_id=account.workspace_id,
                social_account_id=account.id,
                customer_phone=phone,
                customer_name=name,
            )
            session.add(conversation)
            session.flush()
        elif name:
            conversation.customer_name = name
        return conversation

    async def _handle_message(
        self,
        session: Session,
        account: SocialAccount,
        message: dict[str, Any],
        names: dict[str, Optional[str]],
        result: WhatsAppWebhookResult,
    ) -> None:
        wamid = message.get("id")
        phone = message.get("from")
        if not wamid or not phone:
            return
        if self._find_message(session, account.workspace_id, wamid):
            result.duplicates += 1
            return

        now = utcnow()
        sent_at = parse_timestamp(message.get("timestamp"))
        message_type, text, extra = _message_content(message)

        conversation = self._get_or_create_conversation(session, account, phone, names.get(phone))
        conversation.open_service_window(now, hours=self.window_hours)
        conversation.last_message_at = max(conversation.last_message_at or sent_at, sent_at)
        conversation.message_count += 1

        session.add(WhatsAppMessage(
            workspace_id=account.workspace_id,
            conversation_id=conversation.id,
            wamid=wamid,
            direction=WhatsAppMessageDirection.inbound,
            message_type=message_type,
            content_text=text,
            media_id=extra.get("media_id"),
            media_mime_type=extra.get("mime_type"),
            payload=extra or None,
            status=WhatsAppMessageStatus.delivered,
            delivered_at=now,
            platform_timestamp=sent_at,
        ))

        # Mirror into the shared inbox, one thread per customer
        item = InboxItem(
            workspace_id=account.workspace_id,
            social_account_id=account.id,
            platform=SocialPlatform.whatsapp,
            item_type=InboxItemType.whatsapp_message,
            platform_item_id=wamid,
            author_name=conversation.customer_name or phone,
            author_username=phone,
            content_text=text,
            platform_created_at=sent_at,
            item_metadata={"thread_id": f"wa:{phone}", "message_type": message_type.value},
        )
        session.add(item)
        try:
            session.flush()
        except IntegrityError:
            # Concurrent delivery of the same message won the insert
            session.rollback()
            if self._find_message(session, account.workspace_id, wamid) is None:
                raise
            result.duplicates += 1
            return
        inbox_conversation = self.conversation_service.group_item(session, item)
        conversation.inbox_conversation_id = inbox_conversation.id
        session.add(conversation)
        session.commit()
        session.refresh(item)

        result.messages += 1
        result.conversation_ids.append(str(conversation.id))
        logger.info(
            "whatsapp_message_received",
            conversation_id=str(conversation.id),
            message_type=message_type.value,
        )
        await self.notification_service.notify_new_inbox_item(session, item, inbox_conversation)

    def _handle_status(
        self,
        session: Session,
        account: SocialAccount,
        status: dict[str, Any],
        result: WhatsAppWebhookResult,
    ) -> None:
        wamid = status.get("id")
        try:
            new_status = WhatsAppMessageStatus(status.get("status"))
        except ValueError:
            result.statuses_ignored += 1
            return
        message = self._find_message(session, account.workspace_id, wamid) if wamid else None
        if message is None:
            result.statuses_ignored += 1
            return

        errors = status.get("errors") or [{}]
        applied = message.advance_status(
            new_status,
            parse_timestamp(status.get("timestamp")),
            error_code=str(errors[0].get("code")) if errors[0].get("code") else None,
            error_message=errors[0].get("title") or errors[0].get("message"),
        )
        if not applied:
            result.statuses_ignored += 1
            return
        session.add(message)
        session.commit()
        result.statuses_applied += 1

    # ==========================================================================
    # Conversations
    # ==========================================================================

    def get_conversation(self, session: Session, workspace_id: UUID, conversation_id: UUID) -> WhatsAppConversation:
        conversation = session.exec(
            select(WhatsAppConversation).where(
                WhatsAppConversation.workspace_id == workspace_id,
                WhatsAppConversation.id == conversation_id,
            )
        ).first()
        if not conversation:
            raise NotFoundError(f"WhatsApp conversation {conversation_id} not found")
        return conversation

    def list_conversations(
        self, session: Session, workspace_id: UUID, limit: int = 50, offset: int = 0
    ) -> list[WhatsAppConversation]:
        statement = (
            select(WhatsAppConversation)
            .where(WhatsAppConversation.workspace_id == workspace_id)
            .order_by(WhatsAppConversation.last_message_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(session.exec(statement).all())

    def list_messages(
        self, session: Session, workspace_id: UUID, conversation_id: UUID, limit: int = 100
    ) -> list[WhatsAppMessage]:
        self.get_conversation(session, workspace_id, conversation_id)
        statement = (
            select(WhatsAppMessage)
            .where(
                WhatsAppMessage.workspace_id == workspace_id,
                WhatsAppMessage.conversation_id == conversation_id,
            )
            .order_by(WhatsAppMessage.platform_timestamp)
            .limit(limit)
        )
        return list(session.exec(statement).all())

    # ==========================================================================
    # Sending
    # ==========================================================================

    def _sender(
        self, session: Session, conversation: WhatsAppConversation
    ) -> tuple[WhatsAppAdapter, AccountRef]:
        account = SocialAccountRepository(session).get(conversation.workspace_id, conversation.social_account_id)
        if account is None or not account.is_connected():
            raise ValidationError("The WhatsApp number is not connected")
        adapter = self.adapter_factory(SocialPlatform.whatsapp)
        return adapter, AccountRef.from_account(account)

    def _record_outbound(
        self,
        session: Session,
        conversation: WhatsAppConversation,
        wamid: str,
        message_type: WhatsAppMessageType,
        text: Optional[str],
        user_id: Optional[UUID],
        template_name: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> WhatsAppMessage:
        now = utcnow()
        message = WhatsAppMessage(
            workspace_id=conversation.workspace_id,
            conversation_id=conversation.id,
            wamid=wamid,
            direction=WhatsAppMessageDirection.outbound,
            message_type=message_type,
            content_text=text,
            template_name=template_name,
            payload=payload,
            status=WhatsAppMessageStatus.sent,
            sent_at=now,
            sent_by_user_id=user_id,
            platform_timestamp=now,
        )
        conversation.last_message_at = now
        conversation.message_count += 1
        session.add(message)
        session.add(conversation)
        session.commit()
        session.refresh(message)
        return message

    async def send_text(
        self,
        session: Session,
        workspace_id: UUID,
        conversation_id: UUID,
        text: str,
        user_id: Optional[UUID] = None,
    ) -> WhatsAppMessage:
        """Send a free-form reply.

        Raises:
            ServiceWindowClosedError: The customer has not written in the last 24 hours
        """
        conversation = self.get_conversation(session, workspace_id, conversation_id)
        if not text.strip():
            raise ValidationError("Message text is required")
        if not conversation.service_window_open():
            if conversation.is_within_service_window:
                conversation.is_within_service_window = False
                session.add(conversation)
                session.commit()
            raise ServiceWindowClosedError(
                details={"conversation_expires_at": str(conversation.conversation_expires_at)}
            )

        adapter, ref = self._sender(session, conversation)
        wamid = await adapter.send_text(ref, conversation.customer_phone, text)
        logger.info("whatsapp_text_sent", conversation_id=str(conversation_id))
        return self._record_outbound(
            session, conversation, wamid, WhatsAppMessageType.text, text, user_id
        )

    async def send_template(
        self,
        session: Session,
        workspace_id: UUID,
        conversation_id: UUID,
        template_name: str,
        language_code: str = "en_US",
        components: Optional[list[TemplateComponent]] = None,
        user_id: Optional[UUID] = None,
    ) -> WhatsAppMessage:
        """Send an approved template; allowed regardless of the service window."""
        conversation = self.get_conversation(session, workspace_id, conversation_id)
        adapter, ref = self._sender(session, conversation)
        wamid = await adapter.send_template(
            ref, conversation.customer_phone, template_name, language_code, components
        )
        logger.info(
            "whatsapp_template_sent",
            conversation_id=str(conversation_id),
            template_name=template_name,
        )
        return self._record_outbound(
            session,
            conversation,
            wamid,
            WhatsAppMessageType.template,
            None,
            user_id,
            template_name=template_name,
            payload={
                "language": language_code,
                "components": [c.model_dump(exclude_none=True) for c in components or []],
            },
        )

