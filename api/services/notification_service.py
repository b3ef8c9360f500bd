"""Notification service - domain events to per-user notifications.

Provides:
- Recipient resolution for inbox, publishing and account events
- Persist-then-broadcast delivery with the outcome recorded per row
- Read state (mark read, unread counts) and broadcast retries

Every notification row is committed before any real-time broadcast is
attempted. A failed broadcast marks the row ``failed_at`` and a recipient
with no open connection leaves ``sent_at`` unset; the row is never deleted,
so the recipient still sees it on next load.
"""

from typing import Any, Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select, func

from api.exceptions import NotFoundError
from api.websocket.manager import manager
from crosspost.content import WorkspaceRepository
from crosspost.db.models import (
    InboxConversation,
    InboxItem,
    Notification,
    NotificationPriority,
    NotificationRead,
    NotificationType,
    Post,
    SocialAccount,
    WorkspaceRole,
    utcnow,
)
from crosspost.logging import get_logger

logger = get_logger(__name__)


class Broadcaster(Protocol):
    """Real-time sink; api.websocket.manager.ConnectionManager in production."""

    async def send_to_user(self, user_id: UUID, event: dict) -> int: ...


def _unique(user_ids: Sequence[Optional[UUID]]) -> list[UUID]:
    seen: list[UUID] = []
    for user_id in user_ids:
        if user_id is not None and user_id not in seen:
            seen.append(user_id)
    return seen


def _preview(text: Optional[str], length: int = 120) -> str:
    text = (text or "").strip()
    return text if len(text) <= length else text[: length - 3] + "..."


class NotificationService:
    """Creates, delivers and tracks notifications."""

    def __init__(self, broadcaster: Optional[Broadcaster] = None):
        self.broadcaster = broadcaster or manager

    # ==========================================================================
    # Delivery
    # ==========================================================================

    async def dispatch(
        self,
        session: Session,
        workspace_id: UUID,
        user_ids: Sequence[Optional[UUID]],
        notification_type: NotificationType,
        title: str,
        message: str,
        actor_id: Optional[UUID] = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        resource_type: Optional[str] = None,
        resource_id: Optional[UUID] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> int:
        """Persist one notification per recipient, then broadcast each.

        Returns:
            Number of recipients (rows written), regardless of broadcast outcome
        """
        recipients = _unique(user_ids)
        if not recipients:
            return 0

        notifications = [
            Notification(
                user_id=user_id,
                workspace_id=workspace_id,
                actor_id=actor_id,
                notification_type=notification_type.value,
                title=title,
                message=message,
                priority=priority.value,
                resource_type=resource_type,
                resource_id=resource_id,
                data=data,
            )
            for user_id in recipients
        ]
        for notification in notifications:
            session.add(notification)
        session.commit()

        for notification in notifications:
            session.refresh(notification)
            await self._broadcast(notification)
            session.add(notification)
        session.commit()

        logger.info(
            "notifications_dispatched",
            notification_type=notification_type.value,
            workspace_id=str(workspace_id),
            recipients=len(recipients),
        )
        return len(recipients)

    async def _broadcast(self, notification: Notification) -> None:
        """Push one stored notification; record the outcome on the row."""
        event = {
            "type": "notification",
            "notification_id": str(notification.id),
            "recipient_user_id": str(notification.user_id),
            "workspace_id": str(notification.workspace_id),
            "payload": NotificationRead.model_validate(notification).model_dump(mode="json"),
        }
        notification.broadcast_attempts += 1
        try:
            delivered = await self.broadcaster.send_to_user(notification.user_id, event)
        except Exception as e:
            notification.failed_at = utcnow()
            notification.failure_reason = str(e)[:500]
            logger.warning(
                "notification_broadcast_failed",
                notification_id=str(notification.id),
                user_id=str(notification.user_id),
                error=str(e),
            )
            return

        if not delivered:
            # Recipient offline; the stored row is read on next load
            logger.debug(
                "notification_recipient_offline",
                notification_id=str(notification.id),
                user_id=str(notification.user_id),
            )
            return

        notification.sent_at = utcnow()
        notification.failed_at = None
        notification.failure_reason = None

    async def retry_failed_broadcasts(
        self,
        session: Session,
        workspace_id: Optional[UUID] = None,
        max_attempts: int = 3,
        limit: int = 100,
    ) -> int:
        """Re-broadcast notifications whose last broadcast failed.

        Returns:
            Number of notifications now marked sent
        """
        statement = select(Notification).where(
            Notification.failed_at.is_not(None),
            Notification.sent_at.is_(None),
            Notification.broadcast_attempts < max_attempts,
        )
        if workspace_id is not None:
            statement = statement.where(Notification.workspace_id == workspace_id)
        pending = list(session.exec(statement.order_by(Notification.created_at).limit(limit)).all())

        delivered = 0
        for notification in pending:
            await self._broadcast(notification)
            session.add(notification)
            if notification.sent_at is not None:
                delivered += 1
        session.commit()
        return delivered

    # ==========================================================================
    # Inbox events
    # ==========================================================================

    async def notify_new_inbox_item(
        self,
        session: Session,
        item: InboxItem,
        conversation: Optional[InboxConversation] = None,
    ) -> int:
        """New inbound item: its assignee, else every accepted member."""
        assignee = (conversation.assigned_to_user_id if conversation else None) or (
            item.assigned_to_user_id
        )
        if assignee:
            recipients = [assignee]
        else:
            recipients = WorkspaceRepository(session).member_user_ids(item.workspace_id)

        return await self.dispatch(
            session,
            item.workspace_id,
            recipients,
            NotificationType.INBOX_NEW_MESSAGE,
            title=f"New {item.item_type.value.replace('_', ' ')} from {item.author_name}",
            message=_preview(item.content_text),
            resource_type="inbox_conversation" if item.conversation_id else "inbox_item",
            resource_id=item.conversation_id or item.id,
            data={
                "inbox_item_id": str(item.id),
                "platform": item.platform.value,
                "social_account_id": str(item.social_account_id),
            },
        )

    async def notify_assignment(
        self,
        session: Session,
        conversation: InboxConversation,
        assignee_id: UUID,
        actor_id: Optional[UUID] = None,
    ) -> int:
        """Conversation assigned: tell the assignee, unless they assigned themselves."""
        if actor_id is not None and assignee_id == actor_id:
            return 0
        return await self.dispatch(
            session,
            conversation.workspace_id,
            [assignee_id],
            NotificationType.INBOX_ASSIGNED,
            title="Conversation assigned to you",
            message=conversation.subject
            or f"Conversation with {conversation.participant_name or 'a customer'}",
            actor_id=actor_id,
            resource_type="inbox_conversation",
            resource_id=conversation.id,
        )

    async def notify_reply(
        self,
        session: Session,
        conversation: InboxConversation,
        replier_id: UUID,
        previous_assignee_id: Optional[UUID],
        reply_text: Optional[str] = None,
    ) -> int:
        """Someone replied: tell the previous assignee unless they are the replier."""
        if previous_assignee_id is None or previous_assignee_id == replier_id:
            return 0
        return await self.dispatch(
            session,
            conversation.workspace_id,
            [previous_assignee_id],
            NotificationType.INBOX_REPLY,
            title="New reply in your conversation",
            message=_preview(reply_text),
            actor_id=replier_id,
            resource_type="inbox_conversation",
            resource_id=conversation.id,
        )

    # ==========================================================================
    # Publishing and account events
    # ==========================================================================

    async def notify_post_published(
        self, session: Session, post: Post, partial: bool = False, failed_platforms: Sequence[str] = ()
    ) -> int:
        message = _preview(post.content_text, 80) or "Your post"
        if partial:
            message = f"{message} (failed on: {', '.join(failed_platforms)})"
        return await self.dispatch(
            session,
            post.workspace_id,
            [post.created_by_user_id],
            NotificationType.POST_PUBLISHED,
            title="Post partially published" if partial else "Post published",
            message=message,
            priority=NotificationPriority.HIGH if partial else NotificationPriority.NORMAL,
            resource_type="post",
            resource_id=post.id,
            data={"partial": partial, "failed_platforms": list(failed_platforms)},
        )

    async def notify_post_failed(
        self, session: Session, post: Post, errors: Optional[dict[str, str]] = None
    ) -> int:
        return await self.dispatch(
            session,
            post.workspace_id,
            [post.created_by_user_id],
            NotificationType.POST_FAILED,
            title="Post failed to publish",
            message=_preview(post.content_text, 80) or "Your post could not be published",
            priority=NotificationPriority.HIGH,
            resource_type="post",
            resource_id=post.id,
            data={"errors": errors or {}},
        )

    async def notify_token_reconnect(self, session: Session, account: SocialAccount) -> int:
        """Account needs reconnecting: its connector, else workspace owners/admins."""
        recipients: list[Optional[UUID]] = [account.connected_by_user_id]
        if account.connected_by_user_id is None:
            recipients = WorkspaceRepository(session).member_user_ids(
                account.workspace_id, roles=[WorkspaceRole.owner, WorkspaceRole.admin]
            )
        return await self.dispatch(
            session,
            account.workspace_id,
            recipients,
            NotificationType.ACCOUNT_RECONNECT_REQUIRED,
            title=f"Reconnect {account.platform.display_name}",
            message=f"{account.account_name} needs to be reconnected to keep publishing",
            priority=NotificationPriority.URGENT,
            resource_type="social_account",
            resource_id=account.id,
            data={"platform": account.platform.value, "reason": account.last_error},
        )

    # ==========================================================================
    # Reading
    # ==========================================================================

    def list_for_user(
        self,
        session: Session,
        workspace_id: UUID,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Notification]:
        stmt = select(Notification).where(
            Notification.user_id == user_id,
            Notification.workspace_id == workspace_id,
        )
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        stmt = stmt.order_by(Notification.created_at.desc()).offset(offset).limit(limit)
        return list(session.exec(stmt).all())

    def get_notification(
        self, session: Session, workspace_id: UUID, notification_id: UUID, user_id: UUID
    ) -> Notification:
        stmt = select(Notification).where(
            Notification.id == notification_id,
            Notification.workspace_id == workspace_id,
            Notification.user_id == user_id,
        )
        notification = session.exec(stmt).first()
        if not notification:
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def unread_count(self, session: Session, workspace_id: UUID, user_id: UUID) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.workspace_id == workspace_id,
            Notification.read_at.is_(None),
        )
        return session.exec(stmt).one()

    def mark_as_read(
        self, session: Session, workspace_id: UUID, notification_id: UUID, user_id: UUID
    ) -> Notification:
        notification = self.get_notification(session, workspace_id, notification_id, user_id)
        if notification.read_at is None:
            notification.read_at = utcnow()
            session.add(notification)
            session.commit()
            session.refresh(notification)
        return notification

    def mark_all_as_read(self, session: Session, workspace_id: UUID, user_id: UUID) -> int:
        """Mark every unread notification read. Returns count of marked."""
        result = session.exec(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.workspace_id == workspace_id,
                Notification.read_at.is_(None),
            )
            .values(read_at=utcnow())
        )
        session.commit()
        return result.rowcount
