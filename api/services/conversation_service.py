"""Conversation service - groups inbox items into conversations.

Provides:
- Conversation key derivation (thread, then post, then participant)
- Grouping of new items with exact message counts
- Triage: resolve, archive, reopen, assign, reply
- Regrouping of a workspace's items and per-status stats
"""

from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session

from api.exceptions import NotFoundError, ValidationError
from api.services.notification_service import NotificationService
from crosspost.content import InboxRepository, WorkspaceRepository
from crosspost.db.models import (
    ConversationStatus,
    InboxConversation,
    InboxItem,
    InboxItemStatus,
    utcnow,
)
from crosspost.logging import get_logger

logger = get_logger(__name__)


def conversation_key(item: InboxItem) -> str:
    """Grouping key for an item.

    Precedence: platform thread id, then the post commented on (our
    PostTarget when known), then the participant.
    """
    metadata = item.item_metadata or {}
    thread_id = metadata.get("thread_id")
    if thread_id:
        return f"thread:{thread_id}"
    if item.post_target_id or item.platform_post_id:
        return f"post:{item.post_target_id or item.platform_post_id}"
    participant = (item.author_username or item.author_name or "").strip().lower()
    return f"participant:{participant}"


def _subject(item: InboxItem) -> Optional[str]:
    text = (item.content_text or "").strip()
    if not text:
        return None
    return text if len(text) <= 80 else text[:77] + "..."


class ConversationService:
    """Groups and triages inbox conversations."""

    def __init__(self, notification_service: Optional[NotificationService] = None):
        self.notification_service = notification_service or NotificationService()

    # ==========================================================================
    # Grouping
    # ==========================================================================

    def group_item(
        self, session: Session, item: InboxItem, reopen_closed: bool = True
    ) -> InboxConversation:
        """Attach an item to its conversation, creating one when needed.

        A resolved or archived conversation is reopened unless
        ``reopen_closed`` is False. Does not commit; the caller owns the
        transaction.
        """
        repo = InboxRepository(session)
        key = conversation_key(item)
        conversation = repo.find_conversation(item.workspace_id, item.social_account_id, key)

        if conversation is None:
            conversation = InboxConversation(
                workspace_id=item.workspace_id,
                social_account_id=item.social_account_id,
                platform=item.platform,
                conversation_key=key,
                subject=_subject(item),
                participant_name=item.author_name,
                participant_username=item.author_username,
            )
            session.add(conversation)
            session.flush()
            logger.info(
                "conversation_created",
                conversation_id=str(conversation.id),
                conversation_key=key,
            )
        elif reopen_closed and conversation.status != ConversationStatus.active:
            conversation.reopen()
            logger.info("conversation_reopened", conversation_id=str(conversation.id))

        conversation.record_message(item.platform_created_at)
        item.conversation_id = conversation.id
        if conversation.assigned_to_user_id and not item.assigned_to_user_id:
            item.assigned_to_user_id = conversation.assigned_to_user_id

        session.add(conversation)
        session.add(item)
        return conversation

    def regroup_all_items(self, session: Session, workspace_id: UUID) -> int:
        """Rebuild every conversation of a workspace from its items.

        Counts and timestamps are recomputed from scratch; assignment and
        triage state of surviving conversations is kept.

        Returns:
            Number of items regrouped
        """
        repo = InboxRepository(session)
        session.exec(
            update(InboxConversation)
            .where(InboxConversation.workspace_id == workspace_id)
            .values(message_count=0, first_message_at=None, last_message_at=None)
            .execution_options(synchronize_session="fetch")
        )
        items = repo.list_items_for_regroup(workspace_id)
        for item in items:
            item.conversation_id = None

        for item in items:
            # Regrouping is not new activity
            self.group_item(session, item, reopen_closed=False)
            session.flush()

        session.commit()
        logger.info("inbox_regrouped", workspace_id=str(workspace_id), items=len(items))
        return len(items)

    # ==========================================================================
    # Reads
    # ==========================================================================

    def get(self, session: Session, workspace_id: UUID, conversation_id: UUID) -> InboxConversation:
        conversation = InboxRepository(session).get_conversation(workspace_id, conversation_id)
        if not conversation:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def list_conversations(
        self,
        session: Session,
        workspace_id: UUID,
        status: Optional[ConversationStatus] = None,
        assigned_to_user_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InboxConversation]:
        return InboxRepository(session).list_conversations(
            workspace_id,
            status=status,
            assigned_to_user_id=assigned_to_user_id,
            limit=limit,
            offset=offset,
        )

    def list_items(
        self, session: Session, workspace_id: UUID, conversation_id: UUID
    ) -> list[InboxItem]:
        self.get(session, workspace_id, conversation_id)
        return InboxRepository(session).list_items(
            workspace_id, conversation_id=conversation_id, limit=500
        )

    def get_stats(self, session: Session, workspace_id: UUID) -> dict[str, int]:
        counts = InboxRepository(session).count_conversations_by_status(workspace_id)
        stats = {status.value: count for status, count in counts.items()}
        stats["total"] = sum(counts.values())
        return stats

    # ==========================================================================
    # Triage
    # ==========================================================================

    def resolve(
        self, session: Session, workspace_id: UUID, conversation_id: UUID, user_id: Optional[UUID] = None
    ) -> InboxConversation:
        conversation = self.get(session, workspace_id, conversation_id)
        conversation.resolve(user_id)
        now = utcnow()
        session.exec(
            update(InboxItem)
            .where(
                InboxItem.workspace_id == workspace_id,
                InboxItem.conversation_id == conversation_id,
                InboxItem.status.in_([InboxItemStatus.unread, InboxItemStatus.read]),
            )
            .values(status=InboxItemStatus.resolved, resolved_at=now)
            .execution_options(synchronize_session="fetch")
        )
        session.add(conversation)
        session.commit()
        session.refresh(conversation)
        return conversation

    def archive(self, session: Session, workspace_id: UUID, conversation_id: UUID) -> InboxConversation:
        conversation = self.get(session, workspace_id, conversation_id)
        conversation.archive()
        session.add(conversation)
        session.commit()
        session.refresh(conversation)
        return conversation

    def reopen(self, session: Session, workspace_id: UUID, conversation_id: UUID) -> InboxConversation:
        conversation = self.get(session, workspace_id, conversation_id)
        conversation.reopen()
        session.add(conversation)
        session.commit()
        session.refresh(conversation)
        return conversation

    async def assign(
        self,
        session: Session,
        workspace_id: UUID,
        conversation_id: UUID,
        assignee_id: Optional[UUID],
        actor_id: Optional[UUID] = None,
    ) -> InboxConversation:
        """Assign (or with None, unassign) a conversation and tell the assignee."""
        conversation = self.get(session, workspace_id, conversation_id)
        if assignee_id is not None and assignee_id not in WorkspaceRepository(
            session
        ).member_user_ids(workspace_id):
            raise ValidationError("Assignee is not a member of this workspace")

        conversation.assigned_to_user_id = assignee_id
        conversation.assigned_at = utcnow() if assignee_id else None
        session.add(conversation)
        session.commit()
        session.refresh(conversation)

        logger.info(
            "conversation_assigned",
            conversation_id=str(conversation_id),
            assignee_id=str(assignee_id) if assignee_id else None,
        )
        if assignee_id is not None:
            await self.notification_service.notify_assignment(
                session, conversation, assignee_id, actor_id
            )
        return conversation

    async def reply(
        self,
        session: Session,
        workspace_id: UUID,
        conversation_id: UUID,
        replier_id: UUID,
        reply_text: str,
    ) -> InboxConversation:
        """Record an agent reply: the replier takes the conversation.

        The previous assignee is told unless they are the one replying.
        Delivery to the platform is the caller's concern.
        """
        conversation = self.get(session, workspace_id, conversation_id)
        previous_assignee = conversation.assigned_to_user_id

        conversation.assigned_to_user_id = replier_id
        conversation.assigned_at = utcnow()
        session.exec(
            update(InboxItem)
            .where(
                InboxItem.workspace_id == workspace_id,
                InboxItem.conversation_id == conversation_id,
                InboxItem.status == InboxItemStatus.unread,
            )
            .values(status=InboxItemStatus.read, read_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        session.add(conversation)
        session.commit()
        session.refresh(conversation)

        await self.notification_service.notify_reply(
            session, conversation, replier_id, previous_assignee, reply_text
        )
        return conversation
