"""Tests for conversation grouping and inbox triage."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlmodel import select

from api.exceptions import NotFoundError, ValidationError
from api.services.conversation_service import ConversationService, conversation_key
from api.services.notification_service import NotificationService
from api.services.webhook_ingestion_service import WebhookIngestionService
from crosspost.db.models import (
    ConversationStatus,
    InboxConversation,
    InboxItem,
    InboxItemStatus,
    InboxItemType,
    Notification,
    SocialPlatform,
    WorkspaceRole,
)
from crosspost.platforms import InboundItem

BASE_TIME = datetime(2026, 10, 1, 9, 0)


def inbound(item_id, author="Ana", username=None, thread_id=None, post_id=None, minutes=0):
    return InboundItem(
        platform=SocialPlatform.facebook,
        external_item_id=item_id,
        author_name=author,
        author_username=username,
        content=f"message {item_id}",
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        item_type=InboxItemType.direct_message if thread_id else InboxItemType.comment,
        thread_id=thread_id,
        platform_post_id=post_id,
    )


@pytest.fixture
def notifications(broadcaster):
    return NotificationService(broadcaster)


@pytest.fixture
def conversations(notifications):
    return ConversationService(notifications)


@pytest.fixture
def ingestion(conversations, notifications, adapters):
    return WebhookIngestionService(conversations, notifications, adapter_factory=adapters)


@pytest.fixture
def account(factory, workspace):
    return factory.account(workspace, SocialPlatform.facebook)


class TestConversationKey:
    """Thread beats post beats participant."""

    def _item(self, **kwargs):
        values = dict(
            workspace_id=uuid4(),
            social_account_id=uuid4(),
            platform=SocialPlatform.facebook,
            item_type=InboxItemType.comment,
            platform_item_id="x",
            author_name="Ana Lopez",
        )
        values.update(kwargs)
        return InboxItem(**values)

    def test_thread_first(self):
        item = self._item(item_metadata={"thread_id": "t-9"}, platform_post_id="p-1")
        assert conversation_key(item) == "thread:t-9"

    def test_post_target_before_platform_post(self):
        target_id = uuid4()
        assert conversation_key(self._item(post_target_id=target_id, platform_post_id="p-1")) == (
            f"post:{target_id}"
        )
        assert conversation_key(self._item(platform_post_id="p-1")) == "post:p-1"

    def test_participant_last(self):
        assert conversation_key(self._item(author_username="AnaL")) == "participant:anal"
        assert conversation_key(self._item()) == "participant:ana lopez"


class TestGrouping:
    """Counts match linked items and timestamps only move forward."""

    def test_same_thread_one_conversation(self, ingestion, session, account):
        ingestion.ingest(session, account, inbound("m1", thread_id="dm:1"))
        result = ingestion.ingest(session, account, inbound("m2", thread_id="dm:1", minutes=5))

        conversation = result.conversation
        assert conversation.message_count == 2
        assert conversation.last_message_at == BASE_TIME + timedelta(minutes=5)
        assert len(session.exec(select(InboxConversation)).all()) == 1

    def test_late_item_does_not_move_last_message_back(self, ingestion, session, account):
        ingestion.ingest(session, account, inbound("m1", thread_id="dm:1", minutes=10))
        result = ingestion.ingest(session, account, inbound("m0", thread_id="dm:1", minutes=0))

        conversation = result.conversation
        assert conversation.last_message_at == BASE_TIME + timedelta(minutes=10)
        assert conversation.first_message_at == BASE_TIME

    def test_different_posts_separate_conversations(self, ingestion, session, account):
        a = ingestion.ingest(session, account, inbound("c1", post_id="p-1"))
        b = ingestion.ingest(session, account, inbound("c2", post_id="p-2"))

        assert a.conversation.id != b.conversation.id

    def test_new_item_reopens_resolved_conversation(self, ingestion, conversations, session, workspace, account):
        first = ingestion.ingest(session, account, inbound("m1", thread_id="dm:1"))
        conversations.resolve(session, workspace.id, first.conversation.id)

        second = ingestion.ingest(session, account, inbound("m2", thread_id="dm:1", minutes=1))

        assert second.conversation.id == first.conversation.id
        assert second.conversation.status == ConversationStatus.active
        assert second.conversation.resolved_at is None

    def test_assignee_carries_to_new_items(self, ingestion, conversations, session, workspace, owner, account):
        first = ingestion.ingest(session, account, inbound("m1", thread_id="dm:1"))
        conversation = first.conversation
        conversation.assigned_to_user_id = owner.id
        session.add(conversation)
        session.commit()

        second = ingestion.ingest(session, account, inbound("m2", thread_id="dm:1", minutes=1))

        assert second.item.assigned_to_user_id == owner.id

    def test_regroup_recomputes_counts(self, ingestion, conversations, session, workspace, account, owner):
        for i in range(3):
            ingestion.ingest(session, account, inbound(f"m{i}", thread_id="dm:1", minutes=i))
        archived = ingestion.ingest(session, account, inbound("c1", post_id="p-1")).conversation
        resolved = ingestion.ingest(session, account, inbound("c2", post_id="p-2")).conversation
        conversations.resolve(session, workspace.id, resolved.id, user_id=owner.id)
        conversations.archive(session, workspace.id, archived.id)
        resolved_at = resolved.resolved_at
        archived_at = archived.archived_at
        session.exec(update(InboxConversation).values(message_count=99))
        session.commit()

        assert conversations.regroup_all_items(session, workspace.id) == 5

        counts = {
            c.conversation_key: c.message_count
            for c in conversations.list_conversations(session, workspace.id)
        }
        assert counts == {"thread:dm:1": 3, "post:p-1": 1, "post:p-2": 1}
        session.refresh(resolved)
        session.refresh(archived)
        assert resolved.status == ConversationStatus.resolved
        assert resolved.resolved_at == resolved_at
        assert resolved.resolved_by_user_id == owner.id
        assert archived.status == ConversationStatus.archived
        assert archived.archived_at == archived_at


class TestTriage:
    """Resolve, archive, stats, assignment and replies."""

    def test_resolve_marks_items(self, ingestion, conversations, session, workspace, account):
        result = ingestion.ingest(session, account, inbound("m1", thread_id="dm:1"))

        conversations.resolve(session, workspace.id, result.conversation.id)

        items = conversations.list_items(session, workspace.id, result.conversation.id)
        assert [i.status for i in items] == [InboxItemStatus.resolved]

    def test_stats(self, ingestion, conversations, session, workspace, account):
        a = ingestion.ingest(session, account, inbound("c1", post_id="p-1")).conversation
        b = ingestion.ingest(session, account, inbound("c2", post_id="p-2")).conversation
        ingestion.ingest(session, account, inbound("c3", post_id="p-3"))
        conversations.resolve(session, workspace.id, a.id)
        conversations.archive(session, workspace.id, b.id)

        assert conversations.get_stats(session, workspace.id) == {
            "active": 1,
            "resolved": 1,
            "archived": 1,
            "total": 3,
        }

    def test_conversation_of_other_workspace_not_found(self, ingestion, conversations, session, factory, tenant, account):
        conversation = ingestion.ingest(session, account, inbound("m1")).conversation
        other = factory.workspace(tenant, name="Other")

        with pytest.raises(NotFoundError):
            conversations.get(session, other.id, conversation.id)

    @pytest.mark.asyncio
    async def test_assign_notifies_assignee(
        self, ingestion, conversations, session, factory, tenant, workspace, owner, account, broadcaster
    ):
        agent = factory.user(tenant)
        factory.member(workspace, agent, WorkspaceRole.editor)
        conversation = ingestion.ingest(session, account, inbound("m1")).conversation

        result = await conversations.assign(session, workspace.id, conversation.id, agent.id, actor_id=owner.id)

        assert result.assigned_to_user_id == agent.id
        assert [user for user, _ in broadcaster.events] == [agent.id]
        assert broadcaster.events[0][1]["payload"]["notification_type"] == "inbox_assigned"

    @pytest.mark.asyncio
    async def test_self_assignment_is_silent(
        self, ingestion, conversations, session, workspace, owner, account, broadcaster
    ):
        conversation = ingestion.ingest(session, account, inbound("m1")).conversation

        await conversations.assign(session, workspace.id, conversation.id, owner.id, actor_id=owner.id)

        assert broadcaster.events == []

    @pytest.mark.asyncio
    async def test_assignee_must_be_member(self, ingestion, conversations, session, factory, tenant, workspace, account):
        outsider = factory.user(tenant)
        conversation = ingestion.ingest(session, account, inbound("m1")).conversation

        with pytest.raises(ValidationError):
            await conversations.assign(session, workspace.id, conversation.id, outsider.id)

    @pytest.mark.asyncio
    async def test_reply_takes_conversation_and_tells_previous_assignee(
        self, ingestion, conversations, session, factory, tenant, workspace, owner, account
    ):
        agent = factory.user(tenant)
        factory.member(workspace, agent, WorkspaceRole.editor)
        conversation = ingestion.ingest(session, account, inbound("m1", thread_id="dm:1")).conversation
        await conversations.assign(session, workspace.id, conversation.id, agent.id, actor_id=agent.id)

        result = await conversations.reply(session, workspace.id, conversation.id, owner.id, "On it")

        assert result.assigned_to_user_id == owner.id
        items = conversations.list_items(session, workspace.id, conversation.id)
        assert [i.status for i in items] == [InboxItemStatus.read]
        notification = session.exec(
            select(Notification).where(Notification.notification_type == "inbox_reply")
        ).one()
        assert notification.user_id == agent.id
        assert notification.actor_id == owner.id
