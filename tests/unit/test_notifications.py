"""Tests for NotificationService and the WebSocket ConnectionManager."""

from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from sqlmodel import Session, select

from api.exceptions import NotFoundError
from api.services.notification_service import NotificationService
from api.websocket.manager import BroadcastError, ConnectionManager
from crosspost.db.models import Notification, NotificationType, WorkspaceRole


async def dispatch_one(service, session, workspace, user_ids, title="Hello"):
    return await service.dispatch(
        session,
        workspace.id,
        user_ids,
        NotificationType.POST_PUBLISHED,
        title=title,
        message="Your post is live",
    )


class TestDispatch:
    """Rows are committed first; broadcast outcome is recorded on each row."""

    @pytest.mark.asyncio
    async def test_row_is_committed_before_broadcast(self, engine, session, workspace, owner):
        seen = []

        class CheckingBroadcaster:
            async def send_to_user(self, user_id, event):
                # A separate session only sees committed rows
                with Session(engine) as other:
                    row = other.get(Notification, UUID(event["notification_id"]))
                    seen.append(row is not None)
                return 1

        await dispatch_one(NotificationService(CheckingBroadcaster()), session, workspace, [owner.id])

        assert seen == [True]

    @pytest.mark.asyncio
    async def test_successful_broadcast_sets_sent_at(self, session, workspace, owner, broadcaster):
        count = await dispatch_one(NotificationService(broadcaster), session, workspace, [owner.id])

        assert count == 1
        notification = session.exec(select(Notification)).one()
        assert notification.sent_at is not None
        assert notification.failed_at is None
        assert notification.broadcast_attempts == 1
        user_id, event = broadcaster.events[0]
        assert user_id == owner.id
        assert event["type"] == "notification"
        assert event["recipient_user_id"] == str(owner.id)
        assert event["workspace_id"] == str(workspace.id)
        assert event["payload"]["title"] == "Hello"

    @pytest.mark.asyncio
    async def test_failed_broadcast_keeps_row(self, session, workspace, owner, broadcaster):
        broadcaster.error = BroadcastError("socket closed")

        count = await dispatch_one(NotificationService(broadcaster), session, workspace, [owner.id])

        assert count == 1
        notification = session.exec(select(Notification)).one()
        assert notification.sent_at is None
        assert notification.failed_at is not None
        assert notification.failure_reason == "socket closed"

    @pytest.mark.asyncio
    async def test_offline_recipient_is_not_marked_sent(self, session, workspace, owner):
        count = await dispatch_one(
            NotificationService(ConnectionManager()), session, workspace, [owner.id]
        )

        assert count == 1
        notification = session.exec(select(Notification)).one()
        assert notification.sent_at is None
        assert notification.failed_at is None
        assert notification.broadcast_attempts == 1
        assert notification.is_read is False

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_other_recipients(self, session, factory, tenant, workspace, owner):
        other = factory.user(tenant)

        class FlakyBroadcaster:
            def __init__(self):
                self.delivered = []

            async def send_to_user(self, user_id, event):
                if user_id == owner.id:
                    raise RuntimeError("boom")
                self.delivered.append(user_id)
                return 1

        flaky = FlakyBroadcaster()
        await dispatch_one(NotificationService(flaky), session, workspace, [owner.id, other.id])

        assert flaky.delivered == [other.id]
        rows = {n.user_id: n for n in session.exec(select(Notification)).all()}
        assert rows[owner.id].failed_at is not None
        assert rows[other.id].sent_at is not None

    @pytest.mark.asyncio
    async def test_duplicate_and_missing_recipients(self, session, workspace, owner, broadcaster):
        count = await dispatch_one(
            NotificationService(broadcaster), session, workspace, [owner.id, None, owner.id]
        )
        assert count == 1

        assert await dispatch_one(NotificationService(broadcaster), session, workspace, [None]) == 0

    @pytest.mark.asyncio
    async def test_retry_failed_broadcasts(self, session, workspace, owner, broadcaster):
        broadcaster.error = BroadcastError("offline")
        service = NotificationService(broadcaster)
        await dispatch_one(service, session, workspace, [owner.id])

        broadcaster.error = None
        delivered = await service.retry_failed_broadcasts(session, workspace.id)

        assert delivered == 1
        notification = session.exec(select(Notification)).one()
        assert notification.sent_at is not None
        assert notification.failed_at is None
        assert notification.broadcast_attempts == 2

    @pytest.mark.asyncio
    async def test_retry_stops_after_max_attempts(self, session, workspace, owner, broadcaster):
        broadcaster.error = BroadcastError("offline")
        service = NotificationService(broadcaster)
        await dispatch_one(service, session, workspace, [owner.id])

        await service.retry_failed_broadcasts(session, max_attempts=2)
        assert await service.retry_failed_broadcasts(session, max_attempts=2) == 0

        assert session.exec(select(Notification)).one().broadcast_attempts == 2


class TestEventRecipients:
    """Who hears about what."""

    @pytest.mark.asyncio
    async def test_partial_publish_mentions_failed_platforms(self, session, factory, workspace, owner, broadcaster):
        post = factory.post(workspace, author=owner, text="Launch day")

        await NotificationService(broadcaster).notify_post_published(
            session, post, partial=True, failed_platforms=["twitter"]
        )

        notification = session.exec(select(Notification)).one()
        assert notification.title == "Post partially published"
        assert "twitter" in notification.message
        assert notification.data == {"partial": True, "failed_platforms": ["twitter"]}
        assert notification.priority == "high"

    @pytest.mark.asyncio
    async def test_post_without_author_notifies_nobody(self, session, factory, workspace, broadcaster):
        post = factory.post(workspace)

        assert await NotificationService(broadcaster).notify_post_failed(session, post) == 0
        assert broadcaster.events == []

    @pytest.mark.asyncio
    async def test_reconnect_goes_to_connector(self, session, factory, tenant, workspace, owner, broadcaster):
        editor = factory.user(tenant)
        factory.member(workspace, editor, WorkspaceRole.editor)
        account = factory.account(workspace, connected_by=editor)

        await NotificationService(broadcaster).notify_token_reconnect(session, account)

        assert [user for user, _ in broadcaster.events] == [editor.id]

    @pytest.mark.asyncio
    async def test_reconnect_falls_back_to_owners_and_admins(
        self, session, factory, tenant, workspace, owner, broadcaster
    ):
        viewer = factory.user(tenant)
        factory.member(workspace, viewer, WorkspaceRole.viewer)
        account = factory.account(workspace)

        await NotificationService(broadcaster).notify_token_reconnect(session, account)

        assert [user for user, _ in broadcaster.events] == [owner.id]
        notification = session.exec(select(Notification)).one()
        assert notification.notification_type == "account_reconnect_required"
        assert notification.resource_id == account.id


class TestReadState:
    """Reading is per user and per workspace."""

    @pytest.mark.asyncio
    async def test_unread_count_and_mark_read(self, session, workspace, owner, broadcaster):
        service = NotificationService(broadcaster)
        await dispatch_one(service, session, workspace, [owner.id], title="one")
        await dispatch_one(service, session, workspace, [owner.id], title="two")

        assert service.unread_count(session, workspace.id, owner.id) == 2
        first = service.list_for_user(session, workspace.id, owner.id)[0]
        service.mark_as_read(session, workspace.id, first.id, owner.id)
        assert service.unread_count(session, workspace.id, owner.id) == 1
        assert len(service.list_for_user(session, workspace.id, owner.id, unread_only=True)) == 1

        assert service.mark_all_as_read(session, workspace.id, owner.id) == 1
        assert service.unread_count(session, workspace.id, owner.id) == 0

    @pytest.mark.asyncio
    async def test_other_users_notification_not_found(self, session, factory, tenant, workspace, owner, broadcaster):
        service = NotificationService(broadcaster)
        await dispatch_one(service, session, workspace, [owner.id])
        notification = session.exec(select(Notification)).one()
        stranger = factory.user(tenant)

        with pytest.raises(NotFoundError):
            service.mark_as_read(session, workspace.id, notification.id, stranger.id)

    @pytest.mark.asyncio
    async def test_workspace_scoping(self, session, factory, tenant, workspace, owner, broadcaster):
        service = NotificationService(broadcaster)
        other = factory.workspace(tenant, name="Other")
        await dispatch_one(service, session, workspace, [owner.id])
        await dispatch_one(service, session, other, [owner.id])

        assert len(service.list_for_user(session, workspace.id, owner.id)) == 1
        assert service.unread_count(session, other.id, owner.id) == 1


class TestConnectionManager:
    """Fan-out to the sockets of one user."""

    def _socket(self, fail=False):
        ws = MagicMock()
        ws.accept = AsyncMock()
        ws.send_text = AsyncMock(side_effect=RuntimeError("closed") if fail else None)
        return ws

    @pytest.mark.asyncio
    async def test_offline_user_gets_zero(self):
        assert await ConnectionManager().send_to_user(uuid4(), {"type": "notification"}) == 0

    @pytest.mark.asyncio
    async def test_sends_to_every_tab(self):
        manager = ConnectionManager()
        user_id = uuid4()
        tabs = [self._socket(), self._socket()]
        for ws in tabs:
            await manager.connect(ws, user_id)

        delivered = await manager.send_to_user(user_id, {"type": "notification"})

        assert delivered == 2
        assert manager.connection_count(user_id) == 2
        for ws in tabs:
            ws.send_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_workspace_filter(self):
        manager = ConnectionManager()
        user_id = uuid4()
        ws = self._socket()
        await manager.connect(ws, user_id, workspace_id=uuid4())

        delivered = await manager.send_to_user(user_id, {"workspace_id": str(uuid4())})

        assert delivered == 0
        ws.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_sends_failing_raises_and_drops_sockets(self):
        manager = ConnectionManager()
        user_id = uuid4()
        await manager.connect(self._socket(fail=True), user_id)

        with pytest.raises(BroadcastError):
            await manager.send_to_user(user_id, {"type": "notification"})

        assert manager.connection_count(user_id) == 0

    @pytest.mark.asyncio
    async def test_partial_failure_still_delivers(self):
        manager = ConnectionManager()
        user_id = uuid4()
        await manager.connect(self._socket(fail=True), user_id)
        await manager.connect(self._socket(), user_id)

        assert await manager.send_to_user(user_id, {"type": "notification"}) == 1
        assert manager.connection_count() == 1
