"""Tests for SocialAccountService: connections and token refresh."""

from datetime import timedelta

import pytest
from sqlmodel import select

from api.exceptions import NotFoundError
from api.services.notification_service import NotificationService
from api.services.social_account_service import RefreshSummary, SocialAccountService
from crosspost.db.models import (
    Notification,
    SocialAccount,
    SocialAccountCreate,
    SocialAccountStatus,
    SocialPlatform,
    WorkspaceRole,
    utcnow,
)
from crosspost.platforms import PlatformError


@pytest.fixture
def service(adapters, broadcaster):
    return SocialAccountService(
        adapter_factory=adapters, notification_service=NotificationService(broadcaster)
    )


def connect_data(**overrides) -> SocialAccountCreate:
    values = dict(
        platform=SocialPlatform.linkedin,
        platform_account_id="urn:li:person:42",
        account_name="Sam",
        access_token="li-access",
        refresh_token="li-refresh",
        token_expires_at=utcnow() + timedelta(days=60),
    )
    values.update(overrides)
    return SocialAccountCreate(**values)


class TestConnections:
    """Connecting stores encrypted tokens and revives old rows."""

    def test_connect_encrypts_tokens(self, service, session, workspace, owner):
        account = service.connect(session, workspace.id, connect_data(), user_id=owner.id)

        assert account.status == SocialAccountStatus.connected
        assert account.connected_by_user_id == owner.id
        assert b"li-access" not in account.access_token_encrypted
        assert account.get_access_token() == "li-access"
        assert account.get_refresh_token() == "li-refresh"

    def test_reconnect_revives_removed_account(self, service, session, workspace):
        first = service.connect(session, workspace.id, connect_data())
        service.remove(session, workspace.id, first.id)

        again = service.connect(session, workspace.id, connect_data(access_token="fresh"))

        assert again.id == first.id
        assert again.deleted_at is None
        assert again.status == SocialAccountStatus.connected
        assert again.get_access_token() == "fresh"
        assert len(session.exec(select(SocialAccount)).all()) == 1

    def test_same_platform_account_in_two_workspaces(self, service, session, factory, tenant, workspace):
        other = factory.workspace(tenant, name="Agency")

        a = service.connect(session, workspace.id, connect_data())
        b = service.connect(session, other.id, connect_data())

        assert a.id != b.id

    def test_disconnect_keeps_row(self, service, session, factory, workspace):
        account = factory.account(workspace)

        service.disconnect(session, workspace.id, account.id, revoked=True)

        assert account.status == SocialAccountStatus.revoked
        assert account.disconnected_at is not None
        assert service.get(session, workspace.id, account.id).id == account.id

    def test_removed_account_not_found(self, service, session, factory, workspace):
        account = factory.account(workspace)
        service.remove(session, workspace.id, account.id)

        with pytest.raises(NotFoundError):
            service.get(session, workspace.id, account.id)

    def test_list_filters(self, service, session, factory, workspace):
        factory.account(workspace, SocialPlatform.facebook)
        factory.account(workspace, SocialPlatform.twitter, status=SocialAccountStatus.token_expired)

        expired = service.list_accounts(session, workspace.id, status=SocialAccountStatus.token_expired)

        assert [a.platform for a in expired] == [SocialPlatform.twitter]


class TestTokenRefresh:
    """Refresh outcomes: rotated, retry later, or reconnect required."""

    def _expiring(self, factory, workspace, refresh_token="old-refresh", **kwargs):
        return factory.account(
            workspace,
            SocialPlatform.linkedin,
            refresh_token=refresh_token,
            token_expires_at=utcnow() + timedelta(days=2),
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_refresh_rotates_tokens(self, service, session, factory, workspace, adapters):
        account = self._expiring(factory, workspace)

        assert await service.refresh_account(session, account) is True

        session.refresh(account)
        assert account.get_access_token() == "new-access"
        assert account.get_refresh_token() == "new-refresh"
        assert account.token_expires_at == adapters[SocialPlatform.linkedin].grant.expires_at
        assert account.last_refreshed_at is not None

    @pytest.mark.asyncio
    async def test_no_refresh_token_requires_reconnect(
        self, service, session, factory, workspace, owner, broadcaster
    ):
        account = self._expiring(factory, workspace, refresh_token=None, connected_by=owner)
        summary = RefreshSummary()

        assert await service.refresh_account(session, account, summary) is False

        assert account.status == SocialAccountStatus.token_expired
        assert summary.reconnect_required == 1
        assert [user for user, _ in broadcaster.events] == [owner.id]

    @pytest.mark.asyncio
    async def test_transient_error_keeps_account_connected(
        self, service, session, factory, workspace, adapters, broadcaster
    ):
        adapters[SocialPlatform.linkedin].grant = PlatformError("SERVER_ERROR", "503", retryable=True)
        account = self._expiring(factory, workspace)
        summary = RefreshSummary()

        await service.refresh_account(session, account, summary)

        assert account.status == SocialAccountStatus.connected
        assert account.last_error == "SERVER_ERROR: 503"
        assert account.get_access_token() == "access-token"
        assert summary.failed == 1
        assert broadcaster.events == []

    @pytest.mark.asyncio
    async def test_rejected_refresh_notifies_owners_and_admins(
        self, service, session, factory, tenant, workspace, owner, adapters
    ):
        admin = factory.user(tenant)
        factory.member(workspace, admin, WorkspaceRole.admin)
        editor = factory.user(tenant)
        factory.member(workspace, editor, WorkspaceRole.editor)
        adapters[SocialPlatform.linkedin].grant = PlatformError("AUTH_ERROR", "invalid_grant")
        account = self._expiring(factory, workspace)

        await service.refresh_account(session, account)

        assert account.status == SocialAccountStatus.token_expired
        recipients = {n.user_id for n in session.exec(select(Notification)).all()}
        assert recipients == {owner.id, admin.id}

    @pytest.mark.asyncio
    async def test_sweep_only_touches_expiring_accounts(self, service, session, factory, tenant, workspace):
        soon = self._expiring(factory, workspace)
        factory.account(
            workspace, SocialPlatform.facebook, token_expires_at=utcnow() + timedelta(days=30)
        )
        factory.account(workspace, SocialPlatform.twitter)
        other = self._expiring(factory, factory.workspace(tenant, name="Other"))

        summary = await service.refresh_expiring_tokens(session, workspace.id, window_days=7)

        assert summary.checked == 1
        assert summary.account_ids == {"refreshed": [str(soon.id)]}
        session.refresh(other)
        assert other.get_access_token() == "access-token"

    @pytest.mark.asyncio
    async def test_unscoped_sweep_covers_all_workspaces(self, service, session, factory, tenant, workspace):
        self._expiring(factory, workspace)
        self._expiring(factory, factory.workspace(tenant, name="Other"))

        summary = await service.refresh_expiring_tokens(session)

        assert summary.refreshed == 2
