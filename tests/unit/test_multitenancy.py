"""Tests for tenant and workspace isolation and role scopes."""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi import HTTPException

from api.auth.dependencies import CurrentUser
from api.auth.scopes import ROLE_SCOPES, Scope, get_scopes_for_role, has_scope
from api.exceptions import NotFoundError, ValidationError
from api.routes.v1.dependencies import WorkspaceContext
from api.services.post_service import PostService
from api.services.social_account_service import SocialAccountService
from crosspost.content import (
    PostRepository,
    SocialAccountRepository,
    WorkspaceRepository,
)
from crosspost.db.models import (
    InviteStatus,
    PostCreate,
    SocialPlatform,
    Workspace,
    WorkspaceMembership,
    WorkspaceRole,
    utcnow,
)


@pytest.fixture
def grid(factory):
    """Two tenants with two workspaces each, one account and post per workspace."""
    rows = {}
    for tenant_name in ("Acme", "Globex"):
        tenant = factory.tenant(tenant_name)
        for ws_name in ("Brand", "Support"):
            workspace = factory.workspace(tenant, name=ws_name)
            account = factory.account(workspace, SocialPlatform.facebook, platform_account_id="shared-page")
            post = factory.post(workspace, accounts=(account,))
            rows[(tenant_name, ws_name)] = (tenant, workspace, account, post)
    return rows


class TestRepositoryIsolation:
    """Reads keyed by one workspace never return another workspace's rows."""

    def test_posts_are_scoped(self, session, grid):
        repo = PostRepository(session)
        for _, workspace, _, post in grid.values():
            assert [p.id for p in repo.list_for_workspace(workspace.id)] == [post.id]
            for _, other, _, _ in grid.values():
                if other.id != workspace.id:
                    assert repo.get(other.id, post.id) is None

    def test_targets_are_scoped(self, session, grid):
        repo = PostRepository(session)
        _, brand, _, post = grid[("Acme", "Brand")]
        _, support, _, _ = grid[("Acme", "Support")]

        [target] = repo.get_targets(brand.id, post.id)
        assert repo.get_targets(support.id, post.id) == []
        assert repo.get_target(support.id, target.id) is None

    def test_accounts_are_scoped(self, session, grid):
        repo = SocialAccountRepository(session)
        _, brand, account, _ = grid[("Acme", "Brand")]
        _, rival, _, _ = grid[("Globex", "Brand")]

        assert repo.get(brand.id, account.id).id == account.id
        assert repo.get(rival.id, account.id) is None
        assert repo.list_by_ids(rival.id, [account.id]) == []

    def test_webhook_resolution_finds_every_workspace(self, session, grid):
        accounts = SocialAccountRepository(session).resolve_webhook_accounts(
            SocialPlatform.facebook, "shared-page"
        )

        assert {a.workspace_id for a in accounts} == {w.id for _, w, _, _ in grid.values()}

    def test_workspace_belongs_to_tenant(self, session, grid):
        repo = WorkspaceRepository(session)
        acme, brand, _, _ = grid[("Acme", "Brand")]
        globex, _, _, _ = grid[("Globex", "Brand")]

        assert repo.get(acme.id, brand.id).id == brand.id
        assert repo.get(globex.id, brand.id) is None
        assert [w.name for w in repo.list_for_tenant(acme.id)] == ["Brand", "Support"]

    def test_soft_deleted_workspace_hidden(self, session, grid):
        acme, brand, _, _ = grid[("Acme", "Brand")]
        brand.deleted_at = utcnow()
        session.add(brand)
        session.commit()

        repo = WorkspaceRepository(session)
        assert repo.get(acme.id, brand.id) is None
        assert [w.name for w in repo.list_for_tenant(acme.id)] == ["Support"]


class TestServiceIsolation:
    """Services surface foreign ids as not found or invalid."""

    def test_post_of_other_tenant_not_found(self, session, grid):
        _, brand, _, _ = grid[("Acme", "Brand")]
        _, _, _, foreign_post = grid[("Globex", "Brand")]

        with pytest.raises(NotFoundError):
            PostService().get(session, brand.id, foreign_post.id)
        with pytest.raises(NotFoundError):
            PostService().cancel(session, brand.id, foreign_post.id)

    def test_cannot_target_foreign_account(self, session, grid):
        _, brand, _, _ = grid[("Acme", "Brand")]
        _, _, foreign_account, _ = grid[("Acme", "Support")]

        with pytest.raises(ValidationError):
            PostService().create(
                session,
                brand.id,
                PostCreate(content_text="hi", social_account_ids=[foreign_account.id]),
            )

    def test_bulk_delete_skips_foreign_posts(self, session, grid):
        _, brand, _, own = grid[("Acme", "Brand")]
        _, _, _, foreign = grid[("Globex", "Support")]

        result = PostService().bulk_delete(session, brand.id, [own.id, foreign.id])

        assert (result.succeeded, result.failed) == (1, 1)
        assert PostRepository(session).get(grid[("Globex", "Support")][1].id, foreign.id) is not None

    def test_account_of_other_workspace_not_found(self, session, grid, adapters):
        _, brand, _, _ = grid[("Acme", "Brand")]
        _, _, foreign_account, _ = grid[("Globex", "Brand")]

        with pytest.raises(NotFoundError):
            SocialAccountService(adapter_factory=adapters).disconnect(session, brand.id, foreign_account.id)


class TestMemberships:
    def test_pending_invite_is_not_membership(self, session, factory, tenant, workspace):
        user = factory.user(tenant)
        invite = factory.member(workspace, user, WorkspaceRole.editor)
        invite.invite_status = InviteStatus.pending
        session.add(invite)
        session.commit()

        repo = WorkspaceRepository(session)
        assert repo.get_membership(workspace.id, user.id) is None
        assert user.id not in repo.member_user_ids(workspace.id)

    def test_member_user_ids_by_role(self, session, factory, tenant, workspace, owner):
        admin = factory.user(tenant)
        factory.member(workspace, admin, WorkspaceRole.admin)
        viewer = factory.user(tenant)
        factory.member(workspace, viewer, WorkspaceRole.viewer)

        repo = WorkspaceRepository(session)
        assert repo.member_user_ids(workspace.id, roles=[WorkspaceRole.owner, WorkspaceRole.admin]) == [
            owner.id,
            admin.id,
        ]
        assert len(repo.member_user_ids(workspace.id)) == 3


class TestRoleScopes:
    def test_owner_and_admin_have_everything(self):
        for role in (WorkspaceRole.owner, WorkspaceRole.admin):
            assert get_scopes_for_role(role) == frozenset(Scope)

    def test_editor(self):
        assert has_scope(WorkspaceRole.editor, Scope.POSTS_PUBLISH)
        assert has_scope(WorkspaceRole.editor, Scope.INBOX_MANAGE)
        assert not has_scope(WorkspaceRole.editor, Scope.POSTS_APPROVE)
        assert not has_scope(WorkspaceRole.editor, Scope.ACCOUNTS_MANAGE)

    def test_viewer_is_read_only(self):
        assert all(scope.value.endswith(":read") for scope in ROLE_SCOPES[WorkspaceRole.viewer])

    def test_every_role_mapped(self):
        assert set(ROLE_SCOPES) == set(WorkspaceRole)


class TestWorkspaceContext:
    def _context(self, role: WorkspaceRole) -> WorkspaceContext:
        workspace = MagicMock(spec=Workspace)
        workspace.id = uuid4()
        membership = MagicMock(spec=WorkspaceMembership)
        membership.role = role
        user = MagicMock()
        user.id = uuid4()
        return WorkspaceContext(
            workspace=workspace,
            membership=membership,
            current_user=CurrentUser(user=user, membership=membership),
        )

    def test_ids(self):
        ctx = self._context(WorkspaceRole.editor)
        assert ctx.workspace_id == ctx.workspace.id
        assert ctx.user_id == ctx.current_user.user.id
        assert ctx.current_user.role == WorkspaceRole.editor

    def test_require_scope_raises(self):
        ctx = self._context(WorkspaceRole.viewer)

        with pytest.raises(HTTPException) as exc_info:
            ctx.require_scope(Scope.POSTS_WRITE)

        assert exc_info.value.status_code == 403
        assert "posts:write" in exc_info.value.detail

    def test_user_without_membership_has_no_scopes(self):
        assert CurrentUser(user=MagicMock()).has_scope(Scope.POSTS_READ) is False
