"""Workspace-scoped repositories.

Every read and write on tenant-owned tables goes through these classes and
takes ``workspace_id`` explicitly; queries always filter on it (and on
``deleted_at IS NULL`` where rows are soft-deleted). There is no unscoped
read path.

The one lookup not keyed by workspace is
SocialAccountRepository.resolve_webhook_accounts: an inbound webhook names a
platform account, not a workspace, so it resolves to the connected account
rows and every later read is scoped to each account's workspace.
"""

from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlmodel import Session, select, func

from crosspost.db.models import (
    ConversationStatus,
    InboxConversation,
    InboxItem,
    InboxItemStatus,
    InviteStatus,
    Post,
    PostStatus,
    PostTarget,
    SocialAccount,
    SocialAccountStatus,
    SocialPlatform,
    Tenant,
    Workspace,
    WorkspaceMembership,
    WorkspaceRole,
)


# =============================================================================
# Workspace Repository
# =============================================================================


class WorkspaceRepository:
    """Repository for Workspace and membership lookups."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, tenant_id: UUID, workspace_id: UUID) -> Optional[Workspace]:
        """Get a live workspace belonging to a tenant."""
        statement = select(Workspace).where(
            Workspace.id == workspace_id,
            Workspace.tenant_id == tenant_id,
            Workspace.deleted_at.is_(None),
        )
        return self.session.exec(statement).first()

    def list_for_tenant(self, tenant_id: UUID) -> list[Workspace]:
        """List live workspaces of a tenant."""
        statement = (
            select(Workspace)
            .join(Tenant, Tenant.id == Workspace.tenant_id)
            .where(
                Workspace.tenant_id == tenant_id,
                Workspace.deleted_at.is_(None),
                Tenant.deleted_at.is_(None),
            )
            .order_by(Workspace.name)
        )
        return list(self.session.exec(statement).all())

    def get_membership(
        self, workspace_id: UUID, user_id: UUID
    ) -> Optional[WorkspaceMembership]:
        """Accepted membership of a user in a workspace, if any."""
        statement = select(WorkspaceMembership).where(
            WorkspaceMembership.workspace_id == workspace_id,
            WorkspaceMembership.user_id == user_id,
            WorkspaceMembership.invite_status == InviteStatus.accepted,
        )
        return self.session.exec(statement).first()

    def member_user_ids(
        self,
        workspace_id: UUID,
        roles: Optional[Sequence[WorkspaceRole]] = None,
    ) -> list[UUID]:
        """User ids with an accepted membership, in a stable order."""
        statement = select(WorkspaceMembership.user_id).where(
            WorkspaceMembership.workspace_id == workspace_id,
            WorkspaceMembership.invite_status == InviteStatus.accepted,
        )
        if roles:
            statement = statement.where(WorkspaceMembership.role.in_(list(roles)))
        statement = statement.order_by(WorkspaceMembership.created_at)
        return list(self.session.exec(statement).all())


# =============================================================================
# Social Account Repository
# =============================================================================


class SocialAccountRepository:
    """Repository for SocialAccount operations."""

    def __init__(self, session: Session):
        self.session = session

    def _scoped(self, workspace_id: UUID):
        return select(SocialAccount).where(
            SocialAccount.workspace_id == workspace_id,
            SocialAccount.deleted_at.is_(None),
        )

    def get(self, workspace_id: UUID, account_id: UUID) -> Optional[SocialAccount]:
        statement = self._scoped(workspace_id).where(SocialAccount.id == account_id)
        return self.session.exec(statement).first()

    def list_for_workspace(
        self,
        workspace_id: UUID,
        platform: Optional[SocialPlatform] = None,
        status: Optional[SocialAccountStatus] = None,
    ) -> list[SocialAccount]:
        statement = self._scoped(workspace_id)
        if platform is not None:
            statement = statement.where(SocialAccount.platform == platform)
        if status is not None:
            statement = statement.where(SocialAccount.status == status)
        statement = statement.order_by(SocialAccount.created_at)
        return list(self.session.exec(statement).all())

    def list_by_ids(self, workspace_id: UUID, account_ids: Sequence[UUID]) -> list[SocialAccount]:
        if not account_ids:
            return []
        statement = self._scoped(workspace_id).where(SocialAccount.id.in_(list(account_ids)))
        return list(self.session.exec(statement).all())

    def get_by_platform_account(
        self,
        workspace_id: UUID,
        platform: SocialPlatform,
        platform_account_id: str,
        include_deleted: bool = False,
    ) -> Optional[SocialAccount]:
        """Lookup by platform identity; include_deleted finds rows to revive on reconnect."""
        if include_deleted:
            statement = select(SocialAccount).where(SocialAccount.workspace_id == workspace_id)
        else:
            statement = self._scoped(workspace_id)
        statement = statement.where(
            SocialAccount.platform == platform,
            SocialAccount.platform_account_id == platform_account_id,
        )
        return self.session.exec(statement).first()

    def list_expiring(
        self,
        before: datetime,
        workspace_id: Optional[UUID] = None,
    ) -> list[SocialAccount]:
        """Connected accounts whose token expires before ``before``.

        Called by the token refresh job; when workspace_id is given the
        sweep is limited to that workspace.
        """
        statement = select(SocialAccount).where(
            SocialAccount.deleted_at.is_(None),
            SocialAccount.status == SocialAccountStatus.connected,
            SocialAccount.token_expires_at.is_not(None),
            SocialAccount.token_expires_at <= before,
        )
        if workspace_id is not None:
            statement = statement.where(SocialAccount.workspace_id == workspace_id)
        return list(self.session.exec(statement.order_by(SocialAccount.token_expires_at)).all())

    def resolve_webhook_accounts(
        self, platform: SocialPlatform, platform_account_id: str
    ) -> list[SocialAccount]:
        """Connected accounts a webhook for this platform identity belongs to."""
        statement = select(SocialAccount).where(
            SocialAccount.platform == platform,
            SocialAccount.platform_account_id == platform_account_id,
            SocialAccount.deleted_at.is_(None),
            SocialAccount.status == SocialAccountStatus.connected,
        )
        return list(self.session.exec(statement).all())


# =============================================================================
# Post Repository
# =============================================================================


class PostRepository:
    """Repository for Post and PostTarget operations."""

    def __init__(self, session: Session):
        self.session = session

    def _scoped(self, workspace_id: UUID):
        return select(Post).where(
            Post.workspace_id == workspace_id,
            Post.deleted_at.is_(None),
        )

    def get(self, workspace_id: UUID, post_id: UUID) -> Optional[Post]:
        statement = self._scoped(workspace_id).where(Post.id == post_id)
        return self.session.exec(statement).first()

    def list_for_workspace(
        self,
        workspace_id: UUID,
        status: Optional[PostStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Post]:
        statement = self._scoped(workspace_id)
        if status is not None:
            statement = statement.where(Post.status == status)
        statement = statement.order_by(Post.created_at.desc()).offset(offset).limit(limit)
        return list(self.session.exec(statement).all())

    def list_by_ids(self, workspace_id: UUID, post_ids: Sequence[UUID]) -> list[Post]:
        if not post_ids:
            return []
        statement = self._scoped(workspace_id).where(Post.id.in_(list(post_ids)))
        return list(self.session.exec(statement).all())

    def list_due(self, now: datetime, limit: int) -> list[Post]:
        """Scheduled posts whose time has come, oldest first (scheduler sweep)."""
        statement = (
            select(Post)
            .where(
                Post.status == PostStatus.scheduled,
                Post.scheduled_at.is_not(None),
                Post.scheduled_at <= now,
                Post.deleted_at.is_(None),
            )
            .order_by(Post.scheduled_at)
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def count_targets(self, workspace_id: UUID, post_id: UUID) -> int:
        statement = select(func.count()).select_from(PostTarget).where(
            PostTarget.workspace_id == workspace_id,
            PostTarget.post_id == post_id,
        )
        return self.session.exec(statement).one()

    def get_targets(self, workspace_id: UUID, post_id: UUID) -> list[PostTarget]:
        statement = (
            select(PostTarget)
            .where(
                PostTarget.workspace_id == workspace_id,
                PostTarget.post_id == post_id,
            )
            .order_by(PostTarget.created_at)
        )
        return list(self.session.exec(statement).all())

    def get_target(self, workspace_id: UUID, target_id: UUID) -> Optional[PostTarget]:
        statement = select(PostTarget).where(
            PostTarget.workspace_id == workspace_id,
            PostTarget.id == target_id,
        )
        return self.session.exec(statement).first()

    def find_target_by_platform_post(
        self, workspace_id: UUID, social_account_id: UUID, platform_post_id: str
    ) -> Optional[PostTarget]:
        """The target that produced a platform post (for comments on our posts)."""
        statement = select(PostTarget).where(
            PostTarget.workspace_id == workspace_id,
            PostTarget.social_account_id == social_account_id,
            PostTarget.platform_post_id == platform_post_id,
        )
        return self.session.exec(statement).first()


# =============================================================================
# Inbox Repository
# =============================================================================


class InboxRepository:
    """Repository for InboxItem and InboxConversation operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_item(self, workspace_id: UUID, item_id: UUID) -> Optional[InboxItem]:
        statement = select(InboxItem).where(
            InboxItem.workspace_id == workspace_id,
            InboxItem.id == item_id,
        )
        return self.session.exec(statement).first()

    def find_item(
        self, workspace_id: UUID, social_account_id: UUID, platform_item_id: str
    ) -> Optional[InboxItem]:
        statement = select(InboxItem).where(
            InboxItem.workspace_id == workspace_id,
            InboxItem.social_account_id == social_account_id,
            InboxItem.platform_item_id == platform_item_id,
        )
        return self.session.exec(statement).first()

    def list_items(
        self,
        workspace_id: UUID,
        conversation_id: Optional[UUID] = None,
        status: Optional[InboxItemStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InboxItem]:
        statement = select(InboxItem).where(InboxItem.workspace_id == workspace_id)
        if conversation_id is not None:
            statement = statement.where(InboxItem.conversation_id == conversation_id)
        if status is not None:
            statement = statement.where(InboxItem.status == status)
        statement = (
            statement.order_by(InboxItem.platform_created_at.desc()).offset(offset).limit(limit)
        )
        return list(self.session.exec(statement).all())

    def list_items_for_regroup(self, workspace_id: UUID) -> list[InboxItem]:
        statement = (
            select(InboxItem)
            .where(InboxItem.workspace_id == workspace_id)
            .order_by(InboxItem.platform_created_at, InboxItem.created_at)
        )
        return list(self.session.exec(statement).all())

    def count_items(self, workspace_id: UUID, conversation_id: UUID) -> int:
        statement = select(func.count()).select_from(InboxItem).where(
            InboxItem.workspace_id == workspace_id,
            InboxItem.conversation_id == conversation_id,
        )
        return self.session.exec(statement).one()

    def get_conversation(
        self, workspace_id: UUID, conversation_id: UUID
    ) -> Optional[InboxConversation]:
        statement = select(InboxConversation).where(
            InboxConversation.workspace_id == workspace_id,
            InboxConversation.id == conversation_id,
        )
        return self.session.exec(statement).first()

    def find_conversation(
        self, workspace_id: UUID, social_account_id: UUID, conversation_key: str
    ) -> Optional[InboxConversation]:
        statement = select(InboxConversation).where(
            InboxConversation.workspace_id == workspace_id,
            InboxConversation.social_account_id == social_account_id,
            InboxConversation.conversation_key == conversation_key,
        )
        return self.session.exec(statement).first()

    def list_conversations(
        self,
        workspace_id: UUID,
        status: Optional[ConversationStatus] = None,
        assigned_to_user_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InboxConversation]:
        statement = select(InboxConversation).where(
            InboxConversation.workspace_id == workspace_id
        )
        if status is not None:
            statement = statement.where(InboxConversation.status == status)
        if assigned_to_user_id is not None:
            statement = statement.where(
                InboxConversation.assigned_to_user_id == assigned_to_user_id
            )
        statement = (
            statement.order_by(InboxConversation.last_message_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def count_conversations_by_status(self, workspace_id: UUID) -> dict[ConversationStatus, int]:
        statement = (
            select(InboxConversation.status, func.count())
            .where(InboxConversation.workspace_id == workspace_id)
            .group_by(InboxConversation.status)
        )
        counts = {status: 0 for status in ConversationStatus}
        for status, count in self.session.exec(statement).all():
            counts[ConversationStatus(status)] = count
        return counts
