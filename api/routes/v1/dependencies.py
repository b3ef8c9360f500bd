"""Dependencies for workspace-scoped routes.

Provides FastAPI dependencies to:
- Extract workspace_id from URL path
- Verify the user has an accepted membership in that workspace
- Inject workspace context and services into route handlers
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Path, status
from sqlmodel import Session

from api.auth.dependencies import CurrentUser, get_current_user
from api.auth.scopes import Scope, has_scope
from api.services.conversation_service import ConversationService
from api.services.notification_service import NotificationService
from api.services.post_service import PostService
from api.services.publishing_service import PublishingService
from api.services.social_account_service import SocialAccountService
from api.services.webhook_ingestion_service import WebhookIngestionService
from api.services.whatsapp_service import WhatsAppService
from crosspost.content import WorkspaceRepository
from crosspost.db.engine import get_session_dependency
from crosspost.db.models import Workspace, WorkspaceMembership


class WorkspaceContext:
    """Container for workspace context in route handlers.

    Contains the workspace, user's membership, and current user.
    """

    def __init__(
        self,
        workspace: Workspace,
        membership: WorkspaceMembership,
        current_user: CurrentUser,
    ):
        self.workspace = workspace
        self.membership = membership
        self.current_user = current_user

    @property
    def workspace_id(self) -> UUID:
        return self.workspace.id

    @property
    def user_id(self) -> UUID:
        return self.current_user.user_id

    def has_scope(self, scope: Scope) -> bool:
        return has_scope(self.membership.role, scope)

    def require_scope(self, scope: Scope) -> None:
        """Raise HTTPException if user lacks required scope."""
        if not self.has_scope(scope):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required permission: {scope.value}",
            )


async def get_workspace_context(
    workspace_id: Annotated[UUID, Path(description="Workspace UUID")],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session_dependency)],
) -> WorkspaceContext:
    """Get workspace context from URL path parameter.

    Raises:
        HTTPException 404: Workspace not found (or deleted)
        HTTPException 403: User is not an accepted member
    """
    workspace = session.get(Workspace, workspace_id)
    if not workspace or workspace.deleted_at is not None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workspace not found",
        )

    membership = WorkspaceRepository(session).get_membership(workspace_id, current_user.user_id)
    if not membership:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this workspace",
        )

    return WorkspaceContext(
        workspace=workspace,
        membership=membership,
        current_user=CurrentUser(user=current_user.user, membership=membership),
    )


def require_workspace_scope(scope: Scope):
    """Create a dependency that requires a specific scope in the workspace.

    Usage:
        @router.post("/posts")
        async def create_post(
            ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))]
        ):
            ...
    """

    async def scope_checker(
        ctx: Annotated[WorkspaceContext, Depends(get_workspace_context)],
    ) -> WorkspaceContext:
        ctx.require_scope(scope)
        return ctx

    return scope_checker


# =============================================================================
# Service providers (overridden in tests)
# =============================================================================


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_post_service() -> PostService:
    return PostService()


def get_publishing_service() -> PublishingService:
    return PublishingService()


def get_social_account_service(
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> SocialAccountService:
    return SocialAccountService(notification_service=notifications)


def get_conversation_service(
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> ConversationService:
    return ConversationService(notifications)


def get_webhook_ingestion_service(
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> WebhookIngestionService:
    return WebhookIngestionService(notification_service=notifications)


def get_whatsapp_service(
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> WhatsAppService:
    return WhatsAppService(notification_service=notifications)


# Type aliases for cleaner route signatures
WorkspaceCtx = Annotated[WorkspaceContext, Depends(get_workspace_context)]
DbSession = Annotated[Session, Depends(get_session_dependency)]
