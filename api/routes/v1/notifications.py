"""Notification routes for the current user's in-app notifications.

Provides endpoints for:
- Listing notifications (optionally unread only)
- Unread counts for badge display
- Marking one or all notifications as read
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from api.auth.scopes import Scope
from api.routes.v1.dependencies import (
    DbSession,
    WorkspaceContext,
    get_notification_service,
    require_workspace_scope,
)
from api.services.notification_service import NotificationService
from crosspost.db.models import NotificationRead


router = APIRouter(prefix="/v1/w/{workspace_id}/notifications", tags=["notifications"])


# =============================================================================
# Request/Response Models
# =============================================================================


class NotificationListResponse(BaseModel):
    """Response for listing notifications with metadata."""
    notifications: list[NotificationRead]
    unread_count: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkReadResponse(BaseModel):
    """Response after marking notifications as read."""
    marked_count: int


# =============================================================================
# Notifications
# =============================================================================


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: Annotated[NotificationService, Depends(get_notification_service)],
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    """List the current user's notifications in this workspace, newest first."""
    notifications = service.list_for_user(
        session, ctx.workspace_id, ctx.user_id, unread_only=unread_only, limit=limit, offset=offset
    )
    return NotificationListResponse(
        notifications=[NotificationRead.model_validate(n) for n in notifications],
        unread_count=service.unread_count(session, ctx.workspace_id, ctx.user_id),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: Annotated[NotificationService, Depends(get_notification_service)],
):
    return UnreadCountResponse(count=service.unread_count(session, ctx.workspace_id, ctx.user_id))


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: Annotated[NotificationService, Depends(get_notification_service)],
):
    """Mark a single notification as read."""
    return service.mark_as_read(session, ctx.workspace_id, notification_id, ctx.user_id)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: Annotated[NotificationService, Depends(get_notification_service)],
):
    """Mark every unread notification in this workspace as read."""
    return MarkReadResponse(
        marked_count=service.mark_all_as_read(session, ctx.workspace_id, ctx.user_id)
    )
