"""Post routes: drafting, approval workflow, scheduling and bulk actions.

All routes are workspace-scoped: /api/v1/w/{workspace_id}/posts/...
Posts in another workspace are reported as not found.
"""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from api.auth.scopes import Scope
from api.routes.v1.dependencies import (
    DbSession,
    WorkspaceContext,
    get_post_service,
    require_workspace_scope,
)
from api.services.post_service import BulkResult, PostService
from crosspost.db.models import (
    PostCreate,
    PostRead,
    PostStatus,
    PostTargetRead,
    PostUpdate,
)


router = APIRouter(prefix="/v1/w/{workspace_id}/posts", tags=["posts"])

PostServiceDep = Annotated[PostService, Depends(get_post_service)]


# =============================================================================
# Request Models
# =============================================================================


class ScheduleRequest(BaseModel):
    """Schedule a post; naive datetimes are taken as UTC."""
    scheduled_at: datetime
    timezone: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class TargetsRequest(BaseModel):
    social_account_ids: list[UUID] = Field(min_length=1)


class BulkRequest(BaseModel):
    post_ids: list[UUID] = Field(default_factory=list, max_length=500)


class BulkScheduleRequest(BulkRequest):
    scheduled_at: datetime


# =============================================================================
# CRUD
# =============================================================================


@router.get("", response_model=list[PostRead])
async def list_posts(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: PostServiceDep,
    status_filter: Optional[PostStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    """List posts in the workspace, newest first."""
    return service.list_posts(session, ctx.workspace_id, status=status_filter, limit=limit, offset=offset)


@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
async def create_post(
    request: PostCreate,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    """Create a draft post targeting the given social accounts."""
    return service.create(session, ctx.workspace_id, request, user_id=ctx.user_id)


@router.get("/{post_id}", response_model=PostRead)
async def get_post(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.get(session, ctx.workspace_id, post_id)


@router.patch("/{post_id}", response_model=PostRead)
async def update_post(
    post_id: UUID,
    request: PostUpdate,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.update(session, ctx.workspace_id, post_id, request)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    """Delete a draft or cancelled post."""
    service.delete(session, ctx.workspace_id, post_id)


@router.post("/{post_id}/duplicate", response_model=PostRead, status_code=status.HTTP_201_CREATED)
async def duplicate_post(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.duplicate(session, ctx.workspace_id, post_id, user_id=ctx.user_id)


# =============================================================================
# Targets
# =============================================================================


@router.get("/{post_id}/targets", response_model=list[PostTargetRead])
async def list_targets(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: PostServiceDep,
):
    """Per-platform publish state of a post."""
    return service.get_targets(session, ctx.workspace_id, post_id)


@router.post("/{post_id}/targets", response_model=list[PostTargetRead])
async def add_targets(
    post_id: UUID,
    request: TargetsRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.add_targets(session, ctx.workspace_id, post_id, request.social_account_ids)


@router.delete("/{post_id}/targets/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_target(
    post_id: UUID,
    target_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    service.remove_target(session, ctx.workspace_id, post_id, target_id)


# =============================================================================
# Workflow transitions
# =============================================================================


@router.post("/{post_id}/submit", response_model=PostRead)
async def submit_post(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    """Submit a draft for approval."""
    return service.submit(session, ctx.workspace_id, post_id)


@router.post("/{post_id}/approve", response_model=PostRead)
async def approve_post(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_APPROVE))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.approve(session, ctx.workspace_id, post_id, ctx.user_id)


@router.post("/{post_id}/reject", response_model=PostRead)
async def reject_post(
    post_id: UUID,
    request: RejectRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_APPROVE))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.reject(session, ctx.workspace_id, post_id, request.reason)


@router.post("/{post_id}/schedule", response_model=PostRead)
async def schedule_post(
    post_id: UUID,
    request: ScheduleRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_PUBLISH))],
    session: DbSession,
    service: PostServiceDep,
):
    """Schedule an approved post, or move an already scheduled one."""
    return service.schedule(
        session, ctx.workspace_id, post_id, request.scheduled_at, timezone=request.timezone
    )


@router.post("/{post_id}/reschedule", response_model=PostRead)
async def reschedule_post(
    post_id: UUID,
    request: ScheduleRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_PUBLISH))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.reschedule(session, ctx.workspace_id, post_id, request.scheduled_at)


@router.post("/{post_id}/unschedule", response_model=PostRead)
async def unschedule_post(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_PUBLISH))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.unschedule(session, ctx.workspace_id, post_id)


@router.post("/{post_id}/cancel", response_model=PostRead)
async def cancel_post(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.cancel(session, ctx.workspace_id, post_id)


# =============================================================================
# Bulk operations
# =============================================================================


@router.post("/bulk/delete", response_model=BulkResult)
async def bulk_delete_posts(
    request: BulkRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    """Delete many posts at once; succeeded counts rows actually deleted."""
    return service.bulk_delete(session, ctx.workspace_id, request.post_ids)


@router.post("/bulk/submit", response_model=BulkResult)
async def bulk_submit_posts(
    request: BulkRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_WRITE))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.bulk_submit(session, ctx.workspace_id, request.post_ids)


@router.post("/bulk/schedule", response_model=BulkResult)
async def bulk_schedule_posts(
    request: BulkScheduleRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_PUBLISH))],
    session: DbSession,
    service: PostServiceDep,
):
    return service.bulk_schedule(session, ctx.workspace_id, request.post_ids, request.scheduled_at)
