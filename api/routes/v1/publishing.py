"""Publishing routes: immediate publish, retry of failed targets, engagement refresh.

Publishing itself runs in the worker; these routes only move the post to
``publishing`` and queue a job.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from api.auth.scopes import Scope
from api.routes.v1.dependencies import (
    DbSession,
    WorkspaceContext,
    get_publishing_service,
    require_workspace_scope,
)
from api.services.publishing_service import PublishingService
from crosspost.db.models import PostRead


router = APIRouter(prefix="/v1/w/{workspace_id}/posts", tags=["publishing"])

PublishingServiceDep = Annotated[PublishingService, Depends(get_publishing_service)]


class MetricsRefreshResponse(BaseModel):
    targets_updated: int


@router.post("/{post_id}/publish", response_model=PostRead, status_code=status.HTTP_202_ACCEPTED)
async def publish_now(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_PUBLISH))],
    session: DbSession,
    service: PublishingServiceDep,
):
    """Publish an approved or scheduled post now."""
    return service.publish_now(session, ctx.workspace_id, post_id)


@router.post("/{post_id}/retry", response_model=PostRead, status_code=status.HTTP_202_ACCEPTED)
async def retry_failed_targets(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_PUBLISH))],
    session: DbSession,
    service: PublishingServiceDep,
):
    """Requeue the post's retryable failed targets."""
    return service.retry_failed(session, ctx.workspace_id, post_id)


@router.post("/{post_id}/metrics/refresh", response_model=MetricsRefreshResponse)
async def refresh_metrics(
    post_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.POSTS_READ))],
    session: DbSession,
    service: PublishingServiceDep,
):
    updated = await service.refresh_metrics(session, ctx.workspace_id, post_id)
    return MetricsRefreshResponse(targets_updated=updated)
