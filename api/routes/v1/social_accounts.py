"""Social account routes.

Provides endpoints for:
- Listing connected accounts (tokens are never returned)
- Storing a newly authorized account
- Disconnecting, removing and refreshing an account
- Pulling recent inbox items for an account
"""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from api.auth.scopes import Scope
from api.routes.v1.dependencies import (
    DbSession,
    WorkspaceContext,
    get_social_account_service,
    get_webhook_ingestion_service,
    require_workspace_scope,
)
from api.services.social_account_service import SocialAccountService
from api.services.webhook_ingestion_service import WebhookIngestionService
from crosspost.db.models import (
    SocialAccountCreate,
    SocialAccountRead,
    SocialAccountStatus,
    SocialPlatform,
)


router = APIRouter(prefix="/v1/w/{workspace_id}/social-accounts", tags=["social-accounts"])

AccountServiceDep = Annotated[SocialAccountService, Depends(get_social_account_service)]


class DisconnectRequest(BaseModel):
    revoked: bool = False


class InboxSyncResponse(BaseModel):
    received: int
    created: int
    duplicates: int


class RefreshResponse(BaseModel):
    refreshed: bool
    account: SocialAccountRead


@router.get("", response_model=list[SocialAccountRead])
async def list_accounts(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.ACCOUNTS_READ))],
    session: DbSession,
    service: AccountServiceDep,
    platform: Optional[SocialPlatform] = None,
    status_filter: Optional[SocialAccountStatus] = Query(default=None, alias="status"),
):
    return service.list_accounts(session, ctx.workspace_id, platform=platform, status=status_filter)


@router.post("", response_model=SocialAccountRead, status_code=status.HTTP_201_CREATED)
async def connect_account(
    request: SocialAccountCreate,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.ACCOUNTS_MANAGE))],
    session: DbSession,
    service: AccountServiceDep,
):
    """Store an account after the OAuth exchange; reconnecting re-keys the same row."""
    return service.connect(session, ctx.workspace_id, request, user_id=ctx.user_id)


@router.get("/{account_id}", response_model=SocialAccountRead)
async def get_account(
    account_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.ACCOUNTS_READ))],
    session: DbSession,
    service: AccountServiceDep,
):
    return service.get(session, ctx.workspace_id, account_id)


@router.post("/{account_id}/disconnect", response_model=SocialAccountRead)
async def disconnect_account(
    account_id: UUID,
    request: DisconnectRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.ACCOUNTS_MANAGE))],
    session: DbSession,
    service: AccountServiceDep,
):
    return service.disconnect(session, ctx.workspace_id, account_id, revoked=request.revoked)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_account(
    account_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.ACCOUNTS_MANAGE))],
    session: DbSession,
    service: AccountServiceDep,
):
    service.remove(session, ctx.workspace_id, account_id)


@router.post("/{account_id}/refresh", response_model=RefreshResponse)
async def refresh_account(
    account_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.ACCOUNTS_MANAGE))],
    session: DbSession,
    service: AccountServiceDep,
):
    """Refresh the account's tokens now instead of waiting for the daily sweep."""
    account = service.get(session, ctx.workspace_id, account_id)
    refreshed = await service.refresh_account(session, account)
    session.refresh(account)
    return RefreshResponse(refreshed=refreshed, account=SocialAccountRead.model_validate(account))


@router.post("/{account_id}/sync-inbox", response_model=InboxSyncResponse)
async def sync_inbox(
    account_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: AccountServiceDep,
    ingestion: Annotated[WebhookIngestionService, Depends(get_webhook_ingestion_service)],
    since: Optional[datetime] = None,
):
    """Pull recent comments and mentions for platforms without push delivery."""
    account = service.get(session, ctx.workspace_id, account_id)
    result = await ingestion.poll_inbound(session, account, since=since)
    return InboxSyncResponse(
        received=result.received, created=result.created, duplicates=result.duplicates
    )
