"""Unified inbox routes.

Conversations group inbound comments, mentions and messages by thread.
Triage (resolve, archive, reopen), assignment and replies live here.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from api.auth.scopes import Scope
from api.routes.v1.dependencies import (
    DbSession,
    WorkspaceContext,
    get_conversation_service,
    require_workspace_scope,
)
from api.services.conversation_service import ConversationService
from crosspost.db.models import (
    ConversationStatus,
    InboxConversationRead,
    InboxItemRead,
)


router = APIRouter(prefix="/v1/w/{workspace_id}/inbox", tags=["inbox"])

ConversationServiceDep = Annotated[ConversationService, Depends(get_conversation_service)]


# =============================================================================
# Request/Response Models
# =============================================================================


class AssignRequest(BaseModel):
    """Assign to a member, or unassign with null."""
    user_id: Optional[UUID] = None


class ReplyRequest(BaseModel):
    text: str = Field(min_length=1, max_length=10000)


class ConversationDetailResponse(BaseModel):
    conversation: InboxConversationRead
    items: list[InboxItemRead]


class RegroupResponse(BaseModel):
    items: int


# =============================================================================
# Conversations
# =============================================================================


@router.get("/conversations", response_model=list[InboxConversationRead])
async def list_conversations(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_READ))],
    session: DbSession,
    service: ConversationServiceDep,
    status_filter: Optional[ConversationStatus] = Query(default=None, alias="status"),
    assigned_to: Optional[UUID] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    """List conversations, most recent activity first."""
    return service.list_conversations(
        session,
        ctx.workspace_id,
        status=status_filter,
        assigned_to_user_id=assigned_to,
        limit=limit,
        offset=offset,
    )


@router.get("/stats")
async def get_inbox_stats(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_READ))],
    session: DbSession,
    service: ConversationServiceDep,
) -> dict[str, int]:
    """Conversation counts per status plus a total."""
    return service.get_stats(session, ctx.workspace_id)


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(
    conversation_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_READ))],
    session: DbSession,
    service: ConversationServiceDep,
):
    conversation = service.get(session, ctx.workspace_id, conversation_id)
    items = service.list_items(session, ctx.workspace_id, conversation_id)
    return ConversationDetailResponse(
        conversation=InboxConversationRead.model_validate(conversation),
        items=[InboxItemRead.model_validate(i) for i in items],
    )


@router.post("/conversations/{conversation_id}/resolve", response_model=InboxConversationRead)
async def resolve_conversation(
    conversation_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: ConversationServiceDep,
):
    return service.resolve(session, ctx.workspace_id, conversation_id, ctx.user_id)


@router.post("/conversations/{conversation_id}/archive", response_model=InboxConversationRead)
async def archive_conversation(
    conversation_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: ConversationServiceDep,
):
    return service.archive(session, ctx.workspace_id, conversation_id)


@router.post("/conversations/{conversation_id}/reopen", response_model=InboxConversationRead)
async def reopen_conversation(
    conversation_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: ConversationServiceDep,
):
    return service.reopen(session, ctx.workspace_id, conversation_id)


@router.post("/conversations/{conversation_id}/assign", response_model=InboxConversationRead)
async def assign_conversation(
    conversation_id: UUID,
    request: AssignRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: ConversationServiceDep,
):
    """Assign a conversation; the assignee is notified."""
    return await service.assign(
        session, ctx.workspace_id, conversation_id, request.user_id, actor_id=ctx.user_id
    )


@router.post("/conversations/{conversation_id}/reply", response_model=InboxConversationRead)
async def reply_to_conversation(
    conversation_id: UUID,
    request: ReplyRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: ConversationServiceDep,
):
    """Record a reply; the replier takes over the conversation."""
    return await service.reply(
        session, ctx.workspace_id, conversation_id, ctx.user_id, request.text
    )


@router.post("/regroup", response_model=RegroupResponse)
async def regroup_items(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: ConversationServiceDep,
):
    """Rebuild conversations from every inbox item in the workspace."""
    return RegroupResponse(items=service.regroup_all_items(session, ctx.workspace_id))
