"""WhatsApp Business routes.

Provides endpoints for:
- Listing customer conversations and their messages
- Sending free-form text (only inside the 24-hour service window)
- Sending approved template messages (always allowed)
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from api.auth.scopes import Scope
from api.routes.v1.dependencies import (
    DbSession,
    WorkspaceContext,
    get_whatsapp_service,
    require_workspace_scope,
)
from api.services.whatsapp_service import WhatsAppService
from crosspost.db.models import (
    TemplateComponent,
    WhatsAppConversationRead,
    WhatsAppMessageRead,
)


router = APIRouter(prefix="/v1/w/{workspace_id}/whatsapp", tags=["whatsapp"])

WhatsAppServiceDep = Annotated[WhatsAppService, Depends(get_whatsapp_service)]


# =============================================================================
# Request Models
# =============================================================================


class SendTextRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4096)


class SendTemplateRequest(BaseModel):
    template_name: str = Field(min_length=1, max_length=512)
    language_code: str = "en_US"
    components: Optional[list[TemplateComponent]] = None


# =============================================================================
# Conversations
# =============================================================================


@router.get("/conversations", response_model=list[WhatsAppConversationRead])
async def list_conversations(
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_READ))],
    session: DbSession,
    service: WhatsAppServiceDep,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    return service.list_conversations(session, ctx.workspace_id, limit=limit, offset=offset)


@router.get("/conversations/{conversation_id}", response_model=WhatsAppConversationRead)
async def get_conversation(
    conversation_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_READ))],
    session: DbSession,
    service: WhatsAppServiceDep,
):
    return service.get_conversation(session, ctx.workspace_id, conversation_id)


@router.get("/conversations/{conversation_id}/messages", response_model=list[WhatsAppMessageRead])
async def list_messages(
    conversation_id: UUID,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_READ))],
    session: DbSession,
    service: WhatsAppServiceDep,
    limit: int = Query(default=100, ge=1, le=500),
):
    """Messages oldest first."""
    return service.list_messages(session, ctx.workspace_id, conversation_id, limit=limit)


# =============================================================================
# Sending
# =============================================================================


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=WhatsAppMessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_text(
    conversation_id: UUID,
    request: SendTextRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: WhatsAppServiceDep,
):
    """Send a free-form reply; 422 when the service window has closed."""
    return await service.send_text(
        session, ctx.workspace_id, conversation_id, request.text, user_id=ctx.user_id
    )


@router.post(
    "/conversations/{conversation_id}/templates",
    response_model=WhatsAppMessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_template(
    conversation_id: UUID,
    request: SendTemplateRequest,
    ctx: Annotated[WorkspaceContext, Depends(require_workspace_scope(Scope.INBOX_MANAGE))],
    session: DbSession,
    service: WhatsAppServiceDep,
):
    return await service.send_template(
        session,
        ctx.workspace_id,
        conversation_id,
        request.template_name,
        language_code=request.language_code,
        components=request.components,
        user_id=ctx.user_id,
    )
