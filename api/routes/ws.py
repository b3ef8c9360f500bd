"""WebSocket route for real-time notification delivery."""

import json
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect
from sqlmodel import Session

from api.auth.dependencies import user_from_token
from api.websocket.manager import manager
from crosspost.content import WorkspaceRepository
from crosspost.db.engine import engine
from crosspost.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


def _extract_token(websocket: WebSocket, token_param: Optional[str]) -> Optional[str]:
    """Extract JWT token from query param or Authorization header."""
    if token_param:
        return token_param

    auth_header = websocket.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]

    return None


@router.websocket("/notifications")
async def notifications_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    workspace_id: Optional[UUID] = Query(None),
):
    """Stream the user's notifications as they are created.

    Authentication:
        - Query param: ?token=<jwt>
        - Header: Authorization: Bearer <jwt>

    Query params:
        workspace_id: Only receive events of this workspace (membership required)
    """
    with Session(engine) as session:
        try:
            user = user_from_token(session, _extract_token(websocket, token))
        except HTTPException as e:
            await websocket.close(code=4001, reason=str(e.detail))
            return

        if workspace_id is not None and not WorkspaceRepository(session).get_membership(
            workspace_id, user.id
        ):
            await websocket.close(code=4003, reason="Access denied to workspace")
            return
        user_id = user.id

    await manager.connect(websocket, user_id, workspace_id)
    logger.info("notification_socket_connected", user_id=str(user_id))

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_personal(websocket, {"type": "error", "message": "Invalid JSON"})
                continue
            msg_type = message.get("type") if isinstance(message, dict) else None
            if msg_type == "ping":
                await manager.send_personal(websocket, {"type": "pong"})
            else:
                await manager.send_personal(
                    websocket,
                    {"type": "error", "message": f"Unknown message type: {msg_type}"},
                )
    except WebSocketDisconnect:
        manager.disconnect(websocket)
        logger.info("notification_socket_disconnected", user_id=str(user_id))
