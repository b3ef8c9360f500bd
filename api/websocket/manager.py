"""WebSocket connection manager for real-time notifications."""

import json
from typing import Optional
from uuid import UUID

from fastapi import WebSocket

from crosspost.logging import get_logger

logger = get_logger(__name__)


class BroadcastError(Exception):
    """No open connection of the recipient accepted the event."""


class ConnectionManager:
    """Tracks WebSocket connections per user and pushes events to them."""

    def __init__(self):
        # user_id -> open sockets (one per browser tab)
        self.user_connections: dict[str, set[WebSocket]] = {}
        # socket -> workspace filter (None receives every workspace)
        self.workspace_filters: dict[WebSocket, Optional[str]] = {}

    async def connect(
        self,
        websocket: WebSocket,
        user_id: UUID,
        workspace_id: Optional[UUID] = None,
    ):
        """Accept a new WebSocket connection for a user."""
        await websocket.accept()
        key = str(user_id)
        self.user_connections.setdefault(key, set()).add(websocket)
        self.workspace_filters[websocket] = str(workspace_id) if workspace_id else None

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        self.workspace_filters.pop(websocket, None)
        for key in list(self.user_connections):
            sockets = self.user_connections[key]
            sockets.discard(websocket)
            if not sockets:
                del self.user_connections[key]

    def connection_count(self, user_id: Optional[UUID] = None) -> int:
        if user_id is not None:
            return len(self.user_connections.get(str(user_id), ()))
        return sum(len(s) for s in self.user_connections.values())

    async def send_to_user(self, user_id: UUID, event: dict) -> int:
        """Push an event to every open connection of a user.

        Returns the number of connections that received it (0 when the user
        is offline; the stored notification is picked up on next load).

        Raises:
            BroadcastError: The user had matching connections and every send failed
        """
        sockets = self.user_connections.get(str(user_id), set()).copy()
        workspace_id = event.get("workspace_id")
        targets = [
            ws
            for ws in sockets
            if self.workspace_filters.get(ws) in (None, workspace_id)
        ]
        if not targets:
            return 0

        message = json.dumps(event, default=str)
        delivered = 0
        dead_connections = []
        for connection in targets:
            try:
                await connection.send_text(message)
                delivered += 1
            except Exception as e:
                logger.debug("websocket_send_failed", user_id=str(user_id), error=str(e))
                dead_connections.append(connection)

        for conn in dead_connections:
            self.disconnect(conn)

        if delivered == 0:
            raise BroadcastError(f"All {len(targets)} connections for user {user_id} failed")
        return delivered

    async def send_personal(self, websocket: WebSocket, event: dict):
        """Send event to a specific connection."""
        try:
            await websocket.send_text(json.dumps(event, default=str))
        except Exception:
            self.disconnect(websocket)


# Global instance
manager = ConnectionManager()
