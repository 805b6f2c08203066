from typing import Dict, Iterable, Set
from fastapi import WebSocket
from staffchat.core.logger import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """
    Manages active WebSocket connections per user.

    A user may have several sockets open (tabs, devices); pushes go to all
    of them.
    """

    def __init__(self) -> None:
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        """
        Accept the connection and register it under the given user.
        """
        await websocket.accept()
        self.active_connections.setdefault(user_id, set()).add(websocket)
        logger.info("WebSocket accepted for user %s (connections=%s)", user_id, len(self.active_connections[user_id]))

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        if user_id in self.active_connections:
            self.active_connections[user_id].discard(websocket)
            if not self.active_connections[user_id]:
                del self.active_connections[user_id]
        logger.info("WebSocket disconnected for user %s (remaining=%s)", user_id, len(self.active_connections.get(user_id, ())))

    async def send_to_user(self, user_id: str, message: dict) -> None:
        """
        Push a JSON-serializable event to every socket of one user.
        Sockets that fail are dropped.
        """
        connections = self.active_connections.get(user_id)
        if not connections:
            logger.debug("No connections to push to for user %s", user_id)
            return

        dead = []
        for ws in list(connections):
            try:
                await ws.send_json(message)
            except Exception:
                logger.exception("Error pushing event to websocket of user %s", user_id)
                dead.append(ws)

        for ws in dead:
            connections.discard(ws)
        if not connections:
            self.active_connections.pop(user_id, None)

    async def send_to_users(self, user_ids: Iterable[str], message: dict) -> None:
        for user_id in user_ids:
            await self.send_to_user(user_id, message)


manager = ConnectionManager()
