from typing import Optional

from fastapi import APIRouter, Depends, Query

from staffchat.api.deps import get_current_user
from staffchat.models.user import User
from staffchat.schemas.message import Ack, TypingStatus, TypingUpdate
from staffchat.services.typing_service import TypingRegistry, typing_registry
from staffchat.websocket.manager import ConnectionManager, manager as default_manager


class TypingRouter:
    """
    Ephemeral typing signals. Nothing here touches the database.
    """

    def __init__(
        self,
        registry: Optional[TypingRegistry] = None,
        connections: Optional[ConnectionManager] = None,
    ) -> None:
        self.router = APIRouter(
            prefix="/typing",
            tags=["typing"],
        )
        self.registry = registry or typing_registry
        self.connections = connections or default_manager
        self._register_routes()

    def _register_routes(self) -> None:
        self.router.post("", response_model=Ack)(self.update_typing)
        self.router.get("", response_model=TypingStatus)(self.get_typing)

    async def update_typing(
        self,
        data: TypingUpdate,
        current_user: User = Depends(get_current_user),
    ):
        """
        Record whether the current user is typing to `peerId`.
        """
        name = current_user.full_name or "Someone"
        self.registry.set_typing(current_user.id, name, data.peer_id, data.is_typing)
        await self.connections.send_to_user(
            data.peer_id,
            {"type": "typing", "userId": current_user.id, "isTyping": data.is_typing, "userName": name},
        )
        return Ack()

    async def get_typing(
        self,
        peer_id: str = Query(..., alias="peerId", min_length=1),
        current_user: User = Depends(get_current_user),
    ):
        """
        Whether `peerId` is typing to the current user right now.
        """
        is_typing, user_name = self.registry.get_typing(current_user.id, peer_id)
        return TypingStatus(is_typing=is_typing, user_name=user_name)
