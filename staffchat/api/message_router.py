from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from staffchat.core.db import get_db
from staffchat.core.logger import get_logger
from staffchat.api.deps import get_current_user, http_error
from staffchat.models.user import User
from staffchat.schemas.message import (
    Ack,
    MarkReadRequest,
    MessageCreate,
    MessageRead,
    UnreadCount,
)
from staffchat.services.message_service import MessageService
from staffchat.websocket.manager import ConnectionManager, manager as default_manager

logger = get_logger(__name__)


class MessageRouter:
    """
    APIRouter for message history, sending and read state.
    """

    def __init__(self, connections: Optional[ConnectionManager] = None) -> None:
        self.router = APIRouter(
            prefix="/messages",
            tags=["messages"],
        )
        self.service = MessageService()
        self.connections = connections or default_manager
        self._register_routes()

    def _register_routes(self) -> None:
        self.router.get("", response_model=List[MessageRead])(self.get_messages)
        self.router.post(
            "",
            response_model=MessageRead,
            status_code=status.HTTP_201_CREATED,
        )(self.send_message)
        self.router.post("/read", response_model=Ack)(self.mark_read)
        self.router.get("/unread", response_model=UnreadCount)(self.unread_count)

    async def get_messages(
        self,
        peer_id: Optional[str] = Query(default=None, alias="peerId"),
        conversation_id: Optional[str] = Query(default=None, alias="conversationId"),
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        History with a peer or of a group, oldest first.
        """
        try:
            return await self.service.get_history(
                db,
                current_user.id,
                peer_id=peer_id,
                conversation_id=conversation_id,
            )
        except (ValueError, LookupError) as e:
            raise http_error(e)

    async def send_message(
        self,
        data: MessageCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        Send a message; the direct conversation is created on first use.
        Recipients with an open socket get the message pushed.
        """
        try:
            message = await self.service.send(db, current_user, data)
        except (ValueError, LookupError) as e:
            raise http_error(e)

        payload = MessageRead.model_validate(message)
        recipients = await self.service.recipients(db, message)
        await self.connections.send_to_users(
            recipients,
            {"type": "message", "message": payload.model_dump(mode="json", by_alias=True)},
        )
        return payload

    async def mark_read(
        self,
        data: MarkReadRequest,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        try:
            await self.service.mark_read(db, current_user.id, data.conversation_id)
        except LookupError as e:
            raise http_error(e)
        return Ack()

    async def unread_count(
        self,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        Total unread count for the sidebar badge.
        """
        total = await self.service.unread_total(db, current_user.id)
        return UnreadCount(unread_count=total)
