from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from staffchat.core.db import get_db
from staffchat.api.deps import get_current_user, http_error
from staffchat.models.user import User
from staffchat.schemas.conversation import (
    ConversationCreate,
    ConversationRead,
    GroupCreate,
    StatusMessage,
)
from staffchat.services.conversation_service import ConversationService


class ConversationRouter:
    """
    APIRouter for conversation endpoints.
    """

    def __init__(self) -> None:
        self.router = APIRouter(
            prefix="/conversations",
            tags=["conversations"],
        )
        self.service = ConversationService()
        self._register_routes()

    def _register_routes(self) -> None:
        self.router.get("", response_model=List[ConversationRead])(self.list_conversations)
        self.router.post("", response_model=ConversationRead)(self.create_conversation)
        self.router.post(
            "/group",
            response_model=ConversationRead,
            status_code=status.HTTP_201_CREATED,
        )(self.create_group)
        self.router.delete("/{conversation_id}", response_model=StatusMessage)(self.delete_group)
        self.router.post("/{conversation_id}/leave", response_model=StatusMessage)(self.leave_group)

    async def list_conversations(
        self,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        All direct and group conversations of the current user with their
        last message and unread count.
        """
        return await self.service.list_for_user(db, current_user.id)

    async def create_conversation(
        self,
        data: ConversationCreate,
        response: Response,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        Create a group, or get-or-create the direct conversation with
        memberIds[0]. Answers 201 when something new was created.
        """
        try:
            if data.is_group:
                response.status_code = status.HTTP_201_CREATED
                return await self.service.create_group(db, data.name, data.member_ids, current_user.id)

            if not data.member_ids:
                raise ValueError("Missing other user ID")
            conversation, created = await self.service.get_or_create_direct(
                db, current_user.id, data.member_ids[0]
            )
        except (ValueError, LookupError) as e:
            raise http_error(e)

        if created:
            response.status_code = status.HTTP_201_CREATED
        return self.service.to_read(conversation, current_user.id, None, 0)

    async def create_group(
        self,
        data: GroupCreate,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        try:
            return await self.service.create_group(db, data.name, data.member_ids, current_user.id)
        except (ValueError, LookupError) as e:
            raise http_error(e)

    async def delete_group(
        self,
        conversation_id: str,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        Delete a group conversation (creator or admin only).
        """
        try:
            await self.service.delete_group(db, conversation_id, current_user)
        except (ValueError, LookupError, PermissionError) as e:
            raise http_error(e)
        return StatusMessage(message="Group deleted")

    async def leave_group(
        self,
        conversation_id: str,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        try:
            message = await self.service.leave_group(db, conversation_id, current_user.id)
        except (ValueError, LookupError) as e:
            raise http_error(e)
        return StatusMessage(message=message)
