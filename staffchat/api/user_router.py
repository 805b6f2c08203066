from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from staffchat.core.db import get_db
from staffchat.models.user import User
from staffchat.api.deps import get_current_user
from staffchat.schemas.user import UserPublic


class UserRouter:
    def __init__(self) -> None:
        self.router = APIRouter(
            prefix="/users",
            tags=["users"],
        )
        self._register_routes()

    def _register_routes(self) -> None:
        self.router.get("", response_model=List[UserPublic])(self.list_users)

    async def list_users(
        self,
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user),
    ):
        """
        The staff roster: every active user, the caller included.
        Does not return email or sensitive data.
        """
        stmt = (
            select(User)
            .where(User.is_active.is_(True))
            .order_by(User.first_name.asc(), User.last_name.asc())
        )
        res = await db.execute(stmt)
        return [UserPublic.model_validate(u) for u in res.scalars().all()]
