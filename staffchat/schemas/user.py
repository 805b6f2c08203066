from typing import Annotated, Optional
from pydantic import BaseModel, EmailStr, StringConstraints
from pydantic.alias_generators import to_camel

from staffchat.schemas.base import UtcDatetime


class UserBase(BaseModel):
    email: EmailStr
    first_name: str
    last_name: str = ""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class UserCreate(UserBase):
    password: Annotated[str, StringConstraints(min_length=6, max_length=72)]


class UserRead(UserBase):
    id: str
    avatar: Optional[str] = None
    is_active: bool
    created_at: UtcDatetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class UserPublic(BaseModel):
    """Roster entry. Does not carry email or anything sensitive."""
    id: str
    first_name: str
    last_name: str = ""
    avatar: Optional[str] = None

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
