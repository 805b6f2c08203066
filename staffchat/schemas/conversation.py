from typing import List, Optional

from pydantic import Field

from staffchat.schemas.base import CamelModel, UtcDatetime
from staffchat.schemas.user import UserPublic


class LastMessage(CamelModel):
    """Denormalized summary used for directory sorting."""
    content: str
    created_at: UtcDatetime
    sender_id: str
    sender_name: Optional[str] = None


class ConversationRead(CamelModel):
    """One conversation as seen by the requesting user."""
    id: str
    is_group: bool = False
    name: Optional[str] = None
    other_user: Optional[UserPublic] = None
    member_details: Optional[List[UserPublic]] = None
    member_count: Optional[int] = None
    last_message: Optional[LastMessage] = None
    unread_count: int = Field(default=0, ge=0)
    updated_at: Optional[UtcDatetime] = None


class ConversationCreate(CamelModel):
    """Payload for POST /conversations (group or direct)."""
    is_group: bool = False
    name: Optional[str] = None
    member_ids: List[str] = Field(default_factory=list)


class GroupCreate(CamelModel):
    name: str
    member_ids: List[str]


class StatusMessage(CamelModel):
    message: str
