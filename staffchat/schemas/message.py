from typing import List, Optional

from pydantic import Field

from staffchat.schemas.base import CamelModel, UtcDatetime
from staffchat.schemas.user import UserPublic


class MessageCreate(CamelModel):
    """Body of POST /messages. Exactly one of peer_id / conversation_id is set."""
    peer_id: Optional[str] = None
    conversation_id: Optional[str] = None
    content: str = ""
    attachments: List[str] = Field(default_factory=list)


class MessageRead(CamelModel):
    """Message representation returned to client."""
    id: str
    conversation_id: Optional[str] = None
    sender_id: str
    receiver_id: Optional[str] = None
    content: str = ""
    attachments: List[str] = Field(default_factory=list)
    is_read: bool = False
    created_at: UtcDatetime
    sender: Optional[UserPublic] = None

    class Config:
        from_attributes = True


class MarkReadRequest(CamelModel):
    conversation_id: str


class UnreadCount(CamelModel):
    unread_count: int


class TypingUpdate(CamelModel):
    peer_id: str
    is_typing: bool


class TypingStatus(CamelModel):
    is_typing: bool
    user_name: Optional[str] = None


class Ack(CamelModel):
    success: bool = True


class AttachmentRead(CamelModel):
    """Result of a single upload."""
    url: str
    filename: str
    type: str
    size: Optional[int] = None
