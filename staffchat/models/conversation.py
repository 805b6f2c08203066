from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    JSON,
    Index,
)
from sqlalchemy.orm import relationship

from staffchat.core.db import Base
from staffchat.models.user import new_id


class Conversation(Base):
    """
    A direct conversation stores its two participants in user1_id/user2_id;
    a group conversation stores them as ConversationMember rows.
    """

    __tablename__ = "conversations"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=True)
    is_group = Column(Boolean, nullable=False, default=False)

    user1_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    user2_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, index=True)

    user1 = relationship("User", foreign_keys=[user1_id], lazy="selectin")
    user2 = relationship("User", foreign_keys=[user2_id], lazy="selectin")
    members = relationship(
        "ConversationMember",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ConversationMember.joined_at",
        lazy="selectin",
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        passive_deletes=True,
    )

    def other_user(self, user_id: str):
        if self.is_group:
            return None
        return self.user2 if self.user1_id == user_id else self.user1


class ConversationMember(Base):
    __tablename__ = "conversation_members"

    id = Column(String(32), primary_key=True, default=new_id)
    conversation_id = Column(String(32), ForeignKey("conversations.id", ondelete="CASCADE"), index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    joined_at = Column(DateTime, default=datetime.utcnow)

    conversation = relationship("Conversation", back_populates="members")
    user = relationship("User", lazy="selectin")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True, default=new_id)
    conversation_id = Column(String(32), ForeignKey("conversations.id", ondelete="CASCADE"))
    sender_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"))
    # null for group messages
    receiver_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)

    content = Column(Text, nullable=False, default="")
    attachments = Column(JSON, nullable=False, default=list)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", foreign_keys=[sender_id], lazy="selectin")


Index("idx_messages_conversation_created_at", Message.conversation_id, Message.created_at)
Index("idx_messages_receiver_unread", Message.receiver_id, Message.is_read)
