from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from staffchat.models.conversation import Conversation, ConversationMember, Message
from staffchat.models.user import User
from staffchat.schemas.message import MessageCreate
from staffchat.services.conversation_service import ConversationService
from staffchat.core.logger import get_logger

logger = get_logger(__name__)


class MessageService:
    def __init__(self, conversations: Optional[ConversationService] = None) -> None:
        self.conversations = conversations or ConversationService()

    async def get_history(
        self,
        db: AsyncSession,
        viewer_id: str,
        peer_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> List[Message]:
        """
        Fetch the full history, oldest first, either with a peer (direct) or
        for a conversation the viewer belongs to.

        An unknown peer pairing yields an empty list: there is simply no
        conversation yet.
        """
        if conversation_id:
            conversation = await self.conversations.get_for_member(db, conversation_id, viewer_id)
            if not conversation:
                raise LookupError("Conversation not found or you are not a member")
        elif peer_id:
            conversation = await self.conversations.find_direct(db, viewer_id, peer_id)
            if not conversation:
                return []
        else:
            raise ValueError("peerId or conversationId required")

        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        res = await db.execute(stmt)
        return list(res.scalars().all())

    async def send(
        self,
        db: AsyncSession,
        sender: User,
        data: MessageCreate,
    ) -> Message:
        """
        Persist a message. Direct sends create the conversation on first use;
        group sends require membership. Bumps the conversation's updated_at.
        """
        attachments = [a for a in data.attachments if a]
        if not data.content.strip() and not attachments:
            raise ValueError("Missing content or attachments")
        if bool(data.peer_id) == bool(data.conversation_id):
            raise ValueError("Exactly one of peerId or conversationId is required")

        receiver_id = None
        if data.conversation_id:
            conversation = await self.conversations.get_for_member(db, data.conversation_id, sender.id)
            if not conversation:
                raise LookupError("Conversation not found or you are not a member")
            if not conversation.is_group:
                receiver_id = next(
                    uid for uid in self.conversations.member_ids(conversation) if uid != sender.id
                )
        else:
            conversation, _ = await self.conversations.get_or_create_direct(db, sender.id, data.peer_id)
            receiver_id = data.peer_id

        message = Message(
            conversation_id=conversation.id,
            sender_id=sender.id,
            receiver_id=receiver_id,
            content=data.content,
            attachments=attachments,
        )
        db.add(message)
        conversation.updated_at = datetime.utcnow()
        await db.commit()
        await db.refresh(message, attribute_names=["sender"])
        logger.debug(
            "Persisted message id=%s conversation=%s sender=%s attachments=%s",
            message.id, message.conversation_id, message.sender_id, len(attachments),
        )
        return message

    async def mark_read(
        self,
        db: AsyncSession,
        viewer_id: str,
        conversation_id: str,
    ) -> int:
        """
        Mark the viewer's unread messages in a conversation as read.
        Messages the viewer sent are never touched.
        """
        conversation = await self.conversations.get_for_member(db, conversation_id, viewer_id)
        if not conversation:
            raise LookupError("Conversation not found or you are not a member")

        stmt = update(Message).where(
            Message.conversation_id == conversation_id,
            Message.is_read.is_(False),
        )
        if conversation.is_group:
            stmt = stmt.where(Message.sender_id != viewer_id)
        else:
            stmt = stmt.where(Message.receiver_id == viewer_id)

        res = await db.execute(stmt.values(is_read=True))
        await db.commit()
        logger.debug("Marked %s messages read in conversation=%s for user=%s", res.rowcount, conversation_id, viewer_id)
        return res.rowcount

    async def unread_total(
        self,
        db: AsyncSession,
        viewer_id: str,
    ) -> int:
        """
        Total unread across direct and group conversations for the viewer.
        """
        group_ids = select(ConversationMember.conversation_id).where(ConversationMember.user_id == viewer_id)
        stmt = (
            select(func.count(Message.id))
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                Message.is_read.is_(False),
                or_(
                    and_(Conversation.is_group.is_(False), Message.receiver_id == viewer_id),
                    and_(
                        Conversation.is_group.is_(True),
                        Message.conversation_id.in_(group_ids),
                        Message.sender_id != viewer_id,
                    ),
                ),
            )
        )
        return (await db.execute(stmt)).scalar_one()

    async def recipients(
        self,
        db: AsyncSession,
        message: Message,
    ) -> List[str]:
        """
        Everybody in the message's conversation except its sender.
        """
        conversation = await db.get(Conversation, message.conversation_id)
        if not conversation:
            return []
        return [uid for uid in self.conversations.member_ids(conversation) if uid != message.sender_id]
