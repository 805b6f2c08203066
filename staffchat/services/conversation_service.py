from typing import List, Optional, Tuple

from sqlalchemy import select, and_, or_, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from staffchat.models.conversation import Conversation, ConversationMember, Message
from staffchat.models.user import User
from staffchat.schemas.conversation import ConversationRead, LastMessage
from staffchat.schemas.user import UserPublic
from staffchat.core.logger import get_logger

logger = get_logger(__name__)


class ConversationService:
    async def find_direct(
        self,
        db: AsyncSession,
        user_a_id: str,
        user_b_id: str,
    ) -> Optional[Conversation]:
        """
        Return the direct conversation between two users in either slot order.
        """
        stmt = select(Conversation).where(
            Conversation.is_group.is_(False),
            or_(
                and_(Conversation.user1_id == user_a_id, Conversation.user2_id == user_b_id),
                and_(Conversation.user1_id == user_b_id, Conversation.user2_id == user_a_id),
            ),
        )
        res = await db.execute(stmt)
        return res.scalars().first()

    async def get_or_create_direct(
        self,
        db: AsyncSession,
        user_a_id: str,
        user_b_id: str,
    ) -> Tuple[Conversation, bool]:
        """
        Get the direct conversation between two users, or create one.
        Returns (conversation, created).
        """
        if user_a_id == user_b_id:
            raise ValueError("Cannot start a direct conversation with yourself")

        existing = await self.find_direct(db, user_a_id, user_b_id)
        if existing:
            return existing, False

        peer = await db.get(User, user_b_id)
        if not peer or not peer.is_active:
            raise LookupError("User not found")

        conversation = Conversation(
            is_group=False,
            user1_id=user_a_id,
            user2_id=user_b_id,
        )
        db.add(conversation)
        await db.commit()
        await db.refresh(conversation)
        logger.info("Created direct conversation id=%s for users %s/%s", conversation.id, user_a_id, user_b_id)
        return conversation, True

    async def get_for_member(
        self,
        db: AsyncSession,
        conversation_id: str,
        user_id: str,
    ) -> Optional[Conversation]:
        """
        Return the conversation if the user takes part in it, else None.
        """
        conversation = await db.get(Conversation, conversation_id)
        if not conversation:
            return None
        if user_id not in self.member_ids(conversation):
            return None
        return conversation

    def member_ids(self, conversation: Conversation) -> List[str]:
        if conversation.is_group:
            return [m.user_id for m in conversation.members]
        return [uid for uid in (conversation.user1_id, conversation.user2_id) if uid]

    async def create_group(
        self,
        db: AsyncSession,
        name: Optional[str],
        member_ids: List[str],
        creator_id: str,
    ) -> ConversationRead:
        """
        Create a group conversation. The creator is always the first member
        and duplicate ids collapse to one membership.
        """
        if not name or not name.strip():
            raise ValueError("Group name and at least one member required")

        others = [uid for uid in dict.fromkeys(member_ids) if uid != creator_id]
        if not others:
            raise ValueError("Group name and at least one member required")

        all_ids = [creator_id] + others
        res = await db.execute(select(User.id).where(User.id.in_(all_ids)))
        known = set(res.scalars().all())
        missing = [uid for uid in all_ids if uid not in known]
        if missing:
            raise LookupError(f"Unknown users: {', '.join(missing)}")

        conversation = Conversation(name=name.strip(), is_group=True)
        db.add(conversation)
        await db.flush()

        # creator gets its own flush so its joined_at sorts first
        db.add(ConversationMember(conversation_id=conversation.id, user_id=creator_id))
        await db.flush()
        for uid in others:
            db.add(ConversationMember(conversation_id=conversation.id, user_id=uid))

        await db.commit()
        await db.refresh(conversation, attribute_names=["members"])
        logger.info("Group created id=%s name=%s members=%s", conversation.id, conversation.name, all_ids)
        return self.to_read(conversation, creator_id, None, 0)

    async def delete_group(
        self,
        db: AsyncSession,
        conversation_id: str,
        user: User,
    ) -> None:
        """
        Delete a group. Only its creator (first member) or an admin may do so.
        """
        conversation = await db.get(Conversation, conversation_id)
        if not conversation:
            raise LookupError("Conversation not found")
        if not conversation.is_group:
            raise ValueError("Cannot delete a direct conversation")

        creator_id = conversation.members[0].user_id if conversation.members else None
        if creator_id != user.id and not user.is_admin:
            raise PermissionError("Only the group creator or admin can delete this group")

        await self._delete(db, conversation)
        logger.info("Group id=%s deleted by user=%s", conversation_id, user.id)

    async def leave_group(
        self,
        db: AsyncSession,
        conversation_id: str,
        user_id: str,
    ) -> str:
        """
        Remove the user from a group. A group left with one member or fewer
        is deleted.
        """
        conversation = await db.get(Conversation, conversation_id)
        if not conversation:
            raise LookupError("Conversation not found")
        if not conversation.is_group:
            raise ValueError("Cannot leave a direct conversation")

        membership = next((m for m in conversation.members if m.user_id == user_id), None)
        if not membership:
            raise ValueError("You are not a member of this group")

        conversation.members.remove(membership)
        await db.flush()

        if len(conversation.members) <= 1:
            await self._delete(db, conversation)
            logger.info("User %s left group %s; group deleted", user_id, conversation_id)
            return "Left group. Group was deleted (too few members)."

        await db.commit()
        logger.info("User %s left group %s", user_id, conversation_id)
        return "Left group successfully"

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
    ) -> List[ConversationRead]:
        """
        List the user's direct and group conversations, newest activity first,
        each with its last message and the user's unread count.
        """
        direct_stmt = select(Conversation).where(
            Conversation.is_group.is_(False),
            or_(Conversation.user1_id == user_id, Conversation.user2_id == user_id),
        )
        group_stmt = (
            select(Conversation)
            .join(ConversationMember, ConversationMember.conversation_id == Conversation.id)
            .where(Conversation.is_group.is_(True), ConversationMember.user_id == user_id)
        )

        conversations = list((await db.execute(direct_stmt)).scalars().all())
        conversations += list((await db.execute(group_stmt)).scalars().unique().all())

        rows = []
        for conversation in conversations:
            last = await self._last_message(db, conversation.id)
            unread = await self.unread_count(db, conversation, user_id)
            rows.append(self.to_read(conversation, user_id, last, unread))

        rows.sort(key=lambda r: r.updated_at.timestamp() if r.updated_at else 0.0, reverse=True)
        return rows

    async def unread_count(
        self,
        db: AsyncSession,
        conversation: Conversation,
        user_id: str,
    ) -> int:
        """
        Direct: unread messages addressed to the user.
        Group: unread messages sent by anybody else.
        """
        stmt = select(func.count(Message.id)).where(
            Message.conversation_id == conversation.id,
            Message.is_read.is_(False),
        )
        if conversation.is_group:
            stmt = stmt.where(Message.sender_id != user_id)
        else:
            stmt = stmt.where(Message.receiver_id == user_id)
        return (await db.execute(stmt)).scalar_one()

    async def _delete(self, db: AsyncSession, conversation: Conversation) -> None:
        await db.execute(delete(Message).where(Message.conversation_id == conversation.id))
        await db.delete(conversation)
        await db.commit()

    async def _last_message(self, db: AsyncSession, conversation_id: str) -> Optional[Message]:
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(1)
        )
        return (await db.execute(stmt)).scalars().first()

    def to_read(
        self,
        conversation: Conversation,
        viewer_id: str,
        last: Optional[Message],
        unread: int,
    ) -> ConversationRead:
        last_message = None
        if last is not None:
            last_message = LastMessage(
                content=last.content,
                created_at=last.created_at,
                sender_id=last.sender_id,
                sender_name=last.sender.full_name if last.sender else None,
            )

        other = conversation.other_user(viewer_id)
        members = None
        if conversation.is_group:
            members = [UserPublic.model_validate(m.user) for m in conversation.members if m.user]

        return ConversationRead(
            id=conversation.id,
            is_group=conversation.is_group,
            name=conversation.name,
            other_user=UserPublic.model_validate(other) if other else None,
            member_details=members,
            member_count=len(members) if members is not None else None,
            last_message=last_message,
            unread_count=unread,
            updated_at=conversation.updated_at,
        )
