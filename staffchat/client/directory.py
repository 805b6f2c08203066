"""
Conversation directory: the contact list shown beside the chat.

The roster (everybody the viewer can write to) and the conversations that
already have history are merged into one list of rows. Rows backed by a real
conversation come first, most recent activity on top; people the viewer has
never written to follow as placeholder rows in roster order.
"""
from typing import Dict, Iterable, List, Optional

from staffchat.core.logger import get_logger
from staffchat.client.api import MessagingAPI
from staffchat.client.errors import ApiError
from staffchat.schemas.conversation import ConversationRead, LastMessage
from staffchat.schemas.message import MessageRead
from staffchat.schemas.user import UserPublic

logger = get_logger(__name__)

PLACEHOLDER_PREFIX = "new-"


def is_placeholder_id(conversation_id: str) -> bool:
    return conversation_id.startswith(PLACEHOLDER_PREFIX)


def placeholder_for(user: UserPublic) -> ConversationRead:
    return ConversationRead(
        id=f"{PLACEHOLDER_PREFIX}{user.id}",
        is_group=False,
        other_user=user,
        last_message=None,
        unread_count=0,
    )


def _sort_key(row: ConversationRead) -> float:
    # sorted() is stable, so rows without history keep their roster order
    if row.last_message is None:
        return float("inf")
    return -row.last_message.created_at.timestamp()


def build_directory(
    all_users: Iterable[UserPublic],
    conversations: Iterable[ConversationRead],
) -> List[ConversationRead]:
    """
    Merge the roster with existing conversations.

    `all_users` must already exclude the viewer. Duplicate users collapse to
    their last occurrence. Group conversations are rows of their own; a group
    without messages yet sorts after the roster. Neither input is mutated.
    """
    users: Dict[str, UserPublic] = {}
    for user in all_users:
        users.pop(user.id, None)
        users[user.id] = user

    by_peer: Dict[str, ConversationRead] = {}
    groups: List[ConversationRead] = []
    for conversation in conversations:
        if conversation.is_group:
            groups.append(conversation)
        elif conversation.other_user is not None:
            by_peer[conversation.other_user.id] = conversation

    rows = [by_peer.get(user_id) or placeholder_for(user) for user_id, user in users.items()]
    rows.extend(groups)
    return sorted(rows, key=_sort_key)


def display_name(row: ConversationRead) -> str:
    if row.is_group or row.other_user is None:
        return row.name or ""
    return f"{row.other_user.first_name} {row.other_user.last_name}"


def filter_directory(rows: List[ConversationRead], query: str) -> List[ConversationRead]:
    """Case-insensitive substring match on the row's display name."""
    needle = query.strip().lower()
    if not needle:
        return list(rows)
    return [row for row in rows if needle in display_name(row).lower()]


def total_unread(rows: Iterable[ConversationRead]) -> int:
    """Badge count. Placeholder rows never carry unread messages."""
    return sum(row.unread_count for row in rows if not is_placeholder_id(row.id))


class ConversationDirectory:
    """
    Viewer-local directory state, refreshed from the service.

    Refreshes may overlap (polling plus an explicit refresh after a send).
    Each one takes a sequence number and a response older than the last
    applied one is dropped, so a slow stale answer can never bring back an
    outdated unread count.
    """

    def __init__(self, api: MessagingAPI, viewer_id: str) -> None:
        self.api = api
        self.viewer_id = viewer_id
        self.users: List[UserPublic] = []
        self.conversations: List[ConversationRead] = []
        self.rows: List[ConversationRead] = []
        self.error: Optional[str] = None
        self.loading = False
        self._issued = 0
        self._applied = 0

    @property
    def total_unread(self) -> int:
        return total_unread(self.rows)

    def search(self, query: str) -> List[ConversationRead]:
        return filter_directory(self.rows, query)

    def find_by_peer(self, peer_id: str) -> Optional[ConversationRead]:
        return next(
            (r for r in self.rows if r.other_user is not None and r.other_user.id == peer_id),
            None,
        )

    async def refresh(self) -> bool:
        """
        Reload roster and conversations. Returns False when the answer was
        discarded or the request failed; previous rows then stay in place.
        """
        self._issued += 1
        seq = self._issued
        self.loading = True
        try:
            users = await self.api.list_users()
            conversations = await self.api.list_conversations()
        except ApiError as e:
            logger.warning("Directory refresh failed: %s", e)
            if seq > self._applied:
                self.error = "Unable to load conversations"
            return False
        finally:
            if seq == self._issued:
                self.loading = False

        if seq < self._applied:
            logger.debug("Discarding stale directory response seq=%s (applied=%s)", seq, self._applied)
            return False

        self._applied = seq
        self.users = [u for u in users if u.id != self.viewer_id]
        self.conversations = conversations
        self.error = None
        self._rebuild()
        return True

    def mark_read(self, conversation_id: str) -> None:
        """The only way an unread count goes down locally."""
        self.conversations = [
            c.model_copy(update={"unread_count": 0}) if c.id == conversation_id else c
            for c in self.conversations
        ]
        self._rebuild()

    def promote(self, message: MessageRead, peer_id: Optional[str] = None) -> ConversationRead:
        """
        Record a message the viewer just sent. A placeholder row for `peer_id`
        becomes a real conversation carrying the server's id.
        """
        last = LastMessage(
            content=message.content,
            created_at=message.created_at,
            sender_id=message.sender_id,
        )
        existing = next((c for c in self.conversations if c.id == message.conversation_id), None)
        if existing is not None:
            updated = existing.model_copy(update={"last_message": last, "updated_at": message.created_at})
            self.conversations = [updated if c.id == existing.id else c for c in self.conversations]
        else:
            peer = next((u for u in self.users if u.id == peer_id), None)
            updated = ConversationRead(
                id=message.conversation_id,
                is_group=False,
                other_user=peer,
                last_message=last,
                unread_count=0,
                updated_at=message.created_at,
            )
            self.conversations = self.conversations + [updated]
            logger.debug("Promoted placeholder for peer=%s to conversation=%s", peer_id, updated.id)
        self._rebuild()
        return updated

    def _rebuild(self) -> None:
        self.rows = build_directory(self.users, self.conversations)
