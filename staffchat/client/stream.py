"""
Per-conversation message stream with optimistic sends.

A send appears in the stream immediately as a PENDING entry under a local
temporary id. The pending side table maps that id to its entry; when the
server answers, the entry is swapped in place for the confirmed record, or
removed if the send failed. Entries are never reordered by reconciliation.
"""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Dict, List, Optional, Set

from staffchat.core.logger import get_logger
from staffchat.client.api import MessagingAPI
from staffchat.client.errors import ApiError, SendError
from staffchat.schemas.conversation import ConversationRead
from staffchat.schemas.message import MessageRead

logger = get_logger(__name__)

TEMP_PREFIX = "temp-"


class StreamState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class Delivery(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class ChatTarget:
    """Who a stream talks to: a peer (direct) or a group conversation."""
    peer_id: Optional[str] = None
    conversation_id: Optional[str] = None

    @classmethod
    def for_peer(cls, peer_id: str) -> "ChatTarget":
        return cls(peer_id=peer_id)

    @classmethod
    def for_group(cls, conversation_id: str) -> "ChatTarget":
        return cls(conversation_id=conversation_id)

    @classmethod
    def from_row(cls, row: ConversationRead) -> "ChatTarget":
        if row.is_group:
            return cls.for_group(row.id)
        if row.other_user is None:
            raise ValueError(f"Direct conversation {row.id} has no other user")
        return cls.for_peer(row.other_user.id)

    @property
    def is_group(self) -> bool:
        return self.conversation_id is not None


@dataclass
class StreamEntry:
    local_id: str
    message: MessageRead
    delivery: Delivery


@dataclass
class DayGroup:
    day: date
    label: str
    messages: List[MessageRead] = field(default_factory=list)


def format_day_label(day: date, today: Optional[date] = None) -> str:
    today = today or date.today()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    if day.year == today.year:
        return f"{day:%a}, {day:%b} {day.day}"
    return f"{day:%a}, {day:%b} {day.day}, {day.year}"


def group_by_day(
    messages: List[MessageRead],
    tz: Optional[tzinfo] = None,
    today: Optional[date] = None,
) -> List[DayGroup]:
    """
    Split messages into contiguous runs sharing a calendar day in the
    viewer's zone (`tz`, defaulting to the local zone). Messages are expected
    in chronological order and the groups come out the same way.
    """
    groups: List[DayGroup] = []
    if today is None:
        today = datetime.now(tz).date() if tz else date.today()
    for message in messages:
        day = message.created_at.astimezone(tz).date()
        if not groups or groups[-1].day != day:
            groups.append(DayGroup(day=day, label=format_day_label(day, today)))
        groups[-1].messages.append(message)
    return groups


class MessageStream:
    """
    The message list for the currently selected conversation.

    Every selection bumps a generation counter. Responses are only committed
    when the generation they were requested under is still current, so a
    slow answer for a previous selection is silently dropped.
    """

    def __init__(self, api: MessagingAPI, viewer_id: str) -> None:
        self.api = api
        self.viewer_id = viewer_id
        self.target: Optional[ChatTarget] = None
        self.conversation_id: Optional[str] = None
        self.state = StreamState.IDLE
        self.error: Optional[str] = None
        self._entries: List[StreamEntry] = []
        self._pending: Dict[str, StreamEntry] = {}
        self._generation = 0
        self._issued = 0
        self._applied = 0
        # server ids confirmed locally (send or push) in this selection
        self._local_ids: Set[str] = set()
        self.on_read: Optional[Callable[[str], None]] = None

    @property
    def messages(self) -> List[MessageRead]:
        return [e.message for e in self._entries if e.delivery is not Delivery.FAILED]

    @property
    def entries(self) -> List[StreamEntry]:
        return list(self._entries)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def groups(self, tz: Optional[tzinfo] = None) -> List[DayGroup]:
        return group_by_day(self.messages, tz)

    async def select(self, target: Optional[ChatTarget]) -> None:
        """
        Switch the stream to another conversation and load its history.
        Passing None returns the stream to IDLE.
        """
        self._generation += 1
        self.target = target
        self.conversation_id = target.conversation_id if target else None
        self._entries = []
        self._pending = {}
        self._local_ids = set()
        self.error = None
        if target is None:
            self.state = StreamState.IDLE
            return
        await self.refresh()

    async def refresh(self) -> bool:
        """
        Reload history for the active target. Returns True if the result was
        committed.

        Refreshes may overlap (poll plus explicit refresh). Each takes a
        sequence number and an answer older than the last applied one is
        dropped. Still-pending sends, and messages confirmed locally that the
        snapshot does not contain yet, are kept after the server's records
        in their current order.
        """
        target = self.target
        if target is None:
            return False
        generation = self._generation
        self._issued += 1
        seq = self._issued
        if self.state is not StreamState.LOADED:
            self.state = StreamState.LOADING

        try:
            history = await self.api.get_messages(
                peer_id=target.peer_id,
                conversation_id=target.conversation_id,
            )
        except ApiError as e:
            if generation != self._generation or seq < self._applied:
                return False
            logger.warning("Loading messages for %s failed: %s", target, e)
            self.state = StreamState.ERROR
            self.error = "Unable to load messages"
            return False

        if generation != self._generation:
            logger.debug("Discarding stale history for %s", target)
            return False
        if seq < self._applied:
            logger.debug("Discarding out-of-order history seq=%s (applied=%s)", seq, self._applied)
            return False
        self._applied = seq

        server_ids = {m.id for m in history}
        kept = [
            e for e in self._entries
            if e.delivery is Delivery.PENDING
            or (e.message.id in self._local_ids and e.message.id not in server_ids)
        ]
        self._entries = [StreamEntry(m.id, m, Delivery.CONFIRMED) for m in history] + kept
        self.state = StreamState.LOADED
        self.error = None

        if history:
            self.conversation_id = history[-1].conversation_id or self.conversation_id
            await self._mark_read()
        return True

    async def _mark_read(self) -> None:
        conversation_id = self.conversation_id
        if not conversation_id:
            return
        try:
            await self.api.mark_read(conversation_id)
        except ApiError as e:
            # Unread badges catch up on the next successful call
            logger.warning("Marking conversation %s read failed: %s", conversation_id, e)
            return
        if self.on_read is not None:
            self.on_read(conversation_id)

    async def send(
        self,
        content: str,
        attachment_urls: Optional[List[str]] = None,
    ) -> Optional[MessageRead]:
        """
        Send optimistically. Returns the confirmed message, or None when there
        was nothing to send. Raises SendError after rolling back on failure.
        """
        attachments = [u for u in (attachment_urls or []) if u]
        if not content.strip() and not attachments:
            return None
        target = self.target
        if target is None:
            raise SendError("No conversation selected")

        generation = self._generation
        local_id = f"{TEMP_PREFIX}{uuid.uuid4().hex}"
        draft = MessageRead(
            id=local_id,
            conversation_id=self.conversation_id,
            sender_id=self.viewer_id,
            receiver_id=target.peer_id,
            content=content,
            attachments=attachments,
            is_read=False,
            created_at=datetime.now(timezone.utc),
        )
        entry = StreamEntry(local_id, draft, Delivery.PENDING)
        self._entries.append(entry)
        self._pending[local_id] = entry

        try:
            confirmed = await self.api.send_message(
                content,
                attachments,
                peer_id=target.peer_id,
                conversation_id=target.conversation_id,
            )
        except ApiError as e:
            entry.delivery = Delivery.FAILED
            self._discard(local_id)
            logger.warning("Send to %s failed, rolled back %s: %s", target, local_id, e)
            raise SendError(str(e) or "Failed to send message", cause=e) from e

        self._reconcile(local_id, confirmed, generation)
        return confirmed

    def _discard(self, local_id: str) -> None:
        entry = self._pending.pop(local_id, None)
        if entry is not None:
            self._entries = [e for e in self._entries if e is not entry]

    def _reconcile(self, local_id: str, confirmed: MessageRead, generation: int) -> None:
        entry = self._pending.pop(local_id, None)
        if entry is None or generation != self._generation:
            # The stream moved to another conversation in the meantime
            return

        entry.delivery = Delivery.CONFIRMED
        self._local_ids.add(confirmed.id)
        if any(e.message.id == confirmed.id for e in self._entries if e is not entry):
            # A refresh already delivered the server copy
            self._entries = [e for e in self._entries if e is not entry]
            return

        entry.local_id = confirmed.id
        entry.message = confirmed
        if confirmed.conversation_id:
            self.conversation_id = confirmed.conversation_id

    def receive(self, message: MessageRead) -> bool:
        """
        Add a message pushed by the service (someone else's send). Ignored
        if it is not for this conversation or is already present.
        """
        target = self.target
        if target is None:
            return False
        if target.is_group or self.conversation_id:
            if message.conversation_id != self.conversation_id:
                return False
        elif message.sender_id != target.peer_id:
            return False
        if any(e.message.id == message.id for e in self._entries):
            return False

        self.conversation_id = message.conversation_id or self.conversation_id
        self._local_ids.add(message.id)
        self._entries.append(StreamEntry(message.id, message, Delivery.CONFIRMED))
        return True
