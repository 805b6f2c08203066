"""
One viewer's chat screen: directory, selected conversation, compose box.

The session wires the four building blocks together the way the UI uses
them: picking a row selects the stream and the typing channel, the compose
box feeds the typing channel, and a send consumes the attachment queue and
promotes a placeholder row to the real conversation.
"""
from typing import Iterable, List, Optional

from staffchat.core.config import settings
from staffchat.core.logger import get_logger
from staffchat.client.api import MessagingAPI
from staffchat.client.attachments import AttachmentQueue, LocalFile, UploadOutcome
from staffchat.client.directory import ConversationDirectory, is_placeholder_id
from staffchat.client.errors import SendError
from staffchat.client.polling import Poller
from staffchat.client.stream import ChatTarget, MessageStream
from staffchat.client.typing_channel import TypingChannel
from staffchat.schemas.conversation import ConversationRead
from staffchat.schemas.message import MessageRead

logger = get_logger(__name__)


class ChatSession:
    def __init__(self, api: MessagingAPI, viewer_id: str) -> None:
        self.api = api
        self.viewer_id = viewer_id
        self.directory = ConversationDirectory(api, viewer_id)
        self.stream = MessageStream(api, viewer_id)
        self.typing = TypingChannel(api)
        self.attachments = AttachmentQueue(api)
        self.stream.on_read = self.directory.mark_read

        self.active: Optional[ConversationRead] = None
        self.draft = ""
        self.error: Optional[str] = None

        jitter = settings.POLL_JITTER_SECONDS
        self._pollers = [
            Poller("messages", self.stream.refresh, settings.MESSAGES_POLL_SECONDS, jitter),
            Poller("conversations", self.directory.refresh, settings.CONVERSATIONS_POLL_SECONDS, jitter),
            Poller("typing", self.typing.poll, settings.TYPING_POLL_SECONDS, jitter),
        ]

    @classmethod
    async def connect(cls, api: MessagingAPI) -> "ChatSession":
        """Build a session for whoever the API token belongs to."""
        me = await api.me()
        session = cls(api, me.id)
        await session.directory.refresh()
        return session

    async def open(self, row: ConversationRead) -> None:
        """Select a directory row. Draft and queued attachments are dropped."""
        target = ChatTarget.from_row(row)
        self.active = row
        self.draft = ""
        self.error = None
        self.attachments.clear()
        self.typing.select_peer(target.peer_id)
        await self.stream.select(target)

    async def open_peer(self, peer_id: str) -> None:
        row = self.directory.find_by_peer(peer_id)
        if row is None:
            raise LookupError(f"Unknown peer {peer_id}")
        await self.open(row)

    def compose(self, text: str) -> None:
        self.draft = text
        self.typing.content_changed(text)

    async def attach(self, files: Iterable[LocalFile]) -> List[UploadOutcome]:
        outcomes = await self.attachments.add_files(files)
        failed = [o for o in outcomes if not o.ok]
        if failed:
            self.error = "; ".join(f"Failed to upload {o.filename}: {o.error}" for o in failed)
        return outcomes

    @property
    def can_send(self) -> bool:
        has_payload = bool(self.draft.strip()) or bool(self.attachments.pending)
        return self.active is not None and has_payload and self.attachments.can_send

    async def send(self) -> Optional[MessageRead]:
        """
        Send the draft with the queued attachments. On failure the draft and
        attachments stay as they were and `error` says what went wrong.

        The selection may change while the request is in flight. The
        directory is always updated for the conversation the message was
        sent to; the compose box is only reset if that conversation is still
        open and the draft was not edited in the meantime.
        """
        row = self.active
        if row is None:
            return None
        if not self.attachments.can_send:
            self.error = "Wait for uploads to finish or dismiss the failed ones"
            return None

        draft = self.draft
        urls = self.attachments.urls()
        peer_id = row.other_user.id if not row.is_group and row.other_user else None
        try:
            message = await self.stream.send(draft.strip(), urls)
        except SendError as e:
            if self.active is row:
                self.error = f"Failed to send message: {e}"
            else:
                logger.warning("Send to %s failed after switching away: %s", row.id, e)
            return None
        if message is None:
            return None

        promoted = self.directory.promote(message, peer_id=peer_id)
        if self.active is not row:
            logger.debug("Selection changed during send to %s; compose box left alone", row.id)
            return message

        self.attachments.consume(urls)
        if self.draft == draft:
            self.draft = ""
            self.typing.stopped()
        self.error = None
        if is_placeholder_id(row.id):
            self.active = promoted
        return message

    def handle_event(self, event: dict) -> None:
        """Apply an event pushed over the websocket channel."""
        kind = event.get("type")
        if kind == "typing":
            self.typing.apply_remote(event.get("userId"), bool(event.get("isTyping")), event.get("userName"))
        elif kind == "message" and event.get("message"):
            self.stream.receive(MessageRead.model_validate(event["message"]))

    def start(self) -> None:
        for poller in self._pollers:
            poller.start()

    async def aclose(self) -> None:
        for poller in self._pollers:
            await poller.stop()
        await self.typing.aclose()
