"""
Typing indicator channel.

Outbound, the channel turns every change of the compose box into at most one
signal per state transition, plus a keep-alive while the viewer keeps typing
so the remote side's expiry does not fire. Inbound, each "is typing" signal
arms a per-peer timer that clears the indicator if nothing refreshes it.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

from staffchat.core.config import settings
from staffchat.core.logger import get_logger
from staffchat.client.api import MessagingAPI
from staffchat.client.errors import ApiError

logger = get_logger(__name__)


@dataclass(frozen=True)
class TypingState:
    is_typing: bool = False
    user_name: Optional[str] = None


NOT_TYPING = TypingState()


class TypingChannel:
    def __init__(
        self,
        api: MessagingAPI,
        timeout: Optional[float] = None,
        keepalive: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api = api
        self.timeout = settings.TYPING_TIMEOUT_SECONDS if timeout is None else timeout
        self.keepalive = settings.TYPING_KEEPALIVE_SECONDS if keepalive is None else keepalive
        self._clock = clock
        self.peer_id: Optional[str] = None
        self.other_user_typing: TypingState = NOT_TYPING
        self._local_typing = False
        self._last_sent = 0.0
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    # outbound

    def content_changed(self, content: str) -> None:
        """
        Feed the current compose text. Never blocks: any transmission runs
        as a background task.
        """
        if self.peer_id is None:
            return
        is_typing = len(content) > 0
        now = self._clock()
        if is_typing == self._local_typing:
            if not is_typing or now - self._last_sent < self.keepalive:
                return
        self._local_typing = is_typing
        self._last_sent = now
        self._spawn(self._transmit(self.peer_id, is_typing))

    def stopped(self) -> None:
        """The draft was sent or cleared."""
        self.content_changed("")

    async def _transmit(self, peer_id: str, is_typing: bool) -> None:
        try:
            await self.api.set_typing(peer_id, is_typing)
        except ApiError as e:
            logger.debug("Typing signal to %s failed: %s", peer_id, e)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # inbound

    def apply_remote(self, peer_id: str, is_typing: bool, user_name: Optional[str] = None) -> None:
        """
        Record a typing signal received for `peer_id` (poll answer or push).
        Signals about any peer but the selected one are ignored.
        """
        if peer_id != self.peer_id:
            return
        self._cancel_timer(peer_id)
        if not is_typing:
            self.other_user_typing = NOT_TYPING
            return
        self.other_user_typing = TypingState(True, user_name)
        loop = asyncio.get_running_loop()
        self._timers[peer_id] = loop.call_later(self.timeout, self._expire, peer_id)

    def _expire(self, peer_id: str) -> None:
        self._timers.pop(peer_id, None)
        if peer_id == self.peer_id:
            logger.debug("Typing indicator for %s expired", peer_id)
            self.other_user_typing = NOT_TYPING

    def _cancel_timer(self, peer_id: str) -> None:
        handle = self._timers.pop(peer_id, None)
        if handle is not None:
            handle.cancel()

    async def poll(self) -> TypingState:
        """Ask the service whether the selected peer is typing."""
        peer_id = self.peer_id
        if peer_id is None:
            return NOT_TYPING
        try:
            status = await self.api.get_typing(peer_id)
        except ApiError as e:
            logger.debug("Typing poll for %s failed: %s", peer_id, e)
            return self.other_user_typing
        self.apply_remote(peer_id, status.is_typing, status.user_name)
        return self.other_user_typing

    # lifecycle

    def select_peer(self, peer_id: Optional[str]) -> None:
        """
        Follow the conversation selection. The indicator never carries over
        from the previous peer.
        """
        if peer_id == self.peer_id:
            return
        previous = self.peer_id
        if previous is not None and self._local_typing:
            self._spawn(self._transmit(previous, False))
        for pid in list(self._timers):
            self._cancel_timer(pid)
        self.peer_id = peer_id
        self.other_user_typing = NOT_TYPING
        self._local_typing = False
        self._last_sent = 0.0

    async def aclose(self) -> None:
        """Flush a final "stopped typing" and wait for in-flight signals."""
        if self.peer_id is not None and self._local_typing:
            self._local_typing = False
            self._spawn(self._transmit(self.peer_id, False))
        for pid in list(self._timers):
            self._cancel_timer(pid)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
