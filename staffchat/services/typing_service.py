import time
from typing import Callable, Dict, Optional, Tuple

from staffchat.core.config import settings
from staffchat.core.logger import get_logger

logger = get_logger(__name__)


class TypingRegistry:
    """
    In-memory typing status, keyed by (pair key, typing user id).

    Entries are never persisted. A status older than `timeout` seconds is
    treated as stopped, whether or not a stop signal ever arrived, and is
    pruned lazily on the next access.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = settings.TYPING_TIMEOUT_SECONDS if timeout is None else timeout
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[str, float]] = {}

    @staticmethod
    def pair_key(user_a_id: str, user_b_id: str) -> str:
        return "-".join(sorted([user_a_id, user_b_id]))

    def set_typing(self, user_id: str, user_name: str, peer_id: str, is_typing: bool) -> None:
        key = (self.pair_key(user_id, peer_id), user_id)
        if is_typing:
            self._entries[key] = (user_name, self._clock())
        else:
            self._entries.pop(key, None)
        self._prune()

    def get_typing(self, viewer_id: str, peer_id: str) -> Tuple[bool, Optional[str]]:
        """
        Is `peer_id` currently typing to `viewer_id`? Returns (is_typing, user_name).
        """
        self._prune()
        entry = self._entries.get((self.pair_key(viewer_id, peer_id), peer_id))
        if entry is None:
            return False, None
        return True, entry[0]

    def _prune(self) -> None:
        now = self._clock()
        stale = [k for k, (_, ts) in self._entries.items() if now - ts >= self.timeout]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Pruned %s stale typing entries", len(stale))

    def __len__(self) -> int:
        return len(self._entries)


typing_registry = TypingRegistry()
