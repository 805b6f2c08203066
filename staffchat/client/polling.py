import asyncio
import random
from typing import Awaitable, Callable, Optional

from staffchat.core.logger import get_logger

logger = get_logger(__name__)


class Poller:
    """
    Runs `action` every `interval` seconds, plus up to `jitter` seconds of
    random delay so many clients do not hit the service in lockstep.
    """

    def __init__(
        self,
        name: str,
        action: Callable[[], Awaitable[object]],
        interval: float,
        jitter: float = 0.0,
    ) -> None:
        self.name = name
        self.action = action
        self.interval = interval
        self.jitter = jitter
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"poll-{self.name}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval + random.uniform(0, self.jitter))
            try:
                await self.action()
            except Exception:
                logger.exception("Poll %s failed", self.name)
