import asyncio
import logging
from collections.abc import Awaitable, Callable


logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 10


class SpectatorMonitor:
    """
    Idle watchdog for a streaming session.

    Every poll with nobody watching adds one interval to the idle counter, any
    spectator resets it. Once the counter reaches the idle timeout the idle
    callback runs exactly once and the monitor ends.
    """

    def __init__(
        self,
        count_spectators: Callable[[], int | None],
        on_idle: Callable[[], Awaitable[None]],
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        idle_timeout: float,
    ):
        self.count_spectators = count_spectators
        self.on_idle = on_idle
        self.interval = interval
        self.idle_timeout = idle_timeout
        self.idle_seconds = 0.0
        self.fired = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="spectator-monitor")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        self.idle_seconds = 0.0
        if task is None or task is asyncio.current_task() or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def poll(self) -> bool:
        """
        One presence check.

        Returns:
            True once the idle callback has been triggered
        """
        if self.fired:
            return True

        try:
            count = self.count_spectators()
        except Exception as e:
            logger.error(f"Error in spectator monitoring: {e}", exc_info=True)
            return False

        if count is None:
            logger.debug("Spectator count unavailable, skipping poll")
            return False

        if count > 0:
            self.idle_seconds = 0.0
            return False

        self.idle_seconds += self.interval
        logger.debug(f"No spectators for {self.idle_seconds:g} seconds")
        if self.idle_seconds < self.idle_timeout:
            return False

        self.fired = True
        logger.info(f"No spectators for {self.idle_timeout / 60:g} minute(s). Stopping stream.")
        try:
            await self.on_idle()
        except Exception as e:
            logger.error(f"Error during automated stream cleanup: {e}", exc_info=True)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if await self.poll():
                return
