"""Background polling of the booking sheet."""

import asyncio
import logging
from enum import Enum

from .engine import SyncEngine

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Lifecycle state of the poll scheduler."""

    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


class PollScheduler:
    """Runs a sync pass immediately and then on a fixed interval.

    Pausing is advisory: it stops the loop and raises the session's pause
    flag so stray passes are skipped, but takes no lock.
    """

    def __init__(self, engine: SyncEngine, interval_seconds: float = 11.0):
        """Initialize the scheduler.

        Args:
            engine: SyncEngine that performs each pass.
            interval_seconds: Delay between passes.
        """
        self._engine = engine
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._resume_task: asyncio.Task | None = None
        self._state = SchedulerState.STOPPED

    @property
    def state(self) -> SchedulerState:
        return self._state

    async def start(self) -> None:
        """(Re)start polling; the first pass runs right away."""
        await self._cancel(self._task)
        self._engine.session.sync_paused = False
        self._state = SchedulerState.RUNNING
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Real-time sync started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop polling and drop any pending resume."""
        await self._cancel(self._resume_task)
        self._resume_task = None
        await self._cancel(self._task)
        self._task = None
        self._state = SchedulerState.STOPPED
        logger.info("Real-time sync stopped")

    async def pause(self) -> None:
        """Suspend polling while a user action is in flight."""
        self._engine.session.sync_paused = True
        await self._cancel(self._resume_task)
        self._resume_task = None
        await self._cancel(self._task)
        self._task = None
        self._state = SchedulerState.PAUSED
        logger.debug("Sync paused")

    def resume(self, delay: float = 0.0) -> None:
        """Restart polling after ``delay`` seconds."""
        logger.debug(f"Resuming sync in {delay}s")
        if self._resume_task is not None and not self._resume_task.done():
            self._resume_task.cancel()
        self._resume_task = asyncio.create_task(self._resume_after(delay))

    async def on_visibility_change(self, hidden: bool) -> None:
        """Stop while the view is hidden, restart when shown again."""
        if hidden:
            await self.stop()
        elif self._state != SchedulerState.PAUSED:
            await self.start()

    async def on_focus(self) -> None:
        """Run an immediate pass when the view regains focus."""
        await self._engine.sync_once()

    async def _resume_after(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        self._resume_task = None
        await self.start()

    async def _run_loop(self) -> None:
        """Main polling loop."""
        while True:
            try:
                await self._engine.sync_once()
            except Exception as e:
                logger.error(f"Sync pass failed: {e}", exc_info=True)

            await asyncio.sleep(self._interval)

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
