"""
Periodic auto-sync job.

Runs a sync cycle immediately on start and then every ``interval_seconds``.
start() and stop() are idempotent; cycles never overlap because the loop
awaits each cycle before sleeping, and the orchestrator refuses re-entry.
"""

import asyncio
import contextlib

from app.features.time_inference.errors import TimeInferenceError
from app.features.time_inference.services.sync_service import SyncOrchestrator
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class AutoSyncJob:
    def __init__(self, orchestrator: SyncOrchestrator, interval_seconds: float = 300.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self.cycles_run = 0

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the timer. Returns False when it was already running."""
        if self.is_active:
            logger.debug("Auto-sync already running")
            return False
        self._task = asyncio.create_task(self._loop(), name="time-inference-auto-sync")
        logger.info("Auto-sync started", interval_seconds=self.interval_seconds)
        return True

    async def stop(self) -> bool:
        """Cancel the timer and wait for it to exit. Returns False when idle."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return False
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Auto-sync stopped", cycles_run=self.cycles_run)
        return True

    async def wait(self) -> None:
        """Block until the timer is stopped (used by the worker process)."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _loop(self) -> None:
        while True:
            try:
                await self.orchestrator.sync()
                self.cycles_run += 1
            except TimeInferenceError as e:
                logger.error("Auto-sync cycle failed", error=str(e), operation=e.operation)
            except Exception as e:
                logger.error(
                    "Auto-sync cycle crashed", error=str(e), error_type=type(e).__name__
                )
            await asyncio.sleep(self.interval_seconds)
