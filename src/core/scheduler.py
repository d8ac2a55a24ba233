"""
Tasks by Me — Background Scheduler.

Every REFRESH_INTERVAL_SECONDS the scheduler:
1. evicts users idle for longer than INACTIVITY_THRESHOLD_SECONDS,
2. refreshes each remaining user's tasks one at a time, pausing
   USER_PACING_SECONDS between users to stay under Graph's rate limits,
3. records run statistics for the status endpoint.

One user's failure never stops the others, and a failed tick never stops
the ticker.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable

from src.data.models import RunResult, SchedulerRunStats

if TYPE_CHECKING:
    from src.core.registry import ActiveUserRegistry
    from src.core.task_sync import TaskSync

logger = logging.getLogger(__name__)


class BackgroundScheduler:
    """Periodic refresh of every active user's tasks."""

    def __init__(
        self,
        registry: ActiveUserRegistry,
        task_sync: TaskSync,
        *,
        interval_seconds: float | None = None,
        inactivity_threshold_seconds: float | None = None,
        pacing_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        from src.config import settings

        self._registry = registry
        self._task_sync = task_sync
        self._interval = (
            interval_seconds if interval_seconds is not None
            else settings.REFRESH_INTERVAL_SECONDS
        )
        self._inactivity_threshold = (
            inactivity_threshold_seconds if inactivity_threshold_seconds is not None
            else settings.INACTIVITY_THRESHOLD_SECONDS
        )
        self._pacing = (
            pacing_seconds if pacing_seconds is not None
            else settings.USER_PACING_SECONDS
        )
        self._sleep = sleep

        self._stats = SchedulerRunStats()
        self._tick_lock = asyncio.Lock()
        self._ticker: asyncio.Task | None = None
        self._manual_runs: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._stats.running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the ticker on the running event loop. Idempotent."""
        if self._stats.running:
            logger.info("Scheduler is already running")
            return

        self._ticker = asyncio.get_running_loop().create_task(self._run_forever())
        self._stats.running = True
        logger.info(
            "Background scheduler started - will run every %.0f seconds", self._interval,
        )

    async def stop(self) -> None:
        """Mark the scheduler stopped and cancel the ticker."""
        self._stats.running = False
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
        logger.info("Background scheduler stopped")

    async def _run_forever(self) -> None:
        while True:
            await self._sleep(self._interval)
            try:
                await self.run_tick()
            except Exception:
                logger.exception("Background scheduler error")

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def run_tick(self) -> RunResult:
        """Evict idle users, then refresh everyone left, one by one."""
        async with self._tick_lock:
            started = time.monotonic()
            result = RunResult()

            result.evicted_count = self._registry.evict_inactive(self._inactivity_threshold)

            entries = self._registry.entries()
            if entries:
                logger.info("Starting background update for %d active users", len(entries))
            else:
                logger.info("No active users to update")

            for entry in entries:
                try:
                    outcome = await self._task_sync.refresh_user(entry.user_id, entry.account)
                    if outcome.success:
                        result.success_count += 1
                    else:
                        result.failure_count += 1
                except Exception:
                    logger.exception("Background update failed for user %s", entry.user_id)
                    result.failure_count += 1

                await self._sleep(self._pacing)

            result.duration_ms = int((time.monotonic() - started) * 1000)
            self._stats.last_run_time = datetime.now(timezone.utc).isoformat()
            self._stats.total_runs += 1

            logger.info(
                "Background update completed in %dms: %d succeeded, %d failed, "
                "%d inactive users removed",
                result.duration_ms,
                result.success_count,
                result.failure_count,
                result.evicted_count,
            )
            return result

    def trigger_manual_run(self) -> asyncio.Task:
        """Run a tick in the background; returns the task for callers that wait."""
        logger.info("Manual background update triggered")
        task = asyncio.get_running_loop().create_task(self.run_tick())
        self._manual_runs.add(task)
        task.add_done_callback(self._manual_run_done)
        return task

    def _manual_run_done(self, task: asyncio.Task) -> None:
        self._manual_runs.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Manual trigger failed: %s", exc)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> dict:
        registry = self._registry.snapshot()
        self._stats.active_user_count = registry["count"]
        self._stats.users = registry["user_ids"]
        return {
            "running": self._stats.running,
            "activeUsers": self._stats.active_user_count,
            "lastRunTime": self._stats.last_run_time,
            "totalRuns": self._stats.total_runs,
            "usersList": list(self._stats.users),
        }
