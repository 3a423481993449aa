"""Daily snapshot scheduler.

Owns the only timer in the service: a background task that sleeps until
the configured UTC hour, runs the snapshot pipeline once, and repeats.
Deployments that prefer an external cron can disable it and call
``POST /snapshot`` (or ``termspread.main.run_snapshot_once``) instead.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from termspread.config import SchedulerSettings
from termspread.logging import get_logger
from termspread.pipeline import SnapshotPipeline

logger = get_logger(__name__)


def seconds_until_next_run(now: datetime, run_hour_utc: int) -> float:
    """Seconds from ``now`` until the next ``run_hour_utc``:00 UTC.

    If ``now`` is exactly on the hour, the next run is a day later.
    """
    now_utc = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    target = now_utc.replace(hour=run_hour_utc, minute=0, second=0, microsecond=0)
    if target <= now_utc:
        target += timedelta(days=1)
    return (target - now_utc).total_seconds()


class DailySnapshotScheduler:
    """Runs the snapshot pipeline once a day in the background."""

    def __init__(self, pipeline: SnapshotPipeline, settings: SchedulerSettings) -> None:
        self._pipeline = pipeline
        self._settings = settings
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin the daily loop in the background."""
        if self._running:
            logger.warning("snapshot_scheduler_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("snapshot_scheduler_started", run_hour_utc=self._settings.run_hour_utc)

    async def stop(self) -> None:
        """Stop the scheduler, cancelling any pending sleep."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("snapshot_scheduler_stopped")

    async def _loop(self) -> None:
        while self._running:
            delay = seconds_until_next_run(
                datetime.now(timezone.utc), self._settings.run_hour_utc
            )
            logger.debug("snapshot_scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)
            if not self._running:
                break
            await self.run_once()

    async def run_once(self) -> None:
        """Run one snapshot, logging instead of raising so the loop survives."""
        try:
            outcome = await self._pipeline.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("scheduled_snapshot_error", exc_info=True)
            return
        logger.info(
            "scheduled_snapshot_complete",
            status=outcome.status.value,
            markets_found=outcome.markets_found,
        )
