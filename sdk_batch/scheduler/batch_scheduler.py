"""
Periodic trigger for the SDK batch orchestrator.

Runs the orchestrator every ``SCHEDULER_INTERVAL`` seconds. A run that is
still going when the next tick arrives is not overlapped; the tick is
skipped and logged.
"""

import asyncio
from datetime import datetime, timezone, timedelta
from typing import Optional
from dataclasses import dataclass
from enum import Enum
import structlog

from sdk_batch.core.config import settings
from sdk_batch.core.exceptions import BatchRunError
from sdk_batch.services.batch import BatchOrchestrator, RunStatistics


logger = structlog.get_logger(__name__)


class SchedulerStatus(Enum):
    """Status of the batch scheduler."""
    STOPPED = "stopped"
    WAITING = "waiting"
    PROCESSING = "processing"
    ERROR = "error"


@dataclass
class SchedulerStats:
    """Statistics for scheduler operations."""
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    skipped_ticks: int = 0
    last_run_stats: Optional[RunStatistics] = None
    uptime_start: Optional[datetime] = None


class BatchScheduler:
    """Interval scheduler around ``BatchOrchestrator.run``."""

    def __init__(
        self,
        orchestrator: Optional[BatchOrchestrator] = None,
        interval: Optional[float] = None,
        enabled: Optional[bool] = None,
    ):
        self.logger = logger.bind(service="batch_scheduler")

        self.enabled = settings.scheduler_enabled if enabled is None else enabled
        self.interval = interval or settings.scheduler_interval
        self.orchestrator = orchestrator

        # State
        self.status = SchedulerStatus.STOPPED
        self.stats = SchedulerStats(uptime_start=datetime.now(timezone.utc))
        self._run_lock = asyncio.Lock()
        self._should_stop = False
        self._scheduler_task: Optional[asyncio.Task] = None

        self.logger.info(
            "Batch scheduler initialized",
            enabled=self.enabled,
            interval=self.interval,
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    async def start(self):
        """Start the scheduler loop."""
        if not self.enabled:
            self.logger.info("Batch scheduler is disabled")
            return

        if self.status != SchedulerStatus.STOPPED:
            self.logger.warning("Scheduler already running", current_status=self.status.value)
            return

        if self.orchestrator is None:
            self.orchestrator = BatchOrchestrator()
            await self.orchestrator.initialize()

        self._should_stop = False
        self.status = SchedulerStatus.WAITING
        self.stats.next_run = datetime.now(timezone.utc)
        self._scheduler_task = asyncio.create_task(self._scheduler_loop())

        self.logger.info("Batch scheduler started", interval=self.interval)

    async def stop(self):
        """Stop the scheduler loop."""
        if self.status == SchedulerStatus.STOPPED:
            return

        self.logger.info("Stopping batch scheduler")
        self._should_stop = True

        if self._scheduler_task and not self._scheduler_task.done():
            self._scheduler_task.cancel()
            try:
                await self._scheduler_task
            except asyncio.CancelledError:
                pass

        self.status = SchedulerStatus.STOPPED
        self.logger.info("Batch scheduler stopped")

    async def _scheduler_loop(self):
        self.logger.info("Scheduler loop started")

        while not self._should_stop:
            try:
                await self.trigger(triggered_by="scheduler")
                self.stats.next_run = datetime.now(timezone.utc) + timedelta(seconds=self.interval)
                await asyncio.sleep(self.interval)

            except asyncio.CancelledError:
                self.logger.info("Scheduler loop cancelled")
                break

            except Exception as e:
                self.stats.failed_runs += 1
                self.status = SchedulerStatus.ERROR
                self.logger.error(
                    "Error in scheduler loop",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(self.interval)

        self.logger.info("Scheduler loop stopped")

    async def trigger(self, triggered_by: str = "scheduler") -> Optional[RunStatistics]:
        """
        Run one batch unless one is already in progress.

        Returns:
            The run's statistics, or None when skipped or failed
        """
        if self._run_lock.locked():
            self.stats.skipped_ticks += 1
            self.logger.warning("Previous batch run still in progress, skipping tick")
            return None

        async with self._run_lock:
            self.status = SchedulerStatus.PROCESSING
            self.stats.total_runs += 1

            try:
                run_stats = await self.orchestrator.run(triggered_by=triggered_by)
            except BatchRunError as e:
                self.stats.failed_runs += 1
                self.status = SchedulerStatus.ERROR
                self.logger.error(
                    "Scheduled batch run failed",
                    error=e.message,
                    total_runs=self.stats.total_runs,
                    failed_runs=self.stats.failed_runs,
                )
                return None

            self.stats.last_run = datetime.now(timezone.utc)
            self.stats.last_run_stats = run_stats
            self.stats.successful_runs += 1
            self.status = SchedulerStatus.WAITING

            self.logger.info(
                "Scheduled batch run finished",
                batch_id=run_stats.batch_id,
                status=run_stats.status.value,
                processed=run_stats.processed,
            )
            return run_stats


# Global scheduler instance
_scheduler: Optional[BatchScheduler] = None


async def get_batch_scheduler() -> BatchScheduler:
    """Get or create the global batch scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BatchScheduler()
    return _scheduler


async def shutdown_batch_scheduler():
    """Stop the global batch scheduler."""
    global _scheduler
    if _scheduler:
        await _scheduler.stop()
        _scheduler = None
