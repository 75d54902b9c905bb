"""
Repository for batch run bookkeeping.
"""

from typing import List, Optional
import structlog

from sqlalchemy import select, update

from sdk_batch.core.database import get_async_session
from sdk_batch.models.base import utcnow
from sdk_batch.models.batch_run import BatchRun, BatchRunStatus
from ..core.types import RunStatistics


logger = structlog.get_logger(__name__)


class BatchRunRepository:
    """Create, progress and finalize ``sdk_batch_runs`` rows."""

    def __init__(self):
        self.logger = logger.bind(service="batch_run_repository")

    async def create_run(self, triggered_by: str) -> int:
        started = utcnow()
        run = BatchRun(
            run_date=started.date(),
            status=BatchRunStatus.RUNNING,
            triggered_by=triggered_by,
            started_at=started,
        )
        async with get_async_session() as db:
            db.add(run)
            await db.flush()
            run_id = run.id

        self.logger.info("Batch run created", batch_id=run_id, triggered_by=triggered_by)
        return run_id

    @staticmethod
    def _count_values(stats: RunStatistics) -> dict:
        return {
            "total_transactions": stats.total_transactions,
            "successful_transactions": stats.successful,
            "failed_transactions": stats.failed,
            "skipped_transactions": stats.skipped,
            "total_gas_used": stats.total_gas_used,
            "total_fees_generated": stats.total_fees_generated,
            "total_rewards_calculated": stats.total_rewards_calculated,
        }

    async def update_progress(self, batch_id: int, stats: RunStatistics) -> None:
        """Write current counts; only while the run is still ``running``."""
        async with get_async_session() as db:
            await db.execute(
                update(BatchRun)
                .where(BatchRun.id == batch_id, BatchRun.status == BatchRunStatus.RUNNING)
                .values(**self._count_values(stats))
            )

    async def finalize(
        self,
        batch_id: int,
        stats: RunStatistics,
        status: BatchRunStatus,
        error_summary: Optional[str] = None,
    ) -> None:
        """Freeze the run with its terminal status."""
        async with get_async_session() as db:
            await db.execute(
                update(BatchRun)
                .where(BatchRun.id == batch_id, BatchRun.status == BatchRunStatus.RUNNING)
                .values(
                    status=status,
                    completed_at=utcnow(),
                    error_summary=error_summary,
                    **self._count_values(stats),
                )
            )

        self.logger.info("Batch run finalized", batch_id=batch_id, status=status.value)

    async def get(self, batch_id: int) -> Optional[BatchRun]:
        async with get_async_session() as db:
            return await db.get(BatchRun, batch_id)

    async def list_recent(self, limit: int = 20) -> List[BatchRun]:
        async with get_async_session() as db:
            result = await db.execute(
                select(BatchRun).order_by(BatchRun.started_at.desc(), BatchRun.id.desc()).limit(limit)
            )
            return list(result.scalars().all())
