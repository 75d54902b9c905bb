"""
Repository for the SDK processing queue.
"""

from datetime import timedelta
from typing import List, Optional, Tuple
import structlog

from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import IntegrityError

from sdk_batch.core.database import get_async_session
from sdk_batch.core.exceptions import DuplicateSubmissionError, ProcessingError
from sdk_batch.models.campaign import Project
from sdk_batch.models.base import utcnow
from sdk_batch.models.pending_transaction import PendingTransaction, PendingStatus
from ..core.types import OutcomeKind


logger = structlog.get_logger(__name__)


class QueueRepository:
    """
    Reads and status transitions for ``sdk_pending_transactions``.

    Every transition is a conditional UPDATE on the current status so that
    two runs touching the same row cannot both win.
    """

    def __init__(self):
        self.logger = logger.bind(service="queue_repository")

    @staticmethod
    def _claimable(include_failed: bool):
        pending = PendingTransaction.status == PendingStatus.PENDING
        if not include_failed:
            return pending
        return or_(
            pending,
            and_(
                PendingTransaction.status == PendingStatus.FAILED,
                PendingTransaction.retry_count < PendingTransaction.max_retries,
            ),
        )

    async def fetch_pending(self, include_failed: bool = False) -> List[PendingTransaction]:
        """Rows eligible for processing, ordered by network then submission time."""
        async with get_async_session() as db:
            result = await db.execute(
                select(PendingTransaction)
                .where(self._claimable(include_failed))
                .order_by(
                    PendingTransaction.network.asc(),
                    PendingTransaction.submitted_at.asc(),
                    PendingTransaction.id.asc(),
                )
            )
            rows = list(result.scalars().all())

        self.logger.info("Fetched pending transactions", count=len(rows), include_failed=include_failed)
        return rows

    async def claim(self, row_id: int, batch_id: Optional[int], include_failed: bool = False) -> bool:
        """Move a row to ``processing``. False when another run got there first."""
        async with get_async_session() as db:
            result = await db.execute(
                update(PendingTransaction)
                .where(PendingTransaction.id == row_id, self._claimable(include_failed))
                .values(
                    status=PendingStatus.PROCESSING,
                    processing_started_at=utcnow(),
                    batch_id=batch_id,
                )
            )
            return result.rowcount == 1

    async def mark_completed(self, row_id: int, process_tx_hash: str) -> None:
        async with get_async_session() as db:
            await db.execute(
                update(PendingTransaction)
                .where(PendingTransaction.id == row_id)
                .values(
                    status=PendingStatus.COMPLETED,
                    process_tx_hash=process_tx_hash,
                    processed_at=utcnow(),
                    error_message=None,
                )
            )

    async def mark_skipped(self, row_id: int, reason: str) -> None:
        async with get_async_session() as db:
            await db.execute(
                update(PendingTransaction)
                .where(PendingTransaction.id == row_id)
                .values(
                    status=PendingStatus.SKIPPED,
                    error_message=reason,
                    processed_at=utcnow(),
                )
            )

    async def mark_failure(self, row: PendingTransaction, error: ProcessingError) -> OutcomeKind:
        """
        Record a failed attempt.

        Retryable errors with budget left put the row back to ``pending`` with
        ``retry_count + 1``; everything else is a terminal ``failed``, and a
        non-retryable error also spends the remaining budget.
        """
        retry_count = row.retry_count or 0
        max_retries = row.max_retries or 0

        if error.retryable and retry_count < max_retries:
            values = {
                "status": PendingStatus.PENDING,
                "retry_count": retry_count + 1,
                "error_message": error.message,
            }
            outcome = OutcomeKind.RETRY
        else:
            values = {
                "status": PendingStatus.FAILED,
                "error_message": error.message,
                "processed_at": utcnow(),
            }
            if not error.retryable:
                # Non-retryable failures stay out of include_failed runs
                values["retry_count"] = max(retry_count, max_retries)
            outcome = OutcomeKind.FAILED

        async with get_async_session() as db:
            await db.execute(
                update(PendingTransaction)
                .where(PendingTransaction.id == row.id)
                .values(**values)
            )

        return outcome

    async def reclaim_stale(self, older_than_minutes: int) -> Tuple[int, int]:
        """
        Release rows stranded in ``processing`` by a crashed run.

        Rows claimed more than ``older_than_minutes`` ago go back to
        ``pending`` with one more retry used, or to ``failed`` when that would
        exceed the budget.

        Returns:
            (requeued, failed) counts
        """
        cutoff = utcnow() - timedelta(minutes=older_than_minutes)
        stale = and_(
            PendingTransaction.status == PendingStatus.PROCESSING,
            or_(
                PendingTransaction.processing_started_at < cutoff,
                PendingTransaction.processing_started_at.is_(None),
            ),
        )

        async with get_async_session() as db:
            requeued = await db.execute(
                update(PendingTransaction)
                .where(stale, PendingTransaction.retry_count < PendingTransaction.max_retries)
                .values(
                    status=PendingStatus.PENDING,
                    retry_count=PendingTransaction.retry_count + 1,
                    processing_started_at=None,
                    error_message="Reclaimed after stalled processing",
                )
                .execution_options(synchronize_session=False)
            )
            failed = await db.execute(
                update(PendingTransaction)
                .where(stale, PendingTransaction.retry_count >= PendingTransaction.max_retries)
                .values(
                    status=PendingStatus.FAILED,
                    processed_at=utcnow(),
                    error_message="Stalled in processing; retry budget exhausted",
                )
                .execution_options(synchronize_session=False)
            )
            counts = (requeued.rowcount or 0, failed.rowcount or 0)

        if any(counts):
            self.logger.warning(
                "Reclaimed stalled processing rows",
                requeued=counts[0],
                failed=counts[1],
                older_than_minutes=older_than_minutes,
            )
        return counts

    async def get_by_hash(self, tx_hash: str) -> Optional[PendingTransaction]:
        async with get_async_session() as db:
            result = await db.execute(
                select(PendingTransaction).where(PendingTransaction.transaction_hash == tx_hash.lower())
            )
            return result.scalar_one_or_none()

    async def enqueue(
        self,
        tx_hash: str,
        app_id: str,
        project_id: Optional[str],
        user_address: Optional[str],
        network: str,
        max_retries: int,
    ) -> PendingTransaction:
        """Insert a new ``pending`` row. Raises ``DuplicateSubmissionError`` if the hash is queued."""
        tx_hash = tx_hash.lower()
        existing = await self.get_by_hash(tx_hash)
        if existing is not None:
            raise DuplicateSubmissionError(tx_hash, existing.status.value)

        row = PendingTransaction(
            transaction_hash=tx_hash,
            app_id=app_id,
            project_id=project_id,
            user_address=user_address.lower() if user_address else None,
            network=network,
            status=PendingStatus.PENDING,
            retry_count=0,
            max_retries=max_retries,
            submitted_at=utcnow(),
        )

        try:
            async with get_async_session() as db:
                db.add(row)
        except IntegrityError as e:
            # Lost a race with a concurrent submission of the same hash
            raise DuplicateSubmissionError(tx_hash, PendingStatus.PENDING.value) from e

        self.logger.info("Transaction queued", tx_hash=tx_hash, app_id=app_id, network=network)
        return row

    async def resolve_project_id(self, app_id: str) -> Optional[str]:
        """Project id for an application id, if a project row exists."""
        async with get_async_session() as db:
            result = await db.execute(select(Project.id).where(Project.app_id == app_id))
            return result.scalar_one_or_none()
