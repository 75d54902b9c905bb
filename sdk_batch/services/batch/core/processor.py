"""
Batch orchestrator for the SDK transaction queue.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional
import structlog

from sdk_batch.core.config import settings
from sdk_batch.core.exceptions import (
    AlreadyProcessedError,
    BatchRunError,
    InternalProcessingError,
    ProcessingError,
)
from sdk_batch.models.batch_run import BatchRunStatus
from sdk_batch.models.pending_transaction import PendingTransaction
from sdk_batch.services.ledger_client import LedgerClient, get_ledger_client
from ..blockchain import ChainInspector, EligibilityValidator, decode_app_id
from ..database import BatchRunRepository, PersistenceWriter, QueueRepository
from ..metrics import calculate_metrics, format_native
from ..transactions import LedgerMutator
from .types import (
    OrchestratorStatus,
    OutcomeKind,
    RecordOutcome,
    RunStatistics,
    TransactionMetrics,
)


logger = structlog.get_logger(__name__)

ALREADY_PROCESSED_REASON = "Already processed on-chain"


class BatchOrchestrator:
    """
    Drives the queue through the pipeline.

    Architecture:
    1. Reclaim rows stranded in ``processing``, then fetch the queue
    2. Split into fixed-size batches, records strictly one at a time
    3. Per record: claim -> processed check -> tx/receipt -> app id ->
       registration/campaigns -> metrics -> ledger mutation -> persistence
    4. Run counts written after every record; terminal status at the end

    Overlapping runs are tolerated only because the ledger rejects a hash it
    has already processed. The queue claim narrows the window, it is not a lock.
    """

    def __init__(
        self,
        ledger: Optional[LedgerClient] = None,
        batch_size: Optional[int] = None,
        delay_between_transactions: Optional[float] = None,
        delay_between_batches: Optional[float] = None,
        include_failed: Optional[bool] = None,
        reclaim_minutes: Optional[int] = None,
        min_reward: Optional[int] = None,
    ):
        self.logger = logger.bind(service="batch_orchestrator")

        self.batch_size = batch_size or settings.batch_size
        self.delay_between_transactions = (
            settings.delay_between_transactions if delay_between_transactions is None
            else delay_between_transactions
        )
        self.delay_between_batches = (
            settings.delay_between_batches if delay_between_batches is None
            else delay_between_batches
        )
        self.include_failed = settings.include_failed_in_batch if include_failed is None else include_failed
        self.reclaim_minutes = reclaim_minutes or settings.processing_reclaim_minutes
        self.min_reward = settings.min_reward_wei if min_reward is None else min_reward

        self.status = OrchestratorStatus.IDLE
        self.ledger = ledger

        # Components
        self.queue = QueueRepository()
        self.runs = BatchRunRepository()
        self.writer = PersistenceWriter(self.queue)
        self.inspector: Optional[ChainInspector] = None
        self.validator: Optional[EligibilityValidator] = None
        self.mutator: Optional[LedgerMutator] = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def initialize(self):
        """Bind the ledger client and build the pipeline components."""
        if self.ledger is None:
            self.ledger = await get_ledger_client()

        self.inspector = ChainInspector(self.ledger)
        self.validator = EligibilityValidator(self.ledger)
        self.mutator = LedgerMutator(self.ledger)

        self.logger.info(
            "Batch orchestrator initialized",
            batch_size=self.batch_size,
            delay_between_transactions=self.delay_between_transactions,
            delay_between_batches=self.delay_between_batches,
            include_failed=self.include_failed,
        )

    async def shutdown(self):
        self.logger.info("Batch orchestrator shutting down")

    async def run(self, triggered_by: Optional[str] = None) -> RunStatistics:
        """
        Run one batch over the current queue.

        Returns:
            RunStatistics for this run

        Raises:
            BatchRunError: the queue fetch or the run bookkeeping failed; the
                run row is marked ``failed`` when still writable
        """
        if self.status == OrchestratorStatus.RUNNING:
            raise BatchRunError("Batch orchestrator is already running")
        if self.inspector is None:
            await self.initialize()

        triggered_by = triggered_by or settings.triggered_by
        stats = RunStatistics(start_time=datetime.now(timezone.utc))
        self.status = OrchestratorStatus.RUNNING

        try:
            try:
                stats.batch_id = await self.runs.create_run(triggered_by)
            except Exception as e:
                self.logger.error("Failed to create batch run", error=str(e))
                raise BatchRunError(f"Failed to create batch run: {e}") from e

            log = self.logger.bind(batch_id=stats.batch_id)
            log.info("Starting SDK batch processing", triggered_by=triggered_by)

            try:
                requeued, failed = await self.queue.reclaim_stale(self.reclaim_minutes)
                stats.reclaimed = requeued + failed
                records = await self.queue.fetch_pending(self.include_failed)
            except Exception as e:
                await self._abort(stats, f"Failed to fetch pending transactions: {e}")
                raise BatchRunError(f"Failed to fetch pending transactions: {e}") from e

            stats.total_transactions = len(records)

            if not records:
                log.info("No pending transactions to process")
            else:
                await self._process_batches(records, stats)

            stats.status = stats.final_status()
            stats.end_time = datetime.now(timezone.utc)
            try:
                await self.runs.finalize(stats.batch_id, stats, stats.status)
            except Exception as e:
                await self._abort(stats, f"Failed to finalize batch run: {e}")
                raise BatchRunError(f"Failed to finalize batch run: {e}") from e

            self._log_summary(stats)
            self.status = OrchestratorStatus.COMPLETED
            return stats

        except BaseException:
            self.status = OrchestratorStatus.FAILED
            raise

    async def _process_batches(self, records: List[PendingTransaction], stats: RunStatistics) -> None:
        batches = [records[i:i + self.batch_size] for i in range(0, len(records), self.batch_size)]

        self.logger.info(
            "Processing queue",
            batch_id=stats.batch_id,
            transactions=len(records),
            batches=len(batches),
        )

        for batch_index, batch in enumerate(batches, start=1):
            self.logger.info(
                "Processing batch",
                batch_id=stats.batch_id,
                batch=batch_index,
                of=len(batches),
                size=len(batch),
            )

            for position, row in enumerate(batch):
                outcome = await self.process_record(row, stats.batch_id)
                stats.record(outcome)

                try:
                    await self.runs.update_progress(stats.batch_id, stats)
                except Exception as e:
                    await self._abort(stats, f"Failed to update batch run progress: {e}")
                    raise BatchRunError(f"Failed to update batch run progress: {e}") from e

                if position < len(batch) - 1 and self.delay_between_transactions:
                    await asyncio.sleep(self.delay_between_transactions)

            if batch_index < len(batches) and self.delay_between_batches:
                self.logger.info("Waiting before next batch", seconds=self.delay_between_batches)
                await asyncio.sleep(self.delay_between_batches)

    async def process_record(self, row: PendingTransaction, batch_id: Optional[int]) -> RecordOutcome:
        """Process one queue row. Never raises; every failure becomes an outcome."""
        log = self.logger.bind(tx_hash=row.transaction_hash, app_id=row.app_id, batch_id=batch_id)

        try:
            if not await self.queue.claim(row.id, batch_id, self.include_failed):
                log.info("Row no longer claimable, another run owns it")
                return RecordOutcome(
                    tx_hash=row.transaction_hash,
                    kind=OutcomeKind.SKIPPED,
                    message="Claimed by another run",
                )
            return await self._process_claimed(row, log)

        except ProcessingError as e:
            error = e
        except Exception as e:
            log.exception("Unexpected error while processing transaction")
            error = InternalProcessingError(e)

        return await self._record_failure(row, error, log)

    async def _process_claimed(self, row: PendingTransaction, log) -> RecordOutcome:
        tx_hash = row.transaction_hash

        # Ledger is the final arbiter, checked right after the claim
        await self.inspector.ensure_not_processed(tx_hash)
        transaction, receipt = await self.inspector.fetch(tx_hash)

        app_id = decode_app_id(transaction.input_data, tx_hash)
        if app_id != row.app_id:
            log.warning("Decoded app id differs from queued app id", decoded_app_id=app_id)

        campaign_ids = await self.validator.validate(app_id)
        metrics = calculate_metrics(transaction, receipt, self.min_reward)

        log.info(
            "Transaction eligible",
            campaigns=campaign_ids,
            fee=format_native(metrics.fee_generated, settings.native_symbol),
            reward_estimate=format_native(metrics.reward_estimate, settings.native_symbol),
        )

        confirmation = await self.mutator.submit(app_id, tx_hash, metrics)

        project_id = row.project_id or await self._resolve_project(app_id, log)
        await self.writer.persist(
            row, transaction, receipt, metrics, app_id, project_id, campaign_ids, confirmation
        )
        await self._log_canonical_rewards(app_id, campaign_ids, metrics, log)

        log.info("Transaction processed", process_tx_hash=confirmation.process_tx_hash)
        return RecordOutcome(
            tx_hash=tx_hash,
            kind=OutcomeKind.COMPLETED,
            metrics=metrics,
            process_tx_hash=confirmation.process_tx_hash,
            campaign_ids=campaign_ids,
        )

    async def _record_failure(self, row: PendingTransaction, error: ProcessingError, log) -> RecordOutcome:
        """Translate a tagged error into the row's next status."""
        tx_hash = row.transaction_hash

        if isinstance(error, AlreadyProcessedError):
            try:
                await self.queue.mark_skipped(row.id, ALREADY_PROCESSED_REASON)
            except Exception as e:
                log.error("Failed to mark row skipped", error=str(e))
            log.info("Skipped", reason=ALREADY_PROCESSED_REASON)
            return RecordOutcome(
                tx_hash=tx_hash,
                kind=OutcomeKind.SKIPPED,
                error_kind=error.kind,
                message=ALREADY_PROCESSED_REASON,
            )

        try:
            kind = await self.queue.mark_failure(row, error)
        except Exception as e:
            # Row keeps its status; reclaim picks it up if it was left processing
            log.error("Failed to record transaction failure", error=str(e), original_error=error.message)
            kind = OutcomeKind.FAILED

        log.warning(
            "Transaction failed",
            error_kind=error.kind.value,
            retryable=error.retryable,
            outcome=kind.value,
            retry_count=row.retry_count,
            max_retries=row.max_retries,
            error=error.message,
        )
        return RecordOutcome(
            tx_hash=tx_hash,
            kind=kind,
            error_kind=error.kind,
            message=error.message,
        )

    async def _resolve_project(self, app_id: str, log) -> Optional[str]:
        try:
            return await self.queue.resolve_project_id(app_id)
        except Exception as e:
            log.warning("Failed to resolve project", error=str(e))
            return None

    async def _log_canonical_rewards(
        self,
        app_id: str,
        campaign_ids: List[int],
        metrics: TransactionMetrics,
        log,
    ) -> None:
        """Log the ledger's per-campaign reward figure beside the off-chain estimate."""
        for campaign_id in campaign_ids:
            try:
                canonical = await self.ledger.get_app_campaign_metrics(app_id, campaign_id)
            except Exception as e:
                log.warning("Could not read campaign metrics", campaign_id=campaign_id, error=str(e))
                continue

            log.info(
                "Campaign reward reconciliation",
                campaign_id=campaign_id,
                ledger_tx_count=canonical.tx_count,
                ledger_estimated_reward=canonical.estimated_reward,
                offchain_reward_estimate=metrics.reward_estimate,
            )
            # Ledger figure is cumulative; comparable only on the first transaction
            if canonical.tx_count == 1 and canonical.estimated_reward != metrics.reward_estimate:
                log.warning(
                    "Reward estimate differs from ledger",
                    campaign_id=campaign_id,
                    ledger_estimated_reward=canonical.estimated_reward,
                    offchain_reward_estimate=metrics.reward_estimate,
                )

    async def _abort(self, stats: RunStatistics, reason: str) -> None:
        """Mark the run ``failed`` if it can still be written."""
        stats.status = BatchRunStatus.FAILED
        stats.end_time = datetime.now(timezone.utc)
        stats.errors.append(reason)
        self.logger.error("Batch run aborted", batch_id=stats.batch_id, reason=reason)

        if stats.batch_id is None:
            return
        try:
            await self.runs.finalize(stats.batch_id, stats, BatchRunStatus.FAILED, error_summary=reason)
        except Exception as e:
            self.logger.error("Failed to mark batch run failed", batch_id=stats.batch_id, error=str(e))

    def _log_summary(self, stats: RunStatistics) -> None:
        symbol = settings.native_symbol
        self.logger.info(
            "Batch processing complete",
            batch_id=stats.batch_id,
            status=stats.status.value,
            total=stats.total_transactions,
            successful=stats.successful,
            failed=stats.failed,
            skipped=stats.skipped,
            retried=stats.retried,
            reclaimed=stats.reclaimed,
            success_rate=f"{stats.success_rate * 100:.1f}%",
            total_gas_used=stats.total_gas_used,
            total_fees=format_native(stats.total_fees_generated, symbol),
            total_rewards=format_native(stats.total_rewards_calculated, symbol),
            duration=f"{stats.duration_seconds:.2f}s",
        )
