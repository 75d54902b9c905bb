"""
Types for batch processing.
"""

from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List

from sdk_batch.core.exceptions import ErrorKind
from sdk_batch.models.batch_run import BatchRunStatus


class OrchestratorStatus(Enum):
    """Status of the batch orchestrator."""
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"
    COMPLETED = "completed"


class OutcomeKind(Enum):
    """Per-record result, decides the queue row transition."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    RETRY = "retry"    # back to pending, retry_count + 1
    FAILED = "failed"  # terminal failure


@dataclass
class TransactionMetrics:
    """Fee/volume/reward figures derived from a receipt."""
    gas_used: int
    gas_price: int
    fee_generated: int
    transaction_value: int
    reward_estimate: int


@dataclass
class RecordOutcome:
    """What happened to one queue row."""
    tx_hash: str
    kind: OutcomeKind
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    metrics: Optional[TransactionMetrics] = None
    process_tx_hash: Optional[str] = None
    campaign_ids: List[int] = field(default_factory=list)

    @property
    def is_failure(self) -> bool:
        return self.kind in (OutcomeKind.RETRY, OutcomeKind.FAILED)


@dataclass
class RunStatistics:
    """Running totals for one batch run.

    Created per run and returned by the orchestrator; nothing is kept at
    module level.
    """
    batch_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_transactions: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    retried: int = 0
    total_gas_used: int = 0
    total_fees_generated: int = 0
    total_rewards_calculated: int = 0
    reclaimed: int = 0
    status: Optional[BatchRunStatus] = None
    errors: List[str] = field(default_factory=list)

    def record(self, outcome: RecordOutcome) -> None:
        """Fold one record outcome into the totals."""
        self.processed += 1

        if outcome.kind == OutcomeKind.COMPLETED:
            self.successful += 1
            if outcome.metrics:
                self.total_gas_used += outcome.metrics.gas_used
                self.total_fees_generated += outcome.metrics.fee_generated
                self.total_rewards_calculated += outcome.metrics.reward_estimate
        elif outcome.kind == OutcomeKind.SKIPPED:
            self.skipped += 1
        else:
            # Retries count as failures of this run
            self.failed += 1
            if outcome.kind == OutcomeKind.RETRY:
                self.retried += 1
            self.errors.append(f"{outcome.tx_hash}: {outcome.message}")

    def final_status(self) -> BatchRunStatus:
        """Terminal run status from the success/failure counts."""
        if self.failed == 0:
            return BatchRunStatus.COMPLETED
        if self.successful > 0:
            return BatchRunStatus.PARTIAL
        return BatchRunStatus.FAILED

    @property
    def success_rate(self) -> float:
        if self.processed == 0:
            return 0.0
        return self.successful / self.processed

    @property
    def duration_seconds(self) -> float:
        if not self.start_time or not self.end_time:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()
