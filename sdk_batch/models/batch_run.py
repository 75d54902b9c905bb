"""
BatchRun model - one execution of the batch orchestrator.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from enum import Enum

from sqlalchemy import Date, String, Integer, Text, Index, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, WeiAmount, utcnow


class BatchRunStatus(str, Enum):
    """Batch run status."""
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class BatchRun(BaseModel):
    """Counts are updated after every record and frozen once the run finalizes."""

    __tablename__ = "sdk_batch_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    run_date: Mapped[date] = mapped_column(Date)

    status: Mapped[BatchRunStatus] = mapped_column(
        SQLEnum(
            BatchRunStatus,
            name="sdk_batch_run_status",
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=BatchRunStatus.RUNNING
    )

    triggered_by: Mapped[str] = mapped_column(String(50), default="manual")

    total_transactions: Mapped[int] = mapped_column(Integer, default=0)
    successful_transactions: Mapped[int] = mapped_column(Integer, default=0)
    failed_transactions: Mapped[int] = mapped_column(Integer, default=0)
    skipped_transactions: Mapped[int] = mapped_column(Integer, default=0)

    total_gas_used: Mapped[Decimal] = mapped_column(WeiAmount, default=0)
    total_fees_generated: Mapped[Decimal] = mapped_column(WeiAmount, default=0)
    total_rewards_calculated: Mapped[Decimal] = mapped_column(WeiAmount, default=0)

    started_at: Mapped[datetime] = mapped_column(default=utcnow)
    completed_at: Mapped[Optional[datetime]]

    error_summary: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_sdk_batch_runs_started", "started_at"),
    )

    def __repr__(self) -> str:
        return f"<BatchRun(id={self.id}, status={self.status.value})>"

    @property
    def is_finished(self) -> bool:
        return self.status != BatchRunStatus.RUNNING
