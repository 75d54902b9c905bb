"""
PendingTransaction model - the SDK processing queue.
"""

from datetime import datetime
from typing import Optional
from enum import Enum

from sqlalchemy import (
    String, Integer, Text, Index, ForeignKey, Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, utcnow


class PendingStatus(str, Enum):
    """Queue row status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATUSES = frozenset({PendingStatus.COMPLETED, PendingStatus.SKIPPED})


class PendingTransaction(BaseModel, TimestampMixin):
    """A user-submitted transaction hash awaiting verification and reward accrual.

    Rows are never deleted. A hash in ``completed`` or ``skipped`` is never
    picked up again.
    """

    __tablename__ = "sdk_pending_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    transaction_hash: Mapped[str] = mapped_column(
        String(66),
        unique=True,
        comment="Submitted transaction hash (0x + 64 hex)"
    )

    app_id: Mapped[str] = mapped_column(
        String(100),
        comment="Owning application identifier"
    )

    project_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        comment="Project reference, resolved from app_id when absent"
    )

    user_address: Mapped[Optional[str]] = mapped_column(
        String(42),
        comment="Sender address reported at submission"
    )

    network: Mapped[str] = mapped_column(
        String(32),
        default="mainnet",
        comment="Network label"
    )

    status: Mapped[PendingStatus] = mapped_column(
        SQLEnum(
            PendingStatus,
            name="sdk_pending_status",
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=PendingStatus.PENDING,
        comment="Processing status"
    )

    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)

    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        comment="Last error message"
    )

    process_tx_hash: Mapped[Optional[str]] = mapped_column(
        String(66),
        comment="Ledger confirmation hash"
    )

    submitted_at: Mapped[datetime] = mapped_column(default=utcnow)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(
        comment="When the current run claimed the row"
    )
    processed_at: Mapped[Optional[datetime]]

    batch_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("sdk_batch_runs.id", ondelete="SET NULL"),
        comment="Batch run that last touched the row"
    )

    __table_args__ = (
        Index("idx_sdk_pending_status_order", "status", "network", "submitted_at"),
        Index("idx_sdk_pending_app", "app_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PendingTransaction(id={self.id}, hash={self.transaction_hash[:10]}..., "
            f"status={self.status.value})>"
        )

    def can_retry(self) -> bool:
        """Whether one more attempt fits in the retry budget."""
        return (self.retry_count or 0) < (self.max_retries or 0)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
