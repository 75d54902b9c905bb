"""
TransactionRecord model - durable history of processed transactions.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, WeiAmount, utcnow


class TransactionRecord(BaseModel):
    """One row per (transaction hash, registered campaign)."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    tx_hash: Mapped[str] = mapped_column(String(66))
    app_id: Mapped[str] = mapped_column(String(100))
    project_id: Mapped[Optional[str]] = mapped_column(String(36))
    campaign_id: Mapped[int] = mapped_column(Integer)

    from_address: Mapped[str] = mapped_column(String(42))
    to_address: Mapped[Optional[str]] = mapped_column(String(42))
    user_address: Mapped[str] = mapped_column(
        String(42),
        comment="Lower-cased sender address"
    )

    amount: Mapped[Decimal] = mapped_column(WeiAmount, default=0)
    gas_used: Mapped[Decimal] = mapped_column(WeiAmount)
    gas_price: Mapped[Decimal] = mapped_column(WeiAmount)
    fee_generated: Mapped[Decimal] = mapped_column(WeiAmount)
    block_number: Mapped[Optional[int]] = mapped_column(BigInteger)

    timestamp: Mapped[datetime] = mapped_column(default=utcnow)
    status: Mapped[str] = mapped_column(String(20), default="processed")

    process_tx_hash: Mapped[str] = mapped_column(
        String(66),
        comment="Ledger confirmation hash"
    )

    is_unique_user: Mapped[bool] = mapped_column(Boolean, default=False)
    reward_calculated: Mapped[Decimal] = mapped_column(WeiAmount, default=0)

    __table_args__ = (
        UniqueConstraint("tx_hash", "campaign_id", name="uq_transactions_hash_campaign"),
        Index("idx_transactions_project_user", "project_id", "user_address"),
        Index("idx_transactions_campaign", "campaign_id"),
    )

    def __repr__(self) -> str:
        return f"<TransactionRecord(hash={self.tx_hash[:10]}..., campaign={self.campaign_id})>"
