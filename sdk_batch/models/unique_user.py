"""
UniqueUserStat model - per (project, user address) aggregates.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, WeiAmount, utcnow


class UniqueUserStat(BaseModel):
    """Updated additively, never overwritten wholesale."""

    __tablename__ = "project_unique_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    project_id: Mapped[str] = mapped_column(String(36))
    user_address: Mapped[str] = mapped_column(String(42))

    total_transactions: Mapped[int] = mapped_column(Integer, default=0)
    total_volume: Mapped[Decimal] = mapped_column(WeiAmount, default=0)
    total_fees: Mapped[Decimal] = mapped_column(WeiAmount, default=0)
    total_rewards: Mapped[Decimal] = mapped_column(WeiAmount, default=0)

    first_seen_at: Mapped[datetime] = mapped_column(default=utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(default=utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "user_address", name="uq_project_unique_users"),
    )

    def __repr__(self) -> str:
        return f"<UniqueUserStat(project={self.project_id}, user={self.user_address})>"
