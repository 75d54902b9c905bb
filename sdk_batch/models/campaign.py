"""
Campaign and Project models.

Only the columns the batch subsystem reads or maintains are mapped here.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, WeiAmount


class Campaign(BaseModel):
    """Campaign counters mirrored from the transactions table."""

    __tablename__ = "campaigns"

    campaign_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        comment="On-chain campaign id"
    )

    name: Mapped[Optional[str]] = mapped_column(String(200))

    total_transactions: Mapped[int] = mapped_column(Integer, default=0)
    total_fees: Mapped[Decimal] = mapped_column(WeiAmount, default=0)
    total_volume: Mapped[Decimal] = mapped_column(WeiAmount, default=0)

    last_synced_at: Mapped[Optional[datetime]]

    def __repr__(self) -> str:
        return f"<Campaign(id={self.campaign_id}, txs={self.total_transactions})>"


class Project(BaseModel, TimestampMixin):
    """Registered project; resolves a project reference from an application id."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    app_id: Mapped[str] = mapped_column(String(100), unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(200))

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, app_id={self.app_id})>"
