"""
Repair pass for the secondary mirrors.

Recomputes ``project_unique_users`` aggregates and ``campaigns`` counters
from the ``transactions`` table. A transaction hash fans out into one row
per campaign, so user aggregates count each hash once. Safe to re-run.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select, func

from sdk_batch.core.database import get_async_session, dialect_insert
from sdk_batch.models.base import utcnow
from sdk_batch.models.campaign import Campaign
from sdk_batch.models.transaction import TransactionRecord
from sdk_batch.models.unique_user import UniqueUserStat


logger = structlog.get_logger(__name__)


@dataclass
class ReconciliationReport:
    users_rebuilt: int = 0
    campaigns_rebuilt: int = 0


class ReconciliationService:
    """Rebuilds user stats and campaign counters from transaction history."""

    def __init__(self):
        self.logger = logger.bind(service="reconciliation_service")

    async def run(self) -> ReconciliationReport:
        report = ReconciliationReport()
        report.users_rebuilt = await self.rebuild_user_stats()
        report.campaigns_rebuilt = await self.rebuild_campaign_counters()

        self.logger.info(
            "Reconciliation complete",
            users_rebuilt=report.users_rebuilt,
            campaigns_rebuilt=report.campaigns_rebuilt,
        )
        return report

    async def rebuild_user_stats(self, project_id: Optional[str] = None) -> int:
        """Overwrite every (project, user) aggregate with the value derived from history."""
        per_hash = (
            select(
                TransactionRecord.project_id.label("project_id"),
                TransactionRecord.user_address.label("user_address"),
                TransactionRecord.tx_hash.label("tx_hash"),
                func.max(TransactionRecord.amount).label("amount"),
                func.max(TransactionRecord.fee_generated).label("fee"),
                func.max(TransactionRecord.reward_calculated).label("reward"),
                func.min(TransactionRecord.timestamp).label("first_seen"),
                func.max(TransactionRecord.timestamp).label("last_seen"),
            )
            .where(TransactionRecord.project_id.is_not(None))
            .group_by(
                TransactionRecord.project_id,
                TransactionRecord.user_address,
                TransactionRecord.tx_hash,
            )
        )
        if project_id is not None:
            per_hash = per_hash.where(TransactionRecord.project_id == project_id)
        per_hash = per_hash.subquery()

        totals = select(
            per_hash.c.project_id,
            per_hash.c.user_address,
            func.count(per_hash.c.tx_hash),
            func.coalesce(func.sum(per_hash.c.amount), 0),
            func.coalesce(func.sum(per_hash.c.fee), 0),
            func.coalesce(func.sum(per_hash.c.reward), 0),
            func.min(per_hash.c.first_seen),
            func.max(per_hash.c.last_seen),
        ).group_by(per_hash.c.project_id, per_hash.c.user_address)

        async with get_async_session() as db:
            rows = (await db.execute(totals)).all()

            for project, user, count, volume, fees, rewards, first_seen, last_seen in rows:
                stmt = dialect_insert(db, UniqueUserStat).values(
                    project_id=project,
                    user_address=user,
                    total_transactions=count,
                    total_volume=volume,
                    total_fees=fees,
                    total_rewards=rewards,
                    first_seen_at=first_seen,
                    last_seen_at=last_seen,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["project_id", "user_address"],
                    set_={
                        "total_transactions": stmt.excluded.total_transactions,
                        "total_volume": stmt.excluded.total_volume,
                        "total_fees": stmt.excluded.total_fees,
                        "total_rewards": stmt.excluded.total_rewards,
                        "first_seen_at": stmt.excluded.first_seen_at,
                        "last_seen_at": stmt.excluded.last_seen_at,
                    },
                )
                await db.execute(stmt)

        self.logger.info("User stats rebuilt", users=len(rows))
        return len(rows)

    async def rebuild_campaign_counters(self) -> int:
        """Overwrite every campaign's counters with totals from history."""
        now = utcnow()
        async with get_async_session() as db:
            rows = (await db.execute(
                select(
                    TransactionRecord.campaign_id,
                    func.count(TransactionRecord.id),
                    func.coalesce(func.sum(TransactionRecord.fee_generated), 0),
                    func.coalesce(func.sum(TransactionRecord.amount), 0),
                ).group_by(TransactionRecord.campaign_id)
            )).all()

            for campaign_id, count, fees, volume in rows:
                stmt = dialect_insert(db, Campaign).values(
                    campaign_id=campaign_id,
                    total_transactions=count,
                    total_fees=fees,
                    total_volume=volume,
                    last_synced_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["campaign_id"],
                    set_={
                        "total_transactions": stmt.excluded.total_transactions,
                        "total_fees": stmt.excluded.total_fees,
                        "total_volume": stmt.excluded.total_volume,
                        "last_synced_at": stmt.excluded.last_synced_at,
                    },
                )
                await db.execute(stmt)

        self.logger.info("Campaign counters rebuilt", campaigns=len(rows))
        return len(rows)
