"""
Persistence of a confirmed ledger mutation.

The queue row is marked ``completed`` first. The mirrors that follow
(transaction history, user stats, campaign counters) are best-effort: a
failure is logged and left for the repair pass, never raised, because the
ledger mutation they describe cannot be undone.
"""

from typing import List, Optional
import structlog

from sqlalchemy import select, func

from sdk_batch.core.database import get_async_session, dialect_insert
from sdk_batch.models.base import utcnow
from sdk_batch.models.campaign import Campaign
from sdk_batch.models.pending_transaction import PendingTransaction
from sdk_batch.models.transaction import TransactionRecord
from sdk_batch.models.unique_user import UniqueUserStat
from sdk_batch.services.ledger_client import ChainTransaction, ChainReceipt, LedgerConfirmation
from ..core.types import TransactionMetrics
from .queue_repository import QueueRepository


logger = structlog.get_logger(__name__)


class PersistenceWriter:
    """Writes the outcome of a successful record."""

    def __init__(self, queue: Optional[QueueRepository] = None):
        self.queue = queue or QueueRepository()
        self.logger = logger.bind(service="persistence_writer")

    async def persist(
        self,
        row: PendingTransaction,
        transaction: ChainTransaction,
        receipt: ChainReceipt,
        metrics: TransactionMetrics,
        app_id: str,
        project_id: Optional[str],
        campaign_ids: List[int],
        confirmation: LedgerConfirmation,
    ) -> bool:
        """
        Run all four steps.

        Returns:
            Whether the queue row was marked ``completed``. When False the row
            stays ``processing`` until reclaimed; the ledger check then resolves
            it to ``skipped``.
        """
        log = self.logger.bind(tx_hash=row.transaction_hash, app_id=app_id)
        user_address = transaction.from_address.lower()

        try:
            await self.queue.mark_completed(row.id, confirmation.process_tx_hash)
            row_completed = True
        except Exception as e:
            log.error("Failed to mark queue row completed", error=str(e))
            row_completed = False

        try:
            inserted = await self.insert_records(
                transaction, receipt, metrics, app_id, project_id, campaign_ids, confirmation
            )
            log.info("Transaction records stored", inserted=inserted, campaigns=campaign_ids)
        except Exception as e:
            log.warning("Error storing transaction records", error=str(e))

        if project_id:
            try:
                total = await self.upsert_user_stats(
                    project_id,
                    user_address,
                    volume=metrics.transaction_value,
                    fees=metrics.fee_generated,
                    rewards=metrics.reward_estimate,
                )
                log.info("User stats updated", user=user_address, new_user=total == 1)
            except Exception as e:
                log.warning("Error updating user stats", error=str(e))
        else:
            log.warning("No project for app, user stats not updated")

        try:
            await self.refresh_campaign_counters(campaign_ids)
        except Exception as e:
            log.warning("Error refreshing campaign counters", error=str(e))

        return row_completed

    async def insert_records(
        self,
        transaction: ChainTransaction,
        receipt: ChainReceipt,
        metrics: TransactionMetrics,
        app_id: str,
        project_id: Optional[str],
        campaign_ids: List[int],
        confirmation: LedgerConfirmation,
    ) -> int:
        """One ``transactions`` row per campaign. Rows already present are left alone."""
        user_address = transaction.from_address.lower()
        processed_at = utcnow()

        async with get_async_session() as db:
            is_unique_user = False
            if project_id:
                # First sighting of this sender for the project
                seen = await db.execute(
                    select(func.count(TransactionRecord.id)).where(
                        TransactionRecord.project_id == project_id,
                        TransactionRecord.user_address == user_address,
                        TransactionRecord.tx_hash != transaction.tx_hash,
                    )
                )
                is_unique_user = seen.scalar_one() == 0

            rows = [
                {
                    "tx_hash": transaction.tx_hash,
                    "app_id": app_id,
                    "project_id": project_id,
                    "campaign_id": campaign_id,
                    "from_address": transaction.from_address,
                    "to_address": transaction.to_address,
                    "user_address": user_address,
                    "amount": metrics.transaction_value,
                    "gas_used": metrics.gas_used,
                    "gas_price": metrics.gas_price,
                    "fee_generated": metrics.fee_generated,
                    "block_number": receipt.block_number,
                    "timestamp": processed_at,
                    "status": "processed",
                    "process_tx_hash": confirmation.process_tx_hash,
                    "is_unique_user": is_unique_user,
                    "reward_calculated": metrics.reward_estimate,
                }
                for campaign_id in campaign_ids
            ]

            stmt = dialect_insert(db, TransactionRecord).values(rows)
            stmt = stmt.on_conflict_do_nothing(index_elements=["tx_hash", "campaign_id"])
            result = await db.execute(stmt)
            return result.rowcount or 0

    async def upsert_user_stats(
        self,
        project_id: str,
        user_address: str,
        volume: int,
        fees: int,
        rewards: int,
    ) -> int:
        """
        Atomic additive upsert of the (project, user) aggregate.

        Returns:
            The row's transaction count after the update; 1 means a new user.
        """
        now = utcnow()
        async with get_async_session() as db:
            stmt = dialect_insert(db, UniqueUserStat).values(
                project_id=project_id,
                user_address=user_address.lower(),
                total_transactions=1,
                total_volume=volume,
                total_fees=fees,
                total_rewards=rewards,
                first_seen_at=now,
                last_seen_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["project_id", "user_address"],
                set_={
                    "total_transactions": UniqueUserStat.total_transactions + stmt.excluded.total_transactions,
                    "total_volume": UniqueUserStat.total_volume + stmt.excluded.total_volume,
                    "total_fees": UniqueUserStat.total_fees + stmt.excluded.total_fees,
                    "total_rewards": UniqueUserStat.total_rewards + stmt.excluded.total_rewards,
                    "last_seen_at": stmt.excluded.last_seen_at,
                },
            ).returning(UniqueUserStat.total_transactions)

            result = await db.execute(stmt)
            return int(result.scalar_one())

    async def refresh_campaign_counters(self, campaign_ids: List[int]) -> None:
        """Recompute counters for the given campaigns from ``transactions``."""
        if not campaign_ids:
            return

        now = utcnow()
        async with get_async_session() as db:
            result = await db.execute(
                select(
                    TransactionRecord.campaign_id,
                    func.count(TransactionRecord.id),
                    func.coalesce(func.sum(TransactionRecord.fee_generated), 0),
                    func.coalesce(func.sum(TransactionRecord.amount), 0),
                )
                .where(TransactionRecord.campaign_id.in_(campaign_ids))
                .group_by(TransactionRecord.campaign_id)
            )
            totals = {row[0]: row[1:] for row in result.all()}

            for campaign_id in campaign_ids:
                count, fees, volume = totals.get(campaign_id, (0, 0, 0))
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
