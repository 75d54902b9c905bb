"""
Shared fixtures: a temporary SQLite store and an in-memory ledger.
"""

from typing import Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio
from sqlalchemy import select, update

from sdk_batch.core.database import init_database, close_database, get_async_session, DatabaseManager
from sdk_batch.core.exceptions import AlreadyProcessedError, NotFoundError, UnconfirmedError
from sdk_batch.models.campaign import Project
from sdk_batch.models.pending_transaction import PendingTransaction
from sdk_batch.services.batch import BatchOrchestrator
from sdk_batch.services.batch.database import QueueRepository
from sdk_batch.services.ledger_client import (
    CampaignInfo,
    CampaignMetrics,
    ChainReceipt,
    ChainTransaction,
    LedgerConfirmation,
)


SENDER = "0x1111111111111111111111111111111111111111"
DAPP = "0x2222222222222222222222222222222222222222"


def tx_hash_for(n: int) -> str:
    return "0x" + f"{n:064x}"


class FakeLedger:
    """In-memory stand-in for ``LedgerClient`` that records every mutation."""

    def __init__(self):
        self.processed: Set[str] = set()
        self.apps: Dict[str, List[int]] = {}
        self.transactions: Dict[str, ChainTransaction] = {}
        self.receipts: Dict[str, ChainReceipt] = {}
        self.campaigns: Dict[int, CampaignInfo] = {}
        self.process_calls: List[Tuple[str, str, int, int, int]] = []
        # Raised, in order, by successive process_transaction calls
        self.process_errors: List[Exception] = []

    def add_transaction(
        self,
        tx_hash: str,
        payload: bytes,
        sender: str = SENDER,
        gas_used: int = 100000,
        gas_price: int = 20 * 10 ** 9,
        value: int = 0,
        with_receipt: bool = True,
    ) -> None:
        self.transactions[tx_hash] = ChainTransaction(
            tx_hash=tx_hash,
            from_address=sender,
            to_address=DAPP,
            value=value,
            gas_price=gas_price,
            input_data=payload,
            block_number=1000,
        )
        if with_receipt:
            self.receipts[tx_hash] = ChainReceipt(
                tx_hash=tx_hash,
                gas_used=gas_used,
                effective_gas_price=gas_price,
                block_number=1000,
                status=1,
            )

    async def is_processed(self, tx_hash: str) -> bool:
        return tx_hash in self.processed

    async def get_transaction(self, tx_hash: str) -> ChainTransaction:
        if tx_hash not in self.transactions:
            raise NotFoundError(tx_hash)
        return self.transactions[tx_hash]

    async def get_receipt(self, tx_hash: str) -> ChainReceipt:
        if tx_hash not in self.receipts:
            raise UnconfirmedError(tx_hash)
        return self.receipts[tx_hash]

    async def is_app_registered(self, app_id: str) -> bool:
        return app_id in self.apps

    async def get_app_campaigns(self, app_id: str) -> List[int]:
        return list(self.apps.get(app_id, []))

    async def get_app_campaign_metrics(self, app_id: str, campaign_id: int) -> CampaignMetrics:
        calls = [c for c in self.process_calls if c[0] == app_id and c[1] in self.processed]
        fees = sum(c[2] * c[3] for c in calls)
        return CampaignMetrics(
            total_fees=fees,
            total_volume=sum(c[4] for c in calls),
            tx_count=len(calls),
            estimated_reward=max(fees // 10, 10 ** 15) if calls else 0,
        )

    async def get_campaign(self, campaign_id: int) -> CampaignInfo:
        return self.campaigns.get(
            campaign_id,
            CampaignInfo(
                campaign_id=campaign_id,
                total_pool=10 ** 21,
                distributed_rewards=0,
                start_date=0,
                end_date=2 ** 40,
                active=True,
            ),
        )

    async def process_transaction(
        self,
        app_id: str,
        tx_hash: str,
        gas_used: int,
        gas_price: int,
        value: int,
    ) -> LedgerConfirmation:
        self.process_calls.append((app_id, tx_hash, gas_used, gas_price, value))
        if self.process_errors:
            raise self.process_errors.pop(0)
        if tx_hash in self.processed:
            raise AlreadyProcessedError(tx_hash)

        self.processed.add(tx_hash)
        return LedgerConfirmation(
            process_tx_hash="0x" + f"{0xbeef0000 + len(self.process_calls):064x}",
            block_number=2000 + len(self.process_calls),
            gas_used=60000,
        )

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def ledger() -> FakeLedger:
    fake = FakeLedger()
    fake.apps["demo1"] = [7]
    return fake


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite database with all tables."""
    await init_database(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await DatabaseManager.create_tables()
    yield
    await close_database()


@pytest_asyncio.fixture
async def project(database) -> str:
    """Project row for the ``demo1`` application."""
    async with get_async_session() as db:
        row = Project(app_id="demo1", name="Demo")
        db.add(row)
        await db.flush()
        return row.id


@pytest.fixture
def queue() -> QueueRepository:
    return QueueRepository()


@pytest.fixture
def orchestrator(ledger) -> BatchOrchestrator:
    return BatchOrchestrator(
        ledger=ledger,
        batch_size=3,
        delay_between_transactions=0,
        delay_between_batches=0,
        include_failed=False,
        reclaim_minutes=30,
    )


async def enqueue(
    queue: QueueRepository,
    tx_hash: str,
    app_id: str = "demo1",
    project_id: Optional[str] = None,
    max_retries: int = 3,
) -> PendingTransaction:
    return await queue.enqueue(
        tx_hash,
        app_id=app_id,
        project_id=project_id,
        user_address=SENDER,
        network="mainnet",
        max_retries=max_retries,
    )


async def get_row(tx_hash: str) -> PendingTransaction:
    async with get_async_session() as db:
        result = await db.execute(
            select(PendingTransaction).where(PendingTransaction.transaction_hash == tx_hash)
        )
        return result.scalar_one()


async def set_row(tx_hash: str, **values) -> None:
    async with get_async_session() as db:
        await db.execute(
            update(PendingTransaction)
            .where(PendingTransaction.transaction_hash == tx_hash)
            .values(**values)
        )
