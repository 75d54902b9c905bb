"""
Test the repair pass over user stats and campaign counters.
"""

import pytest
from sqlalchemy import delete, select, update

from sdk_batch.core.database import get_async_session
from sdk_batch.models.campaign import Campaign
from sdk_batch.models.unique_user import UniqueUserStat
from sdk_batch.services.reconciliation_service import ReconciliationService

from tests.conftest import SENDER, enqueue, tx_hash_for


async def load_state():
    async with get_async_session() as db:
        users = (await db.execute(select(UniqueUserStat))).scalars().all()
        campaigns = (await db.execute(select(Campaign).order_by(Campaign.campaign_id))).scalars().all()
        return list(users), list(campaigns)


@pytest.mark.asyncio
async def test_rebuild_restores_damaged_mirrors(ledger, orchestrator, queue, project):
    ledger.apps["demo1"] = [1, 2]
    for n, value in ((1, 100), (2, 200)):
        ledger.add_transaction(tx_hash_for(n), b"demo1", value=value)
        await enqueue(queue, tx_hash_for(n), project_id=project)
    await orchestrator.run()

    async with get_async_session() as db:
        await db.execute(update(UniqueUserStat).values(total_transactions=99, total_volume=0))
        await db.execute(delete(Campaign))

    report = await ReconciliationService().run()

    assert report.users_rebuilt == 1
    assert report.campaigns_rebuilt == 2

    users, campaigns = await load_state()
    assert len(users) == 1
    assert users[0].user_address == SENDER
    # Two hashes, each fanned out to two campaigns
    assert users[0].total_transactions == 2
    assert int(users[0].total_volume) == 300
    assert [(c.campaign_id, c.total_transactions, int(c.total_volume)) for c in campaigns] == [
        (1, 2, 300),
        (2, 2, 300),
    ]


@pytest.mark.asyncio
async def test_rebuild_is_idempotent(ledger, orchestrator, queue, project):
    ledger.add_transaction(tx_hash_for(1), b"demo1", value=5)
    await enqueue(queue, tx_hash_for(1), project_id=project)
    await orchestrator.run()

    service = ReconciliationService()
    await service.run()
    first = await load_state()
    await service.run()
    second = await load_state()

    assert [u.total_transactions for u in first[0]] == [u.total_transactions for u in second[0]] == [1]
    assert [c.total_transactions for c in first[1]] == [c.total_transactions for c in second[1]] == [1]


@pytest.mark.asyncio
async def test_rebuild_on_empty_history(database):
    report = await ReconciliationService().run()

    assert report.users_rebuilt == 0
    assert report.campaigns_rebuilt == 0
