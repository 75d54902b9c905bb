"""
Test recovery of rows stranded in processing.
"""

from datetime import timedelta

import pytest

from sdk_batch.models.base import utcnow
from sdk_batch.models.pending_transaction import PendingStatus

from tests.conftest import enqueue, get_row, set_row, tx_hash_for


@pytest.mark.asyncio
async def test_stale_row_returns_to_pending(queue, database):
    tx_hash = tx_hash_for(1)
    await enqueue(queue, tx_hash)
    await set_row(
        tx_hash,
        status=PendingStatus.PROCESSING,
        processing_started_at=utcnow() - timedelta(minutes=45),
    )

    assert await queue.reclaim_stale(30) == (1, 0)

    row = await get_row(tx_hash)
    assert row.status == PendingStatus.PENDING
    assert row.retry_count == 1
    assert row.processing_started_at is None


@pytest.mark.asyncio
async def test_stale_row_without_budget_fails(queue, database):
    tx_hash = tx_hash_for(2)
    await enqueue(queue, tx_hash, max_retries=2)
    await set_row(
        tx_hash,
        status=PendingStatus.PROCESSING,
        retry_count=2,
        processing_started_at=utcnow() - timedelta(hours=2),
    )

    assert await queue.reclaim_stale(30) == (0, 1)

    row = await get_row(tx_hash)
    assert row.status == PendingStatus.FAILED
    assert row.retry_count == 2
    assert row.processed_at is not None


@pytest.mark.asyncio
async def test_recent_and_other_rows_untouched(queue, database):
    recent, pending = tx_hash_for(3), tx_hash_for(4)
    await enqueue(queue, recent)
    await enqueue(queue, pending)
    await set_row(recent, status=PendingStatus.PROCESSING, processing_started_at=utcnow())

    assert await queue.reclaim_stale(30) == (0, 0)

    assert (await get_row(recent)).status == PendingStatus.PROCESSING
    assert (await get_row(pending)).status == PendingStatus.PENDING


@pytest.mark.asyncio
async def test_run_reclaims_before_fetching(ledger, orchestrator, queue, project):
    """A reclaimed row whose mutation already landed resolves to skipped."""
    tx_hash = tx_hash_for(5)
    ledger.add_transaction(tx_hash, b"demo1")
    ledger.processed.add(tx_hash)
    await enqueue(queue, tx_hash, project_id=project)
    await set_row(
        tx_hash,
        status=PendingStatus.PROCESSING,
        processing_started_at=utcnow() - timedelta(minutes=90),
    )

    stats = await orchestrator.run()

    assert stats.reclaimed == 1
    assert stats.skipped == 1
    assert ledger.process_calls == []
    assert (await get_row(tx_hash)).status == PendingStatus.SKIPPED
