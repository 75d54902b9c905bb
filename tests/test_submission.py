"""
Test synchronous processing and queue intake.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from sdk_batch.core.exceptions import (
    DecodeError,
    DuplicateSubmissionError,
    ProjectNotFoundError,
    QueueEntryNotFoundError,
    RetryableInfraError,
    UnregisteredAppError,
    ValidationError,
)
from sdk_batch.models.pending_transaction import PendingStatus
from sdk_batch.services.ledger_client import CampaignInfo
from sdk_batch.services.submission_service import SubmissionService, epoch_to_datetime, validate_tx_hash

from tests.conftest import SENDER, get_row, tx_hash_for


TX_HASH = "0x" + "aa" * 32


@pytest_asyncio.fixture
async def service(ledger, database):
    svc = SubmissionService(ledger=ledger)
    await svc.initialize()
    return svc


def test_validate_tx_hash():
    assert validate_tx_hash("0x" + "AB" * 32) == "0x" + "ab" * 32

    for bad in (None, "", "0x1234", "aa" * 32, "0x" + "zz" * 32):
        with pytest.raises(ValidationError):
            validate_tx_hash(bad)


@pytest.mark.asyncio
async def test_process_now_records_transaction(ledger, service, project):
    ledger.add_transaction(TX_HASH, b"demo1")

    result = await service.process_now(TX_HASH)

    assert result["already_processed"] is False
    assert result["app_id"] == "demo1"
    assert result["process_tx_hash"].startswith("0x")
    assert result["user_tracking"] == {"user_address": SENDER, "is_new_unique_user": True}
    assert result["metrics"]["gas_price"] == "20 gwei"
    assert result["metrics"]["estimated_reward"] == "0.001000 XFI"
    assert result["campaign_status"]["active_campaign_ids"] == [7]
    assert result["campaign_metrics"][0]["tx_count"] == 1
    assert result["message"] == "Transaction processed successfully"
    assert ledger.process_calls == [("demo1", TX_HASH, 100000, 20 * 10 ** 9, 0)]


@pytest.mark.asyncio
async def test_process_now_short_circuits_mirrored_hash(ledger, service, project):
    ledger.add_transaction(TX_HASH, b"demo1")
    await service.process_now(TX_HASH)

    result = await service.process_now(TX_HASH)

    assert result["already_processed"] is True
    assert result["transaction"]["tx_hash"] == TX_HASH
    assert len(ledger.process_calls) == 1


@pytest.mark.asyncio
async def test_process_now_reports_ended_campaigns(ledger, service, project):
    ledger.apps["demo1"] = [7, 8]
    ledger.campaigns[8] = CampaignInfo(
        campaign_id=8,
        total_pool=10 ** 21,
        distributed_rewards=0,
        start_date=0,
        end_date=1,
        active=True,
    )
    ledger.add_transaction(TX_HASH, b"demo1")

    result = await service.process_now(TX_HASH)

    assert result["campaign_status"]["ended_campaign_ids"] == [8]
    assert "1 campaign(s) have ended" in result["message"]


def test_epoch_to_datetime_clamps_open_ended_dates():
    assert epoch_to_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert epoch_to_datetime(2 ** 40) == datetime.max.replace(tzinfo=timezone.utc)
    assert epoch_to_datetime(2 ** 256 - 1) == datetime.max.replace(tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_campaign_status_survives_one_unreadable_campaign(ledger, service, project, monkeypatch):
    ledger.apps["demo1"] = [7, 9]
    ledger.add_transaction(TX_HASH, b"demo1")
    read_campaign = ledger.get_campaign

    async def flaky_get_campaign(campaign_id):
        if campaign_id == 9:
            raise RetryableInfraError("getCampaign failed: timeout", timeout=True)
        return await read_campaign(campaign_id)

    monkeypatch.setattr(ledger, "get_campaign", flaky_get_campaign)

    result = await service.process_now(TX_HASH)

    assert result["campaign_status"]["active_campaign_ids"] == [7]
    assert [c["campaign_id"] for c in result["campaign_metrics"]] == [7]
    assert result["campaign_metrics"][0]["campaign_end_date"] == datetime.max.replace(tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_process_now_requires_project(ledger, service):
    ledger.add_transaction(TX_HASH, b"demo1")

    with pytest.raises(ProjectNotFoundError):
        await service.process_now(TX_HASH)
    assert ledger.process_calls == []


@pytest.mark.asyncio
async def test_process_now_completes_queued_row(ledger, service, project):
    ledger.add_transaction(TX_HASH, b"demo1")
    await service.enqueue(TX_HASH)

    await service.process_now(TX_HASH)

    row = await get_row(TX_HASH)
    assert row.status == PendingStatus.COMPLETED
    assert row.process_tx_hash is not None


@pytest.mark.asyncio
async def test_enqueue_decodes_app_id(ledger, service, project):
    ledger.add_transaction(TX_HASH, b"demo1")

    queued = await service.enqueue(TX_HASH.upper().replace("0X", "0x"))

    assert queued["app_id"] == "demo1"
    assert queued["status"] == "pending"
    assert queued["user_address"] == SENDER

    row = await get_row(TX_HASH)
    assert row.project_id == project
    assert row.max_retries == 3
    assert row.network == "mainnet"


@pytest.mark.asyncio
async def test_enqueue_rejects_duplicates(ledger, service, project):
    ledger.add_transaction(TX_HASH, b"demo1")
    await service.enqueue(TX_HASH)

    with pytest.raises(DuplicateSubmissionError) as exc_info:
        await service.enqueue(TX_HASH)
    assert exc_info.value.details["status"] == "pending"


@pytest.mark.asyncio
async def test_enqueue_rejects_unregistered_app(ledger, service, project):
    ledger.add_transaction(TX_HASH, b"demo1")

    with pytest.raises(UnregisteredAppError):
        await service.enqueue(TX_HASH, app_id="other")


@pytest.mark.asyncio
async def test_enqueue_rejects_undecodable_payload(ledger, service, project):
    ledger.add_transaction(TX_HASH, b"\xff")

    with pytest.raises(DecodeError):
        await service.enqueue(TX_HASH)


@pytest.mark.asyncio
async def test_enqueue_requires_project(ledger, service):
    ledger.add_transaction(TX_HASH, b"demo1")

    with pytest.raises(ProjectNotFoundError):
        await service.enqueue(TX_HASH)


@pytest.mark.asyncio
async def test_queue_status_includes_batch_run(ledger, service, orchestrator, project):
    ledger.add_transaction(TX_HASH, b"demo1")
    await service.enqueue(TX_HASH)
    stats = await orchestrator.run()

    status = await service.get_queue_status(TX_HASH)

    assert status["status"] == "completed"
    assert status["batch_id"] == stats.batch_id
    assert status["batch_info"]["status"] == "completed"
    assert status["batch_info"]["successful_transactions"] == 1

    runs = await service.list_batch_runs(limit=5)
    assert [run["id"] for run in runs] == [stats.batch_id]


@pytest.mark.asyncio
async def test_queue_status_unknown_hash(service):
    with pytest.raises(QueueEntryNotFoundError):
        await service.get_queue_status(tx_hash_for(99))


@pytest.mark.asyncio
async def test_processed_status(ledger, service):
    ledger.processed.add(TX_HASH)

    assert (await service.get_processed_status(TX_HASH))["status"] == "processed"
    assert (await service.get_processed_status(tx_hash_for(2)))["is_processed"] is False
