"""
Test HTTP routes and the error-to-status mapping.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from sdk_batch.api.dependencies import get_service
from sdk_batch.api.main import create_app
from sdk_batch.core.exceptions import (
    AlreadyProcessedError,
    DecodeError,
    DuplicateSubmissionError,
    InternalProcessingError,
    LedgerRevertError,
    NoCampaignError,
    NotFoundError,
    ProjectNotFoundError,
    QueueEntryNotFoundError,
    RetryableInfraError,
    UnconfirmedError,
    UnregisteredAppError,
    ValidationError,
)


TX_HASH = "0x" + "aa" * 32


class StubService:
    """Returns canned results or raises the configured error."""

    def __init__(self):
        self.error = None
        self.calls = []

    def _check(self, name, *args):
        self.calls.append((name, args))
        if self.error is not None:
            raise self.error

    async def process_now(self, tx_hash):
        self._check("process_now", tx_hash)
        return {
            "already_processed": False,
            "message": "Transaction processed successfully",
            "transaction_hash": tx_hash,
            "app_id": "demo1",
            "processed_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
            "process_tx_hash": "0x" + "bb" * 32,
            "user_tracking": {"user_address": "0xabc", "is_new_unique_user": True},
            "metrics": {
                "gas_used": "100000",
                "gas_price": "20 gwei",
                "fee_generated": "0.002000 XFI",
                "transaction_value": "0.000000 XFI",
                "estimated_reward": "0.001000 XFI",
            },
            "campaign_status": {
                "total_registered_campaigns": 1,
                "active_campaigns": 1,
                "ended_campaigns": 0,
                "active_campaign_ids": [7],
                "ended_campaign_ids": [],
            },
            "campaign_metrics": [],
        }

    async def get_processed_status(self, tx_hash):
        self._check("get_processed_status", tx_hash)
        return {"transaction_hash": tx_hash, "is_processed": True, "status": "processed"}

    async def enqueue(self, tx_hash, app_id=None, user_address=None):
        self._check("enqueue", tx_hash, app_id, user_address)
        return {
            "id": 1,
            "transaction_hash": tx_hash,
            "app_id": app_id or "demo1",
            "user_address": user_address,
            "status": "pending",
            "estimated_processing_time": "Next batch run",
            "submitted_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        }

    async def get_queue_status(self, tx_hash):
        self._check("get_queue_status", tx_hash)
        return {
            "transaction_hash": tx_hash,
            "app_id": "demo1",
            "user_address": None,
            "status": "failed",
            "submitted_at": None,
            "processed_at": None,
            "batch_id": None,
            "retry_count": 3,
            "max_retries": 3,
            "error_message": "Transaction not found on blockchain",
            "process_tx_hash": None,
            "batch_info": None,
        }

    async def list_batch_runs(self, limit=20):
        self._check("list_batch_runs", limit)
        return [{"id": 4, "status": "partial", "run_date": "2026-01-01"}]


@pytest.fixture
def stub():
    return StubService()


@pytest.fixture
def client(stub):
    app = create_app()
    app.dependency_overrides[get_service] = lambda: stub
    return TestClient(app)


def test_submit_success(client, stub):
    response = client.post("/api/submit", json={"transaction_hash": TX_HASH})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["transactionHash"] == TX_HASH
    assert body["data"]["appId"] == "demo1"
    assert body["data"]["processTxHash"] == "0x" + "bb" * 32
    assert body["data"]["metrics"]["estimatedReward"] == "0.001000 XFI"
    assert stub.calls == [("process_now", (TX_HASH,))]


def test_submit_accepts_camel_case_body(client, stub):
    response = client.post("/api/submit", json={"transactionHash": TX_HASH})

    assert response.status_code == 200


def test_submit_status(client):
    response = client.get("/api/submit", params={"transaction_hash": TX_HASH})

    assert response.status_code == 200
    assert response.json()["isProcessed"] is True
    assert response.json()["status"] == "processed"


@pytest.mark.parametrize(
    "error, status_code, retryable",
    [
        (AlreadyProcessedError(TX_HASH), 409, False),
        (DuplicateSubmissionError(TX_HASH, "pending"), 409, False),
        (NotFoundError(TX_HASH), 404, True),
        (UnconfirmedError(TX_HASH), 404, True),
        (DecodeError("Invalid app ID format in transaction data", TX_HASH), 400, False),
        (UnregisteredAppError("demo1"), 404, False),
        (NoCampaignError("demo1"), 400, False),
        (ProjectNotFoundError("demo1"), 404, False),
        (ValidationError("Invalid transaction hash format"), 400, False),
        (RetryableInfraError("processTransaction timed out", timeout=True), 504, True),
        (RetryableInfraError("processTransaction failed: HTTP 503"), 503, True),
        (LedgerRevertError("Contract reverted: paused"), 400, False),
        (InternalProcessingError(KeyError("gasUsed")), 500, False),
    ],
)
def test_submit_error_mapping(client, stub, error, status_code, retryable):
    stub.error = error

    response = client.post("/api/submit", json={"transaction_hash": TX_HASH})

    assert response.status_code == status_code
    body = response.json()
    assert body["success"] is False
    assert body["retryable"] is retryable
    assert body["errorCode"] == error.code


def test_retryable_messages_tell_caller_to_retry(client, stub):
    stub.error = RetryableInfraError("getTransaction failed: connection refused")

    body = client.post("/api/submit", json={"transaction_hash": TX_HASH}).json()

    assert "try again" in body["error"]


def test_terminal_errors_keep_their_message(client, stub):
    stub.error = UnregisteredAppError("demo1")

    body = client.post("/api/submit", json={"transaction_hash": TX_HASH}).json()

    assert body["error"] == 'App "demo1" is not registered on-chain'


def test_sdk_submit(client, stub):
    response = client.post(
        "/api/sdk/submit",
        json={"transaction_hash": TX_HASH, "app_id": "demo1", "user_address": "0xabc"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "pending"
    assert body["data"]["estimatedProcessingTime"] == "Next batch run"
    assert stub.calls == [("enqueue", (TX_HASH, "demo1", "0xabc"))]


def test_sdk_submit_duplicate(client, stub):
    stub.error = DuplicateSubmissionError(TX_HASH, "completed")

    response = client.post("/api/sdk/submit", json={"transaction_hash": TX_HASH})

    assert response.status_code == 409
    assert response.json()["details"]["status"] == "completed"


def test_sdk_status(client):
    response = client.get(f"/api/sdk/status/{TX_HASH}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["retryCount"] == 3
    assert data["errorMessage"] == "Transaction not found on blockchain"


def test_sdk_status_unknown(client, stub):
    stub.error = QueueEntryNotFoundError(TX_HASH)

    response = client.get(f"/api/sdk/status/{TX_HASH}")

    assert response.status_code == 404
    assert response.json()["error"] == "Transaction not found in SDK processing queue"


def test_batch_runs(client, stub):
    response = client.get("/api/sdk/batch-runs", params={"limit": 5})

    assert response.status_code == 200
    assert response.json()["data"][0]["status"] == "partial"
    assert stub.calls == [("list_batch_runs", (5,))]


def test_batch_runs_limit_validated(client):
    assert client.get("/api/sdk/batch-runs", params={"limit": 0}).status_code == 422


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["success"] is True
