"""
Test how the ledger client tags RPC and library failures.
"""

import asyncio

import aiohttp
import pytest
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from sdk_batch.core.exceptions import (
    AlreadyProcessedError,
    LedgerError,
    LedgerRevertError,
    RetryableInfraError,
)
from sdk_batch.services.ledger_client import LedgerClient, to_bytes32


TX_HASH = "0x" + "aa" * 32

CONFIG = {
    "endpoint": "http://127.0.0.1:8545",
    "contract_address": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
    "timeout": 5,
    "confirmation_timeout": 10,
}


@pytest.fixture
def client():
    return LedgerClient(config=CONFIG, private_key="0x" + "11" * 32)


def tagged(client, error, tx_hash=TX_HASH):
    """The exception ``_raise_tagged`` raises, or None when it leaves the error alone."""
    try:
        client._raise_tagged(error, "processTransaction", tx_hash)
    except Exception as e:
        return e
    return None


def test_duplicate_revert_is_already_processed(client):
    error = tagged(client, ContractLogicError("execution reverted: Transaction already processed"))

    assert isinstance(error, AlreadyProcessedError)
    assert error.details["tx_hash"] == TX_HASH


def test_other_revert_is_ledger_revert(client):
    error = tagged(client, ContractLogicError("execution reverted: caller is not a verifier"))

    assert isinstance(error, LedgerRevertError)
    assert error.retryable is False


@pytest.mark.parametrize("exc", [TimeExhausted("not mined"), asyncio.TimeoutError()])
def test_timeouts_are_retryable(client, exc):
    error = tagged(client, exc)

    assert isinstance(error, RetryableInfraError)
    assert error.timeout is True
    assert error.retryable is True


@pytest.mark.parametrize("status, timeout", [(429, False), (502, False), (503, False), (504, True)])
def test_gateway_statuses_are_retryable(client, status, timeout):
    error = tagged(client, aiohttp.ClientResponseError(None, (), status=status))

    assert isinstance(error, RetryableInfraError)
    assert error.timeout is timeout
    assert error.details["http_status"] == status


def test_other_http_status_is_left_alone(client):
    assert tagged(client, aiohttp.ClientResponseError(None, (), status=400)) is None


def test_connection_errors_are_retryable(client):
    error = tagged(client, aiohttp.ClientConnectionError("connection refused"))

    assert isinstance(error, RetryableInfraError)
    assert error.timeout is False


@pytest.mark.parametrize(
    "message",
    [
        "nonce too low",
        "replacement transaction underpriced",
        "rate limit exceeded",
        "header not found",
        "service temporarily unavailable",
        "bad gateway",
        "network error",
        "upstream connection reset",
        "connect ECONNREFUSED 127.0.0.1:8545",
        "request ETIMEDOUT",
    ],
)
def test_contention_rpc_errors_are_retryable(client, message):
    assert isinstance(tagged(client, Web3RPCError(message)), RetryableInfraError)


def test_etimedout_rpc_error_is_a_timeout(client):
    assert tagged(client, Web3RPCError("request ETIMEDOUT")).timeout is True
    assert tagged(client, Web3RPCError("bad gateway")).timeout is False


def test_rpc_revert_is_ledger_revert(client):
    assert isinstance(tagged(client, Web3RPCError("execution reverted")), LedgerRevertError)


def test_unknown_errors_are_left_alone(client):
    assert tagged(client, KeyError("gasUsed")) is None
    assert tagged(client, LedgerRevertError("already tagged")) is None


def test_to_bytes32():
    assert to_bytes32(TX_HASH) == b"\xaa" * 32

    with pytest.raises(ValueError):
        to_bytes32("0x1234")


@pytest.mark.asyncio
async def test_reads_require_initialize(client):
    with pytest.raises(LedgerError):
        await client.is_processed(TX_HASH)


@pytest.mark.asyncio
async def test_initialize_rejects_bad_contract_address():
    client = LedgerClient(config={**CONFIG, "contract_address": "not-an-address"}, private_key="0x" + "11" * 32)

    with pytest.raises(LedgerError):
        await client.initialize()


@pytest.mark.asyncio
async def test_initialize_rejects_bad_key():
    client = LedgerClient(config=CONFIG, private_key="0x1234")

    with pytest.raises(LedgerError):
        await client.initialize()
