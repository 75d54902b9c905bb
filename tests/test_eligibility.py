"""
Test application id decoding and eligibility checks.
"""

import pytest

from sdk_batch.core.exceptions import (
    AlreadyProcessedError,
    DecodeError,
    ErrorKind,
    NoCampaignError,
    NotFoundError,
    UnconfirmedError,
    UnregisteredAppError,
)
from sdk_batch.services.batch.blockchain import ChainInspector, EligibilityValidator, decode_app_id


def test_decode_plain_app_id():
    assert decode_app_id(b"demo1") == "demo1"


def test_decode_strips_padding():
    assert decode_app_id(b"demo1\x00\x00\x00") == "demo1"
    assert decode_app_id(b"  demo1\n") == "demo1"


@pytest.mark.parametrize("payload", [b"", b"\x00\x00", b"\xff\xfe", b"\x01\x02abc"])
def test_decode_rejects_bad_payloads(payload):
    with pytest.raises(DecodeError) as exc_info:
        decode_app_id(payload, "0x" + "aa" * 32)

    assert exc_info.value.kind is ErrorKind.DECODE
    assert exc_info.value.retryable is False
    assert exc_info.value.details["tx_hash"] == "0x" + "aa" * 32


@pytest.mark.asyncio
async def test_validate_returns_campaigns(ledger):
    ledger.apps["demo1"] = [3, 9]

    assert await EligibilityValidator(ledger).validate("demo1") == [3, 9]


@pytest.mark.asyncio
async def test_validate_unregistered_app(ledger):
    with pytest.raises(UnregisteredAppError) as exc_info:
        await EligibilityValidator(ledger).validate("nope")

    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_validate_app_without_campaigns(ledger):
    ledger.apps["lonely"] = []

    with pytest.raises(NoCampaignError):
        await EligibilityValidator(ledger).validate("lonely")


@pytest.mark.asyncio
async def test_inspector_checks_in_order(ledger):
    inspector = ChainInspector(ledger)
    tx_hash = "0x" + "bb" * 32

    with pytest.raises(NotFoundError):
        await inspector.inspect(tx_hash)

    ledger.add_transaction(tx_hash, b"demo1", with_receipt=False)
    with pytest.raises(UnconfirmedError):
        await inspector.inspect(tx_hash)

    ledger.processed.add(tx_hash)
    with pytest.raises(AlreadyProcessedError):
        await inspector.inspect(tx_hash)
