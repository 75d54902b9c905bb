"""
Chain inspection for queued transaction hashes.
"""

from typing import Tuple
import structlog

from sdk_batch.core.exceptions import AlreadyProcessedError
from sdk_batch.services.ledger_client import LedgerClient, ChainTransaction, ChainReceipt


logger = structlog.get_logger(__name__)


class ChainInspector:
    """
    Read-only ledger checks, always in this order:

    1. processed flag (``AlreadyProcessedError``)
    2. raw transaction (``NotFoundError``)
    3. receipt (``UnconfirmedError``)
    """

    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger
        self.logger = logger.bind(service="chain_inspector")

    async def ensure_not_processed(self, tx_hash: str) -> None:
        """Raise ``AlreadyProcessedError`` if the ledger already recorded the hash."""
        if await self.ledger.is_processed(tx_hash):
            self.logger.info("Transaction already processed on-chain", tx_hash=tx_hash)
            raise AlreadyProcessedError(tx_hash)

    async def fetch(self, tx_hash: str) -> Tuple[ChainTransaction, ChainReceipt]:
        """Fetch the transaction and its receipt."""
        transaction = await self.ledger.get_transaction(tx_hash)
        receipt = await self.ledger.get_receipt(tx_hash)

        self.logger.debug(
            "Transaction found on chain",
            tx_hash=tx_hash,
            block=receipt.block_number,
            gas_used=receipt.gas_used,
        )
        return transaction, receipt

    async def inspect(self, tx_hash: str) -> Tuple[ChainTransaction, ChainReceipt]:
        """Run all three checks."""
        await self.ensure_not_processed(tx_hash)
        return await self.fetch(tx_hash)
