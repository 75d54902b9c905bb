"""
Ledger mutation for processed transactions.
"""

import structlog

from sdk_batch.services.ledger_client import LedgerClient, LedgerConfirmation
from ..core.types import TransactionMetrics


logger = structlog.get_logger(__name__)


class LedgerMutator:
    """
    Sends the verifier-signed ``processTransaction`` call.

    The only step that changes shared external state. Callers must have
    claimed the queue row and passed the processed-flag check first.
    """

    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger
        self.logger = logger.bind(service="ledger_mutator")

    async def submit(
        self,
        app_id: str,
        tx_hash: str,
        metrics: TransactionMetrics,
    ) -> LedgerConfirmation:
        """Record the transaction on the ledger and wait for confirmation."""
        self.logger.info(
            "Processing transaction on-chain",
            tx_hash=tx_hash,
            app_id=app_id,
            gas_used=metrics.gas_used,
            gas_price=metrics.gas_price,
        )

        try:
            confirmation = await self.ledger.process_transaction(
                app_id,
                tx_hash,
                metrics.gas_used,
                metrics.gas_price,
                metrics.transaction_value,
            )
        except Exception as e:
            self.logger.warning(
                "Ledger mutation failed",
                tx_hash=tx_hash,
                app_id=app_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        self.logger.info(
            "On-chain confirmed",
            tx_hash=tx_hash,
            process_tx_hash=confirmation.process_tx_hash,
            block=confirmation.block_number,
        )
        return confirmation
