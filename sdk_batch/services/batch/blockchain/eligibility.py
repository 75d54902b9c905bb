"""
Eligibility checks: application id decoding, registration and campaigns.
"""

from typing import List, Optional
import structlog

from sdk_batch.core.exceptions import DecodeError, NoCampaignError, UnregisteredAppError
from sdk_batch.services.ledger_client import LedgerClient


logger = structlog.get_logger(__name__)


def decode_app_id(input_data: bytes, tx_hash: Optional[str] = None) -> str:
    """Decode the application id carried as UTF-8 text in the transaction payload."""
    if not input_data:
        raise DecodeError("Transaction has no data payload", tx_hash)

    try:
        app_id = bytes(input_data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid app ID format in transaction data: {e.reason}", tx_hash) from e

    # Padding or control bytes mean the payload is not a plain text id
    app_id = app_id.strip("\x00").strip()
    if not app_id or not app_id.isprintable():
        raise DecodeError("Invalid app ID format in transaction data", tx_hash)

    return app_id


class EligibilityValidator:
    """Registration checks, cheapest first."""

    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger
        self.logger = logger.bind(service="eligibility_validator")

    async def validate(self, app_id: str) -> List[int]:
        """
        Confirm the app is registered and enrolled in at least one campaign.

        Returns:
            The campaign ids the app is registered for
        """
        if not await self.ledger.is_app_registered(app_id):
            raise UnregisteredAppError(app_id)

        campaign_ids = await self.ledger.get_app_campaigns(app_id)
        if not campaign_ids:
            raise NoCampaignError(app_id)

        self.logger.debug("App eligible", app_id=app_id, campaigns=campaign_ids)
        return campaign_ids
