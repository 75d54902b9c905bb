"""
Schemas for transaction submission and batch queue endpoints.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .common import CamelModel, SuccessResponse


class SubmitTransactionRequest(CamelModel):
    """Request body for synchronous processing."""
    transaction_hash: Optional[str] = Field(default=None, description="0x-prefixed 32-byte hash")


class QueueSubmitRequest(CamelModel):
    """Request body for batch queue intake."""
    transaction_hash: Optional[str] = None
    app_id: Optional[str] = None
    user_address: Optional[str] = None


class TransactionMetricsView(CamelModel):
    gas_used: str
    gas_price: str
    fee_generated: str
    transaction_value: str
    estimated_reward: str


class UserTrackingView(CamelModel):
    user_address: str
    is_new_unique_user: bool


class CampaignStatusView(CamelModel):
    total_registered_campaigns: int
    active_campaigns: int
    ended_campaigns: int
    active_campaign_ids: List[int]
    ended_campaign_ids: List[int]


class CampaignMetricsView(CamelModel):
    """Ledger-side metrics for one campaign the app is registered in."""
    campaign_id: int
    total_fees: str
    total_volume: str
    tx_count: int
    estimated_reward: str
    is_campaign_active: bool
    campaign_ended: bool
    campaign_start_date: datetime
    campaign_end_date: datetime


class SubmitResult(CamelModel):
    """Outcome of a synchronous submission.

    A hash already mirrored locally only carries ``already_processed`` and
    the stored ``transaction``.
    """
    already_processed: bool = False
    transaction: Optional[Dict[str, Any]] = None
    transaction_hash: Optional[str] = None
    app_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    process_tx_hash: Optional[str] = None
    user_tracking: Optional[UserTrackingView] = None
    metrics: Optional[TransactionMetricsView] = None
    campaign_status: Optional[CampaignStatusView] = None
    campaign_metrics: List[CampaignMetricsView] = Field(default_factory=list)


class SubmitTransactionResponse(SuccessResponse):
    data: SubmitResult


class ProcessedStatusResponse(SuccessResponse):
    """Ledger processed flag for a hash."""
    transaction_hash: str
    is_processed: bool
    status: str


class QueuedTransaction(CamelModel):
    id: int
    transaction_hash: str
    app_id: str
    user_address: Optional[str] = None
    status: str
    estimated_processing_time: str
    submitted_at: Optional[datetime] = None


class QueueSubmitResponse(SuccessResponse):
    data: QueuedTransaction


class BatchRunView(CamelModel):
    id: int
    run_date: Optional[date] = None
    status: str
    triggered_by: Optional[str] = None
    total_transactions: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    skipped_transactions: int = 0
    total_gas_used: str = "0"
    total_fees_generated: str = "0"
    total_rewards_calculated: str = "0"
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_summary: Optional[str] = None


class QueueStatusView(CamelModel):
    transaction_hash: str
    app_id: str
    user_address: Optional[str] = None
    status: str
    submitted_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    batch_id: Optional[int] = None
    retry_count: int
    max_retries: int
    error_message: Optional[str] = None
    process_tx_hash: Optional[str] = None
    batch_info: Optional[BatchRunView] = None


class QueueStatusResponse(SuccessResponse):
    data: QueueStatusView


class BatchRunListResponse(SuccessResponse):
    data: List[BatchRunView]
