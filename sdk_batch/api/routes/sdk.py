"""
API routes for the SDK batch queue.
"""

from fastapi import APIRouter, Depends, Query
import structlog

from sdk_batch.api.dependencies import get_service
from sdk_batch.api.schemas.submit import (
    BatchRunListResponse,
    BatchRunView,
    QueuedTransaction,
    QueueStatusResponse,
    QueueStatusView,
    QueueSubmitRequest,
    QueueSubmitResponse,
)
from sdk_batch.services.submission_service import SubmissionService


logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/submit", response_model=QueueSubmitResponse)
async def submit_for_batch(
    request: QueueSubmitRequest,
    service: SubmissionService = Depends(get_service),
):
    """Queue a transaction hash for the next batch run."""
    logger.info(
        "API: Queue submission request",
        tx_hash=request.transaction_hash,
        app_id=request.app_id,
    )

    queued = await service.enqueue(
        request.transaction_hash,
        app_id=request.app_id,
        user_address=request.user_address,
    )

    return QueueSubmitResponse(
        message="Transaction submitted for batch processing",
        data=QueuedTransaction.model_validate(queued),
    )


@router.get("/status/{tx_hash}", response_model=QueueStatusResponse)
async def get_queue_status(
    tx_hash: str,
    service: SubmissionService = Depends(get_service),
):
    """Queue row status, retry counters and the owning batch run."""
    status = await service.get_queue_status(tx_hash)
    return QueueStatusResponse(data=QueueStatusView.model_validate(status))


@router.get("/batch-runs", response_model=BatchRunListResponse)
async def list_batch_runs(
    limit: int = Query(default=20, ge=1, le=200, description="Number of runs to return"),
    service: SubmissionService = Depends(get_service),
):
    """Most recent batch runs first."""
    runs = await service.list_batch_runs(limit)
    return BatchRunListResponse(data=[BatchRunView.model_validate(run) for run in runs])
