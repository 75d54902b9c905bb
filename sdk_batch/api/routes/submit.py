"""
API routes for synchronous transaction submission.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
import structlog

from sdk_batch.api.dependencies import get_service
from sdk_batch.api.schemas.submit import (
    ProcessedStatusResponse,
    SubmitResult,
    SubmitTransactionRequest,
    SubmitTransactionResponse,
)
from sdk_batch.services.submission_service import SubmissionService


logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("", response_model=SubmitTransactionResponse)
async def submit_transaction(
    request: SubmitTransactionRequest,
    service: SubmissionService = Depends(get_service),
):
    """
    Verify a transaction and record it on the ledger immediately.

    Errors are mapped to HTTP statuses by the application's exception
    handlers; retryable conditions carry ``retryable: true``.
    """
    logger.info("API: Submit transaction request", tx_hash=request.transaction_hash)

    result = await service.process_now(request.transaction_hash)
    message = result.pop("message")

    return SubmitTransactionResponse(
        message=message,
        data=SubmitResult.model_validate(result),
    )


@router.get("", response_model=ProcessedStatusResponse)
async def get_submission_status(
    transaction_hash: Optional[str] = Query(default=None, description="Transaction hash"),
    service: SubmissionService = Depends(get_service),
):
    """Whether the ledger has already recorded the hash."""
    status = await service.get_processed_status(transaction_hash)
    return ProcessedStatusResponse(**status)
