"""
Maps service exceptions to HTTP error responses.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

import structlog

from sdk_batch.api.schemas.common import ErrorResponse
from sdk_batch.core.exceptions import (
    ConfigurationError,
    DuplicateSubmissionError,
    ErrorKind,
    ProcessingError,
    QueueEntryNotFoundError,
    RetryableInfraError,
    SdkBatchException,
    ValidationError,
)


logger = structlog.get_logger(__name__)


KIND_STATUS = {
    ErrorKind.ALREADY_PROCESSED: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNCONFIRMED: status.HTTP_404_NOT_FOUND,
    ErrorKind.DECODE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNREGISTERED_APP: status.HTTP_404_NOT_FOUND,
    ErrorKind.NO_CAMPAIGN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PROJECT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.RETRYABLE_INFRA: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.LEDGER_REVERT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Eligibility errors are retried by the batch run but are final for a caller
CLIENT_RETRYABLE_KINDS = {
    ErrorKind.NOT_FOUND,
    ErrorKind.UNCONFIRMED,
    ErrorKind.RETRYABLE_INFRA,
}

ALREADY_PROCESSED_MESSAGE = "Transaction already processed on-chain"
UNAVAILABLE_MESSAGE = "RPC node is temporarily unavailable. Please try again in a few moments."
TIMEOUT_MESSAGE = "Request timed out. The network may be congested. Please try again."


def processing_error_status(exc: ProcessingError) -> int:
    if isinstance(exc, RetryableInfraError) and exc.timeout:
        return status.HTTP_504_GATEWAY_TIMEOUT
    return KIND_STATUS[exc.kind]


def _error_response(status_code: int, exc: SdkBatchException, message: str, retryable: bool = False) -> JSONResponse:
    body = ErrorResponse(
        error=message,
        error_code=exc.code,
        retryable=retryable,
        details=exc.details or None,
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, by_alias=True, exclude_none=True),
    )


async def processing_error_handler(request: Request, exc: ProcessingError) -> JSONResponse:
    status_code = processing_error_status(exc)
    retryable = exc.kind in CLIENT_RETRYABLE_KINDS

    if exc.kind is ErrorKind.ALREADY_PROCESSED:
        message = ALREADY_PROCESSED_MESSAGE
    elif status_code == status.HTTP_504_GATEWAY_TIMEOUT:
        message = TIMEOUT_MESSAGE
    elif exc.kind is ErrorKind.RETRYABLE_INFRA:
        message = UNAVAILABLE_MESSAGE
    elif exc.kind is ErrorKind.INTERNAL:
        message = "Internal server error"
    else:
        message = exc.message

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request rejected",
        path=request.url.path,
        error_kind=exc.kind.value,
        status_code=status_code,
        error=exc.message,
    )
    return _error_response(status_code, exc, message, retryable)


async def service_error_handler(request: Request, exc: SdkBatchException) -> JSONResponse:
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, DuplicateSubmissionError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, QueueEntryNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if status_code >= 500:
        logger.error("Service error", path=request.url.path, code=exc.code, error=exc.message)
        message = (
            "Server configuration error"
            if isinstance(exc, ConfigurationError)
            else "Internal server error"
        )
        return _error_response(status_code, exc, message)

    logger.warning("Request rejected", path=request.url.path, code=exc.code, error=exc.message)
    return _error_response(status_code, exc, exc.message)


def add_exception_handlers(app: FastAPI) -> None:
    """Register handlers; processing errors take precedence over the base class."""
    app.add_exception_handler(ProcessingError, processing_error_handler)
    app.add_exception_handler(SdkBatchException, service_error_handler)
