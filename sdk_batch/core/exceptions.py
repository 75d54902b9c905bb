"""
Custom exception classes for the application.
Provides structured error handling across all modules.

Processing errors carry an ``ErrorKind`` tag and a ``retryable`` flag that
are fixed by the call site which detected the failure. Downstream code
decides queue transitions from those attributes only.
"""

from enum import Enum
from typing import Any, Optional, Dict


class ErrorKind(str, Enum):
    """Classification of a per-record processing failure."""
    ALREADY_PROCESSED = "already_processed"
    NOT_FOUND = "not_found"
    UNCONFIRMED = "unconfirmed"
    DECODE = "decode"
    UNREGISTERED_APP = "unregistered_app"
    NO_CAMPAIGN = "no_campaign"
    PROJECT_NOT_FOUND = "project_not_found"
    RETRYABLE_INFRA = "retryable_infra"
    LEDGER_REVERT = "ledger_revert"
    INTERNAL = "internal"


class SdkBatchException(Exception):
    """Base exception class for the SDK batch processor."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(SdkBatchException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseError(SdkBatchException):
    """Raised when there's a database error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class LedgerError(SdkBatchException):
    """Raised when the ledger client itself is unusable (bad address, key, endpoint)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "LEDGER_ERROR", details)


class BatchRunError(SdkBatchException):
    """Raised when a batch run aborts (queue fetch or run bookkeeping failed)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "BATCH_RUN_ERROR", details)


class ValidationError(SdkBatchException):
    """Raised when request data validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class DuplicateSubmissionError(SdkBatchException):
    """Raised when a hash is already present in the processing queue."""

    def __init__(self, tx_hash: str, status: str):
        super().__init__(
            "Transaction already submitted for batch processing",
            "DUPLICATE_SUBMISSION",
            {"tx_hash": tx_hash, "status": status}
        )


class QueueEntryNotFoundError(SdkBatchException):
    """Raised when a hash is not present in the processing queue."""

    def __init__(self, tx_hash: str):
        super().__init__(
            "Transaction not found in SDK processing queue",
            "QUEUE_ENTRY_NOT_FOUND",
            {"tx_hash": tx_hash}
        )


# Per-record processing errors

class ProcessingError(SdkBatchException):
    """A failure while processing one transaction hash."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, self.kind.name, details)


class AlreadyProcessedError(ProcessingError):
    """The ledger already recorded this hash. Resolves to a skip, never a failure."""

    kind = ErrorKind.ALREADY_PROCESSED

    def __init__(self, tx_hash: str, message: str = "Already processed on-chain"):
        super().__init__(message, {"tx_hash": tx_hash})


class NotFoundError(ProcessingError):
    """The network does not know the transaction hash (yet)."""

    kind = ErrorKind.NOT_FOUND
    retryable = True

    def __init__(self, tx_hash: str):
        super().__init__("Transaction not found on blockchain", {"tx_hash": tx_hash})


class UnconfirmedError(ProcessingError):
    """The transaction exists but has no receipt."""

    kind = ErrorKind.UNCONFIRMED
    retryable = True

    def __init__(self, tx_hash: str):
        super().__init__(
            "Transaction receipt not found. Transaction may not be confirmed yet.",
            {"tx_hash": tx_hash}
        )


class DecodeError(ProcessingError):
    """The transaction payload does not carry a readable application id."""

    kind = ErrorKind.DECODE

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message, {"tx_hash": tx_hash})


class UnregisteredAppError(ProcessingError):
    """The application id is not registered on the ledger.

    Retried up to the budget: "not yet registered" and "never registered"
    look the same from here.
    """

    kind = ErrorKind.UNREGISTERED_APP
    retryable = True

    def __init__(self, app_id: str):
        super().__init__(f'App "{app_id}" is not registered on-chain', {"app_id": app_id})


class NoCampaignError(ProcessingError):
    """The application is registered but enrolled in no campaign."""

    kind = ErrorKind.NO_CAMPAIGN
    retryable = True

    def __init__(self, app_id: str):
        super().__init__("App is not registered for any active campaigns", {"app_id": app_id})


class ProjectNotFoundError(ProcessingError):
    """No project row exists for the application id."""

    kind = ErrorKind.PROJECT_NOT_FOUND

    def __init__(self, app_id: str):
        super().__init__(f"Project not found for app_id: {app_id}", {"app_id": app_id})


class RetryableInfraError(ProcessingError):
    """Network, timeout, rate-limit, gateway or nonce-contention failure."""

    kind = ErrorKind.RETRYABLE_INFRA
    retryable = True

    def __init__(self, message: str, timeout: bool = False, details: Optional[Dict[str, Any]] = None):
        self.timeout = timeout
        super().__init__(message, details)


class LedgerRevertError(ProcessingError):
    """The contract rejected the call."""

    kind = ErrorKind.LEDGER_REVERT

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InternalProcessingError(ProcessingError):
    """Wraps an untagged exception that escaped a record's processing."""

    kind = ErrorKind.INTERNAL

    def __init__(self, error: Exception):
        super().__init__(str(error) or type(error).__name__, {"error_type": type(error).__name__})
