"""
Database models for the SDK batch processor.

The queue and its mirrors are owned by the batch subsystem; the reward
contract remains the authority on whether a hash was processed.
"""

from .base import Base, BaseModel, TimestampMixin
from .batch_run import BatchRun, BatchRunStatus
from .pending_transaction import PendingTransaction, PendingStatus
from .transaction import TransactionRecord
from .unique_user import UniqueUserStat
from .campaign import Campaign, Project

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "BatchRun",
    "BatchRunStatus",
    "PendingTransaction",
    "PendingStatus",
    "TransactionRecord",
    "UniqueUserStat",
    "Campaign",
    "Project",
]
