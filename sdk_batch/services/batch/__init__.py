"""
Batch processing of the SDK transaction queue.
"""

from .core import BatchOrchestrator, RunStatistics, RecordOutcome, OutcomeKind

__all__ = [
    "BatchOrchestrator",
    "RunStatistics",
    "RecordOutcome",
    "OutcomeKind",
]
