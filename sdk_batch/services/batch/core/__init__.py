"""
Core batch orchestrator components.
"""

from .types import (
    OrchestratorStatus,
    OutcomeKind,
    RecordOutcome,
    RunStatistics,
    TransactionMetrics,
)
from .processor import BatchOrchestrator

__all__ = [
    "OrchestratorStatus",
    "OutcomeKind",
    "RecordOutcome",
    "RunStatistics",
    "TransactionMetrics",
    "BatchOrchestrator",
]
