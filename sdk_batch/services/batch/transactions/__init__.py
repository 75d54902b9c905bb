"""
Ledger mutations for batch processing.
"""

from .ledger_mutator import LedgerMutator

__all__ = [
    "LedgerMutator",
]
