"""
Database operations for batch processing.
"""

from .queue_repository import QueueRepository
from .batch_run_repository import BatchRunRepository
from .persistence_writer import PersistenceWriter

__all__ = [
    "QueueRepository",
    "BatchRunRepository",
    "PersistenceWriter",
]
