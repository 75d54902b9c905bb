"""
Scheduled batch runs.
"""

from .batch_scheduler import BatchScheduler, get_batch_scheduler, shutdown_batch_scheduler

__all__ = [
    "BatchScheduler",
    "get_batch_scheduler",
    "shutdown_batch_scheduler",
]
