"""
API dependencies for FastAPI endpoints.
"""

from sdk_batch.services.submission_service import SubmissionService, get_submission_service


async def get_service() -> SubmissionService:
    """Submission service dependency; tests override it with a fake-ledger instance."""
    return await get_submission_service()
