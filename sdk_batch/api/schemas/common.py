"""
Common Pydantic schemas for API responses.
Provides base classes shared by all routes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Serializes field names in camelCase and accepts either form on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class APIResponse(CamelModel):
    """Base API response model."""
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class SuccessResponse(APIResponse):
    """Success response model."""
    data: Optional[Any] = None


class ErrorResponse(APIResponse):
    """Error response model."""
    success: bool = False
    error: str
    error_code: Optional[str] = None
    retryable: bool = False
    details: Optional[Dict[str, Any]] = None


class HealthCheckResponse(CamelModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = "0.1.0"
    services: Dict[str, str] = Field(
        default_factory=lambda: {
            "database": "healthy",
            "ledger": "healthy",
        }
    )
