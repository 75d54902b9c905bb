"""
Declarative base, shared mixins and column types.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Wei-denominated amounts overflow BIGINT; 78 digits covers uint256.
WeiAmount = Numeric(78, 0)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all tables."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class BaseModel(Base):
    """Abstract model with dict serialization."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        return {column.name: getattr(self, column.key) for column in self.__table__.columns}


class TimestampMixin:
    """Row creation/update timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        comment="Row creation time"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        comment="Last row update time"
    )
