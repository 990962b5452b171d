"""SQLAlchemy declarative base and column helpers shared by all ORM models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models in screening_db."""

    pass


def uuid_pk() -> Mapped[uuid.UUID]:
    """UUID primary key generated client-side so ids exist before flush."""
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def created_at_column() -> Mapped[datetime]:
    return mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
