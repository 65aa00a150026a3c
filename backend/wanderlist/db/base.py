"""
Base database models and mixins.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_uuid() -> str:
    """
    Generate a UUID string for primary keys.

    Returns:
        UUID4 value as a string
    """
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Models declare ``__tablename__`` explicitly.
    """


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.
    """
    created_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        index=True,
        doc="Timestamp when the record was created"
    )
    updated_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        doc="Timestamp when the record was last updated"
    )

