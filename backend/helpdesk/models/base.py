"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps, ID) in a base class
ensures consistency across all models and reduces code duplication.
"""

from sqlalchemy import Column, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase

from helpdesk.core.clock import utcnow


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    WHY: DeclarativeBase provides the foundation for SQLAlchemy 2.0 models
    with improved type hints and async support.
    """

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    WHY: Stored as naive UTC (see helpdesk.core.clock) so SLA arithmetic
    works the same on SQLite and PostgreSQL.
    """

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class PrimaryKeyMixin:
    """Mixin to add an integer primary key to models."""

    id = Column(Integer, primary_key=True, index=True)


def enum_type(enum_class: type, name: str) -> SQLEnum:
    """
    Column type storing a str Enum by value.

    WHY: native_enum=False keeps the schema portable between SQLite and
    PostgreSQL, and values_callable stores "in_progress" rather than the
    member name, so raw SQL and timeline rows read the same as the API.
    """
    return SQLEnum(
        enum_class,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )
