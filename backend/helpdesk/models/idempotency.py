"""
Idempotency record model.

WHAT: Stores the response produced for a client-supplied Idempotency-Key.

WHY: Retried POSTs (flaky networks, double clicks) must not create a second
ticket or comment. The composite primary key (key, user_id) makes a second
insert for the same pair fail at the database, so at most one creation can
ever commit.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.core.clock import utcnow
from helpdesk.models.base import Base


class IdempotencyRecord(Base):
    """Previously produced response for (key, user)."""

    __tablename__ = "idempotency_keys"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    body: Mapped[Any] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<IdempotencyRecord(key={self.key!r}, user_id={self.user_id}, status={self.status_code})>"
