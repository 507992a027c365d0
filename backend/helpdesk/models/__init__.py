"""
Database models package.

WHY: Centralizing model imports ensures every table is registered on
Base.metadata before create_all runs, and makes models easy to import.
"""

from helpdesk.models.base import Base, TimestampMixin, PrimaryKeyMixin
from helpdesk.models.user import User, UserRole
from helpdesk.models.ticket import (
    Ticket,
    TicketStatus,
    TicketPriority,
    TicketCategory,
    Comment,
    TimelineEvent,
    TimelineAction,
)
from helpdesk.models.idempotency import IdempotencyRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "User",
    "UserRole",
    "Ticket",
    "TicketStatus",
    "TicketPriority",
    "TicketCategory",
    "Comment",
    "TimelineEvent",
    "TimelineAction",
    "IdempotencyRecord",
]
