"""
Ticket models for the helpdesk.

WHAT: SQLAlchemy models for tickets, threaded comments and the per-ticket
timeline.

WHY: Provides structured support request management with:
1. Priority-based SLA deadline
2. Status workflow (open → in_progress → resolved → closed)
3. Comment threading (replies stay on the same ticket)
4. Append-only timeline of every state change
5. Optimistic locking through a monotonic version column

HOW: Uses SQLAlchemy 2.0 with:
- Enums stored by value for status, priority, category and action
- Foreign keys cascading from ticket to comments and timeline
- Indexes on the columns list filters hit
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

from helpdesk.core.clock import utcnow
from helpdesk.models.base import Base, enum_type

if TYPE_CHECKING:
    from helpdesk.models.user import User


# ============================================================================
# Enums
# ============================================================================


class TicketStatus(str, Enum):
    """
    Ticket status values.

    WHY: Status drives SLA evaluation; RESOLVED and CLOSED tickets always
    count as having met their SLA.
    """

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value: "str | TicketStatus") -> "TicketStatus":
        """
        Parse client input into a status.

        WHY: Clients send both "in-progress" and "in_progress"; this is the
        single place that folds them together before storage.

        Raises:
            ValueError: If the value isn't a known status
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        return cls(normalized)

    @property
    def is_terminal(self) -> bool:
        return self in (TicketStatus.RESOLVED, TicketStatus.CLOSED)


class TicketPriority(str, Enum):
    """Ticket priority levels; each maps to an SLA window."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TicketCategory(str, Enum):
    """Ticket category for classification and reporting."""

    GENERAL = "general"
    TECHNICAL = "technical"
    BILLING = "billing"
    ACCOUNT = "account"
    OTHER = "other"


class TimelineAction(str, Enum):
    """Kinds of timeline entries."""

    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    ASSIGNED = "assigned"
    COMMENT_ADDED = "comment_added"
    DELETED = "deleted"


# ============================================================================
# Ticket Model
# ============================================================================


class Ticket(Base):
    """
    Support ticket.

    WHAT: Represents a support request or issue.

    WHY: Version starts at 1 and is bumped by exactly one on every
    successful update; writers must present the version they read.
    """

    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Ticket details
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Classification
    category: Mapped[TicketCategory] = mapped_column(
        enum_type(TicketCategory, "ticketcategory"),
        default=TicketCategory.GENERAL,
        nullable=False,
    )
    status: Mapped[TicketStatus] = mapped_column(
        enum_type(TicketStatus, "ticketstatus"),
        default=TicketStatus.OPEN,
        nullable=False,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        enum_type(TicketPriority, "ticketpriority"),
        default=TicketPriority.MEDIUM,
        nullable=False,
    )

    # SLA tracking
    sla_deadline: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Ownership
    created_by_id: Mapped[int] = mapped_column(
        "created_by", Integer, ForeignKey("users.id"), nullable=False
    )
    assigned_to_id: Mapped[Optional[int]] = mapped_column(
        "assigned_to", Integer, ForeignKey("users.id"), nullable=True
    )

    # Optimistic locking
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Relationships
    created_by: Mapped["User"] = relationship("User", foreign_keys=[created_by_id])
    assigned_to: Mapped[Optional["User"]] = relationship("User", foreign_keys=[assigned_to_id])
    comments: Mapped[List["Comment"]] = relationship(
        "Comment",
        back_populates="ticket",
        passive_deletes=True,
    )
    timeline: Mapped[List["TimelineEvent"]] = relationship(
        "TimelineEvent",
        back_populates="ticket",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_tickets_status", "status"),
        Index("ix_tickets_created_by", "created_by"),
        Index("ix_tickets_assigned_to", "assigned_to"),
        Index("ix_tickets_sla_deadline", "sla_deadline"),
    )

    def is_visible_to_owner(self, user_id: int) -> bool:
        """True if the user created the ticket or holds it."""
        return self.created_by_id == user_id or self.assigned_to_id == user_id

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, title={self.title!r}, status={self.status.value}, version={self.version})>"


# ============================================================================
# Comment Model
# ============================================================================


class Comment(Base):
    """
    Comment on a ticket.

    WHY: parent_id threads replies; it must point at a comment of the same
    ticket, which the API checks before insert. Comments are immutable and
    only disappear with their ticket.
    """

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # WHY: Nullable so a thread keeps its shape if the author is removed
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    ticket: Mapped["Ticket"] = relationship("Ticket", back_populates="comments")
    user: Mapped[Optional["User"]] = relationship("User")

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, ticket_id={self.ticket_id}, parent_id={self.parent_id})>"


# ============================================================================
# Timeline Model
# ============================================================================


class TimelineEvent(Base):
    """
    Append-only record of a ticket state change.

    WHAT: One row per create, field change, comment and deletion.

    WHY: Drives the ticket history view and doubles as the audit trail.
    old_value and new_value are text so every action fits one shape.
    """

    __tablename__ = "ticket_timeline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # WHY: Nullable so history survives if the acting user is removed
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[TimelineAction] = mapped_column(
        enum_type(TimelineAction, "timelineaction"), nullable=False
    )
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    ticket: Mapped["Ticket"] = relationship("Ticket", back_populates="timeline")
    user: Mapped[Optional["User"]] = relationship("User")

    def __repr__(self) -> str:
        return f"<TimelineEvent(id={self.id}, ticket_id={self.ticket_id}, action={self.action.value})>"
