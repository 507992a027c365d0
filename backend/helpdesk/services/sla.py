"""
SLA (Service Level Agreement) policy for tickets.

WHAT: Pure functions mapping priority to a resolution deadline and a
deadline to a status label.

WHY: SLA math is needed at write time (deadline is stored) and at read time
(status and countdown are derived, never stored). Keeping it free of I/O
makes it trivially testable and reusable from the DAO, the API and
analytics.

HOW: The deadline is always measured from the ticket's creation time, so a
priority change recomputes it from created_at rather than from "now".
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from helpdesk.core.clock import utcnow
from helpdesk.models.ticket import TicketPriority, TicketStatus


# Resolution window in hours per priority
SLA_HOURS = {
    TicketPriority.CRITICAL: 4,
    TicketPriority.HIGH: 24,
    TicketPriority.MEDIUM: 48,
    TicketPriority.LOW: 72,
}

DEFAULT_SLA_HOURS = SLA_HOURS[TicketPriority.MEDIUM]

# Remaining time at or below which an open ticket is flagged
AT_RISK_THRESHOLD = timedelta(hours=4)


class SLAStatus(str, Enum):
    """Derived SLA state of a ticket."""

    MET = "met"
    BREACHED = "breached"
    AT_RISK = "at_risk"
    ON_TRACK = "on_track"


def sla_hours(priority) -> int:
    """
    Hours allowed for a priority.

    Unknown priorities fall back to the medium window.
    """
    try:
        return SLA_HOURS[TicketPriority(priority)]
    except ValueError:
        return DEFAULT_SLA_HOURS


def calculate_deadline(priority, created_at: datetime) -> datetime:
    """
    Compute the SLA deadline.

    Args:
        priority: TicketPriority or its string value
        created_at: Ticket creation time

    Returns:
        created_at plus the priority's window
    """
    return created_at + timedelta(hours=sla_hours(priority))


def get_sla_status(
    deadline: datetime,
    status,
    now: Optional[datetime] = None,
) -> SLAStatus:
    """
    Derive the SLA state for a ticket.

    WHY: Resolved and closed tickets count as met even when the deadline
    passed before they were resolved; only open work can breach.

    Args:
        deadline: Stored SLA deadline
        status: Current ticket status (enum or raw string)
        now: Evaluation time, defaults to the current UTC time

    Returns:
        SLAStatus
    """
    if TicketStatus.parse(status).is_terminal:
        return SLAStatus.MET

    now = now or utcnow()
    remaining = deadline - now

    if remaining < timedelta(0):
        return SLAStatus.BREACHED
    if remaining <= AT_RISK_THRESHOLD:
        return SLAStatus.AT_RISK
    return SLAStatus.ON_TRACK


def format_time_remaining(deadline: datetime, now: Optional[datetime] = None) -> str:
    """
    Human readable countdown to the deadline.

    Display only; uses the largest whole unit that applies.

    Examples:
        "Overdue by 3 hours", "2 days remaining", "5 hours remaining",
        "42 minutes remaining"
    """
    now = now or utcnow()
    remaining = deadline - now

    if remaining < timedelta(0):
        overdue_hours = int(-remaining.total_seconds() // 3600)
        return f"Overdue by {overdue_hours} hours"

    seconds = int(remaining.total_seconds())
    days = seconds // 86400
    if days >= 1:
        return f"{days} days remaining"

    hours = seconds // 3600
    if hours >= 1:
        return f"{hours} hours remaining"

    return f"{seconds // 60} minutes remaining"
