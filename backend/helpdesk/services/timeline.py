"""
Ticket timeline service.

WHAT: Service layer for appending entries to a ticket's timeline.

WHY: The timeline is both the history view and the audit trail of a
ticket. Entries are written in the same transaction as the change they
describe, so a rolled-back change leaves no entry behind. Failures are NOT
swallowed: a change that can't be recorded must not commit.

HOW: Wraps TimelineDAO with one method per event kind and mirrors every
entry to the application log with the request id for correlation.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.dao.ticket import TimelineDAO
from helpdesk.middleware.request_context import get_request_context
from helpdesk.models.ticket import TimelineAction, TimelineEvent


logger = logging.getLogger(__name__)

UNASSIGNED = "unassigned"


def _as_text(value: Any) -> Optional[str]:
    """Timeline values are text; enums render as their value."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


class TimelineService:
    """
    Service for writing timeline events.

    Example:
        timeline = TimelineService(db)
        await timeline.log_created(ticket.id, user.id)
        await timeline.log_change(
            ticket.id, user.id, TimelineAction.STATUS_CHANGED, "open", "resolved"
        )
    """

    def __init__(self, session: AsyncSession):
        """
        Args:
            session: Async database session shared with the change being logged
        """
        self.dao = TimelineDAO(session)

    async def log_event(
        self,
        ticket_id: int,
        action: TimelineAction,
        user_id: Optional[int] = None,
        old_value: Any = None,
        new_value: Any = None,
    ) -> TimelineEvent:
        """
        Append one timeline entry.

        Args:
            ticket_id: Ticket the event belongs to
            action: Kind of event
            user_id: Acting user
            old_value: Previous value (rendered as text)
            new_value: New value (rendered as text)

        Returns:
            Created TimelineEvent
        """
        event = await self.dao.create(
            ticket_id=ticket_id,
            action=action,
            user_id=user_id,
            old_value=_as_text(old_value),
            new_value=_as_text(new_value),
        )

        ctx = get_request_context()
        logger.info(
            f"Ticket {ticket_id} {action.value} by user {user_id}",
            extra={
                "request_id": ctx.request_id if ctx else None,
                "ticket_id": ticket_id,
                "action": action.value,
            },
        )
        return event

    async def log_created(self, ticket_id: int, user_id: int) -> TimelineEvent:
        return await self.log_event(ticket_id, TimelineAction.CREATED, user_id)

    async def log_change(
        self,
        ticket_id: int,
        user_id: int,
        action: TimelineAction,
        old_value: Any,
        new_value: Any,
    ) -> TimelineEvent:
        """Record a field change as old → new."""
        return await self.log_event(ticket_id, action, user_id, old_value, new_value)

    async def log_assignment(
        self,
        ticket_id: int,
        user_id: int,
        old_assignee: Optional[int],
        new_assignee: Optional[int],
    ) -> TimelineEvent:
        """Record an assignee change; None renders as "unassigned"."""
        return await self.log_event(
            ticket_id,
            TimelineAction.ASSIGNED,
            user_id,
            old_assignee if old_assignee is not None else UNASSIGNED,
            new_assignee if new_assignee is not None else UNASSIGNED,
        )

    async def log_comment_added(self, ticket_id: int, user_id: int) -> TimelineEvent:
        return await self.log_event(ticket_id, TimelineAction.COMMENT_ADDED, user_id)

    async def log_deleted(self, ticket_id: int, user_id: int) -> TimelineEvent:
        return await self.log_event(
            ticket_id,
            TimelineAction.DELETED,
            user_id,
            new_value="Ticket deleted by admin",
        )
