"""
Ticket Data Access Object.

WHAT: DAOs for tickets, comments and timeline events.

WHY: Encapsulates all ticket database operations with:
1. Role-scoped listing (plain users only see their own tickets)
2. SLA deadline calculation on insert
3. Optimistic-lock updates as a single conditional UPDATE
4. Search across ticket text and comments
5. Explicit cascade on delete

HOW: Uses SQLAlchemy 2.0 async with the request's session; nothing here
commits, the request boundary does.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import ColumnElement, and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from helpdesk.core.clock import utcnow
from helpdesk.models.ticket import (
    Comment,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TimelineAction,
    TimelineEvent,
)
from helpdesk.models.user import User, UserRole
from helpdesk.services.query import build_search_predicate
from helpdesk.services.sla import calculate_deadline


class TicketDAO:
    """
    Data Access Object for Ticket operations.

    WHAT: Manages ticket CRUD, listing and aggregate counts.

    HOW: All methods are async and share the caller's session.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize TicketDAO with database session.

        Args:
            session: AsyncSession for database operations
        """
        self.session = session

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    async def create(
        self,
        created_by_id: int,
        title: str,
        description: str,
        priority: TicketPriority = TicketPriority.MEDIUM,
        category: TicketCategory = TicketCategory.GENERAL,
    ) -> Ticket:
        """
        Create a new ticket.

        WHAT: Inserts an open ticket at version 1 with its SLA deadline.

        WHY: created_at is set here, not by a column default, so the
        deadline is computed from exactly the stored creation time.

        Args:
            created_by_id: User filing the ticket
            title: Short summary
            description: Full description
            priority: Ticket priority (drives SLA)
            category: Ticket category

        Returns:
            Created Ticket instance
        """
        now = utcnow()
        ticket = Ticket(
            title=title,
            description=description,
            category=category,
            priority=priority,
            status=TicketStatus.OPEN,
            created_by_id=created_by_id,
            version=1,
            sla_deadline=calculate_deadline(priority, now),
            created_at=now,
            updated_at=now,
        )

        self.session.add(ticket)
        await self.session.flush()
        await self.session.refresh(ticket)

        return ticket

    async def get_by_id(self, ticket_id: int) -> Optional[Ticket]:
        """
        Get ticket by ID.

        Returns:
            Ticket or None if not found
        """
        result = await self.session.execute(select(Ticket).where(Ticket.id == ticket_id))
        return result.scalar_one_or_none()

    async def get_with_people(self, ticket_id: int) -> Optional[Ticket]:
        """
        Get ticket with creator and assignee loaded.

        WHY: populate_existing overwrites any copy already in the session,
        which is stale after a versioned bulk UPDATE and may lack its
        relations when the ticket was inserted by this same session.

        Returns:
            Ticket with relations or None
        """
        query = (
            select(Ticket)
            .options(
                selectinload(Ticket.created_by),
                selectinload(Ticket.assigned_to),
            )
            .where(Ticket.id == ticket_id)
            .execution_options(populate_existing=True)
        )

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    def _scope_conditions(
        self,
        viewer: User,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
        assigned_to: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[ColumnElement[bool]]:
        """
        WHERE conditions for the viewer's filtered ticket set.

        WHY: Plain users only ever see tickets they created or hold; the
        restriction is applied here so no caller can forget it.
        """
        conditions: List[ColumnElement[bool]] = []

        if not viewer.is_staff:
            conditions.append(
                or_(Ticket.created_by_id == viewer.id, Ticket.assigned_to_id == viewer.id)
            )
        if status is not None:
            conditions.append(Ticket.status == status)
        if priority is not None:
            conditions.append(Ticket.priority == priority)
        if assigned_to is not None:
            conditions.append(Ticket.assigned_to_id == assigned_to)
        if search and search.strip():
            conditions.append(build_search_predicate(search))

        return conditions

    async def list(
        self,
        viewer: User,
        limit: Optional[int] = None,
        offset: int = 0,
        **filters: Any,
    ) -> Tuple[List[Tuple[Ticket, int]], int]:
        """
        List tickets visible to viewer, newest first.

        Args:
            viewer: Requesting user (drives visibility)
            limit: Page size, None for every matching row
            offset: Rows to skip
            **filters: status, priority, assigned_to, search

        Returns:
            ([(ticket, comment_count), ...], total matching rows)
        """
        conditions = self._scope_conditions(viewer, **filters)

        total = (
            await self.session.execute(select(func.count(Ticket.id)).where(*conditions))
        ).scalar_one()

        comment_count = (
            select(func.count(Comment.id))
            .where(Comment.ticket_id == Ticket.id)
            .correlate(Ticket)
            .scalar_subquery()
            .label("comment_count")
        )
        query = (
            select(Ticket, comment_count)
            .options(
                selectinload(Ticket.created_by),
                selectinload(Ticket.assigned_to),
            )
            .where(*conditions)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .execution_options(populate_existing=True)
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        rows = [(ticket, count or 0) for ticket, count in result.all()]
        return rows, total

    async def update_versioned(
        self,
        ticket_id: int,
        expected_version: int,
        values: Dict[str, Any],
    ) -> bool:
        """
        Apply an update only if the stored version is still expected_version.

        WHAT: UPDATE tickets SET ..., version = version + 1, updated_at = now
        WHERE id = :id AND version = :expected_version

        WHY: The version check and the write are one statement, so two
        concurrent writers holding the same version cannot both succeed.

        Args:
            ticket_id: Ticket ID
            expected_version: Version the caller read
            values: Column values to set (attribute names)

        Returns:
            True if exactly one row was updated, False on a version mismatch
        """
        assignments = {getattr(Ticket, name): value for name, value in values.items()}
        assignments[Ticket.version] = Ticket.version + 1
        assignments[Ticket.updated_at] = utcnow()

        result = await self.session.execute(
            update(Ticket)
            .where(Ticket.id == ticket_id, Ticket.version == expected_version)
            .values(assignments)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete(self, ticket_id: int) -> bool:
        """
        Delete a ticket with its comments and timeline.

        WHY: Dependents are removed explicitly so no orphan survives even on
        a connection that doesn't enforce ON DELETE CASCADE.

        Returns:
            True if the ticket existed
        """
        await self.session.execute(
            delete(TimelineEvent)
            .where(TimelineEvent.ticket_id == ticket_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(Comment)
            .where(Comment.ticket_id == ticket_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            delete(Ticket)
            .where(Ticket.id == ticket_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    # =========================================================================
    # Aggregates
    # =========================================================================

    async def get_stats(self, viewer: User, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Count tickets by state for the viewer's visible set.

        Returns:
            Dict with total, open, in_progress, resolved, closed,
            critical (not closed) and breached (unresolved past deadline)
        """
        now = now or utcnow()
        unresolved = Ticket.status.in_([TicketStatus.OPEN, TicketStatus.IN_PROGRESS])

        query = select(
            func.count(Ticket.id),
            func.sum(case((Ticket.status == TicketStatus.OPEN, 1), else_=0)),
            func.sum(case((Ticket.status == TicketStatus.IN_PROGRESS, 1), else_=0)),
            func.sum(case((Ticket.status == TicketStatus.RESOLVED, 1), else_=0)),
            func.sum(case((Ticket.status == TicketStatus.CLOSED, 1), else_=0)),
            func.sum(
                case(
                    (
                        and_(
                            Ticket.priority == TicketPriority.CRITICAL,
                            Ticket.status != TicketStatus.CLOSED,
                        ),
                        1,
                    ),
                    else_=0,
                )
            ),
            func.sum(case((and_(unresolved, Ticket.sla_deadline < now), 1), else_=0)),
        ).where(*self._scope_conditions(viewer))

        row = (await self.session.execute(query)).one()
        keys = ("total", "open", "in_progress", "resolved", "closed", "critical", "breached")
        return {key: int(value or 0) for key, value in zip(keys, row)}

    async def count_by(self, column: Any) -> List[Tuple[Any, int]]:
        """Group every ticket by one column and count."""
        result = await self.session.execute(
            select(column, func.count(Ticket.id)).group_by(column).order_by(column)
        )
        return [(value, count) for value, count in result.all()]

    async def count_created_since(self, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count(Ticket.id)).where(Ticket.created_at >= since)
        )
        return result.scalar_one()

    async def list_sla_fields(self) -> List[Tuple[datetime, TicketStatus]]:
        """(sla_deadline, status) for every ticket."""
        result = await self.session.execute(select(Ticket.sla_deadline, Ticket.status))
        return [(deadline, status) for deadline, status in result.all()]

    async def agent_workload(self) -> List[Dict[str, Any]]:
        """
        Assigned and resolved counts per agent/admin.

        Returns:
            [{"id", "name", "assigned", "resolved"}, ...] sorted by
            resolved descending, then name
        """
        done = Ticket.status.in_([TicketStatus.RESOLVED, TicketStatus.CLOSED])
        query = (
            select(
                User.id,
                User.name,
                func.count(Ticket.id),
                func.coalesce(func.sum(case((done, 1), else_=0)), 0),
            )
            .outerjoin(Ticket, Ticket.assigned_to_id == User.id)
            .where(User.role.in_([UserRole.AGENT, UserRole.ADMIN]))
            .group_by(User.id, User.name)
        )
        result = await self.session.execute(query)
        rows = [
            {"id": uid, "name": name, "assigned": int(assigned), "resolved": int(resolved)}
            for uid, name, assigned, resolved in result.all()
        ]
        rows.sort(key=lambda row: (-row["resolved"], row["name"]))
        return rows


class CommentDAO:
    """Data Access Object for ticket comments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        ticket_id: int,
        user_id: int,
        content: str,
        parent_id: Optional[int] = None,
    ) -> Comment:
        """
        Append a comment.

        Returns:
            Created Comment with its author loaded
        """
        comment = Comment(
            ticket_id=ticket_id,
            user_id=user_id,
            content=content,
            parent_id=parent_id,
            created_at=utcnow(),
        )
        self.session.add(comment)
        await self.session.flush()
        await self.session.refresh(comment, attribute_names=["user"])
        return comment

    async def get_on_ticket(self, comment_id: int, ticket_id: int) -> Optional[Comment]:
        """
        Get a comment only if it belongs to ticket_id.

        WHY: Replies must stay on their ticket; a comment id from another
        ticket behaves as if it didn't exist.
        """
        result = await self.session.execute(
            select(Comment).where(Comment.id == comment_id, Comment.ticket_id == ticket_id)
        )
        return result.scalar_one_or_none()

    async def list_for_ticket(self, ticket_id: int) -> List[Comment]:
        """Comments of a ticket, oldest first, with authors loaded."""
        result = await self.session.execute(
            select(Comment)
            .options(selectinload(Comment.user))
            .where(Comment.ticket_id == ticket_id)
            .order_by(Comment.created_at.asc(), Comment.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


class TimelineDAO:
    """
    Data Access Object for timeline events.

    WHY: Append-only; there is deliberately no update or single-row delete.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        ticket_id: int,
        action: TimelineAction,
        user_id: Optional[int] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
    ) -> TimelineEvent:
        event = TimelineEvent(
            ticket_id=ticket_id,
            user_id=user_id,
            action=action,
            old_value=old_value,
            new_value=new_value,
            created_at=utcnow(),
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_for_ticket(self, ticket_id: int) -> List[TimelineEvent]:
        """Events of a ticket, oldest first, with acting users loaded."""
        result = await self.session.execute(
            select(TimelineEvent)
            .options(selectinload(TimelineEvent.user))
            .where(TimelineEvent.ticket_id == ticket_id)
            .order_by(TimelineEvent.created_at.asc(), TimelineEvent.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
