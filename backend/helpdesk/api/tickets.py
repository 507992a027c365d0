"""
Ticket management API endpoints.

WHAT: RESTful API for support tickets, their comments and timeline.

WHY: Tickets are the core of the helpdesk:
1. Priority-based SLA deadline, evaluated on every read
2. Status workflow with optimistic locking on updates
3. Threaded comments
4. Append-only timeline of every change
5. Retry-safe creation through Idempotency-Key

HOW: FastAPI router with:
- Role-scoped reads (plain users see only their own tickets)
- One capability check per ticket operation
- Conditional UPDATE for the version check
- Idempotent POSTs for tickets and comments
"""

import logging
from datetime import datetime
from typing import Any, Optional, Type, TypeVar

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.clock import utcnow
from helpdesk.core.deps import get_current_user, require_idempotency_key
from helpdesk.core.exceptions import (
    InvalidParentError,
    NoUpdatesError,
    StaleUpdateError,
    TicketNotFoundError,
    UserNotFoundError,
)
from helpdesk.dao.ticket import CommentDAO, TicketDAO, TimelineDAO
from helpdesk.dao.user import UserDAO
from helpdesk.db.session import get_db
from helpdesk.models.ticket import (
    Ticket,
    TicketPriority,
    TicketStatus,
    TimelineAction,
)
from helpdesk.models.user import User
from helpdesk.schemas.ticket import (
    CommentCreate,
    CommentResponse,
    DeletedTicket,
    Pagination,
    TicketCreate,
    TicketDeleteResponse,
    TicketDetailResponse,
    TicketListItem,
    TicketListResponse,
    TicketResponse,
    TicketStats,
    TicketUpdate,
    TimelineEventResponse,
)
from helpdesk.services.access import Capability, check_ticket_access
from helpdesk.services.idempotency import IdempotencyService
from helpdesk.services.query import next_offset, normalize_pagination
from helpdesk.services.sla import (
    SLAStatus,
    calculate_deadline,
    format_time_remaining,
    get_sla_status,
)
from helpdesk.services.timeline import TimelineService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tickets", tags=["tickets"])

SchemaT = TypeVar("SchemaT", bound=BaseModel)


# ============================================================================
# Helpers
# ============================================================================


def _ticket_fields(ticket: Ticket, now: Optional[datetime] = None) -> dict:
    """
    Stored columns plus people and SLA display fields.

    WHY: sla_status and time_remaining are derived at read time so they
    are never stale; every ticket-shaped response goes through here.
    """
    now = now or utcnow()
    creator = ticket.created_by
    assignee = ticket.assigned_to

    return {
        "id": ticket.id,
        "title": ticket.title,
        "description": ticket.description,
        "category": ticket.category,
        "status": ticket.status,
        "priority": ticket.priority,
        "sla_deadline": ticket.sla_deadline,
        "assigned_to": ticket.assigned_to_id,
        "created_by": ticket.created_by_id,
        "version": ticket.version,
        "created_at": ticket.created_at,
        "updated_at": ticket.updated_at,
        "created_by_name": creator.name if creator else None,
        "created_by_email": creator.email if creator else None,
        "assigned_to_name": assignee.name if assignee else None,
        "assigned_to_email": assignee.email if assignee else None,
        "sla_status": get_sla_status(ticket.sla_deadline, ticket.status, now),
        "time_remaining": format_time_remaining(ticket.sla_deadline, now),
    }


def _ticket_to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse(**_ticket_fields(ticket))


def _validate_body(schema: Type[SchemaT], payload: Any) -> SchemaT:
    """
    Validate a body that was accepted as raw JSON.

    WHY: Idempotent POSTs must find a stored response before the body is
    checked, so a retry replays the first outcome even when its body is
    different or invalid. Validation errors keep the usual 400 shape and
    are never stored.
    """
    try:
        return schema.model_validate({} if payload is None else payload)
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors()) from e


def _parse_choice(enum_cls, value: Optional[str]):
    """
    Parse an enum list filter; blank means no filter.

    Raises:
        ValueError: If the value names no member, so no ticket can match
    """
    if value is None or not value.strip():
        return None
    if enum_cls is TicketStatus:
        return TicketStatus.parse(value)
    return enum_cls(value.strip().lower())


def _parse_id(value: Optional[str]) -> Optional[int]:
    """
    Parse an id list filter; blank means no filter.

    Raises:
        ValueError: If the value isn't a whole number, so no ticket can match
    """
    if value is None or not value.strip():
        return None
    return int(value.strip())


async def _load_ticket(ticket_dao: TicketDAO, ticket_id: int) -> Ticket:
    """
    Get a ticket with its people loaded.

    Raises:
        TicketNotFoundError: If the ticket doesn't exist
    """
    ticket = await ticket_dao.get_with_people(ticket_id)
    if not ticket:
        raise TicketNotFoundError(ticket_id=ticket_id)
    return ticket


# ============================================================================
# Ticket Endpoints
# ============================================================================


@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create ticket",
    description="Open a ticket (requires Idempotency-Key)",
)
async def create_ticket(
    payload: Any = Body(default=None, description="title, description, priority?, category?"),
    current_user: User = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """
    Create a new support ticket.

    WHAT: Inserts an open ticket at version 1 with its SLA deadline and a
    "created" timeline entry.

    WHY: A retried request with the same Idempotency-Key replays the first
    response instead of filing a second ticket.

    Raises:
        FieldRequiredError (400): If the key, title or description is missing
    """
    ticket_dao = TicketDAO(db)

    async def create():
        data = _validate_body(TicketCreate, payload)
        ticket = await ticket_dao.create(
            created_by_id=current_user.id,
            title=data.title,
            description=data.description,
            priority=data.priority,
            category=data.category,
        )
        await TimelineService(db).log_created(ticket.id, current_user.id)

        logger.info(
            f"Ticket {ticket.id} created by user {current_user.id}",
            extra={"priority": ticket.priority.value},
        )

        ticket = await ticket_dao.get_with_people(ticket.id)
        return status.HTTP_201_CREATED, _ticket_to_response(ticket).model_dump(mode="json")

    return await IdempotencyService(db).execute(idempotency_key, current_user.id, create)


@router.get(
    "",
    response_model=TicketListResponse,
    summary="List tickets",
    description="Paginated, filtered list of visible tickets",
)
async def list_tickets(
    limit: Optional[str] = Query(default=None, description="Page size (1-100, default 10)"),
    offset: Optional[str] = Query(default=None, description="Rows to skip (default 0)"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    priority_filter: Optional[str] = Query(default=None, alias="priority"),
    assigned_to: Optional[str] = Query(default=None, description="Assignee user id"),
    search: Optional[str] = Query(default=None, description="Text in title, description or comments"),
    sla_status: Optional[str] = Query(default=None, description="met, breached, at_risk or on_track"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TicketListResponse:
    """
    List tickets with filters.

    WHY: Paging values are clamped, so a garbled page size still returns a
    usable page. A filter value no ticket can have (status=pending,
    assigned_to=abc) matches nothing rather than being dropped, so a typo
    never returns the whole queue. sla_status is derived, so that filter
    runs over the whole filtered set in Python and is paginated
    afterwards; total then counts the SLA-filtered set.
    """
    page_limit, page_offset = normalize_pagination(limit, offset)
    try:
        filters = {
            "status": _parse_choice(TicketStatus, status_filter),
            "priority": _parse_choice(TicketPriority, priority_filter),
            "assigned_to": _parse_id(assigned_to),
            "search": search,
        }
        wanted_sla = _parse_choice(SLAStatus, sla_status)
    except ValueError:
        return TicketListResponse(
            items=[],
            pagination=Pagination(limit=page_limit, offset=page_offset, total=0, next_offset=None),
        )

    ticket_dao = TicketDAO(db)
    now = utcnow()

    if wanted_sla is None:
        rows, total = await ticket_dao.list(
            current_user, limit=page_limit, offset=page_offset, **filters
        )
    else:
        candidates, _ = await ticket_dao.list(current_user, **filters)
        matching = [
            (ticket, count)
            for ticket, count in candidates
            if get_sla_status(ticket.sla_deadline, ticket.status, now) == wanted_sla
        ]
        total = len(matching)
        rows = matching[page_offset:page_offset + page_limit]

    return TicketListResponse(
        items=[
            TicketListItem(**_ticket_fields(ticket, now), comment_count=count)
            for ticket, count in rows
        ],
        pagination=Pagination(
            limit=page_limit,
            offset=page_offset,
            total=total,
            next_offset=next_offset(page_limit, page_offset, total),
        ),
    )


@router.get(
    "/stats",
    response_model=TicketStats,
    summary="Ticket statistics",
    description="Counts by state over the caller's visible tickets",
)
async def get_ticket_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TicketStats:
    stats = await TicketDAO(db).get_stats(current_user)
    return TicketStats(**stats)


@router.get(
    "/{ticket_id}",
    response_model=TicketDetailResponse,
    summary="Get ticket",
    description="Ticket with its comments and timeline",
)
async def get_ticket(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TicketDetailResponse:
    """
    Get ticket by ID.

    Raises:
        TicketNotFoundError (404): If ticket not found
        AuthorizationError (403): If a plain user neither created nor holds it
    """
    ticket = await _load_ticket(TicketDAO(db), ticket_id)
    check_ticket_access(current_user, ticket, Capability.READ)

    comments = await CommentDAO(db).list_for_ticket(ticket_id)
    events = await TimelineDAO(db).list_for_ticket(ticket_id)

    return TicketDetailResponse(
        **_ticket_fields(ticket),
        comments=[CommentResponse.from_comment(c) for c in comments],
        timeline=[TimelineEventResponse.from_event(e) for e in events],
    )


async def _update_ticket(
    ticket_id: int,
    data: TicketUpdate,
    current_user: User,
    db: AsyncSession,
) -> TicketResponse:
    """
    Shared PATCH/PUT implementation.

    Order of checks: existence (404), permission (403), supplied version
    (409), something to change (400), assignee exists (404). Nothing is
    written unless all pass; the write itself re-checks the version.
    """
    ticket_dao = TicketDAO(db)
    ticket = await _load_ticket(ticket_dao, ticket_id)
    check_ticket_access(current_user, ticket, Capability.UPDATE)

    if data.version is not None and data.version != ticket.version:
        logger.warning(
            f"Stale update on ticket {ticket_id}: client v{data.version}, stored v{ticket.version}"
        )
        raise StaleUpdateError(
            ticket_id=ticket_id,
            expected_version=data.version,
            current_version=ticket.version,
        )

    requested = data.changes()
    if not requested:
        raise NoUpdatesError()

    new_assignee = requested.get("assigned_to_id")
    if new_assignee is not None and not await UserDAO(User, db).get_by_id(new_assignee):
        raise UserNotFoundError(field="assigned_to", user_id=new_assignee)

    values = dict(requested)
    if "priority" in requested:
        # Always measured from creation, never from the time of the change
        values["sla_deadline"] = calculate_deadline(requested["priority"], ticket.created_at)

    previous = {
        "status": ticket.status,
        "priority": ticket.priority,
        "assigned_to_id": ticket.assigned_to_id,
    }
    expected_version = data.version if data.version is not None else ticket.version

    if not await ticket_dao.update_versioned(ticket_id, expected_version, values):
        logger.warning(f"Concurrent update lost the race on ticket {ticket_id} at v{expected_version}")
        raise StaleUpdateError(ticket_id=ticket_id, expected_version=expected_version)

    timeline = TimelineService(db)
    if "status" in requested:
        await timeline.log_change(
            ticket_id, current_user.id, TimelineAction.STATUS_CHANGED,
            previous["status"], requested["status"],
        )
    if "priority" in requested:
        await timeline.log_change(
            ticket_id, current_user.id, TimelineAction.PRIORITY_CHANGED,
            previous["priority"], requested["priority"],
        )
    if "assigned_to_id" in requested:
        await timeline.log_assignment(
            ticket_id, current_user.id, previous["assigned_to_id"], requested["assigned_to_id"]
        )

    ticket = await _load_ticket(ticket_dao, ticket_id)
    logger.info(
        f"Ticket {ticket_id} updated to v{ticket.version} by user {current_user.id}",
        extra={"fields": sorted(requested)},
    )
    return _ticket_to_response(ticket)


@router.patch(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Update ticket",
    description="Change status, priority or assignee (optimistic lock via version)",
)
async def patch_ticket(
    ticket_id: int,
    data: TicketUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TicketResponse:
    """
    Update ticket fields.

    Raises:
        TicketNotFoundError (404): If ticket not found
        AuthorizationError (403): If a plain user didn't create the ticket
        StaleUpdateError (409): If version doesn't match the stored one
        NoUpdatesError (400): If no updatable field was sent
    """
    return await _update_ticket(ticket_id, data, current_user, db)


@router.put(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Update ticket",
    description="Same as PATCH",
)
async def put_ticket(
    ticket_id: int,
    data: TicketUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TicketResponse:
    return await _update_ticket(ticket_id, data, current_user, db)


@router.delete(
    "/{ticket_id}",
    response_model=TicketDeleteResponse,
    summary="Delete ticket",
    description="Remove a ticket with its comments and timeline (admin)",
)
async def delete_ticket(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TicketDeleteResponse:
    """
    Delete a ticket.

    WHAT: Records a "deleted" entry naming the admin, then removes the
    ticket together with its comments and timeline.

    Raises:
        TicketNotFoundError (404): If ticket not found
        AuthorizationError (403): If the caller isn't an admin
    """
    ticket_dao = TicketDAO(db)
    ticket = await _load_ticket(ticket_dao, ticket_id)
    check_ticket_access(current_user, ticket, Capability.DELETE)

    title = ticket.title
    await TimelineService(db).log_deleted(ticket_id, current_user.id)
    await ticket_dao.delete(ticket_id)

    logger.info(f"Ticket {ticket_id} deleted by admin {current_user.id}")
    return TicketDeleteResponse(deletedTicket=DeletedTicket(id=ticket_id, title=title))


# ============================================================================
# Comment & Timeline Endpoints
# ============================================================================


@router.post(
    "/{ticket_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add comment",
    description="Comment or reply on a ticket (requires Idempotency-Key)",
)
async def add_comment(
    ticket_id: int,
    payload: Any = Body(default=None, description="content, parent_id?"),
    current_user: User = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """
    Add a comment to a ticket.

    Raises:
        TicketNotFoundError (404): If ticket not found
        AuthorizationError (403): If the caller can't see the ticket
        InvalidParentError (400): If parent_id isn't a comment of this ticket
    """
    comment_dao = CommentDAO(db)

    async def add():
        data = _validate_body(CommentCreate, payload)
        ticket = await _load_ticket(TicketDAO(db), ticket_id)
        check_ticket_access(current_user, ticket, Capability.COMMENT)

        if data.parent_id is not None and not await comment_dao.get_on_ticket(data.parent_id, ticket_id):
            raise InvalidParentError(field="parent_id", parent_id=data.parent_id, ticket_id=ticket_id)

        comment = await comment_dao.create(
            ticket_id=ticket_id,
            user_id=current_user.id,
            content=data.content,
            parent_id=data.parent_id,
        )
        await TimelineService(db).log_comment_added(ticket_id, current_user.id)

        return status.HTTP_201_CREATED, CommentResponse.from_comment(comment).model_dump(mode="json")

    return await IdempotencyService(db).execute(idempotency_key, current_user.id, add)


@router.get(
    "/{ticket_id}/comments",
    response_model=list[CommentResponse],
    summary="List comments",
)
async def list_comments(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[CommentResponse]:
    ticket = await _load_ticket(TicketDAO(db), ticket_id)
    check_ticket_access(current_user, ticket, Capability.READ)

    comments = await CommentDAO(db).list_for_ticket(ticket_id)
    return [CommentResponse.from_comment(c) for c in comments]


@router.get(
    "/{ticket_id}/timeline",
    response_model=list[TimelineEventResponse],
    summary="Ticket timeline",
)
async def get_timeline(
    ticket_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[TimelineEventResponse]:
    ticket = await _load_ticket(TicketDAO(db), ticket_id)
    check_ticket_access(current_user, ticket, Capability.READ)

    events = await TimelineDAO(db).list_for_ticket(ticket_id)
    return [TimelineEventResponse.from_event(e) for e in events]
