"""
Pagination and search helpers for ticket listings.

WHAT: Normalizes paging parameters and builds the free-text search filter.

WHY: List endpoints must never fail because of a bad page size; out of
range or garbled values are clamped to something usable instead. Search
spans the ticket text and its comments, which is easy to get subtly wrong
if every caller builds its own query.
"""

from typing import Any, Optional, Tuple

from sqlalchemy import ColumnElement, exists, or_, true

from helpdesk.models.ticket import Comment, Ticket


DEFAULT_LIMIT = 10
MAX_LIMIT = 100
DEFAULT_OFFSET = 0


def parse_int(value: Any) -> Optional[int]:
    """Lenient int parse; None for anything that isn't a whole number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def normalize_pagination(limit: Any = None, offset: Any = None) -> Tuple[int, int]:
    """
    Clamp paging parameters.

    Args:
        limit: Requested page size; absent or unparseable means 10
        offset: Requested offset; absent or unparseable means 0

    Returns:
        (limit, offset) with 1 <= limit <= 100 and offset >= 0

    Example:
        >>> normalize_pagination(0, -5)
        (1, 0)
        >>> normalize_pagination(500, 10)
        (100, 10)
    """
    parsed_limit = parse_int(limit)
    parsed_offset = parse_int(offset)

    if parsed_limit is None:
        parsed_limit = DEFAULT_LIMIT
    if parsed_offset is None:
        parsed_offset = DEFAULT_OFFSET

    return min(max(parsed_limit, 1), MAX_LIMIT), max(parsed_offset, 0)


def next_offset(limit: int, offset: int, total: int) -> Optional[int]:
    """Offset of the following page, or None on the last page."""
    candidate = offset + limit
    return candidate if candidate < total else None


def build_search_predicate(term: Optional[str]) -> ColumnElement[bool]:
    """
    Build the ticket search filter.

    WHY: A ticket matches when the term appears (case-insensitive) in its
    title, its description, or any of its comments. The comment check is a
    correlated EXISTS so a ticket with several matching comments still
    appears once.

    Args:
        term: Free-text search string; blank matches everything

    Returns:
        SQLAlchemy boolean expression over Ticket
    """
    term = (term or "").strip()
    if not term:
        return true()

    comment_match = exists().where(
        Comment.ticket_id == Ticket.id,
        Comment.content.icontains(term, autoescape=True),
    )

    return or_(
        Ticket.title.icontains(term, autoescape=True),
        Ticket.description.icontains(term, autoescape=True),
        comment_match,
    )
