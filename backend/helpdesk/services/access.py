"""
Ticket access rule.

WHAT: The one place that decides whether a caller may read, comment on,
update or delete a ticket.

WHY: Role checks sprinkled across handlers drift apart. Every ticket
endpoint asks this module instead:
- user role: read and comment when creator or assignee; update only
  when creator (being assignee is not enough to mutate)
- agent and admin: everything except delete
- delete: admin only
"""

import enum

from helpdesk.core.exceptions import AuthorizationError
from helpdesk.models.ticket import Ticket
from helpdesk.models.user import User, UserRole


class Capability(str, enum.Enum):
    """Actions a caller can attempt on a ticket."""

    READ = "read"
    COMMENT = "comment"
    UPDATE = "update"
    DELETE = "delete"


def is_allowed(user: User, ticket: Ticket, capability: Capability) -> bool:
    """
    Decide whether user may perform capability on ticket.

    Args:
        user: Authenticated caller
        ticket: Target ticket
        capability: Requested action

    Returns:
        True if allowed
    """
    if capability == Capability.DELETE:
        return user.role == UserRole.ADMIN

    if user.is_staff:
        return True

    if capability == Capability.UPDATE:
        return ticket.created_by_id == user.id

    return ticket.is_visible_to_owner(user.id)


def check_ticket_access(user: User, ticket: Ticket, capability: Capability) -> None:
    """
    Raise unless user may perform capability on ticket.

    Raises:
        AuthorizationError: 403 when denied
    """
    if not is_allowed(user, ticket, capability):
        raise AuthorizationError(
            message="Access denied",
            user_id=user.id,
            ticket_id=ticket.id,
            capability=capability.value,
        )
