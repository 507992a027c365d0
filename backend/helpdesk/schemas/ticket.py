"""
Pydantic schemas for ticket endpoints.

WHAT: Request/response schemas for tickets, their comments and timeline.

WHY: Schemas define API contracts for ticket operations:
1. Validate incoming request data (trimmed, non-empty text)
2. Document API for OpenAPI/Swagger
3. Fold the accepted status spellings into one stored form
4. Shape the enriched ticket with its derived SLA fields

HOW: Uses Pydantic v2 with Annotated string constraints, field validators
and from_attributes for SQLAlchemy rows.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from helpdesk.models.ticket import (
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TimelineAction,
)
from helpdesk.services.sla import SLAStatus


# WHY: Whitespace-only text counts as missing
RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# ============================================================================
# Ticket Requests
# ============================================================================


class TicketCreate(BaseModel):
    """
    Ticket creation request.

    WHAT: Data required to open a new ticket.

    WHY: Priority defaults to medium (48 hour SLA) and category to general
    so the minimal request is just a title and a description.
    """

    title: Annotated[RequiredText, StringConstraints(max_length=500)] = Field(
        ...,
        description="Brief summary of the issue",
    )
    description: RequiredText = Field(
        ...,
        description="Detailed description",
    )
    priority: TicketPriority = Field(
        default=TicketPriority.MEDIUM,
        description="Priority level (drives the SLA deadline)",
    )
    category: TicketCategory = Field(
        default=TicketCategory.GENERAL,
        description="Ticket category",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Cannot log in after password reset",
                "description": "The reset link works but the new password is rejected.",
                "priority": "high",
                "category": "account",
            }
        }
    )


class TicketUpdate(BaseModel):
    """
    Ticket update request (PATCH and PUT).

    WHAT: Partial update of status, priority and assignee.

    WHY: version is the optimistic lock; when given it must match the
    stored version or nothing changes. Sending assigned_to as null
    unassigns, while leaving it out keeps the current assignee.
    """

    status: Optional[TicketStatus] = Field(
        default=None,
        description='New status; "in-progress" and "in_progress" are both accepted',
    )
    priority: Optional[TicketPriority] = Field(default=None, description="New priority")
    assigned_to: Optional[int] = Field(default=None, description="Assignee user id, null to unassign")
    version: Optional[int] = Field(
        default=None,
        ge=1,
        description="Version the client last read; 0 or null means not supplied",
    )

    @field_validator("version", mode="before")
    @classmethod
    def zero_version_is_absent(cls, v: Any) -> Any:
        """Versions start at 1, so 0 is the client saying it has none."""
        if v == 0 and not isinstance(v, bool):
            return None
        return v

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        """Accept hyphenated and underscored spellings."""
        if v is None:
            return v
        if not isinstance(v, str):
            raise ValueError("status must be a string")
        try:
            return TicketStatus.parse(v)
        except ValueError:
            allowed = ", ".join(s.value for s in TicketStatus)
            raise ValueError(f"Invalid status. Must be one of: {allowed}")

    def changes(self) -> Dict[str, Any]:
        """
        Fields the client asked to change.

        Returns:
            Mapping of ticket attribute name to requested value; null
            status or priority are ignored, an explicit null assignee is kept
        """
        requested: Dict[str, Any] = {}
        if self.status is not None:
            requested["status"] = self.status
        if self.priority is not None:
            requested["priority"] = self.priority
        if "assigned_to" in self.model_fields_set:
            requested["assigned_to_id"] = self.assigned_to
        return requested


# ============================================================================
# Comment Schemas
# ============================================================================


class CommentCreate(BaseModel):
    """
    Comment creation request.

    WHY: parent_id threads a reply under another comment of the same ticket.
    """

    content: RequiredText = Field(..., description="Comment text")
    parent_id: Optional[int] = Field(default=None, description="Comment being replied to")


class CommentResponse(BaseModel):
    """Comment with its author's display fields."""

    id: int
    ticket_id: int
    user_id: Optional[int] = None
    parent_id: Optional[int] = None
    content: str
    created_at: datetime
    user_name: Optional[str] = None
    user_email: Optional[str] = None

    @classmethod
    def from_comment(cls, comment) -> "CommentResponse":
        user = comment.user
        return cls(
            id=comment.id,
            ticket_id=comment.ticket_id,
            user_id=comment.user_id,
            parent_id=comment.parent_id,
            content=comment.content,
            created_at=comment.created_at,
            user_name=user.name if user else None,
            user_email=user.email if user else None,
        )


# ============================================================================
# Timeline Schemas
# ============================================================================


class TimelineEventResponse(BaseModel):
    """One timeline entry with the acting user's name."""

    id: int
    ticket_id: int
    user_id: Optional[int] = None
    action: TimelineAction
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime
    user_name: Optional[str] = None

    @classmethod
    def from_event(cls, event) -> "TimelineEventResponse":
        return cls(
            id=event.id,
            ticket_id=event.ticket_id,
            user_id=event.user_id,
            action=event.action,
            old_value=event.old_value,
            new_value=event.new_value,
            created_at=event.created_at,
            user_name=event.user.name if event.user else None,
        )


# ============================================================================
# Ticket Responses
# ============================================================================


class TicketResponse(BaseModel):
    """
    Enriched ticket.

    WHAT: Stored columns plus people display fields and the derived
    sla_status and time_remaining (computed at read time, never stored).
    """

    id: int
    title: str
    description: str
    category: TicketCategory
    status: TicketStatus
    priority: TicketPriority
    sla_deadline: datetime
    assigned_to: Optional[int] = None
    created_by: int
    version: int
    created_at: datetime
    updated_at: datetime
    created_by_name: Optional[str] = None
    created_by_email: Optional[str] = None
    assigned_to_name: Optional[str] = None
    assigned_to_email: Optional[str] = None
    sla_status: SLAStatus
    time_remaining: str


class TicketListItem(TicketResponse):
    """List entry; adds the number of comments."""

    comment_count: int = 0


class TicketDetailResponse(TicketResponse):
    """Single ticket with its thread and history, both oldest first."""

    comments: List[CommentResponse] = Field(default_factory=list)
    timeline: List[TimelineEventResponse] = Field(default_factory=list)


class Pagination(BaseModel):
    """Paging metadata; next_offset is null on the last page."""

    limit: int
    offset: int
    total: int
    next_offset: Optional[int] = None


class TicketListResponse(BaseModel):
    items: List[TicketListItem]
    pagination: Pagination


class DeletedTicket(BaseModel):
    id: int
    title: str


class TicketDeleteResponse(BaseModel):
    """Confirmation body for ticket deletion."""

    message: str = "Ticket deleted successfully"
    deletedTicket: DeletedTicket


class TicketStats(BaseModel):
    """
    Ticket counts for the caller's visible set.

    critical excludes closed tickets; breached counts unresolved tickets
    past their deadline.
    """

    total: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0
    closed: int = 0
    critical: int = 0
    breached: int = 0
