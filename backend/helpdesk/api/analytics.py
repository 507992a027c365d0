"""
Analytics API endpoints.

WHAT: Dashboard aggregates over the whole queue for agents and admins.

WHY: Staff need to see volume, where tickets pile up, how the desk is
doing against its SLAs and who is carrying the load.

HOW: Counts come from grouped SQL; SLA outcomes are derived in Python
with the same policy the ticket endpoints use, so the numbers agree.
"""

from collections import Counter
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.clock import utcnow
from helpdesk.core.deps import require_staff
from helpdesk.dao.ticket import TicketDAO
from helpdesk.db.session import get_db
from helpdesk.models.ticket import Ticket, TicketStatus
from helpdesk.models.user import User
from helpdesk.schemas.analytics import (
    AgentPerformance,
    AnalyticsResponse,
    AnalyticsSummary,
    PriorityCount,
    SLASummary,
    StatusCount,
)
from helpdesk.services.query import parse_int
from helpdesk.services.sla import SLAStatus, get_sla_status


router = APIRouter(prefix="/analytics", tags=["analytics"])

DEFAULT_PERIOD_DAYS = 30
MAX_PERIOD_DAYS = 365


def normalize_period(value) -> int:
    """Days window; absent or garbled means 30, clamped to [1, 365]."""
    days = parse_int(value)
    if days is None:
        return DEFAULT_PERIOD_DAYS
    return min(max(days, 1), MAX_PERIOD_DAYS)


def summarize_sla(rows, now) -> SLASummary:
    """
    SLA outcome counts for (deadline, status) pairs.

    Returns:
        SLASummary; compliance_rate is 100.0 when there is nothing to track
    """
    outcomes = Counter(get_sla_status(deadline, ticket_status, now) for deadline, ticket_status in rows)
    tracked = sum(outcomes.values())
    breached = outcomes[SLAStatus.BREACHED]
    rate = round((tracked - breached) / tracked * 100, 1) if tracked else 100.0

    return SLASummary(
        tracked=tracked,
        met=outcomes[SLAStatus.MET],
        breached=breached,
        at_risk=outcomes[SLAStatus.AT_RISK],
        on_track=outcomes[SLAStatus.ON_TRACK],
        compliance_rate=rate,
    )


@router.get(
    "",
    response_model=AnalyticsResponse,
    summary="Helpdesk analytics",
    description="Volume, distributions, SLA compliance and agent workload (agent/admin)",
)
async def get_analytics(
    period: Optional[str] = Query(default=None, description="Days counted in created_in_period"),
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> AnalyticsResponse:
    days = normalize_period(period)
    now = utcnow()
    ticket_dao = TicketDAO(db)

    status_counts = dict(await ticket_dao.count_by(Ticket.status))
    priority_counts = await ticket_dao.count_by(Ticket.priority)

    summary = AnalyticsSummary(
        total=sum(status_counts.values()),
        open=status_counts.get(TicketStatus.OPEN, 0),
        in_progress=status_counts.get(TicketStatus.IN_PROGRESS, 0),
        resolved=status_counts.get(TicketStatus.RESOLVED, 0),
        closed=status_counts.get(TicketStatus.CLOSED, 0),
        created_in_period=await ticket_dao.count_created_since(now - timedelta(days=days)),
    )

    return AnalyticsResponse(
        period_days=days,
        summary=summary,
        status_distribution=[
            StatusCount(status=value, count=count) for value, count in status_counts.items()
        ],
        priority_distribution=[
            PriorityCount(priority=value, count=count) for value, count in priority_counts
        ],
        sla=summarize_sla(await ticket_dao.list_sla_fields(), now),
        agent_performance=[AgentPerformance(**row) for row in await ticket_dao.agent_workload()],
    )
