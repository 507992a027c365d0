"""
Pydantic schemas for the analytics endpoint.

WHAT: Dashboard aggregates for staff: volume, distributions, SLA
compliance and per-agent workload.
"""

from typing import List

from pydantic import BaseModel, Field

from helpdesk.models.ticket import TicketPriority, TicketStatus


class AnalyticsSummary(BaseModel):
    total: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0
    closed: int = 0
    created_in_period: int = 0


class StatusCount(BaseModel):
    status: TicketStatus
    count: int


class PriorityCount(BaseModel):
    priority: TicketPriority
    count: int


class SLASummary(BaseModel):
    """
    SLA outcome counts across all tickets.

    compliance_rate is the share of tracked tickets not breached, as a
    percentage with one decimal; 100.0 when nothing is tracked.
    """

    tracked: int = 0
    met: int = 0
    breached: int = 0
    at_risk: int = 0
    on_track: int = 0
    compliance_rate: float = 100.0


class AgentPerformance(BaseModel):
    id: int
    name: str
    assigned: int
    resolved: int


class AnalyticsResponse(BaseModel):
    period_days: int = Field(..., description="Window used for created_in_period")
    summary: AnalyticsSummary
    status_distribution: List[StatusCount]
    priority_distribution: List[PriorityCount]
    sla: SLASummary
    agent_performance: List[AgentPerformance]
