from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from ticketdesk.assignment.scheduler import AssignmentScheduler
from ticketdesk.metrics import MetricsRegistry, metrics_registry
from ticketdesk.scoring.scorer import ProductivityScorer
from ticketdesk.tickets.service import TicketService
from ticketdesk.users.service import UserService
from ticketdesk.workload.tracker import WorkloadTracker


def _from_state(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} is not available")
    return service


async def get_ticket_service(request: Request) -> TicketService:
    return _from_state(request, "ticket_service", "Ticket service")


async def get_user_service(request: Request) -> UserService:
    return _from_state(request, "user_service", "User service")


async def get_workload_tracker(request: Request) -> WorkloadTracker:
    return _from_state(request, "workload_tracker", "Workload tracker")


async def get_productivity_scorer(request: Request) -> ProductivityScorer:
    return _from_state(request, "productivity_scorer", "Productivity scorer")


async def get_assignment_scheduler(request: Request) -> AssignmentScheduler:
    return _from_state(request, "assignment_scheduler", "Assignment scheduler")


async def get_metrics_registry(request: Request) -> MetricsRegistry:
    return getattr(request.app.state, "metrics", None) or metrics_registry


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
WorkloadTrackerDep = Annotated[WorkloadTracker, Depends(get_workload_tracker)]
ProductivityScorerDep = Annotated[ProductivityScorer, Depends(get_productivity_scorer)]
AssignmentSchedulerDep = Annotated[AssignmentScheduler, Depends(get_assignment_scheduler)]
MetricsRegistryDep = Annotated[MetricsRegistry, Depends(get_metrics_registry)]
