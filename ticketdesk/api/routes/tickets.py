from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query, status
from pydantic import Field

from ticketdesk.api.schemas import CamelModel
from ticketdesk.assignment.scheduler import AutoAssignSummary
from ticketdesk.dependencies import (
    AssignmentSchedulerDep,
    CurrentActor,
    ManagerActor,
    OptionalActor,
    TicketServiceDep,
)
from ticketdesk.tickets.models import ActivityAction, ActivityEntry, Comment, Customer, Ticket, TicketAggregate
from ticketdesk.tickets.state import Priority, TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class CustomerModel(CamelModel):
    name: str
    email: str


class TicketModel(CamelModel):
    id: str
    title: str
    description: str
    customer: CustomerModel
    status: TicketStatus
    priority: Priority | None = None
    assigned_agent_id: str | None = None
    assigned_agent_name: str | None = None
    auto_assigned: bool = False
    version: int
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketModel":
        return cls(
            id=ticket.id,
            title=ticket.title,
            description=ticket.description,
            customer=CustomerModel(name=ticket.customer.name, email=ticket.customer.email),
            status=ticket.status,
            priority=ticket.priority,
            assigned_agent_id=ticket.assigned_agent_id,
            assigned_agent_name=ticket.assigned_agent_name,
            auto_assigned=ticket.auto_assigned,
            version=ticket.version,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            closed_at=ticket.closed_at,
        )


class CommentModel(CamelModel):
    id: str
    ticket_id: str
    author_id: str
    author_name: str
    content: str
    created_at: datetime

    @classmethod
    def from_entity(cls, comment: Comment) -> "CommentModel":
        return cls(
            id=comment.id,
            ticket_id=comment.ticket_id,
            author_id=comment.author_id,
            author_name=comment.author_name,
            content=comment.content,
            created_at=comment.created_at,
        )


class ActivityModel(CamelModel):
    id: str
    sequence: int
    action: ActivityAction
    actor_id: str
    actor_name: str
    details: str
    from_status: TicketStatus | None = None
    to_status: TicketStatus | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime

    @classmethod
    def from_entity(cls, entry: ActivityEntry) -> "ActivityModel":
        return cls(
            id=entry.id,
            sequence=entry.sequence,
            action=entry.action,
            actor_id=entry.actor_id,
            actor_name=entry.actor_name,
            details=entry.details,
            from_status=entry.from_status,
            to_status=entry.to_status,
            metadata=dict(entry.metadata),
            timestamp=entry.timestamp,
        )


class TicketDetailModel(TicketModel):
    comments: list[CommentModel]
    activities: list[ActivityModel]

    @classmethod
    def from_aggregate(cls, aggregate: TicketAggregate) -> "TicketDetailModel":
        base = TicketModel.from_entity(aggregate.ticket)
        return cls(
            **base.model_dump(),
            comments=[CommentModel.from_entity(comment) for comment in aggregate.comments],
            activities=[ActivityModel.from_entity(entry) for entry in aggregate.activities],
        )


class TicketPageModel(CamelModel):
    tickets: list[TicketModel]
    page: int
    size: int
    total_count: int
    total_pages: int


class AutocompleteModel(CamelModel):
    tickets: list[TicketModel]
    total_count: int


class SkippedTicketModel(CamelModel):
    ticket_id: str
    reason: str


class AutoAssignSummaryModel(CamelModel):
    assigned_count: int
    assigned: dict[str, str]
    agent_totals: dict[str, int]
    skipped: list[SkippedTicketModel]
    message: str

    @classmethod
    def from_summary(cls, summary: AutoAssignSummary) -> "AutoAssignSummaryModel":
        return cls(
            assigned_count=summary.assigned_count,
            assigned=dict(summary.assigned),
            agent_totals=dict(summary.agent_totals),
            skipped=[SkippedTicketModel(ticket_id=item.ticket_id, reason=item.reason) for item in summary.skipped],
            message=summary.message,
        )


class TicketCreateRequest(CamelModel):
    title: str
    description: str
    customer: CustomerModel
    priority: Priority | None = None


class TicketStatusChangeRequest(CamelModel):
    status: TicketStatus


class CommentCreateRequest(CamelModel):
    content: str


class AssignRequest(CamelModel):
    agent_id: str
    reassign: bool = False


class PriorityChangeRequest(CamelModel):
    priority: Priority


@router.get("", response_model=None, summary="List tickets visible to the caller")
async def list_tickets(
    service: TicketServiceDep,
    actor: CurrentActor,
    grouped: bool = False,
    assigned: bool | None = None,
    query: str | None = None,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=100),
) -> list[TicketModel] | dict[str, list[TicketModel]] | TicketPageModel:
    if query is not None:
        result = await service.search(actor=actor, query=query, page=page, size=size)
        return TicketPageModel(
            tickets=[TicketModel.from_entity(ticket) for ticket in result.tickets],
            page=result.page,
            size=result.size,
            total_count=result.total_count,
            total_pages=result.total_pages,
        )
    if grouped:
        buckets = await service.list_grouped(actor=actor)
        return {
            ticket_status.value: [TicketModel.from_entity(ticket) for ticket in tickets]
            for ticket_status, tickets in buckets.items()
        }
    if assigned is False:
        tickets = await service.list_unassigned(actor=actor)
    else:
        tickets = await service.list_tickets(actor=actor)
    return [TicketModel.from_entity(ticket) for ticket in tickets]


@router.post("", response_model=TicketModel, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    actor: OptionalActor,
) -> TicketModel:
    ticket = await service.create_ticket(
        title=payload.title,
        description=payload.description,
        customer=Customer(name=payload.customer.name, email=payload.customer.email),
        priority=payload.priority,
        actor=actor,
    )
    return TicketModel.from_entity(ticket)


@router.get("/autocomplete", response_model=AutocompleteModel)
async def autocomplete(
    service: TicketServiceDep,
    actor: CurrentActor,
    query: str = "",
    limit: int = Query(default=5, ge=1, le=50),
) -> AutocompleteModel:
    result = await service.autocomplete(actor=actor, query=query, limit=limit)
    return AutocompleteModel(
        tickets=[TicketModel.from_entity(ticket) for ticket in result.tickets],
        total_count=result.total_count,
    )


@router.post("/auto-assign", response_model=AutoAssignSummaryModel, summary="Assign every unassigned ticket")
async def auto_assign_all(scheduler: AssignmentSchedulerDep, actor: ManagerActor) -> AutoAssignSummaryModel:
    summary = await scheduler.auto_assign_all()
    return AutoAssignSummaryModel.from_summary(summary)


@router.get("/{ticket_id}", response_model=TicketDetailModel)
async def get_ticket(ticket_id: str, service: TicketServiceDep, actor: CurrentActor) -> TicketDetailModel:
    aggregate = await service.get_ticket(ticket_id, actor=actor)
    return TicketDetailModel.from_aggregate(aggregate)


@router.patch("/{ticket_id}/status", response_model=TicketModel)
async def change_ticket_status(
    ticket_id: str,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketModel:
    ticket = await service.change_status(ticket_id, actor=actor, new_status=payload.status)
    return TicketModel.from_entity(ticket)


@router.post("/{ticket_id}/comments", response_model=CommentModel, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    payload: CommentCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> CommentModel:
    comment = await service.add_comment(ticket_id, actor=actor, content=payload.content)
    return CommentModel.from_entity(comment)


@router.patch("/{ticket_id}/assign", response_model=TicketModel)
async def assign_ticket(
    ticket_id: str,
    payload: AssignRequest,
    service: TicketServiceDep,
    actor: ManagerActor,
) -> TicketModel:
    ticket = await service.assign(ticket_id, payload.agent_id, actor=actor, reassign=payload.reassign)
    return TicketModel.from_entity(ticket)


@router.post("/{ticket_id}/auto-assign", response_model=TicketModel)
async def auto_assign_ticket(
    ticket_id: str,
    scheduler: AssignmentSchedulerDep,
    actor: ManagerActor,
) -> TicketModel:
    ticket = await scheduler.auto_assign(ticket_id)
    return TicketModel.from_entity(ticket)


@router.patch("/{ticket_id}/priority", response_model=TicketModel)
async def set_ticket_priority(
    ticket_id: str,
    payload: PriorityChangeRequest,
    service: TicketServiceDep,
    actor: ManagerActor,
) -> TicketModel:
    ticket = await service.set_priority(ticket_id, actor=actor, priority=payload.priority)
    return TicketModel.from_entity(ticket)
