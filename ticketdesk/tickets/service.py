from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Mapping, Protocol, Sequence

from ticketdesk.core.clock import utcnow
from ticketdesk.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ticketdesk.core.logging import get_tracer
from ticketdesk.metrics import MetricsRegistry, metrics_registry
from ticketdesk.users.models import SYSTEM_ACTOR, Actor
from ticketdesk.users.repository import UserRepository

from .ledger import (
    describe_assignment,
    describe_comment,
    describe_creation,
    describe_escalation,
    describe_priority_change,
    describe_status_change,
)
from .locks import TicketLockRegistry
from .models import ActivityAction, ActivityEntry, Comment, Customer, Ticket, TicketAggregate
from .repository import StaleTicketError, TicketRepository
from .state import TERMINAL_STATUSES, Priority, TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class ResolutionListener(Protocol):
    async def credit_resolution(self, agent_id: str, at: datetime) -> None:
        ...


@dataclass(slots=True)
class _Mutation:
    ticket: Ticket
    activity: ActivityEntry
    comment: Comment | None = None


@dataclass(slots=True)
class TicketPage:
    """One page of a role-scoped ticket search."""

    tickets: Sequence[Ticket]
    page: int
    size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.size) if self.size else 0


@dataclass(slots=True)
class AutocompleteResult:
    tickets: Sequence[Ticket]
    total_count: int


class TicketService:
    """Ticket lifecycle orchestration: state machine, comments, assignment and the ledger.

    Every mutation runs under the ticket's lock, re-reads the current row,
    validates against it and writes the ticket, the optional comment and one
    ledger entry in a single transaction guarded by the ticket version. A
    lost race re-reads and re-validates up to ``retry_attempts`` times.
    """

    def __init__(
        self,
        repository: TicketRepository,
        users: UserRepository,
        *,
        locks: TicketLockRegistry | None = None,
        resolution_listener: ResolutionListener | None = None,
        metrics: MetricsRegistry | None = None,
        retry_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._users = users
        self._locks = locks or TicketLockRegistry()
        self._resolution_listener = resolution_listener
        self._metrics = metrics or metrics_registry
        self._retry_attempts = max(1, retry_attempts)
        self._clock = clock

    @property
    def repository(self) -> TicketRepository:
        return self._repository

    def set_resolution_listener(self, listener: ResolutionListener | None) -> None:
        self._resolution_listener = listener

    async def ensure_schema(self) -> None:
        await self._repository.ensure_schema()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def create_ticket(
        self,
        *,
        title: str,
        description: str,
        customer: Customer,
        priority: Priority | None = None,
        actor: Actor | None = None,
    ) -> Ticket:
        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not description or not description.strip():
            raise ValidationError("Description is required")
        if not customer.name.strip() or not customer.email.strip():
            raise ValidationError("Customer name and email are required")

        actor = actor or SYSTEM_ACTOR
        now = self._clock()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            title=title.strip(),
            description=description.strip(),
            customer=Customer(name=customer.name.strip(), email=customer.email.strip()),
            status=TicketStateMachine.initial_state(),
            priority=priority,
            assigned_agent_id=None,
            assigned_agent_name=None,
            auto_assigned=False,
            version=1,
            created_at=now,
            updated_at=now,
        )
        activity = self._activity(
            ticket,
            ActivityAction.TICKET_CREATED,
            actor,
            describe_creation(ticket.customer.name),
            now,
            to_status=ticket.status,
        )
        with tracer.start_as_current_span("tickets.create"):
            await self._repository.create_ticket(ticket, activity)
        self._metrics.counter("tickets_created_total").inc()
        logger.info("Created ticket %s for %s", ticket.id, ticket.customer.email)
        return ticket

    async def change_status(self, ticket_id: str, *, actor: Actor, new_status: TicketStatus) -> Ticket:
        def build(current: Ticket, now: datetime) -> _Mutation:
            if current.assigned_agent_id != actor.id:
                raise ForbiddenError("You can only update status of tickets assigned to you")
            TicketStateMachine.assert_transition(current.status, new_status)
            closed_at = now if new_status in TERMINAL_STATUSES else current.closed_at
            updated = self._next_version(current, now, status=new_status, closed_at=closed_at)
            activity = self._activity(
                updated,
                ActivityAction.STATUS_CHANGED,
                actor,
                describe_status_change(current.status, new_status),
                now,
                from_status=current.status,
                to_status=new_status,
            )
            return _Mutation(ticket=updated, activity=activity)

        with tracer.start_as_current_span("tickets.change_status") as span:
            span.set_attribute("ticket.id", ticket_id)
            span.set_attribute("ticket.to_status", new_status.value)
            mutation = await self._mutate(ticket_id, build)

        self._metrics.counter("ticket_status_changes_total").inc(labels={"to_status": new_status.value})
        logger.info(
            "Ticket %s moved to %s by %s", ticket_id, new_status.value, actor.id,
        )
        if new_status == TicketStatus.RESOLVED:
            await self._credit_resolution(actor.id, mutation.activity.timestamp)
        return mutation.ticket

    async def add_comment(self, ticket_id: str, *, actor: Actor, content: str) -> Comment:
        if content is None or not content.strip():
            raise ValidationError("Comment content is required")
        text = content.strip()

        def build(current: Ticket, now: datetime) -> _Mutation:
            if not actor.is_manager and current.assigned_agent_id != actor.id:
                raise ForbiddenError("You can only comment on tickets assigned to you")
            updated = self._next_version(current, now)
            comment = Comment(
                id=str(uuid.uuid4()),
                ticket_id=current.id,
                author_id=actor.id,
                author_name=actor.name,
                content=text,
                created_at=now,
            )
            activity = self._activity(
                updated,
                ActivityAction.COMMENT_ADDED,
                actor,
                describe_comment(text),
                now,
                metadata={"comment_id": comment.id},
            )
            return _Mutation(ticket=updated, activity=activity, comment=comment)

        with tracer.start_as_current_span("tickets.add_comment") as span:
            span.set_attribute("ticket.id", ticket_id)
            mutation = await self._mutate(ticket_id, build)

        self._metrics.counter("ticket_comments_total").inc()
        logger.info("Comment added to ticket %s by %s", ticket_id, actor.id)
        assert mutation.comment is not None
        return mutation.comment

    async def assign(
        self,
        ticket_id: str,
        agent_id: str,
        *,
        actor: Actor,
        reassign: bool = False,
        auto: bool = False,
    ) -> Ticket:
        if not actor.is_manager:
            raise ForbiddenError("Only managers can assign tickets")
        if await self._repository.get_ticket(ticket_id) is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        agent = await self._users.get_user(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        if not agent.is_agent:
            raise ValidationError(f"User {agent_id} is not an agent")

        def build(current: Ticket, now: datetime) -> _Mutation:
            if TicketStateMachine.is_terminal(current.status):
                raise ConflictError(f"Ticket is already {current.status.value}")
            if current.assigned_agent_id is not None:
                if not reassign:
                    raise ConflictError(
                        f"Ticket is already assigned to {current.assigned_agent_name or current.assigned_agent_id}"
                    )
                if current.assigned_agent_id == agent.id:
                    raise ConflictError(f"Ticket is already assigned to {agent.name}")
            status = current.status
            if status == TicketStatus.NOT_STARTED:
                status = TicketStatus.IN_PROGRESS
            updated = self._next_version(
                current,
                now,
                status=status,
                assigned_agent_id=agent.id,
                assigned_agent_name=agent.name,
                auto_assigned=auto,
            )
            activity = self._activity(
                updated,
                ActivityAction.TICKET_ASSIGNED,
                actor,
                describe_assignment(current.assigned_agent_name, agent.name, auto=auto),
                now,
                from_status=current.status if status != current.status else None,
                to_status=status if status != current.status else None,
                metadata={
                    "agent_id": agent.id,
                    "previous_agent_id": current.assigned_agent_id,
                    "auto": auto,
                },
            )
            return _Mutation(ticket=updated, activity=activity)

        with tracer.start_as_current_span("tickets.assign") as span:
            span.set_attribute("ticket.id", ticket_id)
            span.set_attribute("ticket.agent_id", agent_id)
            mutation = await self._mutate(ticket_id, build)

        self._metrics.counter("ticket_assignments_total").inc(labels={"mode": "auto" if auto else "manual"})
        logger.info(
            "Ticket %s assigned to %s by %s (auto=%s)", ticket_id, agent.id, actor.id, auto,
        )
        return mutation.ticket

    async def set_priority(self, ticket_id: str, *, actor: Actor, priority: Priority) -> Ticket:
        if not actor.is_manager:
            raise ForbiddenError("Only managers can change ticket priority")

        current = await self._repository.get_ticket(ticket_id)
        if current is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        if current.priority == priority and not TicketStateMachine.is_terminal(current.status):
            return current

        def build(current: Ticket, now: datetime) -> _Mutation:
            if TicketStateMachine.is_terminal(current.status):
                raise ConflictError(f"Ticket is already {current.status.value}")
            updated = self._next_version(current, now, priority=priority)
            activity = self._activity(
                updated,
                ActivityAction.PRIORITY_CHANGED,
                actor,
                describe_priority_change(current.priority, priority),
                now,
                metadata={
                    "from_priority": current.priority.value if current.priority else None,
                    "to_priority": priority.value,
                },
            )
            return _Mutation(ticket=updated, activity=activity)

        with tracer.start_as_current_span("tickets.set_priority"):
            mutation = await self._mutate(ticket_id, build)
        logger.info("Ticket %s priority set to %s by %s", ticket_id, priority.value, actor.id)
        return mutation.ticket

    async def escalate(
        self,
        ticket_id: str,
        *,
        expected: Priority,
        target: Priority,
        reason: str,
    ) -> Ticket | None:
        """Raise the priority of an open ticket still at ``expected``.

        Returns ``None`` when the ticket closed or changed priority since it
        was selected for escalation.
        """

        def build(current: Ticket, now: datetime) -> _Mutation | None:
            if TicketStateMachine.is_terminal(current.status) or current.priority != expected:
                return None
            updated = self._next_version(current, now, priority=target)
            activity = self._activity(
                updated,
                ActivityAction.SLA_ESCALATED,
                SYSTEM_ACTOR,
                describe_escalation(reason, expected, target),
                now,
                metadata={"from_priority": expected.value, "to_priority": target.value},
            )
            return _Mutation(ticket=updated, activity=activity)

        with tracer.start_as_current_span("tickets.escalate"):
            mutation = await self._mutate(ticket_id, build)
        if mutation is None:
            return None
        logger.info("Escalated ticket %s from %s to %s", ticket_id, expected.value, target.value)
        return mutation.ticket

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_ticket(self, ticket_id: str, *, actor: Actor) -> TicketAggregate:
        aggregate = await self._repository.get_aggregate(ticket_id)
        if aggregate is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        if not actor.is_manager and aggregate.ticket.assigned_agent_id != actor.id:
            raise ForbiddenError("You can only view tickets assigned to you")
        return aggregate

    async def list_tickets(self, *, actor: Actor) -> list[Ticket]:
        if actor.is_manager:
            return await self._repository.list_tickets()
        return await self._repository.list_tickets(agent_id=actor.id)

    async def list_grouped(self, *, actor: Actor) -> dict[TicketStatus, list[Ticket]]:
        grouped: dict[TicketStatus, list[Ticket]] = {status: [] for status in TicketStatus}
        for ticket in await self.list_tickets(actor=actor):
            grouped[ticket.status].append(ticket)
        return grouped

    async def list_unassigned(self, *, actor: Actor) -> list[Ticket]:
        if not actor.is_manager:
            raise ForbiddenError("Only managers can view unassigned tickets")
        return await self._repository.list_unassigned()

    async def search(self, *, actor: Actor, query: str, page: int = 0, size: int = 10) -> TicketPage:
        if page < 0 or size < 1:
            raise ValidationError("page must be >= 0 and size must be >= 1")
        matches = await self._matches(actor, query)
        start = page * size
        return TicketPage(tickets=matches[start : start + size], page=page, size=size, total_count=len(matches))

    async def autocomplete(self, *, actor: Actor, query: str, limit: int = 5) -> AutocompleteResult:
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        matches = await self._matches(actor, query)
        return AutocompleteResult(tickets=matches[:limit], total_count=len(matches))

    async def _matches(self, actor: Actor, query: str) -> list[Ticket]:
        if not query or not query.strip():
            return []
        agent_id = None if actor.is_manager else actor.id
        return await self._repository.search_text(query.strip(), agent_id=agent_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _mutate(
        self,
        ticket_id: str,
        build: Callable[[Ticket, datetime], _Mutation | None],
    ) -> _Mutation | None:
        async with self._locks.hold(ticket_id):
            for attempt in range(1, self._retry_attempts + 1):
                current = await self._repository.get_ticket(ticket_id)
                if current is None:
                    raise NotFoundError(f"Ticket {ticket_id} not found")
                # Ledger timestamps never run backwards for a ticket.
                now = max(self._clock(), current.updated_at)
                mutation = build(current, now)
                if mutation is None:
                    return None
                try:
                    await self._repository.save_mutation(
                        mutation.ticket,
                        expected_version=current.version,
                        activity=mutation.activity,
                        comment=mutation.comment,
                    )
                except StaleTicketError:
                    self._metrics.counter("ticket_write_conflicts_total").inc()
                    logger.warning(
                        "Version conflict on ticket %s (attempt %d/%d)",
                        ticket_id,
                        attempt,
                        self._retry_attempts,
                    )
                    if attempt == self._retry_attempts:
                        raise
                    continue
                return mutation
        raise ConflictError(f"Ticket {ticket_id} could not be updated")

    async def _credit_resolution(self, agent_id: str, at: datetime) -> None:
        if self._resolution_listener is None:
            return
        try:
            await self._resolution_listener.credit_resolution(agent_id, at)
        except Exception:
            # The weekly score job recomputes from the ledger.
            logger.exception("Failed to credit resolution to agent %s", agent_id)

    @staticmethod
    def _next_version(current: Ticket, now: datetime, **changes: Any) -> Ticket:
        return replace(current, version=current.version + 1, updated_at=now, **changes)

    @staticmethod
    def _activity(
        ticket: Ticket,
        action: ActivityAction,
        actor: Actor,
        details: str,
        now: datetime,
        *,
        from_status: TicketStatus | None = None,
        to_status: TicketStatus | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ActivityEntry:
        return ActivityEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket.id,
            sequence=ticket.version,
            action=action,
            actor_id=actor.id,
            actor_name=actor.name,
            details=details,
            timestamp=now,
            from_status=from_status,
            to_status=to_status,
            metadata=dict(metadata or {}),
        )
