"""Auto-assignment of unassigned tickets to the least-loaded agent."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from ticketdesk.core.errors import NoAgentsAvailableError, TicketdeskError
from ticketdesk.core.logging import get_tracer
from ticketdesk.metrics import MetricsRegistry, metrics_registry
from ticketdesk.tickets.models import Ticket
from ticketdesk.tickets.service import TicketService
from ticketdesk.users.models import SYSTEM_ACTOR
from ticketdesk.workload.tracker import WorkloadSnapshot, WorkloadTracker

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


@dataclass(slots=True)
class SkippedTicket:
    ticket_id: str
    reason: str


@dataclass(slots=True)
class AutoAssignSummary:
    """Outcome of one ``auto_assign_all`` batch."""

    assigned: dict[str, str] = field(default_factory=dict)
    agent_totals: dict[str, int] = field(default_factory=dict)
    skipped: list[SkippedTicket] = field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return len(self.assigned)

    @property
    def message(self) -> str:
        if not self.assigned and not self.skipped:
            return "No unassigned tickets to assign"
        message = f"Successfully auto-assigned {self.assigned_count} tickets"
        if self.skipped:
            message += f", skipped {len(self.skipped)}"
        return message


@dataclass(slots=True)
class AssignmentStats:
    workloads: Sequence[WorkloadSnapshot]
    unassigned_count: int
    agent_count: int
    total_active_tickets: int


def select_agent(snapshots: Sequence[WorkloadSnapshot]) -> WorkloadSnapshot:
    """Lowest workload, then highest productivity, then smallest agent id."""

    if not snapshots:
        raise NoAgentsAvailableError("No agents available for assignment")
    return min(
        snapshots,
        key=lambda snapshot: (snapshot.workload_score, -snapshot.productivity_score, snapshot.agent_id),
    )


class AssignmentScheduler:
    def __init__(
        self,
        tickets: TicketService,
        workloads: WorkloadTracker,
        *,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._tickets = tickets
        self._workloads = workloads
        self._metrics = metrics or metrics_registry

    async def auto_assign(self, ticket_id: str) -> Ticket:
        snapshots = await self._workloads.compute_all()
        chosen = select_agent(snapshots)
        logger.debug(
            "Auto-assigning ticket %s to %s (workload=%.3f, productivity=%.3f)",
            ticket_id,
            chosen.agent_id,
            chosen.workload_score,
            chosen.productivity_score,
        )
        return await self._tickets.assign(ticket_id, chosen.agent_id, actor=SYSTEM_ACTOR, auto=True)

    async def auto_assign_all(self) -> AutoAssignSummary:
        """Assign every unassigned NOT_STARTED ticket, oldest first.

        Raises :class:`NoAgentsAvailableError` before touching any ticket when
        no agent exists. Each assignment commits on its own; a ticket that
        fails with a domain error is recorded in ``skipped`` and the batch
        moves on.
        """

        with self._metrics.time_distribution("auto_assign_batch_duration_seconds"):
            with tracer.start_as_current_span("assignment.auto_assign_all") as span:
                snapshots = await self._workloads.compute_all()
                if not snapshots:
                    raise NoAgentsAvailableError("No agents available for assignment")

                pending = await self._tickets.repository.list_unassigned()
                span.set_attribute("assignment.pending", len(pending))
                summary = AutoAssignSummary()
                for ticket in pending:
                    chosen = select_agent(snapshots)
                    try:
                        await self._tickets.assign(
                            ticket.id, chosen.agent_id, actor=SYSTEM_ACTOR, auto=True
                        )
                    except TicketdeskError as exc:
                        summary.skipped.append(SkippedTicket(ticket_id=ticket.id, reason=exc.message))
                        self._metrics.counter("auto_assign_skipped_total").inc()
                        logger.warning("Skipped auto-assignment of ticket %s: %s", ticket.id, exc.message)
                    else:
                        summary.assigned[ticket.id] = chosen.agent_id
                    # A skip may come from a concurrent assignment that moved the loads.
                    snapshots = await self._workloads.compute_all()

                summary.agent_totals = {snapshot.agent_id: snapshot.total_active for snapshot in snapshots}
        logger.info("%s", summary.message)
        return summary

    async def assignment_stats(self) -> AssignmentStats:
        snapshots = await self._workloads.compute_all()
        return AssignmentStats(
            workloads=snapshots,
            unassigned_count=await self._tickets.repository.count_unassigned(),
            agent_count=len(snapshots),
            total_active_tickets=sum(snapshot.total_active for snapshot in snapshots),
        )
