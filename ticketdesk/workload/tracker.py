from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol

from ticketdesk.tickets.repository import TicketRepository
from ticketdesk.tickets.state import TicketStatus
from ticketdesk.users.models import User
from ticketdesk.users.repository import UserRepository

from .policy import WorkloadCounts, WorkloadPolicy, get_policy


class ScoreSource(Protocol):
    async def current_score(self, agent_id: str) -> float:
        ...

    async def current_scores(self, agent_ids: list[str]) -> Mapping[str, float]:
        ...


@dataclass(slots=True)
class WorkloadSnapshot:
    """Derived load of one agent at the time it was computed."""

    agent_id: str
    agent_name: str
    counts: WorkloadCounts
    productivity_score: float
    workload_score: float
    policy: str
    policy_version: int

    @property
    def not_started(self) -> int:
        return self.counts.not_started_total

    @property
    def in_progress(self) -> int:
        return self.counts.in_progress_total

    @property
    def total_active(self) -> int:
        return self.counts.total_active


class WorkloadTracker:
    """Compute agent workload from the current ticket store; nothing is cached."""

    def __init__(
        self,
        tickets: TicketRepository,
        users: UserRepository,
        scores: ScoreSource,
        *,
        policy: WorkloadPolicy | str = "priority-weighted",
    ) -> None:
        self._tickets = tickets
        self._users = users
        self._scores = scores
        self._policy = get_policy(policy) if isinstance(policy, str) else policy

    @property
    def policy(self) -> WorkloadPolicy:
        return self._policy

    async def compute_workload(self, agent_id: str) -> WorkloadSnapshot:
        agent = await self._users.require_user(agent_id)
        counts = await self._tickets.count_open_by_priority(agent_id=agent_id)
        score = await self._scores.current_score(agent_id)
        return self._snapshot(agent, counts.get(agent_id, {}), score)

    async def compute_all(self) -> list[WorkloadSnapshot]:
        agents = await self._users.list_agents()
        if not agents:
            return []
        counts = await self._tickets.count_open_by_priority()
        scores = await self._scores.current_scores([agent.id for agent in agents])
        return [
            self._snapshot(agent, counts.get(agent.id, {}), scores.get(agent.id, 0.0))
            for agent in agents
        ]

    def _snapshot(
        self,
        agent: User,
        by_status: Mapping[TicketStatus, Mapping[str, int]],
        productivity_score: float,
    ) -> WorkloadSnapshot:
        counts = WorkloadCounts(
            not_started=dict(by_status.get(TicketStatus.NOT_STARTED, {})),
            in_progress=dict(by_status.get(TicketStatus.IN_PROGRESS, {})),
        )
        return WorkloadSnapshot(
            agent_id=agent.id,
            agent_name=agent.name,
            counts=counts,
            productivity_score=productivity_score,
            workload_score=self._policy.score(counts, productivity_score=productivity_score),
            policy=self._policy.name,
            policy_version=self._policy.version,
        )
