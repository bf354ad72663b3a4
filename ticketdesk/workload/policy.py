"""Workload scoring policies.

A policy is a pure function of an agent's open-ticket counts (and current
productivity score) to a scalar where lower means a lighter load. Policies
are versioned and selected by name, so alternate formulas stay separate
instead of being folded into one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol

from ticketdesk.tickets.state import Priority, TicketStatus

# Priority key used for tickets that have no priority set.
UNPRIORITISED = "NONE"


@dataclass(frozen=True, slots=True)
class WorkloadCounts:
    """Open-ticket counts for one agent, keyed by priority name."""

    not_started: Mapping[str, int] = field(default_factory=dict)
    in_progress: Mapping[str, int] = field(default_factory=dict)

    @property
    def not_started_total(self) -> int:
        return sum(self.not_started.values())

    @property
    def in_progress_total(self) -> int:
        return sum(self.in_progress.values())

    @property
    def total_active(self) -> int:
        return self.not_started_total + self.in_progress_total

    def by_status(self, status: TicketStatus) -> Mapping[str, int]:
        if status == TicketStatus.NOT_STARTED:
            return self.not_started
        if status == TicketStatus.IN_PROGRESS:
            return self.in_progress
        return {}


class WorkloadPolicy(Protocol):
    name: str
    version: int

    def score(self, counts: WorkloadCounts, *, productivity_score: float = 0.0) -> float:
        ...


@dataclass(frozen=True)
class PriorityWeightedPolicy:
    """``sum(status_weight * priority_multiplier)`` over open tickets."""

    name: str = "priority-weighted"
    version: int = 1
    status_weights: Mapping[TicketStatus, float] = field(
        default_factory=lambda: {TicketStatus.NOT_STARTED: 1.0, TicketStatus.IN_PROGRESS: 0.5}
    )
    priority_multipliers: Mapping[str, float] = field(
        default_factory=lambda: {
            Priority.HIGH.value: 1.5,
            Priority.MEDIUM.value: 1.0,
            Priority.LOW.value: 0.6,
            UNPRIORITISED: 1.0,
        }
    )

    def score(self, counts: WorkloadCounts, *, productivity_score: float = 0.0) -> float:
        total = 0.0
        for status, weight in self.status_weights.items():
            for priority, count in counts.by_status(status).items():
                total += count * weight * self.priority_multipliers.get(priority, 1.0)
        return round(total, 6)


@dataclass(frozen=True)
class SimpleCountPolicy:
    """Number of open tickets."""

    name: str = "simple-count"
    version: int = 1

    def score(self, counts: WorkloadCounts, *, productivity_score: float = 0.0) -> float:
        return float(counts.total_active)


@dataclass(frozen=True)
class ProductivityAdjustedPolicy:
    """Inverse of the capacity/productivity blend used by the manager dashboard.

    The dashboard ranks agents by ``0.6 / (1 + open) + 0.4 * (min(p / 20, 1) + 0.1)``
    where higher means "give me more"; the score is negated so that lower still
    means lighter.
    """

    name: str = "productivity-adjusted"
    version: int = 1
    workload_weight: float = 0.6
    score_weight: float = 0.4
    score_ceiling: float = 20.0

    def score(self, counts: WorkloadCounts, *, productivity_score: float = 0.0) -> float:
        capacity = 1.0 / (1.0 + counts.total_active)
        normalised = min(productivity_score / self.score_ceiling, 1.0)
        priority = self.workload_weight * capacity + self.score_weight * (normalised + 0.1)
        return -round(priority, 3)


_POLICIES: dict[str, type] = {
    PriorityWeightedPolicy.name: PriorityWeightedPolicy,
    SimpleCountPolicy.name: SimpleCountPolicy,
    ProductivityAdjustedPolicy.name: ProductivityAdjustedPolicy,
}


def get_policy(name: str) -> WorkloadPolicy:
    """Instantiate the policy registered under ``name``."""

    try:
        return _POLICIES[name]()
    except KeyError as exc:
        raise ValueError(f"Unknown workload policy '{name}'. Known: {sorted(_POLICIES)}") from exc
