"""Productivity scoring from the activity ledger.

Scores are always re-derived from ledger entries (STATUS_CHANGED into
RESOLVED/INVALID, attributed to the acting agent) and written over the
stored row for ``(agent_id, week_start)``. Running a week twice therefore
yields the same rows.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Mapping, Sequence

from ticketdesk.core.clock import utcnow
from ticketdesk.core.errors import ValidationError
from ticketdesk.core.logging import get_tracer
from ticketdesk.tickets.ledger import ActivityLedger
from ticketdesk.tickets.state import TicketStatus
from ticketdesk.users.models import User
from ticketdesk.users.repository import UserRepository

from .models import AgentScore, week_bounds, week_start_for
from .repository import AgentScoreRepository

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

# Most recent week first.
DECAY_WEIGHTS: tuple[float, ...] = (1.0, 0.6, 0.3, 0.1)


def decayed_score(resolved_by_week: Sequence[int], weights: Sequence[float] = DECAY_WEIGHTS) -> float:
    """Weighted sum of weekly resolution counts, most recent week first."""

    return round(sum(count * weight for count, weight in zip(resolved_by_week, weights)), 4)


class ProductivityScorer:
    def __init__(
        self,
        ledger: ActivityLedger,
        scores: AgentScoreRepository,
        users: UserRepository,
        *,
        default_score: float = 0.0,
        weights: Sequence[float] = DECAY_WEIGHTS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._ledger = ledger
        self._scores = scores
        self._users = users
        self._default_score = default_score
        self._weights = tuple(weights)
        self._clock = clock
        self._write_lock = asyncio.Lock()

    async def calculate_week(self, week_start: date | datetime | None = None) -> list[AgentScore]:
        """Recompute and store the given week's scores for every agent."""

        monday = week_start_for(week_start if week_start is not None else self._clock())
        agents = await self._users.list_agents()
        with tracer.start_as_current_span("scoring.calculate_week") as span:
            span.set_attribute("scoring.week_start", monday.isoformat())
            results = await self._calculate(monday, agents)
        logger.info("Calculated productivity for %d agents, week of %s", len(results), monday.isoformat())
        return results

    async def credit_resolution(self, agent_id: str, at: datetime) -> AgentScore | None:
        """Refresh ``agent_id``'s score for the week containing ``at``."""

        agent = await self._users.get_user(agent_id)
        if agent is None or not agent.is_agent:
            return None
        results = await self._calculate(week_start_for(at), [agent])
        return results[0] if results else None

    async def current_score(self, agent_id: str) -> float:
        scores = await self.current_scores([agent_id])
        return scores[agent_id]

    async def current_scores(self, agent_ids: Iterable[str]) -> Mapping[str, float]:
        """Score each agent as of the current week.

        Rows dated after the current week are ignored. A newest row from an
        earlier week is out of date, so that agent's score is re-derived from
        the ledger for the current week without being stored.
        """

        ids = list(agent_ids)
        monday = week_start_for(self._clock())
        latest = await self._scores.latest_for(ids, on_or_before=monday)
        scores: dict[str, float] = {}
        stale: list[str] = []
        for agent_id in ids:
            row = latest.get(agent_id)
            if row is None:
                scores[agent_id] = self._default_score
            elif row.week_start == monday:
                scores[agent_id] = row.productivity_score
            else:
                stale.append(agent_id)
        if stale:
            weekly = await self._weekly_closures(monday, stale)
            for agent_id in stale:
                scores[agent_id] = decayed_score(self._resolved(weekly, agent_id), self._weights)
        return {agent_id: scores[agent_id] for agent_id in ids}

    async def current_week_scores(self) -> list[AgentScore]:
        return await self._scores.for_week(week_start_for(self._clock()))

    async def history(self, agent_id: str) -> list[AgentScore]:
        return await self._scores.history(agent_id)

    async def scores_for_last_weeks(self, weeks: int) -> list[AgentScore]:
        if weeks < 1:
            raise ValidationError("weeks must be >= 1")
        first = week_start_for(self._clock()) - timedelta(weeks=weeks - 1)
        return await self._scores.since(first)

    async def cleanup(self, weeks_to_keep: int) -> int:
        if weeks_to_keep < 1:
            raise ValidationError("weeks_to_keep must be >= 1")
        cutoff = week_start_for(self._clock()) - timedelta(weeks=weeks_to_keep)
        removed = await self._scores.delete_before(cutoff)
        if removed:
            logger.info("Removed %d score rows older than %s", removed, cutoff.isoformat())
        return removed

    async def _weekly_closures(
        self, monday: date, agent_ids: Sequence[str]
    ) -> list[dict[str, dict[TicketStatus, int]]]:
        # One entry per decay weight, week of ``monday`` first.
        weekly: list[dict[str, dict[TicketStatus, int]]] = []
        for offset in range(len(self._weights)):
            start, end = week_bounds(monday - timedelta(weeks=offset))
            weekly.append(await self._ledger.count_closures(start, end, actor_ids=agent_ids))
        return weekly

    @staticmethod
    def _resolved(weekly: Sequence[Mapping[str, Mapping[TicketStatus, int]]], agent_id: str) -> list[int]:
        return [week.get(agent_id, {}).get(TicketStatus.RESOLVED, 0) for week in weekly]

    async def _calculate(self, monday: date, agents: Sequence[User]) -> list[AgentScore]:
        if not agents:
            return []
        weekly = await self._weekly_closures(monday, [agent.id for agent in agents])

        calculated_at = self._clock()
        results: list[AgentScore] = []
        for agent in agents:
            resolved = self._resolved(weekly, agent.id)
            invalid = weekly[0].get(agent.id, {}).get(TicketStatus.INVALID, 0)
            results.append(
                AgentScore(
                    agent_id=agent.id,
                    agent_name=agent.name,
                    week_start=monday,
                    week_end=monday + timedelta(days=6),
                    tickets_resolved=resolved[0],
                    tickets_invalid=invalid,
                    tickets_closed=resolved[0] + invalid,
                    productivity_score=decayed_score(resolved, self._weights),
                    calculated_at=calculated_at,
                )
            )
        async with self._write_lock:
            for score in results:
                await self._scores.upsert(score)
        return results
