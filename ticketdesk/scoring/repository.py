from __future__ import annotations

from datetime import date
from typing import Iterable

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import AgentScoreTable
from ticketdesk.core.clock import ensure_utc

from .models import AgentScore


class AgentScoreRepository:
    """Weekly score rows keyed by ``(agent_id, week_start)``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, score: AgentScore) -> None:
        """Overwrite the row for the score's agent and week, creating it if missing."""

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(AgentScoreTable)
                    .where(AgentScoreTable.agent_id == score.agent_id)
                    .where(AgentScoreTable.week_start == score.week_start)
                )
                row = result.scalars().first()
                if row is None:
                    row = AgentScoreTable(agent_id=score.agent_id, week_start=score.week_start)
                    session.add(row)
                row.agent_name = score.agent_name
                row.week_end = score.week_end
                row.tickets_resolved = score.tickets_resolved
                row.tickets_invalid = score.tickets_invalid
                row.tickets_closed = score.tickets_closed
                row.productivity_score = score.productivity_score
                row.calculated_at = score.calculated_at

    async def get(self, agent_id: str, week_start: date) -> AgentScore | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AgentScoreTable)
                .where(AgentScoreTable.agent_id == agent_id)
                .where(AgentScoreTable.week_start == week_start)
            )
            row = result.scalars().first()
            return self._table_to_score(row) if row is not None else None

    async def latest(self, agent_id: str, *, on_or_before: date | None = None) -> AgentScore | None:
        """Newest row for ``agent_id``, ignoring weeks after ``on_or_before``."""

        statement = select(AgentScoreTable).where(AgentScoreTable.agent_id == agent_id)
        if on_or_before is not None:
            statement = statement.where(AgentScoreTable.week_start <= on_or_before)
        async with self._session_factory() as session:
            result = await session.execute(
                statement.order_by(AgentScoreTable.week_start.desc()).limit(1)
            )
            row = result.scalars().first()
            return self._table_to_score(row) if row is not None else None

    async def latest_for(
        self, agent_ids: Iterable[str], *, on_or_before: date | None = None
    ) -> dict[str, AgentScore]:
        ids = list(agent_ids)
        if not ids:
            return {}
        newest = select(
            AgentScoreTable.agent_id, func.max(AgentScoreTable.week_start).label("week_start")
        ).where(AgentScoreTable.agent_id.in_(ids))
        if on_or_before is not None:
            newest = newest.where(AgentScoreTable.week_start <= on_or_before)
        newest = newest.group_by(AgentScoreTable.agent_id).subquery()
        statement = select(AgentScoreTable).join(
            newest,
            (AgentScoreTable.agent_id == newest.c.agent_id)
            & (AgentScoreTable.week_start == newest.c.week_start),
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return {row.agent_id: self._table_to_score(row) for row in result.scalars().all()}

    async def for_week(self, week_start: date) -> list[AgentScore]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AgentScoreTable)
                .where(AgentScoreTable.week_start == week_start)
                .order_by(AgentScoreTable.productivity_score.desc(), AgentScoreTable.agent_id.asc())
            )
            return [self._table_to_score(row) for row in result.scalars().all()]

    async def history(self, agent_id: str) -> list[AgentScore]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AgentScoreTable)
                .where(AgentScoreTable.agent_id == agent_id)
                .order_by(AgentScoreTable.week_start.desc())
            )
            return [self._table_to_score(row) for row in result.scalars().all()]

    async def since(self, week_start: date) -> list[AgentScore]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AgentScoreTable)
                .where(AgentScoreTable.week_start >= week_start)
                .order_by(AgentScoreTable.week_start.desc(), AgentScoreTable.productivity_score.desc())
            )
            return [self._table_to_score(row) for row in result.scalars().all()]

    async def delete_before(self, week_start: date) -> int:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(AgentScoreTable).where(AgentScoreTable.week_start < week_start)
                )
        return int(result.rowcount or 0)

    @staticmethod
    def _table_to_score(row: AgentScoreTable) -> AgentScore:
        return AgentScore(
            agent_id=row.agent_id,
            agent_name=row.agent_name,
            week_start=row.week_start,
            week_end=row.week_end,
            tickets_resolved=int(row.tickets_resolved),
            tickets_invalid=int(row.tickets_invalid),
            tickets_closed=int(row.tickets_closed),
            productivity_score=float(row.productivity_score),
            calculated_at=ensure_utc(row.calculated_at),
        )
