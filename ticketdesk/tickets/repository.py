from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import func, or_, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import TicketCommentTable, TicketTable
from ticketdesk.core.clock import ensure_utc
from ticketdesk.core.errors import ConflictError

from .ledger import ActivityLedger
from .models import ActivityEntry, Comment, Customer, Ticket, TicketAggregate
from .state import OPEN_STATUSES, Priority, TicketStatus


class StaleTicketError(ConflictError):
    """Raised when a ticket changed between read and write."""


class TicketRepository:
    """Persistence helper wrapping ``tickets``, ``ticket_comments`` and the activity ledger."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
        ledger: ActivityLedger | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine
        self.ledger = ledger or ActivityLedger(session_factory)

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(self, ticket: Ticket, activity: ActivityEntry) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketTable(
                        id=ticket.id,
                        title=ticket.title,
                        description=ticket.description,
                        customer_name=ticket.customer.name,
                        customer_email=ticket.customer.email,
                        status=ticket.status.value,
                        priority=ticket.priority.value if ticket.priority else None,
                        assigned_agent_id=ticket.assigned_agent_id,
                        assigned_agent_name=ticket.assigned_agent_name,
                        auto_assigned=ticket.auto_assigned,
                        version=ticket.version,
                        created_at=ticket.created_at,
                        updated_at=ticket.updated_at,
                        closed_at=ticket.closed_at,
                    )
                )
                ActivityLedger.add(session, activity)

    async def save_mutation(
        self,
        ticket: Ticket,
        *,
        expected_version: int,
        activity: ActivityEntry,
        comment: Comment | None = None,
    ) -> None:
        """Persist ``ticket`` together with its ledger entry in one transaction.

        The update only applies while the stored version still equals
        ``expected_version``; otherwise nothing is written and
        :class:`StaleTicketError` is raised.
        """

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(TicketTable)
                    .where(TicketTable.id == ticket.id)
                    .where(TicketTable.version == expected_version)
                    .values(
                        status=ticket.status.value,
                        priority=ticket.priority.value if ticket.priority else None,
                        assigned_agent_id=ticket.assigned_agent_id,
                        assigned_agent_name=ticket.assigned_agent_name,
                        auto_assigned=ticket.auto_assigned,
                        version=ticket.version,
                        updated_at=ticket.updated_at,
                        closed_at=ticket.closed_at,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise StaleTicketError(f"Ticket {ticket.id} was modified concurrently")
                if comment is not None:
                    session.add(
                        TicketCommentTable(
                            id=comment.id,
                            ticket_id=comment.ticket_id,
                            sequence=activity.sequence,
                            author_id=comment.author_id,
                            author_name=comment.author_name,
                            content=comment.content,
                            created_at=comment.created_at,
                        )
                    )
                ActivityLedger.add(session, activity)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def get_aggregate(self, ticket_id: str) -> TicketAggregate | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            comment_result = await session.execute(
                select(TicketCommentTable)
                .where(TicketCommentTable.ticket_id == ticket_id)
                .order_by(TicketCommentTable.created_at.asc(), TicketCommentTable.sequence.asc())
            )
            comments = [self._table_to_comment(item) for item in comment_result.scalars().all()]
            activities = await ActivityLedger.entries_in(session, ticket_id)
        return TicketAggregate(ticket=self._table_to_ticket(row), comments=comments, activities=activities)

    async def list_tickets(
        self,
        *,
        agent_id: str | None = None,
        statuses: Sequence[TicketStatus] | None = None,
        unassigned: bool = False,
        oldest_first: bool = False,
    ) -> list[Ticket]:
        statement = select(TicketTable)
        if agent_id is not None:
            statement = statement.where(TicketTable.assigned_agent_id == agent_id)
        if unassigned:
            statement = statement.where(TicketTable.assigned_agent_id.is_(None))
        if statuses:
            statement = statement.where(TicketTable.status.in_([status.value for status in statuses]))
        order = TicketTable.created_at.asc() if oldest_first else TicketTable.created_at.desc()
        statement = statement.order_by(order, TicketTable.id.asc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def open_tickets_for_agent(self, agent_id: str) -> list[Ticket]:
        return await self.list_tickets(agent_id=agent_id, statuses=sorted(OPEN_STATUSES))

    async def list_unassigned(self) -> list[Ticket]:
        """NOT_STARTED, unassigned tickets, oldest first."""

        return await self.list_tickets(
            statuses=[TicketStatus.NOT_STARTED], unassigned=True, oldest_first=True
        )

    async def count_by_status(self, agent_id: str) -> dict[TicketStatus, int]:
        statement = (
            select(TicketTable.status, func.count(TicketTable.id))
            .where(TicketTable.assigned_agent_id == agent_id)
            .group_by(TicketTable.status)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.all()
        counts = {status: 0 for status in TicketStatus}
        for status, total in rows:
            counts[TicketStatus(str(status))] = int(total)
        return counts

    async def count_open_by_priority(
        self, *, agent_id: str | None = None
    ) -> dict[str, dict[TicketStatus, dict[str, int]]]:
        """Open-ticket counts per assigned agent, status and priority (``"NONE"`` when unset)."""

        statement = (
            select(
                TicketTable.assigned_agent_id,
                TicketTable.status,
                TicketTable.priority,
                func.count(TicketTable.id),
            )
            .where(TicketTable.assigned_agent_id.is_not(None))
            .where(TicketTable.status.in_([status.value for status in OPEN_STATUSES]))
            .group_by(TicketTable.assigned_agent_id, TicketTable.status, TicketTable.priority)
        )
        if agent_id is not None:
            statement = statement.where(TicketTable.assigned_agent_id == agent_id)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.all()

        counts: dict[str, dict[TicketStatus, dict[str, int]]] = {}
        for owner, status, priority, total in rows:
            per_status = counts.setdefault(str(owner), {})
            per_priority = per_status.setdefault(TicketStatus(str(status)), {})
            key = str(priority) if priority else "NONE"
            per_priority[key] = per_priority.get(key, 0) + int(total)
        return counts

    async def count_unassigned(self) -> int:
        statement = (
            select(func.count(TicketTable.id))
            .where(TicketTable.assigned_agent_id.is_(None))
            .where(TicketTable.status == TicketStatus.NOT_STARTED.value)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return int(result.scalar_one())

    async def search_text(self, query: str, *, agent_id: str | None = None) -> list[Ticket]:
        """Case-insensitive substring lookup over id, title and description, newest first."""

        pattern = f"%{_escape_like(query.lower())}%"
        statement = select(TicketTable).where(
            or_(
                func.lower(TicketTable.id).like(pattern, escape="\\"),
                func.lower(TicketTable.title).like(pattern, escape="\\"),
                func.lower(TicketTable.description).like(pattern, escape="\\"),
            )
        )
        if agent_id is not None:
            statement = statement.where(TicketTable.assigned_agent_id == agent_id)
        statement = statement.order_by(TicketTable.created_at.desc(), TicketTable.id.asc())
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def escalation_candidates(self, created_before: datetime) -> list[Ticket]:
        statement = (
            select(TicketTable)
            .where(TicketTable.status.in_([status.value for status in OPEN_STATUSES]))
            .where(TicketTable.priority.in_([Priority.LOW.value, Priority.MEDIUM.value]))
            .where(TicketTable.created_at <= created_before)
            .order_by(TicketTable.created_at.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            title=row.title,
            description=row.description,
            customer=Customer(name=row.customer_name, email=row.customer_email),
            status=TicketStatus(row.status),
            priority=Priority(row.priority) if row.priority else None,
            assigned_agent_id=row.assigned_agent_id,
            assigned_agent_name=row.assigned_agent_name,
            auto_assigned=bool(row.auto_assigned),
            version=int(row.version),
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
            closed_at=ensure_utc(row.closed_at) if row.closed_at is not None else None,
        )

    @staticmethod
    def _table_to_comment(row: TicketCommentTable) -> Comment:
        return Comment(
            id=row.id,
            ticket_id=row.ticket_id,
            author_id=row.author_id,
            author_name=row.author_name,
            content=row.content,
            created_at=ensure_utc(row.created_at),
        )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
