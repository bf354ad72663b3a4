"""Append-only activity ledger.

Entries are written only through :meth:`ActivityLedger.add`, which joins the
caller's open transaction so the ticket row and its ledger entry commit
together. Each entry carries a per-ticket ``sequence`` equal to the ticket's
version after the mutation; reads order by ``(timestamp, sequence)`` so
identical timestamps still produce a total order.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import TicketActivityTable
from ticketdesk.core.clock import ensure_utc

from .models import ActivityAction, ActivityEntry
from .state import Priority, TicketStatus

_COMMENT_PREVIEW_LENGTH = 50


def describe_creation(customer_name: str) -> str:
    return f"Ticket created by customer: {customer_name}"


def describe_assignment(previous_agent: str | None, agent_name: str, *, auto: bool) -> str:
    if previous_agent is None:
        details = f"Ticket assigned to {agent_name}"
    else:
        details = f"Ticket reassigned from {previous_agent} to {agent_name}"
    if auto:
        details += " based on workload and productivity score"
    return details


def describe_status_change(before: TicketStatus, after: TicketStatus) -> str:
    return f"Status changed from {before.value} to {after.value}"


def describe_comment(content: str) -> str:
    if len(content) > _COMMENT_PREVIEW_LENGTH:
        content = content[:_COMMENT_PREVIEW_LENGTH] + "..."
    return f"Comment added: {content}"


def describe_priority_change(before: Priority | None, after: Priority) -> str:
    label = before.value if before is not None else "NONE"
    return f"Priority changed from {label} to {after.value}"


def describe_escalation(reason: str, before: Priority, after: Priority) -> str:
    return f"{reason}. Priority escalated from {before.value} to {after.value}"


class ActivityLedger:
    """Read and append access to the ``ticket_activities`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def add(session: AsyncSession, entry: ActivityEntry) -> None:
        """Stage ``entry`` in an open transaction; committing is the caller's job."""

        session.add(
            TicketActivityTable(
                id=entry.id,
                ticket_id=entry.ticket_id,
                sequence=entry.sequence,
                action=entry.action.value,
                actor_id=entry.actor_id,
                actor_name=entry.actor_name,
                details=entry.details,
                from_status=entry.from_status.value if entry.from_status else None,
                to_status=entry.to_status.value if entry.to_status else None,
                metadata_=dict(entry.metadata),
                created_at=entry.timestamp,
            )
        )

    async def entries(self, ticket_id: str) -> list[ActivityEntry]:
        async with self._session_factory() as session:
            return await self.entries_in(session, ticket_id)

    @staticmethod
    async def entries_in(session: AsyncSession, ticket_id: str) -> list[ActivityEntry]:
        result = await session.execute(
            select(TicketActivityTable)
            .where(TicketActivityTable.ticket_id == ticket_id)
            .order_by(TicketActivityTable.created_at.asc(), TicketActivityTable.sequence.asc())
        )
        return [_row_to_entry(row) for row in result.scalars().all()]

    async def count_closures(
        self,
        start: datetime,
        end: datetime,
        *,
        actor_ids: Iterable[str] | None = None,
    ) -> dict[str, dict[TicketStatus, int]]:
        """Count STATUS_CHANGED entries into a terminal state per actor in ``[start, end)``."""

        statement = (
            select(
                TicketActivityTable.actor_id,
                TicketActivityTable.to_status,
                func.count(TicketActivityTable.id),
            )
            .where(TicketActivityTable.action == ActivityAction.STATUS_CHANGED.value)
            .where(
                TicketActivityTable.to_status.in_(
                    [TicketStatus.RESOLVED.value, TicketStatus.INVALID.value]
                )
            )
            .where(TicketActivityTable.created_at >= start)
            .where(TicketActivityTable.created_at < end)
            .group_by(TicketActivityTable.actor_id, TicketActivityTable.to_status)
        )
        if actor_ids is not None:
            statement = statement.where(TicketActivityTable.actor_id.in_(list(actor_ids)))

        async with self._session_factory() as session:
            result = await session.execute(statement)
            rows = result.all()

        counts: dict[str, dict[TicketStatus, int]] = defaultdict(
            lambda: {TicketStatus.RESOLVED: 0, TicketStatus.INVALID: 0}
        )
        for actor_id, to_status, total in rows:
            counts[str(actor_id)][TicketStatus(str(to_status))] = int(total)
        return dict(counts)


def _row_to_entry(row: TicketActivityTable) -> ActivityEntry:
    return ActivityEntry(
        id=row.id,
        ticket_id=row.ticket_id,
        sequence=row.sequence,
        action=ActivityAction(row.action),
        actor_id=row.actor_id,
        actor_name=row.actor_name,
        details=row.details,
        timestamp=ensure_utc(row.created_at),
        from_status=TicketStatus(row.from_status) if row.from_status else None,
        to_status=TicketStatus(row.to_status) if row.to_status else None,
        metadata=dict(row.metadata_ or {}),
    )

