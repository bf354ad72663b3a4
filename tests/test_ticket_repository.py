from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from packages.db.models import TicketCommentTable
from ticketdesk.tickets.ledger import ActivityLedger
from ticketdesk.tickets.models import ActivityAction, ActivityEntry, Customer, Ticket
from ticketdesk.tickets.repository import StaleTicketError, TicketRepository
from ticketdesk.tickets.state import Priority, TicketStatus

NOW = datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)


def _ticket(**overrides) -> Ticket:
    values = dict(
        id=str(uuid.uuid4()),
        title="Broken badge reader",
        description="Door 4 rejects every badge",
        customer=Customer(name="Casey", email="casey@example.com"),
        status=TicketStatus.NOT_STARTED,
        priority=None,
        assigned_agent_id=None,
        assigned_agent_name=None,
        auto_assigned=False,
        version=1,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return Ticket(**values)


def _entry(ticket: Ticket, sequence: int, action: ActivityAction, **overrides) -> ActivityEntry:
    values = dict(
        id=str(uuid.uuid4()),
        ticket_id=ticket.id,
        sequence=sequence,
        action=action,
        actor_id="agent-a",
        actor_name="Alice",
        details=action.value,
        timestamp=NOW,
    )
    values.update(overrides)
    return ActivityEntry(**values)


@pytest.mark.asyncio
async def test_ensure_schema_creates_tables(engine: AsyncEngine):
    repository = TicketRepository(async_sessionmaker(engine, expire_on_commit=False), engine=engine)

    await repository.ensure_schema()

    async with engine.begin() as conn:
        tables = await conn.run_sync(lambda sync_conn: set(sa_inspect(sync_conn).get_table_names()))
    assert {"tickets", "ticket_comments", "ticket_activities", "users", "agent_scores"} <= tables


@pytest.mark.asyncio
async def test_save_mutation_rejects_stale_version(session_factory):
    repository = TicketRepository(session_factory)
    ticket = _ticket()
    await repository.create_ticket(ticket, _entry(ticket, 1, ActivityAction.TICKET_CREATED))
    first = replace(ticket, priority=Priority.HIGH, version=2)
    await repository.save_mutation(
        first, expected_version=1, activity=_entry(first, 2, ActivityAction.PRIORITY_CHANGED)
    )

    late = replace(ticket, priority=Priority.LOW, version=2)
    with pytest.raises(StaleTicketError):
        await repository.save_mutation(
            late, expected_version=1, activity=_entry(late, 2, ActivityAction.PRIORITY_CHANGED)
        )

    stored = await repository.get_ticket(ticket.id)
    assert stored.priority == Priority.HIGH
    assert stored.version == 2
    assert [entry.sequence for entry in await repository.ledger.entries(ticket.id)] == [1, 2]


@pytest.mark.asyncio
async def test_ledger_breaks_timestamp_ties_by_sequence(session_factory):
    repository = TicketRepository(session_factory)
    ticket = _ticket()
    await repository.create_ticket(ticket, _entry(ticket, 1, ActivityAction.TICKET_CREATED))
    async with session_factory() as session:
        async with session.begin():
            ActivityLedger.add(session, _entry(ticket, 3, ActivityAction.COMMENT_ADDED))
            ActivityLedger.add(session, _entry(ticket, 2, ActivityAction.TICKET_ASSIGNED))

    entries = await repository.ledger.entries(ticket.id)

    assert [entry.sequence for entry in entries] == [1, 2, 3]
    assert entries[1].action == ActivityAction.TICKET_ASSIGNED


@pytest.mark.asyncio
async def test_aggregate_breaks_comment_timestamp_ties_by_sequence(session_factory):
    repository = TicketRepository(session_factory)
    ticket = _ticket()
    await repository.create_ticket(ticket, _entry(ticket, 1, ActivityAction.TICKET_CREATED))
    async with session_factory() as session:
        async with session.begin():
            for sequence, content in ((4, "third"), (2, "first"), (3, "second")):
                session.add(
                    TicketCommentTable(
                        id=str(uuid.uuid4()),
                        ticket_id=ticket.id,
                        sequence=sequence,
                        author_id="agent-a",
                        author_name="Alice",
                        content=content,
                        created_at=NOW,
                    )
                )

    aggregate = await repository.get_aggregate(ticket.id)

    assert [comment.content for comment in aggregate.comments] == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_count_open_by_priority_groups_per_agent(session_factory):
    repository = TicketRepository(session_factory)
    rows = [
        _ticket(status=TicketStatus.IN_PROGRESS, priority=Priority.HIGH, assigned_agent_id="agent-a"),
        _ticket(status=TicketStatus.IN_PROGRESS, priority=Priority.HIGH, assigned_agent_id="agent-a"),
        _ticket(status=TicketStatus.IN_PROGRESS, priority=None, assigned_agent_id="agent-a"),
        _ticket(status=TicketStatus.RESOLVED, priority=Priority.LOW, assigned_agent_id="agent-a"),
        _ticket(status=TicketStatus.IN_PROGRESS, priority=Priority.LOW, assigned_agent_id="agent-b"),
        _ticket(),
    ]
    for row in rows:
        await repository.create_ticket(row, _entry(row, 1, ActivityAction.TICKET_CREATED))

    counts = await repository.count_open_by_priority()

    assert counts["agent-a"] == {TicketStatus.IN_PROGRESS: {"HIGH": 2, "NONE": 1}}
    assert counts["agent-b"] == {TicketStatus.IN_PROGRESS: {"LOW": 1}}
    assert await repository.count_unassigned() == 1


@pytest.mark.asyncio
async def test_count_closures_respects_week_window(session_factory):
    repository = TicketRepository(session_factory)
    ticket = _ticket()
    await repository.create_ticket(ticket, _entry(ticket, 1, ActivityAction.TICKET_CREATED))
    monday = datetime(2024, 3, 4, tzinfo=timezone.utc)
    async with session_factory() as session:
        async with session.begin():
            ActivityLedger.add(
                session,
                _entry(
                    ticket,
                    2,
                    ActivityAction.STATUS_CHANGED,
                    to_status=TicketStatus.RESOLVED,
                    timestamp=monday,
                ),
            )
            ActivityLedger.add(
                session,
                _entry(
                    ticket,
                    3,
                    ActivityAction.STATUS_CHANGED,
                    to_status=TicketStatus.INVALID,
                    timestamp=monday + timedelta(days=7),
                ),
            )

    counts = await repository.ledger.count_closures(monday, monday + timedelta(days=7))

    assert counts == {"agent-a": {TicketStatus.RESOLVED: 1, TicketStatus.INVALID: 0}}
