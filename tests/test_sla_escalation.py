from __future__ import annotations

import pytest

from ticketdesk.tickets.escalation import SlaEscalator
from ticketdesk.tickets.models import ActivityAction
from ticketdesk.tickets.state import Priority, TicketStatus
from ticketdesk.users.models import SYSTEM_ACTOR


@pytest.mark.asyncio
async def test_overdue_tickets_escalate_one_level(desk):
    low = await desk.new_ticket("Slow laptop", priority=Priority.LOW)
    medium = await desk.new_ticket("VPN drops", priority=Priority.MEDIUM)
    high = await desk.new_ticket("Site down", priority=Priority.HIGH)
    desk.clock.advance(days=8)

    escalated = await desk.escalator.run()

    assert set(escalated) == {low.id, medium.id}
    assert (await desk.repository.get_ticket(low.id)).priority == Priority.MEDIUM
    assert (await desk.repository.get_ticket(medium.id)).priority == Priority.HIGH
    assert (await desk.repository.get_ticket(high.id)).priority == Priority.HIGH

    entry = (await desk.repository.ledger.entries(low.id))[-1]
    assert entry.action == ActivityAction.SLA_ESCALATED
    assert entry.actor_id == SYSTEM_ACTOR.id
    assert entry.sequence == 2
    assert entry.metadata == {"from_priority": "LOW", "to_priority": "MEDIUM"}


@pytest.mark.asyncio
async def test_tickets_within_their_window_are_left_alone(desk):
    low = await desk.new_ticket("Slow laptop", priority=Priority.LOW)
    medium = await desk.new_ticket("VPN drops", priority=Priority.MEDIUM)
    desk.clock.advance(days=5)

    escalated = await desk.escalator.run()

    assert escalated == [medium.id]
    assert (await desk.repository.get_ticket(low.id)).version == 1


@pytest.mark.asyncio
async def test_closed_tickets_never_escalate(desk, manager, alice):
    ticket = await desk.new_ticket(priority=Priority.LOW)
    await desk.tickets.assign(ticket.id, alice.id, actor=manager)
    await desk.tickets.change_status(ticket.id, actor=alice, new_status=TicketStatus.INVALID)
    desk.clock.advance(days=30)

    assert await desk.escalator.run() == []


@pytest.mark.asyncio
async def test_escalation_thresholds_are_configurable(desk):
    ticket = await desk.new_ticket(priority=Priority.LOW)
    desk.clock.advance(days=2)
    eager = SlaEscalator(desk.tickets, low_after_days=1, medium_after_days=1, clock=desk.clock)

    assert await eager.run() == [ticket.id]


@pytest.mark.asyncio
async def test_escalate_skips_tickets_whose_priority_moved(desk, manager):
    ticket = await desk.new_ticket(priority=Priority.LOW)
    await desk.tickets.set_priority(ticket.id, actor=manager, priority=Priority.HIGH)

    result = await desk.tickets.escalate(
        ticket.id, expected=Priority.LOW, target=Priority.MEDIUM, reason="SLA breach"
    )

    assert result is None
    assert (await desk.repository.get_ticket(ticket.id)).priority == Priority.HIGH
