from __future__ import annotations

import pytest

from ticketdesk.core.errors import NotFoundError, ValidationError
from ticketdesk.tickets.state import TicketStatus


@pytest.mark.asyncio
async def test_agent_details_counts_tickets_by_state(desk, manager, alice):
    resolved = await desk.new_ticket("Resolved")
    invalid = await desk.new_ticket("Invalid")
    open_ticket = await desk.new_ticket("Open")
    for ticket in (resolved, invalid, open_ticket):
        await desk.tickets.assign(ticket.id, alice.id, actor=manager)
    await desk.tickets.change_status(resolved.id, actor=alice, new_status=TicketStatus.RESOLVED)
    await desk.tickets.change_status(invalid.id, actor=alice, new_status=TicketStatus.INVALID)

    details = await desk.user_service.agent_details(alice.id)

    assert details.agent.name == "Alice"
    assert details.not_started_count == 0
    assert details.in_progress_count == 1
    assert details.closed_count == 2
    assert details.productivity_score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_agent_details_rejects_unknown_and_non_agents(desk, manager):
    with pytest.raises(NotFoundError):
        await desk.user_service.agent_details("ghost")
    with pytest.raises(ValidationError):
        await desk.user_service.agent_details(manager.id)


@pytest.mark.asyncio
async def test_heartbeat_records_activity(desk, alice):
    assert (await desk.user_service.get_user(alice.id)).last_active_at is None

    user = await desk.user_service.heartbeat(alice.id)

    assert user.last_active_at is not None
    assert (await desk.user_service.get_user(alice.id)).last_active_at == user.last_active_at


@pytest.mark.asyncio
async def test_heartbeat_for_unknown_user(desk):
    with pytest.raises(NotFoundError):
        await desk.user_service.heartbeat("ghost")
