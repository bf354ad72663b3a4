from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from ticketdesk.core.errors import ValidationError
from ticketdesk.scoring.models import week_bounds, week_start_for
from ticketdesk.scoring.scorer import decayed_score
from ticketdesk.tickets.state import TicketStatus


async def _resolve_one(desk, manager, agent):
    ticket = await desk.new_ticket()
    await desk.tickets.assign(ticket.id, agent.id, actor=manager)
    await desk.tickets.change_status(ticket.id, actor=agent, new_status=TicketStatus.RESOLVED)


def test_week_helpers_use_iso_monday():
    sunday_night = datetime(2024, 3, 10, 23, 59, tzinfo=timezone.utc)

    assert week_start_for(sunday_night) == date(2024, 3, 4)
    assert week_start_for(date(2024, 3, 11)) == date(2024, 3, 11)
    start, end = week_bounds(date(2024, 3, 4))
    assert start == datetime(2024, 3, 4, tzinfo=timezone.utc)
    assert end - start == timedelta(days=7)


def test_decayed_score_weights_recent_weeks_most():
    assert decayed_score([2, 1, 1, 10]) == pytest.approx(2 * 1.0 + 0.6 + 0.3 + 1.0)
    assert decayed_score([0, 0, 0, 0]) == 0.0


@pytest.mark.asyncio
async def test_calculate_week_is_idempotent(desk, manager, alice, bob):
    await _resolve_one(desk, manager, alice)
    await _resolve_one(desk, manager, alice)

    first = await desk.scorer.calculate_week()
    again = await desk.scorer.calculate_week()

    assert [(s.agent_id, s.tickets_resolved, s.productivity_score) for s in first] == [
        (alice.id, 2, 2.0),
        (bob.id, 0, 0.0),
    ]
    assert [(s.agent_id, s.tickets_resolved, s.productivity_score) for s in again] == [
        (s.agent_id, s.tickets_resolved, s.productivity_score) for s in first
    ]
    history = await desk.scorer.history(alice.id)
    assert len(history) == 1
    assert history[0].week_start == date(2024, 3, 4)
    assert history[0].week_end == date(2024, 3, 10)


@pytest.mark.asyncio
async def test_previous_weeks_decay(desk, manager, alice):
    await _resolve_one(desk, manager, alice)
    desk.clock.advance(weeks=1)
    await _resolve_one(desk, manager, alice)
    await _resolve_one(desk, manager, alice)

    scores = await desk.scorer.calculate_week()

    assert scores[0].tickets_resolved == 2
    assert scores[0].productivity_score == pytest.approx(2 * 1.0 + 1 * 0.6)
    assert await desk.scorer.current_score(alice.id) == pytest.approx(2.6)


@pytest.mark.asyncio
async def test_invalid_closures_count_but_do_not_score(desk, manager, alice):
    ticket = await desk.new_ticket()
    await desk.tickets.assign(ticket.id, alice.id, actor=manager)
    await desk.tickets.change_status(ticket.id, actor=alice, new_status=TicketStatus.INVALID)

    scores = await desk.scorer.calculate_week()

    assert scores[0].tickets_invalid == 1
    assert scores[0].tickets_closed == 1
    assert scores[0].productivity_score == 0.0


@pytest.mark.asyncio
async def test_default_score_without_history(desk, alice):
    assert await desk.scorer.current_score(alice.id) == 0.0
    assert await desk.scorer.current_scores([alice.id]) == {alice.id: 0.0}


@pytest.mark.asyncio
async def test_scores_for_last_weeks_and_cleanup(desk, manager, alice):
    await desk.scorer.calculate_week(date(2024, 1, 1))
    await desk.scorer.calculate_week(date(2024, 2, 26))
    await _resolve_one(desk, manager, alice)

    recent = await desk.scorer.scores_for_last_weeks(2)
    removed = await desk.scorer.cleanup(4)

    assert [score.week_start for score in recent] == [date(2024, 3, 4), date(2024, 2, 26)]
    assert removed == 1
    assert [score.week_start for score in await desk.scorer.history(alice.id)] == [
        date(2024, 3, 4),
        date(2024, 2, 26),
    ]
    with pytest.raises(ValidationError):
        await desk.scorer.scores_for_last_weeks(0)


@pytest.mark.asyncio
async def test_current_week_scores(desk, manager, alice, bob):
    await _resolve_one(desk, manager, bob)
    await desk.scorer.calculate_week()

    scores = await desk.scorer.current_week_scores()

    assert [score.agent_id for score in scores] == [bob.id, alice.id]


@pytest.mark.asyncio
async def test_current_score_decays_while_idle(desk, manager, alice, bob):
    await _resolve_one(desk, manager, alice)
    assert await desk.scorer.current_score(alice.id) == pytest.approx(1.0)

    desk.clock.advance(weeks=1)
    assert await desk.scorer.current_score(alice.id) == pytest.approx(0.6)

    desk.clock.advance(weeks=5)
    assert await desk.scorer.current_score(alice.id) == 0.0
    assert await desk.scorer.current_scores([alice.id, bob.id]) == {alice.id: 0.0, bob.id: 0.0}


@pytest.mark.asyncio
async def test_future_week_rows_do_not_mask_current_week(desk, manager, alice):
    await desk.scorer.calculate_week(date(2030, 1, 7))
    await _resolve_one(desk, manager, alice)

    assert await desk.scorer.current_score(alice.id) == pytest.approx(1.0)
    assert await desk.scorer.current_scores([alice.id]) == {alice.id: pytest.approx(1.0)}
