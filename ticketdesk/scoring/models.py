from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone


@dataclass(slots=True)
class AgentScore:
    """Stored productivity result for one agent and ISO week."""

    agent_id: str
    agent_name: str
    week_start: date
    week_end: date
    tickets_resolved: int
    tickets_invalid: int
    tickets_closed: int
    productivity_score: float
    calculated_at: datetime


def week_start_for(moment: datetime | date) -> date:
    """Monday of the ISO week containing ``moment`` (UTC)."""

    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        moment = moment.date()
    return moment - timedelta(days=moment.weekday())


def week_bounds(week_start: date) -> tuple[datetime, datetime]:
    """``[Monday 00:00 UTC, next Monday 00:00 UTC)`` for the given week."""

    start = datetime.combine(week_start, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=7)
