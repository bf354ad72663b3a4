from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ticketdesk.core.clock import utcnow
from ticketdesk.core.errors import TicketdeskError

from .service import TicketService
from .state import Priority

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EscalationRule:
    source: Priority
    target: Priority
    max_age: timedelta

    @property
    def reason(self) -> str:
        days = self.max_age.days
        return f"SLA breach: {self.source.value} priority ticket open for more than {days} days"


class SlaEscalator:
    """Bump the priority of open tickets that have waited too long.

    LOW escalates to MEDIUM and MEDIUM to HIGH once the ticket is older than
    the rule's age; HIGH never escalates. Each escalation is a single-ticket
    mutation through :meth:`TicketService.escalate`.
    """

    def __init__(
        self,
        service: TicketService,
        *,
        low_after_days: int = 7,
        medium_after_days: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._service = service
        self._rules = (
            EscalationRule(Priority.LOW, Priority.MEDIUM, timedelta(days=low_after_days)),
            EscalationRule(Priority.MEDIUM, Priority.HIGH, timedelta(days=medium_after_days)),
        )
        self._clock = clock

    async def run(self) -> list[str]:
        """Escalate every due ticket and return the ids that changed."""

        now = self._clock()
        shortest = min(rule.max_age for rule in self._rules)
        candidates = await self._service.repository.escalation_candidates(now - shortest)
        escalated: list[str] = []
        for ticket in candidates:
            rule = next((rule for rule in self._rules if rule.source == ticket.priority), None)
            if rule is None or now - ticket.created_at <= rule.max_age:
                continue
            try:
                updated = await self._service.escalate(
                    ticket.id, expected=rule.source, target=rule.target, reason=rule.reason
                )
            except TicketdeskError as exc:
                logger.warning("Could not escalate ticket %s: %s", ticket.id, exc.message)
                continue
            if updated is not None:
                escalated.append(ticket.id)
        if escalated:
            logger.info("Escalated %d tickets past SLA", len(escalated))
        return escalated
