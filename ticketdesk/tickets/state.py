from __future__ import annotations

from enum import Enum
from typing import Mapping

from ticketdesk.core.errors import InvalidTransitionError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    INVALID = "INVALID"


class Priority(str, Enum):
    """Ticket priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


OPEN_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.NOT_STARTED, TicketStatus.IN_PROGRESS})
TERMINAL_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.RESOLVED, TicketStatus.INVALID})


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _TRANSITIONS: Mapping[TicketStatus, frozenset[TicketStatus]] = {
        TicketStatus.NOT_STARTED: frozenset({TicketStatus.IN_PROGRESS}),
        TicketStatus.IN_PROGRESS: frozenset({TicketStatus.RESOLVED, TicketStatus.INVALID}),
        TicketStatus.RESOLVED: frozenset(),
        TicketStatus.INVALID: frozenset(),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.NOT_STARTED

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls._TRANSITIONS.get(current, frozenset())

    @classmethod
    def is_terminal(cls, status: TicketStatus) -> bool:
        return status in TERMINAL_STATUSES

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if current == new:
            raise InvalidTransitionError(f"Ticket is already in {current.value} status")
        if not cls.can_transition(current, new):
            raise InvalidTransitionError(f"Invalid status transition from {current.value} to {new.value}")
