from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence

from .state import Priority, TicketStatus


class ActivityAction(str, Enum):
    """Kinds of entries recorded in the activity ledger."""

    TICKET_CREATED = "TICKET_CREATED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    STATUS_CHANGED = "STATUS_CHANGED"
    COMMENT_ADDED = "COMMENT_ADDED"
    PRIORITY_CHANGED = "PRIORITY_CHANGED"
    SLA_ESCALATED = "SLA_ESCALATED"


@dataclass(frozen=True, slots=True)
class Customer:
    """Identity of the customer who reported a ticket."""

    name: str
    email: str


@dataclass(slots=True)
class Ticket:
    """Aggregate root representing a support ticket."""

    id: str
    title: str
    description: str
    customer: Customer
    status: TicketStatus
    priority: Priority | None
    assigned_agent_id: str | None
    assigned_agent_name: str | None
    auto_assigned: bool
    version: int
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None


@dataclass(slots=True)
class Comment:
    """Immutable note attached to a ticket."""

    id: str
    ticket_id: str
    author_id: str
    author_name: str
    content: str
    created_at: datetime


@dataclass(slots=True)
class ActivityEntry:
    """Ledger entry describing one state-affecting operation."""

    id: str
    ticket_id: str
    sequence: int
    action: ActivityAction
    actor_id: str
    actor_name: str
    details: str
    timestamp: datetime
    from_status: TicketStatus | None = None
    to_status: TicketStatus | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TicketAggregate:
    """Ticket bundled with its comments and activity history."""

    ticket: Ticket
    comments: Sequence[Comment]
    activities: Sequence[ActivityEntry]
