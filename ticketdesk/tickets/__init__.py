"""Ticket lifecycle: state machine, store, activity ledger and service."""

from .models import ActivityAction, ActivityEntry, Comment, Customer, Ticket, TicketAggregate
from .service import AutocompleteResult, TicketPage, TicketService
from .state import Priority, TicketStateMachine, TicketStatus

__all__ = [
    "ActivityAction",
    "ActivityEntry",
    "AutocompleteResult",
    "Comment",
    "Customer",
    "Priority",
    "Ticket",
    "TicketAggregate",
    "TicketPage",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
]
