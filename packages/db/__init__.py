"""Database models and utilities."""

from .models import (
    AgentScoreTable,
    TicketActivityTable,
    TicketCommentTable,
    TicketTable,
    UserTable,
)

__all__ = [
    "AgentScoreTable",
    "TicketActivityTable",
    "TicketCommentTable",
    "TicketTable",
    "UserTable",
]
