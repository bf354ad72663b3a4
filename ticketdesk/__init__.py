"""Ticket lifecycle and agent-assignment engine."""

__version__ = "0.1.0"
