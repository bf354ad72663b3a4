"""Shared packages used by the ticketdesk service."""
