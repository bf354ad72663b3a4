"""Middleware components for the ticketdesk API."""

from .identity import IdentityMiddleware

__all__ = ["IdentityMiddleware"]
