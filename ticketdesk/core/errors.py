"""Error taxonomy shared by the domain services and the HTTP layer."""

from __future__ import annotations


class TicketdeskError(RuntimeError):
    """Base error for ticketdesk operations.

    Each subclass carries the HTTP status the API layer answers with, so route
    handlers never need to translate domain errors one by one.
    """

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TicketdeskError):
    """Raised for malformed or empty input."""

    status_code = 400


class AuthError(TicketdeskError):
    """Raised when a credential is missing, invalid or expired."""

    status_code = 401


class ForbiddenError(TicketdeskError):
    """Raised when an authenticated actor may not touch the resource."""

    status_code = 403


class NotFoundError(TicketdeskError):
    """Raised when an operation targets an unknown id."""

    status_code = 404


class InvalidTransitionError(TicketdeskError):
    """Raised when a status change violates the ticket state machine."""

    status_code = 409


class ConflictError(TicketdeskError):
    """Raised when a write conflicts with the current ticket state."""

    status_code = 409


class NoAgentsAvailableError(TicketdeskError):
    """Raised when the scheduler has no agent to assign to."""

    status_code = 409


__all__ = [
    "AuthError",
    "ConflictError",
    "ForbiddenError",
    "InvalidTransitionError",
    "NoAgentsAvailableError",
    "NotFoundError",
    "TicketdeskError",
    "ValidationError",
]
