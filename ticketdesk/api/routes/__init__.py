"""Route modules exposed by the API package."""

from . import agents, metrics, ping, tickets, users

__all__ = ["agents", "metrics", "ping", "tickets", "users"]
