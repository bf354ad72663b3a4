"""Agent and manager accounts."""

from .models import SYSTEM_ACTOR, Actor, AgentDetails, Role, User

__all__ = ["SYSTEM_ACTOR", "Actor", "AgentDetails", "Role", "User"]
