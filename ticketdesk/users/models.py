from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Roles recognised by the desk."""

    AGENT = "AGENT"
    MANAGER = "MANAGER"


@dataclass(slots=True)
class User:
    """An agent or manager account."""

    id: str
    name: str
    email: str
    role: Role
    phone_number: str | None
    employee_id: str | None
    last_active_at: datetime | None
    created_at: datetime

    @property
    def is_agent(self) -> bool:
        return self.role == Role.AGENT


@dataclass(frozen=True, slots=True)
class Actor:
    """Identity on whose behalf a service call runs."""

    id: str
    name: str
    role: Role

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(id=user.id, name=user.name, role=user.role)


SYSTEM_ACTOR = Actor(id="SYSTEM", name="System", role=Role.MANAGER)


@dataclass(slots=True)
class AgentDetails:
    """Agent profile with current ticket counts and productivity."""

    agent: User
    not_started_count: int
    in_progress_count: int
    closed_count: int
    productivity_score: float
