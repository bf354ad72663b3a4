"""Wire models shared by several route modules.

Every model serialises with camelCase aliases and accepts either spelling
on input.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ticketdesk.users.models import Role, User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageModel(CamelModel):
    message: str


class UserModel(CamelModel):
    id: str
    name: str
    email: str
    role: Role
    phone_number: str | None = None
    employee_id: str | None = None
    last_active_at: datetime | None = None

    @classmethod
    def from_entity(cls, user: User) -> "UserModel":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            phone_number=user.phone_number,
            employee_id=user.employee_id,
            last_active_at=user.last_active_at,
        )
