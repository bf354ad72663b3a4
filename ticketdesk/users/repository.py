from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Iterable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import UserTable
from ticketdesk.core.clock import ensure_utc, utcnow
from ticketdesk.core.errors import NotFoundError, ValidationError

from .models import Role, User


class UserRepository:
    """Data access for agent and manager accounts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_user(
        self,
        *,
        name: str,
        email: str,
        role: Role,
        user_id: str | None = None,
        phone_number: str | None = None,
        employee_id: str | None = None,
    ) -> User:
        if not name.strip() or not email.strip():
            raise ValidationError("User name and email are required")
        now = utcnow()
        row = UserTable(
            id=user_id or str(uuid.uuid4()),
            name=name.strip(),
            email=email.strip().lower(),
            role=role.value,
            phone_number=phone_number,
            employee_id=employee_id,
            created_at=now,
            updated_at=now,
        )
        user = self._table_to_user(row)
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)
        return user

    async def upsert_users(self, records: Iterable[Mapping[str, Any]]) -> list[User]:
        """Create users from configuration records, skipping ids that already exist."""

        users: list[User] = []
        for record in records:
            existing = await self.get_user(str(record["id"])) if record.get("id") else None
            if existing is not None:
                users.append(existing)
                continue
            users.append(
                await self.create_user(
                    user_id=record.get("id"),
                    name=str(record["name"]),
                    email=str(record["email"]),
                    role=Role(str(record.get("role", Role.AGENT.value)).upper()),
                    phone_number=record.get("phone_number"),
                    employee_id=record.get("employee_id"),
                )
            )
        return users

    async def get_user(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
            return self._table_to_user(row) if row is not None else None

    async def require_user(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def list_agents(self) -> list[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserTable).where(UserTable.role == Role.AGENT.value).order_by(UserTable.id.asc())
            )
            return [self._table_to_user(row) for row in result.scalars().all()]

    async def touch_heartbeat(self, user_id: str, *, at: datetime | None = None) -> User:
        moment = at or utcnow()
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(UserTable, user_id)
                if row is None:
                    raise NotFoundError(f"User {user_id} not found")
                row.last_active_at = moment
                row.updated_at = moment
                user = self._table_to_user(row)
        return user

    @staticmethod
    def _table_to_user(row: UserTable) -> User:
        return User(
            id=row.id,
            name=row.name,
            email=row.email,
            role=Role(row.role),
            phone_number=row.phone_number,
            employee_id=row.employee_id,
            last_active_at=ensure_utc(row.last_active_at) if row.last_active_at is not None else None,
            created_at=ensure_utc(row.created_at),
        )
