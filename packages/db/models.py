"""SQLModel table definitions for the ticketdesk data layer."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class TicketTable(SQLModel, table=True):
    """Customer-reported tickets and their current lifecycle state."""

    __tablename__ = "tickets"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    title: str = Field(sa_column=Column(String(255), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    customer_name: str = Field(sa_column=Column(String(255), nullable=False))
    customer_email: str = Field(sa_column=Column(String(255), nullable=False))
    status: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    priority: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    assigned_agent_id: str | None = Field(
        default=None, sa_column=Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    )
    assigned_agent_name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    auto_assigned: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class TicketCommentTable(SQLModel, table=True):
    """Comments left on a ticket by its agent or a manager."""

    __tablename__ = "ticket_comments"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    # Ledger sequence of the COMMENT_ADDED entry; orders comments sharing a timestamp.
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    author_id: str = Field(sa_column=Column(String(36), nullable=False))
    author_name: str = Field(sa_column=Column(String(255), nullable=False))
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketActivityTable(SQLModel, table=True):
    """Append-only activity ledger; one row per state-affecting operation."""

    __tablename__ = "ticket_activities"
    __table_args__ = (
        UniqueConstraint("ticket_id", "sequence", name="uq_ticket_activities_sequence"),
        Index("ix_ticket_activities_action_created", "action", "to_status", "created_at"),
    )

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    sequence: int = Field(sa_column=Column(Integer, nullable=False))
    action: str = Field(sa_column=Column(String(50), nullable=False))
    actor_id: str = Field(sa_column=Column(String(36), nullable=False))
    actor_name: str = Field(sa_column=Column(String(255), nullable=False))
    details: str = Field(sa_column=Column(Text, nullable=False))
    from_status: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    to_status: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    metadata_: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserTable(SQLModel, table=True):
    """Agents and managers known to the desk."""

    __tablename__ = "users"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    role: str = Field(sa_column=Column(String(20), nullable=False, index=True))
    phone_number: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    employee_id: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    last_active_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentScoreTable(SQLModel, table=True):
    """Weekly productivity history keyed by agent and ISO week start."""

    __tablename__ = "agent_scores"
    __table_args__ = (UniqueConstraint("agent_id", "week_start", name="uq_agent_scores_agent_week"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    agent_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    agent_name: str = Field(sa_column=Column(String(255), nullable=False))
    week_start: date = Field(sa_column=Column(Date, nullable=False, index=True))
    week_end: date = Field(sa_column=Column(Date, nullable=False))
    tickets_resolved: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    tickets_invalid: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    tickets_closed: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    productivity_score: float = Field(default=0.0, sa_column=Column(Float, nullable=False))
    calculated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
