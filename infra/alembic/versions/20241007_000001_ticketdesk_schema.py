"""Ticketdesk schema: users, tickets, comments, activity ledger and agent scores."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20241007_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("employee_id", sa.String(length=50), nullable=True),
        sa.Column("last_active_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=True),
        sa.Column("assigned_agent_id", sa.String(length=36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_agent_name", sa.String(length=255), nullable=True),
        sa.Column("auto_assigned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("closed_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_tickets_status", "tickets", ["status"])
    op.create_index("ix_tickets_assigned_agent_id", "tickets", ["assigned_agent_id"])

    op.create_table(
        "ticket_comments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=36), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.String(length=36), nullable=False),
        sa.Column("author_name", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_ticket_comments_ticket_id", "ticket_comments", ["ticket_id"])

    op.create_table(
        "ticket_activities",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_id", sa.String(length=36), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=False),
        sa.Column("actor_name", sa.String(length=255), nullable=False),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("from_status", sa.String(length=50), nullable=True),
        sa.Column("to_status", sa.String(length=50), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("ticket_id", "sequence", name="uq_ticket_activities_sequence"),
    )
    op.create_index(
        "ix_ticket_activities_action_created", "ticket_activities", ["action", "to_status", "created_at"]
    )

    op.create_table(
        "agent_scores",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("agent_id", sa.String(length=36), nullable=False),
        sa.Column("agent_name", sa.String(length=255), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("week_end", sa.Date(), nullable=False),
        sa.Column("tickets_resolved", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tickets_invalid", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tickets_closed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("productivity_score", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("calculated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("agent_id", "week_start", name="uq_agent_scores_agent_week"),
    )
    op.create_index("ix_agent_scores_agent_id", "agent_scores", ["agent_id"])
    op.create_index("ix_agent_scores_week_start", "agent_scores", ["week_start"])


def downgrade() -> None:
    op.drop_table("agent_scores")
    op.drop_table("ticket_activities")
    op.drop_table("ticket_comments")
    op.drop_table("tickets")
    op.drop_table("users")
