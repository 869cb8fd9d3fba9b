"""Users, purchase requests, and audit entries.

Revision ID: c1a7e3f09b42
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "c1a7e3f09b42"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("clerk_user_id", sa.String(), nullable=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("employee_id", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=False, server_default="requester"),
            sa.Column("college", sa.String(), nullable=True),
            sa.Column("department", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_users_clerk_user_id"), "users", ["clerk_user_id"], unique=True)
        op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
        op.create_index(op.f("ix_users_employee_id"), "users", ["employee_id"])
        op.create_index(op.f("ix_users_role"), "users", ["role"])

    if not inspector.has_table("purchase_requests"):
        op.create_table(
            "purchase_requests",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("request_number", sa.String(), nullable=False),
            sa.Column("requester_id", sa.Uuid(), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("purpose", sa.String(), nullable=False, server_default=""),
            sa.Column("college", sa.String(), nullable=False, server_default=""),
            sa.Column("department", sa.String(), nullable=False, server_default=""),
            sa.Column("cost_estimate", sa.Float(), nullable=False, server_default="0"),
            sa.Column("expense_category", sa.String(), nullable=False, server_default=""),
            sa.Column("sop_reference", sa.String(), nullable=True),
            sa.Column("attachments", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(), nullable=False, server_default="manager_review"),
            sa.Column("pending_query", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("query_level", sa.String(), nullable=True),
            sa.Column("budget_available", sa.Boolean(), nullable=True),
            sa.Column("budget_allocated", sa.Float(), nullable=True),
            sa.Column("budget_spent", sa.Float(), nullable=True),
            sa.Column("budget_balance", sa.Float(), nullable=True),
            sa.Column(
                "sent_directly_to_dean",
                sa.Boolean(),
                nullable=False,
                server_default=sa.false(),
            ),
            sa.Column(
                "budget_not_available",
                sa.Boolean(),
                nullable=False,
                server_default=sa.false(),
            ),
            sa.Column("history", sa.JSON(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            op.f("ix_purchase_requests_request_number"),
            "purchase_requests",
            ["request_number"],
            unique=True,
        )
        op.create_index(
            op.f("ix_purchase_requests_requester_id"),
            "purchase_requests",
            ["requester_id"],
        )
        op.create_index(op.f("ix_purchase_requests_college"), "purchase_requests", ["college"])
        op.create_index(op.f("ix_purchase_requests_status"), "purchase_requests", ["status"])
        op.create_index(
            op.f("ix_purchase_requests_pending_query"),
            "purchase_requests",
            ["pending_query"],
        )
        op.create_index(
            op.f("ix_purchase_requests_query_level"),
            "purchase_requests",
            ["query_level"],
        )

    if not inspector.has_table("audit_entries"):
        op.create_table(
            "audit_entries",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("actor_id", sa.Uuid(), nullable=True),
            sa.Column("actor_role", sa.String(), nullable=False, server_default=""),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("target_type", sa.String(), nullable=False, server_default=""),
            sa.Column("target_id", sa.Uuid(), nullable=True),
            sa.Column("ip_address", sa.String(), nullable=True),
            sa.Column("user_agent", sa.String(), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_audit_entries_actor_id"), "audit_entries", ["actor_id"])
        op.create_index(op.f("ix_audit_entries_actor_role"), "audit_entries", ["actor_role"])
        op.create_index(op.f("ix_audit_entries_action"), "audit_entries", ["action"])
        op.create_index(op.f("ix_audit_entries_target_id"), "audit_entries", ["target_id"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in ("audit_entries", "purchase_requests", "users"):
        if inspector.has_table(table):
            op.drop_table(table)
