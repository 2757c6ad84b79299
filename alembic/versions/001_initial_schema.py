"""Initial schema — roster, work items, ledger, queue, round robin.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Agents
    op.create_table(
        "agents",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role_tier", sa.String(20), nullable=False),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False),
        sa.Column("current_workload", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=True),
        sa.Column("skills", ARRAY(sa.String(50)), nullable=False, server_default="{}"),
        sa.CheckConstraint("current_workload >= 0", name="ck_agents_workload_non_negative"),
    )
    op.create_index("idx_agents_department", "agents", ["department"])

    # Work items
    op.create_table(
        "work_items",
        sa.Column("kind", sa.String(20), primary_key=True),
        sa.Column("item_id", sa.String(100), primary_key=True),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("priority", sa.String(10), nullable=False, server_default="NORMAL"),
        sa.Column("categories", ARRAY(sa.String(50)), nullable=False, server_default="{}"),
        sa.Column("status", sa.String(20), nullable=False, server_default="UNASSIGNED"),
        sa.Column("assigned_to", sa.String(64), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalation_status", sa.String(20), nullable=False, server_default="NONE"),
        sa.Column("escalated_by", sa.String(64), nullable=True),
        sa.Column("escalated_to", sa.String(20), nullable=True),
        sa.Column("escalation_reason", sa.Text, nullable=True),
        sa.Column("escalation_feedback", sa.Text, nullable=True),
        sa.Column("escalation_action", sa.String(10), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_work_items_assignee_status", "work_items", ["assigned_to", "status"])
    op.create_index(
        "idx_work_items_escalation", "work_items", ["escalation_status", "escalated_to"]
    )

    # Assignment ledger (append-only)
    op.create_table(
        "assignment_records",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("item_id", sa.String(100), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("from_agent", sa.String(64), nullable=True),
        sa.Column("to_agent", sa.String(64), nullable=True),
        sa.Column("strategy", sa.String(30), nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("performed_by", sa.String(64), nullable=False),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("details", JSONB, nullable=False, server_default="{}"),
    )
    op.create_index("idx_records_item", "assignment_records", ["kind", "item_id", "id"])
    op.create_index("idx_records_performed_at", "assignment_records", ["performed_at"])
    op.create_index("idx_records_to_agent", "assignment_records", ["to_agent"])
    op.create_index("idx_records_from_agent", "assignment_records", ["from_agent"])
    op.create_index("idx_records_action", "assignment_records", ["action"])

    # Queue
    op.create_table(
        "assignment_queue",
        sa.Column("kind", sa.String(20), primary_key=True),
        sa.Column("item_id", sa.String(100), primary_key=True),
        sa.Column("priority", sa.String(10), nullable=False),
        sa.Column("priority_rank", sa.Integer, nullable=False),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="1"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_failure_reason", sa.Text, nullable=True),
        sa.Column("stuck", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    op.create_index("idx_queue_order", "assignment_queue", ["priority_rank", "enqueued_at"])

    # Round-robin state
    op.create_table(
        "round_robin_state",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("rr_key", sa.String(200), nullable=False),
        sa.Column("agent_id", sa.String(64), nullable=False),
        sa.Column("counter", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("rr_key", "agent_id", name="uq_round_robin_key_agent"),
    )


def downgrade() -> None:
    op.drop_table("round_robin_state")
    op.drop_index("idx_queue_order", table_name="assignment_queue")
    op.drop_table("assignment_queue")
    op.drop_table("assignment_records")
    op.drop_table("work_items")
    op.drop_table("agents")
