"""create automation tables

Revision ID: a1c4e7d2b9f0
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c4e7d2b9f0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "workflow",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("trigger_type", sa.String(length=32), nullable=False),
        sa.Column("schedule_expression", sa.String(length=128), nullable=True),
        sa.Column("trigger_fields", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("execution_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("stop_on_match", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "trigger_type IN ('create', 'update', 'delete', 'scheduled')",
            name="workflow_trigger_type_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_tenant_id", "workflow", ["tenant_id"])
    op.create_index("ix_workflow_deleted_at", "workflow", ["deleted_at"])
    op.create_index(
        "ix_workflow_tenant_entity_trigger",
        "workflow",
        ["tenant_id", "entity_type", "trigger_type"],
    )

    op.create_table(
        "workflow_rule",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("conditions", sa.JSON(), nullable=True),
        sa.Column("condition_logic", sa.String(length=8), server_default="and", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "condition_logic IN ('and', 'or')", name="workflow_rule_condition_logic_check"
        ),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_rule_workflow_id", "workflow_rule", ["workflow_id"])
    op.create_index("ix_workflow_rule_deleted_at", "workflow_rule", ["deleted_at"])

    op.create_table(
        "workflow_action",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("rule_id", sa.String(), nullable=False),
        sa.Column("action_type", sa.String(length=32), nullable=False),
        sa.Column("action_config", sa.JSON(), nullable=False),
        sa.Column("delay_minutes", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "action_type IN ('send_notification', 'send_email', 'create_task', "
            "'update_field', 'assign_owner', 'invoke_webhook', 'increment_counter')",
            name="workflow_action_type_check",
        ),
        sa.CheckConstraint("delay_minutes >= 0", name="workflow_action_delay_check"),
        sa.ForeignKeyConstraint(["rule_id"], ["workflow_rule.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_action_rule_id", "workflow_action", ["rule_id"])
    op.create_index("ix_workflow_action_deleted_at", "workflow_action", ["deleted_at"])

    op.create_table(
        "workflow_execution_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("rule_id", sa.String(), nullable=True),
        sa.Column("action_id", sa.String(), nullable=True),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("trigger_instance_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("attempt", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("duration_ms", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "executed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.CheckConstraint(
            "status IN ('success', 'failed', 'skipped')",
            name="workflow_execution_log_status_check",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_execution_log_tenant_id", "workflow_execution_log", ["tenant_id"])
    op.create_index(
        "ix_execution_log_tenant_executed", "workflow_execution_log", ["tenant_id", "executed_at"]
    )
    op.create_index(
        "ix_execution_log_tenant_workflow",
        "workflow_execution_log",
        ["tenant_id", "workflow_id", "executed_at"],
    )
    op.create_index(
        "ix_execution_log_tenant_entity", "workflow_execution_log", ["tenant_id", "entity_id"]
    )
    op.create_index(
        "ix_execution_log_idempotency",
        "workflow_execution_log",
        ["rule_id", "action_id", "entity_id", "trigger_instance_id", "status"],
    )

    op.create_table(
        "workflow_execution_claim",
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("rule_id", sa.String(), nullable=False),
        sa.Column("action_id", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("trigger_instance_id", sa.String(), nullable=False),
        sa.Column(
            "claimed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("rule_id", "action_id", "entity_id", "trigger_instance_id"),
    )
    op.create_index(
        "ix_workflow_execution_claim_tenant_id", "workflow_execution_claim", ["tenant_id"]
    )

    op.create_table(
        "workflow_scheduled_execution",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("rule_id", sa.String(), nullable=False),
        sa.Column("action_id", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("trigger_instance_id", sa.String(), nullable=False),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column("execute_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempt", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="pending", nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'completed')",
            name="workflow_scheduled_execution_status_check",
        ),
        sa.UniqueConstraint(
            "action_id",
            "entity_id",
            "trigger_instance_id",
            "execute_at",
            name="uq_scheduled_execution_key",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_workflow_scheduled_execution_tenant_id", "workflow_scheduled_execution", ["tenant_id"]
    )
    op.create_index(
        "ix_workflow_scheduled_execution_action_id", "workflow_scheduled_execution", ["action_id"]
    )
    op.create_index(
        "ix_scheduled_execution_due", "workflow_scheduled_execution", ["status", "execute_at"]
    )

    op.create_table(
        "task",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=True),
        sa.Column("assigned_to_user_id", sa.String(), nullable=True),
        sa.Column("subject", sa.String(length=500), nullable=False),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=32), server_default="open", nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_tenant_id", "task", ["tenant_id"])
    op.create_index("ix_task_workflow_id", "task", ["workflow_id"])
    op.create_index("ix_task_tenant_entity", "task", ["tenant_id", "entity_type", "entity_id"])
    op.create_index("ix_task_assigned", "task", ["tenant_id", "assigned_to_user_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("task")
    op.drop_table("workflow_scheduled_execution")
    op.drop_table("workflow_execution_claim")
    op.drop_table("workflow_execution_log")
    op.drop_table("workflow_action")
    op.drop_table("workflow_rule")
    op.drop_table("workflow")
