"""add task activity_type and create_activity action

Revision ID: c5d2f8a41e37
Revises: a1c4e7d2b9f0
Create Date: 2026-10-19 14:03:27.551902

"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c5d2f8a41e37"
down_revision: Union[str, Sequence[str], None] = "a1c4e7d2b9f0"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ACTION_TYPES_BEFORE = (
    "'send_notification', 'send_email', 'create_task', "
    "'update_field', 'assign_owner', 'invoke_webhook', 'increment_counter'"
)
_ACTION_TYPES_AFTER = _ACTION_TYPES_BEFORE + ", 'create_activity'"


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column(
        "task",
        sa.Column("activity_type", sa.String(length=32), server_default="task", nullable=False),
    )
    op.create_check_constraint(
        "task_activity_type_check",
        "task",
        "activity_type IN ('task', 'call', 'meeting', 'email', 'follow_up', 'demo', 'other')",
    )
    op.drop_constraint("workflow_action_type_check", "workflow_action", type_="check")
    op.create_check_constraint(
        "workflow_action_type_check",
        "workflow_action",
        f"action_type IN ({_ACTION_TYPES_AFTER})",
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DELETE FROM workflow_action WHERE action_type = 'create_activity'")
    op.drop_constraint("workflow_action_type_check", "workflow_action", type_="check")
    op.create_check_constraint(
        "workflow_action_type_check",
        "workflow_action",
        f"action_type IN ({_ACTION_TYPES_BEFORE})",
    )
    op.drop_constraint("task_activity_type_check", "task", type_="check")
    op.drop_column("task", "activity_type")
