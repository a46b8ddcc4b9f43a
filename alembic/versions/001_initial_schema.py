"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Saved workflow documents, one row per (user, client-side workflow id)
    op.create_table(
        "workflow_data",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(length=100), nullable=False),
        sa.Column("workflow_id", sa.String(length=100), nullable=False),
        sa.Column("workflow_name", sa.String(length=255), nullable=False),
        sa.Column("workflow_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "workflow_id", name="uq_workflow_data_user_workflow"),
    )
    op.create_index(op.f("ix_workflow_data_user_id"), "workflow_data", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_workflow_data_workflow_id"), "workflow_data", ["workflow_id"], unique=False
    )

    # Encrypted per-node credential values; workflow_id is a soft reference
    op.create_table(
        "credential_storage",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(length=100), nullable=False),
        sa.Column("workflow_id", sa.String(length=100), nullable=True),
        sa.Column("node_id", sa.String(length=100), nullable=False),
        sa.Column("node_type", sa.String(length=255), nullable=False),
        sa.Column("credentials", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "workflow_id", "node_id", name="uq_credential_storage_user_workflow_node"
        ),
    )
    op.create_index(
        op.f("ix_credential_storage_user_id"), "credential_storage", ["user_id"], unique=False
    )
    op.create_index(
        op.f("ix_credential_storage_workflow_id"),
        "credential_storage",
        ["workflow_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_credential_storage_node_id"), "credential_storage", ["node_id"], unique=False
    )
    op.create_index(
        "uq_credential_storage_user_node_unsaved",
        "credential_storage",
        ["user_id", "node_id"],
        unique=True,
        sqlite_where=sa.text("workflow_id IS NULL"),
        postgresql_where=sa.text("workflow_id IS NULL"),
    )

    # Simulated runs
    op.create_table(
        "execution",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(length=100), nullable=False),
        sa.Column("workflow_id", sa.String(length=100), nullable=True),
        sa.Column("workflow_json", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING", "RUNNING", "COMPLETED", "FAILED", "CANCELLED",
                name="executionstatus",
            ),
            nullable=False,
        ),
        sa.Column("node_results", sa.Text(), nullable=True),
        sa.Column("nodes_total", sa.Integer(), nullable=False),
        sa.Column("nodes_completed", sa.Integer(), nullable=False),
        sa.Column("nodes_failed", sa.Integer(), nullable=False),
        sa.Column("nodes_skipped", sa.Integer(), nullable=False),
        sa.Column("current_node_id", sa.String(length=100), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(length=100), nullable=True),
        sa.Column("trace_id", sa.String(length=100), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_execution_user_id"), "execution", ["user_id"], unique=False)
    op.create_index(op.f("ix_execution_workflow_id"), "execution", ["workflow_id"], unique=False)
    op.create_index(op.f("ix_execution_status"), "execution", ["status"], unique=False)


def downgrade() -> None:
    op.drop_table("execution")
    op.drop_table("credential_storage")
    op.drop_table("workflow_data")
    sa.Enum(name="executionstatus").drop(op.get_bind(), checkfirst=True)
