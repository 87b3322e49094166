"""create background_jobs table

Revision ID: 3b7e9c1d42a0
Revises:
Create Date: 2026-10-19 10:12:40.118204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7e9c1d42a0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "background_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "tenant_id", sa.Text, nullable=False, comment="Tenant isolation boundary"
        ),
        sa.Column(
            "type",
            sa.Text,
            nullable=False,
            comment="Job type resolved against the handler registry",
        ),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            comment="Handler input, passed verbatim",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="pending",
            comment="Job status: pending|running|completed|failed|cancelled",
        ),
        sa.Column(
            "priority",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Higher is dispatched first",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Number of claims so far",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Attempts allowed before the job fails",
        ),
        sa.Column("error", sa.Text, nullable=True, comment="Last failure message"),
        sa.Column("result", sa.JSON, nullable=True, comment="Handler return value"),
        sa.Column(
            "scheduled_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Not eligible before this time",
        ),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'cancelled')",
            name="background_jobs_status_check",
        ),
        sa.CheckConstraint(
            "attempts <= max_attempts", name="background_jobs_attempts_check"
        ),
    )

    # Dispatch scan: pending jobs by schedule and priority
    op.create_index(
        "ix_background_jobs_due",
        "background_jobs",
        ["status", "scheduled_at", "priority"],
    )

    # Tenant listings and stats
    op.create_index(
        "ix_background_jobs_tenant_created",
        "background_jobs",
        ["tenant_id", "created_at"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_background_jobs_tenant_created", table_name="background_jobs")
    op.drop_index("ix_background_jobs_due", table_name="background_jobs")
    op.drop_table("background_jobs")
