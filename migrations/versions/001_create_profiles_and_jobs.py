"""Create profiles and jobs tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("full_name", sa.String(50), nullable=True),
        sa.Column("average_rating", sa.Numeric(2, 1), nullable=False, server_default="0.0"),
        sa.Column("total_ratings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tasks_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column(
            "urgency",
            sa.Enum("Flexible", "This week", "3 days", "Today", "ASAP", name="job_urgency"),
            nullable=False,
            server_default="Flexible",
        ),
        sa.Column("location", sa.String(100), nullable=False, server_default="Campus"),
        sa.Column(
            "category",
            sa.Enum(
                "Errands", "Delivery", "Tutoring", "Tech Help", "Moving", "Cleaning", "Other",
                name="job_category",
            ),
            nullable=True,
        ),
        sa.Column(
            "status",
            sa.Enum("open", "in_progress", "completed", "cancelled", name="job_status"),
            nullable=False,
            server_default="open",
        ),
        sa.Column(
            "assigned_worker_id", sa.Uuid(),
            sa.ForeignKey("profiles.user_id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price >= 0", name="ck_jobs_price_non_negative"),
    )
    op.create_index("ix_jobs_owner_id", "jobs", ["owner_id"])
    op.create_index("ix_jobs_assigned_worker_id", "jobs", ["assigned_worker_id"])
    op.create_index("ix_jobs_status", "jobs", ["status"])


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_table("profiles")
    op.execute("DROP TYPE IF EXISTS job_status")
    op.execute("DROP TYPE IF EXISTS job_category")
    op.execute("DROP TYPE IF EXISTS job_urgency")
