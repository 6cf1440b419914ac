"""job run ledger (partial unique RUNNING lock) and backup records

Revision ID: 20261019_0002_job_runs_and_backups
Revises: 20261019_0001_core_tables
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0002_job_runs_and_backups"
down_revision = "20261019_0001_core_tables"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "job_runs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "tenant_id", sa.String(length=36), sa.ForeignKey("organizations.id"), nullable=False, index=True
        ),
        sa.Column("job_name", sa.String(length=64), nullable=False, index=True),
        sa.Column("job_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, index=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    )

    # The lock. Both Postgres and SQLite support partial indexes.
    op.create_index(
        "uq_job_runs_running",
        "job_runs",
        ["tenant_id", "job_name"],
        unique=True,
        postgresql_where=sa.text("status = 'RUNNING'"),
        sqlite_where=sa.text("status = 'RUNNING'"),
    )

    op.create_table(
        "backup_jobs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "tenant_id", sa.String(length=36), sa.ForeignKey("organizations.id"), nullable=False, index=True
        ),
        sa.Column("backup_type", sa.String(length=16), nullable=False),
        sa.Column("storage_path", sa.String(length=512), nullable=False, unique=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="CREATED"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True
        ),
    )


def downgrade() -> None:
    op.drop_table("backup_jobs")
    op.drop_index("uq_job_runs_running", table_name="job_runs")
    op.drop_table("job_runs")
