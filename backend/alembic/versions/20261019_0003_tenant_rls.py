"""row-level security on tenant tables (Postgres only)

Revision ID: 20261019_0003_tenant_rls
Revises: 20261019_0002_job_runs_and_backups
Create Date: 2026-10-19
"""
from alembic import op


# revision identifiers, used by Alembic.
revision = "20261019_0003_tenant_rls"
down_revision = "20261019_0002_job_runs_and_backups"
branch_labels = None
depends_on = None

TENANT_TABLES = (
    "partners",
    "projects",
    "quotes",
    "contracts",
    "handovers",
    "partner_commissions",
    "audit_logs",
    "public_sessions",
    "otp_challenges",
    "notification_logs",
    "job_runs",
    "backup_jobs",
)


def upgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return

    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY {table}_tenant_isolation ON {table} "
            "USING (tenant_id = current_setting('app.current_tenant', true)) "
            "WITH CHECK (tenant_id = current_setting('app.current_tenant', true))"
        )


def downgrade() -> None:
    if op.get_bind().dialect.name != "postgresql":
        return

    for table in TENANT_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {table}_tenant_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} NO FORCE ROW LEVEL SECURITY")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
