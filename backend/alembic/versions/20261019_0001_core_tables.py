"""tenants, sales pipeline, contracts, handovers, commissions, audit

Revision ID: 20261019_0001_core_tables
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001_core_tables"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _tenant() -> sa.Column:
    return sa.Column(
        "tenant_id", sa.String(length=36), sa.ForeignKey("organizations.id"), nullable=False, index=True
    )


def _created_at(index: bool = False) -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=index
    )


def upgrade() -> None:
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.String(length=255), nullable=False),
        _created_at(),
    )

    op.create_table(
        "partners",
        _id(),
        _tenant(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("commission_rate", sa.Float(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "projects",
        _id(),
        _tenant(),
        sa.Column("project_number", sa.String(length=50), nullable=True, index=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=32), nullable=True),
        sa.Column("partner_id", sa.String(length=36), sa.ForeignKey("partners.id"), nullable=True, index=True),
        sa.Column("status", sa.String(length=32), nullable=False, index=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "quotes",
        _id(),
        _tenant(),
        sa.Column("project_id", sa.String(length=36), sa.ForeignKey("projects.id"), nullable=True, index=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("total_amount", sa.BigInteger(), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("customer_phone", sa.String(length=32), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        _created_at(),
    )

    op.create_table(
        "contracts",
        _id(),
        _tenant(),
        sa.Column("project_id", sa.String(length=36), sa.ForeignKey("projects.id"), nullable=False, index=True),
        sa.Column("quote_id", sa.String(length=36), sa.ForeignKey("quotes.id"), nullable=True, index=True),
        sa.Column("contract_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("status", sa.String(length=32), nullable=False, index=True),
        sa.Column("deposit_percentage", sa.Float(), nullable=False),
        sa.Column("deposit_amount", sa.BigInteger(), nullable=False),
        sa.Column("final_payment_amount", sa.BigInteger(), nullable=False),
        sa.Column("total_amount", sa.BigInteger(), nullable=False),
        sa.Column("expected_start_date", sa.Date(), nullable=True),
        sa.Column("expected_completion_date", sa.Date(), nullable=True),
        sa.Column("actual_start_date", sa.Date(), nullable=True),
        sa.Column("actual_completion_date", sa.Date(), nullable=True),
        sa.Column("warranty_years", sa.Integer(), nullable=True),
        sa.Column("customer_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("company_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("company_signed_by", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "deposit_amount + final_payment_amount = total_amount", name="ck_contracts_payment_split"
        ),
    )

    op.create_table(
        "handovers",
        _id(),
        _tenant(),
        sa.Column("contract_id", sa.String(length=36), sa.ForeignKey("contracts.id"), nullable=False, index=True),
        sa.Column("handover_type", sa.String(length=32), nullable=False),
        sa.Column("handover_date", sa.Date(), nullable=False, index=True),
        sa.Column("performed_by", sa.String(length=64), nullable=True),
        sa.Column("accepted_by", sa.String(length=255), nullable=True),
        sa.Column("checklist", sa.JSON(), nullable=True),
        sa.Column("photos", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        "partner_commissions",
        _id(),
        _tenant(),
        sa.Column("partner_id", sa.String(length=36), sa.ForeignKey("partners.id"), nullable=False, index=True),
        sa.Column(
            "contract_id", sa.String(length=36), sa.ForeignKey("contracts.id"), nullable=False, unique=True
        ),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        _created_at(),
    )

    op.create_table(
        "audit_logs",
        _id(),
        _tenant(),
        sa.Column("actor", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False, index=True),
        sa.Column("entity_type", sa.String(length=64), nullable=True, index=True),
        sa.Column("entity_id", sa.String(length=64), nullable=True, index=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(index=True),
    )

    op.create_table(
        "public_sessions",
        _id(),
        _tenant(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        _created_at(),
    )

    op.create_table(
        "otp_challenges",
        _id(),
        _tenant(),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        _created_at(),
    )

    op.create_table(
        "notification_logs",
        _id(),
        _tenant(),
        sa.Column("channel", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, index=True),
        _created_at(index=True),
    )


def downgrade() -> None:
    for table in (
        "notification_logs",
        "otp_challenges",
        "public_sessions",
        "audit_logs",
        "partner_commissions",
        "handovers",
        "contracts",
        "quotes",
        "projects",
        "partners",
        "organizations",
    ):
        op.drop_table(table)
