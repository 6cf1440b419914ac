# ruff: noqa: E501
import uuid
from datetime import date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from solarflow.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class ProjectStatus(PyEnum):
    DEMO = "DEMO"
    LEAD = "LEAD"
    SURVEY = "SURVEY"
    QUOTED = "QUOTED"
    CONTRACTED = "CONTRACTED"
    INSTALLED = "INSTALLED"
    CANCELLED = "CANCELLED"


class QuoteStatus(PyEnum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    SENT = "SENT"
    CUSTOMER_ACCEPTED = "CUSTOMER_ACCEPTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class ContractStatus(PyEnum):
    DRAFT = "DRAFT"
    SIGNED = "SIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class HandoverType(PyEnum):
    INSTALLATION = "INSTALLATION"
    MAINTENANCE = "MAINTENANCE"


class CommissionStatus(PyEnum):
    AVAILABLE = "AVAILABLE"
    PAID = "PAID"


class Tenant(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Partner(Base):
    __tablename__ = "partners"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Percent of contract total; NULL falls back to the configured default rate.
    commission_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    project_number: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    partner_id: Mapped[str | None] = mapped_column(ForeignKey("partners.id"), nullable=True, index=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ProjectStatus.DEMO.value, index=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    partner = relationship("Partner", viewonly=True)


class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    project_id: Mapped[str | None] = mapped_column(ForeignKey("projects.id"), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=QuoteStatus.DRAFT.value)
    total_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Contract(Base):
    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    quote_id: Mapped[str | None] = mapped_column(ForeignKey("quotes.id"), nullable=True, index=True)
    contract_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ContractStatus.DRAFT.value, index=True
    )

    deposit_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    deposit_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    final_payment_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    expected_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expected_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    warranty_years: Mapped[int | None] = mapped_column(Integer, nullable=True)

    customer_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    company_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    company_signed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    project = relationship("Project", viewonly=True)
    handovers = relationship("Handover", back_populates="contract", viewonly=True)

    @validates("status")
    def _validate_status(self, _key, value: str | ContractStatus | None):
        if value is None:
            return ContractStatus.DRAFT.value
        if isinstance(value, ContractStatus):
            value = value.value
        allowed = {s.value for s in ContractStatus}
        if value not in allowed:
            raise ValueError(f"Invalid contract status: {value}")
        return value

    def _validate_invariants(self) -> None:
        if int(self.total_amount) < 0:
            raise ValueError("Contract.total_amount must be >= 0")
        if int(self.deposit_amount) + int(self.final_payment_amount) != int(self.total_amount):
            raise ValueError("Contract.deposit_amount + final_payment_amount must equal total_amount")
        if self.status == ContractStatus.CANCELLED.value and not (self.cancellation_reason or "").strip():
            raise ValueError("Contract.cancellation_reason is required when status=CANCELLED")


@event.listens_for(Contract, "before_insert")
def _contract_before_insert(_mapper, _connection, target: Contract):
    target._validate_invariants()


@event.listens_for(Contract, "before_update")
def _contract_before_update(_mapper, _connection, target: Contract):
    target._validate_invariants()


class Handover(Base):
    __tablename__ = "handovers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    contract_id: Mapped[str] = mapped_column(ForeignKey("contracts.id"), nullable=False, index=True)
    handover_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=HandoverType.INSTALLATION.value
    )
    # Calendar date only; the commission hold window is computed from midnight UTC.
    handover_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    performed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    accepted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    checklist: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    photos: Mapped[list | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    contract = relationship("Contract", back_populates="handovers", viewonly=True)


class Commission(Base):
    __tablename__ = "partner_commissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    partner_id: Mapped[str] = mapped_column(ForeignKey("partners.id"), nullable=False, index=True)
    # At most one commission per contract; the settlement job relies on this.
    contract_id: Mapped[str] = mapped_column(
        ForeignKey("contracts.id"), nullable=False, unique=True, index=True
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=CommissionStatus.AVAILABLE.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    actor: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    # "metadata" is reserved on declarative classes.
    meta: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )


class PublicSession(Base):
    __tablename__ = "public_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class OtpChallenge(Base):
    __tablename__ = "otp_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("organizations.id"), nullable=False, index=True)
    channel: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # PENDING -> SENT | FAILED
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING", index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
