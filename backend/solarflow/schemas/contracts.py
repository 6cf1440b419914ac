from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from solarflow.schemas.common import OptionalUtcDateTime, UtcDateTime


class ContractCreateFromQuote(BaseModel):
    deposit_percentage: Optional[float] = Field(None, ge=0, le=100)
    expected_start_date: Optional[date] = None
    expected_completion_date: Optional[date] = None
    warranty_years: Optional[int] = Field(None, ge=0, le=50)
    notes: Optional[str] = Field(None, max_length=4000)


class ContractUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=4000)
    expected_start_date: Optional[date] = None
    expected_completion_date: Optional[date] = None


class ContractSign(BaseModel):
    customer_signed: bool = False
    company_signed_by: Optional[str] = Field(None, max_length=64)

    @model_validator(mode="after")
    def _at_least_one_signature(self):
        if not self.customer_signed and not (self.company_signed_by or "").strip():
            raise ValueError("customer_signed or company_signed_by is required")
        return self


class ContractTransition(BaseModel):
    to_status: str = Field(..., min_length=1, max_length=32)


class ContractCancel(BaseModel):
    # Blank reasons are rejected by the lifecycle with reason_required.
    reason: Optional[str] = Field(None, max_length=2000)


class ContractRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    project_id: str
    quote_id: Optional[str] = None
    contract_number: str
    status: str

    deposit_percentage: float
    deposit_amount: int
    final_payment_amount: int
    total_amount: int

    expected_start_date: Optional[date] = None
    expected_completion_date: Optional[date] = None
    actual_start_date: Optional[date] = None
    actual_completion_date: Optional[date] = None
    warranty_years: Optional[int] = None

    customer_signed_at: OptionalUtcDateTime = None
    company_signed_at: OptionalUtcDateTime = None
    company_signed_by: Optional[str] = None

    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: OptionalUtcDateTime = None

    created_at: UtcDateTime
    updated_at: UtcDateTime


class TimelineEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    at: UtcDateTime
    event: str
    detail: dict[str, Any] = {}


class ContractTimelineRead(BaseModel):
    contract_id: str
    status: str
    events: list[TimelineEventRead]
