from __future__ import annotations

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from solarflow.schemas.common import OptionalUtcDateTime, UtcDateTime


class HandoverCreate(BaseModel):
    handover_date: date
    checklist: Optional[dict[str, Any]] = None
    photos: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=4000)
    accepted_by: Optional[str] = Field(None, max_length=255)


class HandoverRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    contract_id: str
    handover_type: str
    handover_date: date
    performed_by: Optional[str] = None
    accepted_by: Optional[str] = None
    checklist: Optional[dict[str, Any]] = None
    photos: Optional[list[str]] = None
    notes: Optional[str] = None
    cancelled_at: OptionalUtcDateTime = None
    created_at: UtcDateTime


class CommissionHoldRead(BaseModel):
    handover_id: str
    hold_ends_at: UtcDateTime
    blocked: bool
    released: bool
    state: str
