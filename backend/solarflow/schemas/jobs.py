from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from solarflow.schemas.common import OptionalUtcDateTime, UtcDateTime


class JobRunRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    job_name: str
    job_type: str
    status: str
    started_at: UtcDateTime
    completed_at: OptionalUtcDateTime = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    meta: Optional[dict[str, Any]] = None


class JobRunResultRead(BaseModel):
    job_name: str
    skipped: bool
    job_run_id: Optional[str] = None
    summary: dict[str, Any] = {}
