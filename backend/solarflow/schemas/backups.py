from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from solarflow.schemas.common import UtcDateTime


class BackupRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    backup_type: str
    storage_path: str
    size_bytes: Optional[int] = None
    status: str
    error_message: Optional[str] = None
    created_at: UtcDateTime


class RestoreRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    workspace: str
    backup_id: str
    status: str
    row_counts: dict[str, int] = {}
