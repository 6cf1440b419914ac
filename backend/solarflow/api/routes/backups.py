from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from solarflow.api.deps import Principal, get_principal, get_tenant_session, require_roles
from solarflow.api.errors import unwrap
from solarflow.database import TenantSession
from solarflow.schemas import BackupRead, RestoreRead
from solarflow.services import backup_service
from solarflow.services.restore_service import RestoreResult, is_super_admin, restore_to_workspace

router = APIRouter(prefix="/backups", tags=["backups"])

_backup_read_dep = require_roles("admin", "super_admin", "superadmin")


@router.get("", response_model=List[BackupRead])
def list_backups(
    limit: int = Query(50, ge=1, le=500),  # noqa: B008
    _principal: Principal = Depends(_backup_read_dep),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    return backup_service.list_backups(ts, limit=limit)


@router.post("/{backup_id}/restore", response_model=RestoreRead, status_code=201)
def restore_backup(
    backup_id: str,
    principal: Principal = Depends(get_principal),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    if not is_super_admin(principal.role):
        raise HTTPException(status_code=403, detail="Super admin required")

    result = restore_to_workspace(ts, backup_id, principal.actor)
    if not isinstance(result, RestoreResult):
        unwrap(result)
    ts.commit()
    return result
