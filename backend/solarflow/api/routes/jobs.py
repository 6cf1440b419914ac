from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from solarflow.api.deps import Principal, get_session_factory, get_tenant_session, require_roles
from solarflow.database import SessionFactory, TenantSession
from solarflow.schemas import JobRunRead, JobRunResultRead
from solarflow.services import job_ledger
from solarflow.services.job_runner import UnknownJobError, run_job

logger = logging.getLogger("solarflow.api")

router = APIRouter(prefix="/jobs", tags=["jobs"])

_operator_dep = require_roles("admin", "super_admin", "superadmin")


@router.post("/{job_name}/run", response_model=JobRunResultRead)
def trigger_job(
    job_name: str,
    principal: Principal = Depends(_operator_dep),  # noqa: B008
    session_factory: SessionFactory = Depends(get_session_factory),  # noqa: B008
):
    try:
        result = run_job(principal.tenant_id, job_name, session_factory=session_factory)
    except UnknownJobError:
        raise HTTPException(status_code=404, detail=f"Unknown job: {job_name}") from None
    except Exception as exc:
        # Already recorded as FAILED in the ledger by the runner.
        raise HTTPException(
            status_code=500,
            detail={"code": "job_failed", "job_name": job_name, "error": str(exc) or type(exc).__name__},
        ) from exc

    if result.skipped:
        return JSONResponse(
            status_code=202,
            content={"job_name": job_name, "skipped": True, "detail": "already in progress"},
        )

    return JobRunResultRead(
        job_name=job_name,
        skipped=False,
        job_run_id=result.job_run_id,
        summary=result.summary,
    )


@router.get("/runs", response_model=List[JobRunRead])
def list_runs(
    job_name: Optional[str] = Query(None, min_length=1, max_length=64),  # noqa: B008
    status: Optional[str] = Query(None, min_length=1, max_length=16),  # noqa: B008
    limit: int = Query(50, ge=1, le=500),  # noqa: B008
    _principal: Principal = Depends(_operator_dep),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    return job_ledger.list_job_runs(ts, job_name=job_name, status=status, limit=limit)


@router.get("/runs/{run_id}", response_model=JobRunRead)
def get_run(
    run_id: str,
    _principal: Principal = Depends(_operator_dep),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    run = job_ledger.get_job_run(ts, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Job run not found")
    return run
