from __future__ import annotations

from datetime import datetime
from typing import Any

from solarflow.config import settings
from solarflow.database import SessionFactory
from solarflow.services.backup_service import (
    create_full_backup,
    create_incremental_backup,
    delete_backups_older_than,
)
from solarflow.services.job_runner import JobContext, JobRunResult, JobType, run_job

JOB_NAME = "backup-job"
INCREMENTAL_JOB_NAME = "backup-incremental-job"
JOB_TYPE = JobType.BACKUP


def backup_body(ctx: JobContext) -> dict[str, Any]:
    now = ctx.clock()
    with ctx.scope() as ts:
        full = create_full_backup(ts, now=now)
        full_id = full.id
    with ctx.scope() as ts:
        retention_deleted = delete_backups_older_than(ts, settings.backup_retention_days, now=now)
    return {"full_backup_id": full_id, "retention_deleted": retention_deleted}


def incremental_backup_body(ctx: JobContext) -> dict[str, Any]:
    with ctx.scope() as ts:
        incr = create_incremental_backup(ts, now=ctx.clock())
        return {"incremental_backup_id": incr.id}


def run_backup_job(
    tenant_id: str,
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> JobRunResult:
    return run_job(tenant_id, JOB_NAME, JOB_TYPE, backup_body, session_factory=session_factory, now=now)


def run_incremental_backup_job(
    tenant_id: str,
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> JobRunResult:
    return run_job(
        tenant_id,
        INCREMENTAL_JOB_NAME,
        JOB_TYPE,
        incremental_backup_body,
        session_factory=session_factory,
        now=now,
    )
