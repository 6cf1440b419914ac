"""Job run ledger: the persistent record of job executions and the per-(tenant, job) lock.

The lock is the partial unique index ``uq_job_runs_running``: inserting a second RUNNING row
for the same (tenant, job_name) violates it, and that violation is translated into `Busy`.
Finalization (complete/fail/timeout) happens exactly once per run and is the caller's
responsibility; it is not guarded here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError

from solarflow import models
from solarflow.core.results import Busy
from solarflow.core.time_utils import ensure_utc, utcnow
from solarflow.database import TenantSession

logger = logging.getLogger("solarflow.jobs")

TIMEOUT_MESSAGE = "Job exceeded maximum execution time"
RUNNING_LOCK_INDEX = "uq_job_runs_running"


def _duration_ms(started_at: datetime | None, finished_at: datetime) -> int:
    if started_at is None:
        return 0
    delta = ensure_utc(finished_at) - ensure_utc(started_at)
    return max(0, int(delta.total_seconds() * 1000))


def _is_lock_collision(exc: IntegrityError) -> bool:
    """True only for a unique violation on the RUNNING lock index."""

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None)
    if sqlstate is not None:
        diag = getattr(orig, "diag", None)
        return sqlstate == "23505" and getattr(diag, "constraint_name", None) == RUNNING_LOCK_INDEX
    # SQLite names the indexed columns rather than the index.
    message = str(orig)
    return "UNIQUE constraint failed" in message and "job_runs.job_name" in message


def acquire(
    ts: TenantSession,
    job_name: str,
    job_type: str,
    metadata: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> str | Busy:
    """Insert a RUNNING row; return its id, or `Busy` if one already exists.

    The insert runs in a SAVEPOINT so a lock collision does not roll back the caller's
    transaction. The caller must commit for the lock to become visible to other processes.
    """

    run = models.JobRun(
        job_name=str(job_name),
        job_type=str(job_type),
        status=models.JobRunStatus.RUNNING.value,
        started_at=now or utcnow(),
        meta=dict(metadata) if metadata else None,
    )

    try:
        with ts.unit():
            ts.add(run)
            ts.flush()
    except IntegrityError as exc:
        if not _is_lock_collision(exc):
            raise
        logger.info(
            "job_run_skipped_busy",
            extra={"tenant_id": ts.tenant_id, "job_name": job_name, "job_type": job_type},
        )
        return Busy(tenant_id=ts.tenant_id, job_name=str(job_name))

    logger.info(
        "job_run_started",
        extra={"tenant_id": ts.tenant_id, "job_name": job_name, "job_run_id": run.id},
    )
    return run.id


def _finalize(
    ts: TenantSession,
    run_id: str,
    *,
    status: models.JobRunStatus,
    error_message: str | None = None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> models.JobRun:
    run = ts.get(models.JobRun, run_id)
    if run is None:
        raise LookupError(f"JobRun {run_id} not found for tenant {ts.tenant_id}")

    finished_at = now or utcnow()
    run.status = status.value
    run.completed_at = finished_at
    run.duration_ms = _duration_ms(run.started_at, finished_at)
    if error_message is not None:
        run.error_message = error_message
    if metadata:
        run.meta = {**(run.meta or {}), **metadata}
    ts.flush()
    return run


def complete(
    ts: TenantSession,
    run_id: str,
    metadata: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> models.JobRun:
    run = _finalize(ts, run_id, status=models.JobRunStatus.COMPLETED, metadata=metadata, now=now)
    logger.info(
        "job_run_completed",
        extra={
            "tenant_id": ts.tenant_id,
            "job_name": run.job_name,
            "job_run_id": run.id,
            "duration_ms": run.duration_ms,
        },
    )
    return run


def fail(
    ts: TenantSession,
    run_id: str,
    message: str,
    *,
    now: datetime | None = None,
) -> models.JobRun:
    run = _finalize(
        ts, run_id, status=models.JobRunStatus.FAILED, error_message=str(message), now=now
    )
    logger.error(
        "job_run_failed",
        extra={
            "tenant_id": ts.tenant_id,
            "job_name": run.job_name,
            "job_run_id": run.id,
            "error": run.error_message,
        },
    )
    return run


def timeout(ts: TenantSession, run_id: str, *, now: datetime | None = None) -> models.JobRun:
    run = _finalize(
        ts, run_id, status=models.JobRunStatus.TIMEOUT, error_message=TIMEOUT_MESSAGE, now=now
    )
    logger.warning(
        "job_run_timed_out",
        extra={"tenant_id": ts.tenant_id, "job_name": run.job_name, "job_run_id": run.id},
    )
    return run


def get_job_run(ts: TenantSession, run_id: str) -> models.JobRun | None:
    return ts.get(models.JobRun, run_id)


def list_job_runs(
    ts: TenantSession,
    *,
    job_name: str | None = None,
    status: str | None = None,
    limit: int = 50,
) -> list[models.JobRun]:
    q = ts.query(models.JobRun)
    if job_name:
        q = q.filter(models.JobRun.job_name == job_name)
    if status:
        q = q.filter(models.JobRun.status == str(status).upper())
    limit = max(1, min(int(limit), 500))
    return q.order_by(models.JobRun.started_at.desc(), models.JobRun.id.desc()).limit(limit).all()


def cleanup_old_job_runs(
    ts: TenantSession,
    *,
    retention_days: int = 30,
    now: datetime | None = None,
) -> int:
    """Delete terminal runs whose completed_at is older than the retention window."""

    cutoff = (now or utcnow()) - timedelta(days=int(retention_days))
    deleted = (
        ts.query(models.JobRun)
        .filter(models.JobRun.status.in_(models.TERMINAL_JOB_RUN_STATUSES))
        .filter(models.JobRun.completed_at.is_not(None))
        .filter(models.JobRun.completed_at < cutoff)
        .delete(synchronize_session=False)
    )
    if deleted:
        logger.info(
            "job_runs_retention_deleted",
            extra={"tenant_id": ts.tenant_id, "deleted": int(deleted)},
        )
    return int(deleted or 0)


def timeout_stale_runs(
    ts: TenantSession,
    *,
    older_than: timedelta,
    job_name: str | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Mark RUNNING rows started before ``now - older_than`` as TIMEOUT.

    This is the reclamation path for locks left behind by crashed processes. It is driven
    by an operator or watchdog; the runner never calls it on its own.
    """

    current = now or utcnow()
    cutoff = current - older_than
    q = (
        ts.query(models.JobRun)
        .filter(models.JobRun.status == models.JobRunStatus.RUNNING.value)
        .filter(models.JobRun.started_at < cutoff)
    )
    if job_name:
        q = q.filter(models.JobRun.job_name == job_name)

    reclaimed: list[str] = []
    for run in q.order_by(models.JobRun.started_at.asc()).all():
        timeout(ts, run.id, now=current)
        reclaimed.append(run.id)
    return reclaimed
