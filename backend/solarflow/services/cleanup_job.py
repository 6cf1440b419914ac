"""Cross-tenant housekeeping.

The ledger row belongs to the invoking tenant, but the body walks every tenant and
re-enters tenant scope for each one. Each tenant commits independently; a database
error in one tenant rolls back that tenant only and is counted in ``tenants_failed``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from solarflow import models
from solarflow.config import settings
from solarflow.core.time_utils import ensure_utc
from solarflow.database import SessionFactory, SessionLocal, TenantSession, list_tenant_ids
from solarflow.services.audit import SYSTEM_ACTOR, write_audit
from solarflow.services.job_runner import JobContext, JobRunResult, JobType, for_each_row, run_job

logger = logging.getLogger("solarflow.jobs")

JOB_NAME = "cleanup-job"
JOB_TYPE = JobType.CLEANUP

TERMINAL_NOTIFICATION_STATUSES = ("SENT", "FAILED")


def delete_expired_sessions(ts: TenantSession, *, now: datetime) -> int:
    return int(
        ts.query(models.PublicSession)
        .filter(models.PublicSession.expires_at < now)
        .delete(synchronize_session=False)
        or 0
    )


def delete_expired_otps(ts: TenantSession, *, now: datetime) -> int:
    return int(
        ts.query(models.OtpChallenge)
        .filter(models.OtpChallenge.expires_at < now)
        .filter(models.OtpChallenge.verified.is_(False))
        .delete(synchronize_session=False)
        or 0
    )


def delete_old_notification_logs(ts: TenantSession, *, now: datetime) -> int:
    cutoff = now - timedelta(days=settings.notification_log_retention_days)
    return int(
        ts.query(models.NotificationLog)
        .filter(models.NotificationLog.status.in_(TERMINAL_NOTIFICATION_STATUSES))
        .filter(models.NotificationLog.created_at < cutoff)
        .delete(synchronize_session=False)
        or 0
    )


def find_expiring_projects(ts: TenantSession, *, now: datetime) -> list[models.Project]:
    horizon = now + timedelta(hours=settings.expiry_warning_hours)
    return (
        ts.query(models.Project)
        .filter(models.Project.expires_at.is_not(None))
        .filter(models.Project.expires_at > now)
        .filter(models.Project.expires_at < horizon)
        .filter(models.Project.status != models.ProjectStatus.CANCELLED.value)
        .order_by(models.Project.expires_at.asc(), models.Project.id.asc())
        .all()
    )


def _warn_expiry(ts: TenantSession, project: models.Project, *, now: datetime) -> bool:
    # Re-running inside the window writes another warning; nothing records prior warnings.
    write_audit(
        ts,
        SYSTEM_ACTOR,
        "project.expiry_warning",
        "project",
        project.id,
        {
            "project_number": project.project_number,
            "expires_at": ensure_utc(project.expires_at).isoformat(),
        },
        now=now,
    )
    return True


def cleanup_tenant(ts: TenantSession, *, now: datetime, job_name: str = JOB_NAME) -> dict[str, int]:
    sessions_deleted = delete_expired_sessions(ts, now=now)
    otps_deleted = delete_expired_otps(ts, now=now)
    logs_deleted = delete_old_notification_logs(ts, now=now)
    warned, failed = for_each_row(
        ts,
        find_expiring_projects(ts, now=now),
        lambda project: _warn_expiry(ts, project, now=now),
        job_name=job_name,
    )
    return {
        "sessions_deleted": sessions_deleted,
        "otps_deleted": otps_deleted,
        "logs_deleted": logs_deleted,
        "expiry_warnings_sent": warned,
        "failed": failed,
    }


def cleanup_body(ctx: JobContext) -> dict[str, Any]:
    now = ctx.clock()

    db = (ctx.session_factory or SessionLocal)()
    try:
        tenant_ids = list_tenant_ids(db)
    finally:
        db.close()

    totals = {
        "tenants": 0,
        "sessions_deleted": 0,
        "otps_deleted": 0,
        "logs_deleted": 0,
        "expiry_warnings_sent": 0,
        "failed": 0,
        "tenants_failed": 0,
    }
    for tenant_id in tenant_ids:
        try:
            with ctx.scope(tenant_id) as ts:
                counts = cleanup_tenant(ts, now=now, job_name=ctx.job_name)
        except SQLAlchemyError:
            logger.exception(
                "cleanup_tenant_failed",
                extra={"tenant_id": tenant_id, "job_run_id": ctx.job_run_id},
            )
            totals["tenants_failed"] += 1
            continue
        for key, value in counts.items():
            totals[key] += value
        totals["tenants"] += 1
        logger.debug("cleanup_tenant_done", extra={"tenant_id": tenant_id, **counts})

    logger.info("cleanup_swept", extra={"invoked_by": ctx.tenant_id, **totals})
    return totals


def run_cleanup_job(
    tenant_id: str,
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> JobRunResult:
    return run_job(
        tenant_id, JOB_NAME, JOB_TYPE, cleanup_body, session_factory=session_factory, now=now
    )
