from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_

from solarflow import models
from solarflow.config import settings
from solarflow.database import SessionFactory, TenantSession
from solarflow.services.audit import SYSTEM_ACTOR, write_audit
from solarflow.services.job_runner import JobContext, JobRunResult, JobType, for_each_row, run_job

logger = logging.getLogger("solarflow.jobs")

JOB_NAME = "phone-gate-job"
JOB_TYPE = JobType.PHONE_GATE


def find_phone_gate_candidates(ts: TenantSession, *, now: datetime) -> list[models.Project]:
    """DEMO projects with no phone that are older than the phone-gate window."""

    cutoff = now - timedelta(days=settings.phone_gate_days)
    return (
        ts.query(models.Project)
        .filter(or_(models.Project.customer_phone.is_(None), models.Project.customer_phone == ""))
        .filter(models.Project.status == models.ProjectStatus.DEMO.value)
        .filter(models.Project.status != models.ProjectStatus.CANCELLED.value)
        .filter(models.Project.created_at < cutoff)
        .order_by(models.Project.created_at.asc(), models.Project.id.asc())
        .all()
    )


def cancel_for_missing_phone(ts: TenantSession, project: models.Project, *, now: datetime) -> bool:
    rowcount = (
        ts.query(models.Project)
        .filter(models.Project.id == project.id)
        .filter(models.Project.status != models.ProjectStatus.CANCELLED.value)
        .update(
            {
                models.Project.status: models.ProjectStatus.CANCELLED.value,
                models.Project.cancelled_at: now,
                models.Project.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    if rowcount != 1:
        return False

    write_audit(
        ts,
        SYSTEM_ACTOR,
        "project.cancelled.phone_gate",
        "project",
        project.id,
        {
            "project_number": project.project_number,
            "reason": f"No phone provided within {settings.phone_gate_days} days",
        },
        now=now,
    )
    return True


def phone_gate_body(ctx: JobContext) -> dict[str, Any]:
    now = ctx.clock()
    with ctx.scope() as ts:
        candidates = find_phone_gate_candidates(ts, now=now)
        cancelled, failed = for_each_row(
            ts,
            candidates,
            lambda project: cancel_for_missing_phone(ts, project, now=now),
            job_name=ctx.job_name,
        )

    logger.info(
        "phone_gate_swept",
        extra={"tenant_id": ctx.tenant_id, "total": len(candidates), "cancelled": cancelled},
    )
    return {"total": len(candidates), "cancelled": cancelled, "failed": failed}


def run_phone_gate_job(
    tenant_id: str,
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> JobRunResult:
    return run_job(
        tenant_id, JOB_NAME, JOB_TYPE, phone_gate_body, session_factory=session_factory, now=now
    )
