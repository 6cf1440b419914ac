from __future__ import annotations

from typing import Any

from solarflow.config import settings
from solarflow.services import backup_job, cleanup_job, commission_job, job_ledger, phone_gate_job
from solarflow.services.job_runner import JobContext, JobDefinition, JobType

JOB_RUNS_RETENTION_JOB_NAME = "job-runs-retention-job"


def job_runs_retention_body(ctx: JobContext) -> dict[str, Any]:
    with ctx.scope() as ts:
        deleted = job_ledger.cleanup_old_job_runs(
            ts, retention_days=settings.job_run_retention_days, now=ctx.clock()
        )
    return {"deleted": deleted}


JOB_REGISTRY: dict[str, JobDefinition] = {
    d.job_name: d
    for d in (
        JobDefinition(
            phone_gate_job.JOB_NAME,
            phone_gate_job.JOB_TYPE,
            phone_gate_job.phone_gate_body,
            "Cancel stale DEMO projects that never got a phone number",
        ),
        JobDefinition(
            cleanup_job.JOB_NAME,
            cleanup_job.JOB_TYPE,
            cleanup_job.cleanup_body,
            "Purge expired sessions/OTPs/old notification logs and warn on expiring projects",
        ),
        JobDefinition(
            commission_job.JOB_NAME,
            commission_job.JOB_TYPE,
            commission_job.commission_body,
            "Release partner commissions whose handover hold has elapsed",
        ),
        JobDefinition(
            backup_job.JOB_NAME,
            backup_job.JOB_TYPE,
            backup_job.backup_body,
            "Full tenant snapshot plus backup retention",
        ),
        JobDefinition(
            backup_job.INCREMENTAL_JOB_NAME,
            backup_job.JOB_TYPE,
            backup_job.incremental_backup_body,
            "Incremental tenant snapshot",
        ),
        JobDefinition(
            JOB_RUNS_RETENTION_JOB_NAME,
            JobType.MAINTENANCE,
            job_runs_retention_body,
            "Delete finished job runs past the retention window",
        ),
    )
}


def job_names() -> list[str]:
    return sorted(JOB_REGISTRY)
