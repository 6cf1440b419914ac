from datetime import timedelta

import pytest
from conftest import NOW, seed_project, seed_tenant
from sqlalchemy.exc import IntegrityError, OperationalError

from solarflow import models
from solarflow.database import tenant_scope
from solarflow.services import job_ledger
from solarflow.services.job_registry import JOB_REGISTRY, job_names
from solarflow.services.job_runner import UnknownJobError, for_each_row, run_job


def _runs(SessionLocal, tenant_id):
    with tenant_scope(tenant_id, session_factory=SessionLocal) as ts:
        return [
            (r.job_name, r.status, r.error_message, r.meta)
            for r in job_ledger.list_job_runs(ts)
        ]


def test_run_job_records_completed_run_with_summary(session_factory):
    tenant_id = seed_tenant(session_factory)

    result = run_job(
        tenant_id,
        "adhoc-job",
        "MAINTENANCE",
        lambda ctx: {"touched": 3, "tenant": ctx.tenant_id},
        session_factory=session_factory,
        now=NOW,
    )

    assert result.skipped is False
    assert result.summary == {"touched": 3, "tenant": tenant_id}
    assert _runs(session_factory, tenant_id) == [
        ("adhoc-job", "COMPLETED", None, {"touched": 3, "tenant": tenant_id})
    ]


def test_run_job_failure_records_failed_and_reraises(session_factory):
    tenant_id = seed_tenant(session_factory)

    def body(ctx):
        raise RuntimeError("provider unavailable")

    with pytest.raises(RuntimeError, match="provider unavailable"):
        run_job(tenant_id, "adhoc-job", "MAINTENANCE", body, session_factory=session_factory, now=NOW)

    assert _runs(session_factory, tenant_id) == [("adhoc-job", "FAILED", "provider unavailable", None)]

    # The lock is released: the next invocation runs.
    result = run_job(
        tenant_id, "adhoc-job", "MAINTENANCE", lambda ctx: {}, session_factory=session_factory, now=NOW
    )
    assert result.skipped is False


def test_run_job_skips_when_lock_is_held(session_factory):
    tenant_id = seed_tenant(session_factory)
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        job_ledger.acquire(ts, "adhoc-job", "MAINTENANCE", now=NOW - timedelta(minutes=1))

    calls = []
    result = run_job(
        tenant_id,
        "adhoc-job",
        "MAINTENANCE",
        lambda ctx: calls.append(ctx) or {},
        session_factory=session_factory,
        now=NOW,
    )

    assert result.skipped is True
    assert result.job_run_id is None
    assert calls == []


def test_run_job_for_unknown_tenant_raises_and_never_runs_body(fk_session_factory):
    calls = []

    with pytest.raises(IntegrityError):
        run_job(
            "no-such-tenant",
            "adhoc-job",
            "MAINTENANCE",
            lambda ctx: calls.append(ctx) or {},
            session_factory=fk_session_factory,
            now=NOW,
        )

    assert calls == []


def test_nested_invocation_of_same_job_is_skipped(session_factory):
    tenant_id = seed_tenant(session_factory)
    inner_results = []

    def outer(ctx):
        inner_results.append(
            run_job(
                ctx.tenant_id,
                ctx.job_name,
                "MAINTENANCE",
                lambda _ctx: {"inner": True},
                session_factory=session_factory,
                now=NOW,
            )
        )
        return {"outer": True}

    result = run_job(tenant_id, "adhoc-job", "MAINTENANCE", outer, session_factory=session_factory, now=NOW)

    assert result.summary == {"outer": True}
    assert inner_results[0].skipped is True
    assert [r[1] for r in _runs(session_factory, tenant_id)] == ["COMPLETED"]


def test_run_job_resolves_registered_jobs():
    assert job_names() == sorted(
        [
            "backup-incremental-job",
            "backup-job",
            "cleanup-job",
            "commission-job",
            "job-runs-retention-job",
            "phone-gate-job",
        ]
    )
    assert JOB_REGISTRY["phone-gate-job"].job_type == "PHONE_GATE"


def test_run_job_unknown_name_raises():
    with pytest.raises(UnknownJobError):
        run_job("tenant-x", "no-such-job")


def test_registered_retention_job_runs_by_name(session_factory):
    tenant_id = seed_tenant(session_factory)
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        old = job_ledger.acquire(ts, "old-job", "MAINTENANCE", now=NOW - timedelta(days=45))
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        job_ledger.complete(ts, old, now=NOW - timedelta(days=45))

    result = run_job(tenant_id, "job-runs-retention-job", session_factory=session_factory, now=NOW)

    assert result.summary == {"deleted": 1}


def test_for_each_row_isolates_database_errors(session_factory):
    tenant_id = seed_tenant(session_factory)
    ids = [seed_project(session_factory, tenant_id, project_number=f"P-{i}") for i in range(3)]

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        projects = ts.query(models.Project).order_by(models.Project.project_number).all()

        def handler(project):
            if project.project_number == "P-1":
                raise OperationalError("UPDATE projects", {}, Exception("row locked"))
            ts.query(models.Project).filter(models.Project.id == project.id).update(
                {models.Project.status: models.ProjectStatus.SURVEY.value}, synchronize_session=False
            )
            return True

        applied, failed = for_each_row(ts, projects, handler, job_name="adhoc-job")

    assert (applied, failed) == (2, 1)
    with session_factory() as db:
        statuses = {p.id: p.status for p in db.query(models.Project).all()}
    assert statuses[ids[0]] == "SURVEY"
    assert statuses[ids[1]] == "LEAD"
    assert statuses[ids[2]] == "SURVEY"


def test_for_each_row_propagates_non_database_errors(session_factory):
    tenant_id = seed_tenant(session_factory)
    seed_project(session_factory, tenant_id)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        projects = ts.query(models.Project).all()

        def handler(project):
            raise ValueError("bad row")

        with pytest.raises(ValueError):
            for_each_row(ts, projects, handler, job_name="adhoc-job")
