from datetime import timedelta

from conftest import NOW, new_id, seed_project, seed_tenant
from sqlalchemy.exc import OperationalError

from solarflow import models
from solarflow.services import cleanup_job


def _seed_housekeeping(SessionLocal, tenant_id):
    with SessionLocal() as db:
        db.add_all(
            [
                models.PublicSession(id=new_id(), tenant_id=tenant_id, expires_at=NOW - timedelta(minutes=1)),
                models.PublicSession(id=new_id(), tenant_id=tenant_id, expires_at=NOW + timedelta(hours=1)),
                models.OtpChallenge(
                    id=new_id(), tenant_id=tenant_id, verified=False, expires_at=NOW - timedelta(minutes=1)
                ),
                models.OtpChallenge(
                    id=new_id(), tenant_id=tenant_id, verified=True, expires_at=NOW - timedelta(minutes=1)
                ),
                models.NotificationLog(
                    id=new_id(), tenant_id=tenant_id, status="SENT", created_at=NOW - timedelta(days=91)
                ),
                models.NotificationLog(
                    id=new_id(), tenant_id=tenant_id, status="FAILED", created_at=NOW - timedelta(days=100)
                ),
                models.NotificationLog(
                    id=new_id(), tenant_id=tenant_id, status="PENDING", created_at=NOW - timedelta(days=100)
                ),
                models.NotificationLog(
                    id=new_id(), tenant_id=tenant_id, status="SENT", created_at=NOW - timedelta(days=10)
                ),
            ]
        )
        db.commit()


def test_cleanup_sweeps_every_tenant(session_factory):
    tenant_a = seed_tenant(session_factory, "A")
    tenant_b = seed_tenant(session_factory, "B")
    _seed_housekeeping(session_factory, tenant_a)
    _seed_housekeeping(session_factory, tenant_b)

    result = cleanup_job.run_cleanup_job(tenant_a, session_factory=session_factory, now=NOW)

    assert result.summary == {
        "tenants": 2,
        "sessions_deleted": 2,
        "otps_deleted": 2,
        "logs_deleted": 4,
        "expiry_warnings_sent": 0,
        "failed": 0,
        "tenants_failed": 0,
    }
    with session_factory() as db:
        assert db.query(models.PublicSession).count() == 2
        assert db.query(models.OtpChallenge).count() == 2
        assert db.query(models.NotificationLog).count() == 4
        run = db.get(models.JobRun, result.job_run_id)
        assert run.tenant_id == tenant_a
        assert run.status == "COMPLETED"


def test_cleanup_warns_about_projects_expiring_soon(session_factory):
    tenant_id = seed_tenant(session_factory)
    soon = seed_project(session_factory, tenant_id, project_number="P-1", expires_at=NOW + timedelta(hours=5))
    seed_project(session_factory, tenant_id, project_number="P-2", expires_at=NOW + timedelta(hours=30))
    seed_project(session_factory, tenant_id, project_number="P-3", expires_at=NOW - timedelta(hours=1))
    seed_project(
        session_factory,
        tenant_id,
        project_number="P-4",
        status="CANCELLED",
        expires_at=NOW + timedelta(hours=5),
    )

    result = cleanup_job.run_cleanup_job(tenant_id, session_factory=session_factory, now=NOW)

    assert result.summary["expiry_warnings_sent"] == 1
    with session_factory() as db:
        audit = db.query(models.AuditLog).filter(models.AuditLog.action == "project.expiry_warning").one()
    assert audit.entity_id == soon
    assert audit.meta["project_number"] == "P-1"


def test_cleanup_with_nothing_to_do(session_factory):
    tenant_id = seed_tenant(session_factory)

    result = cleanup_job.run_cleanup_job(tenant_id, session_factory=session_factory, now=NOW)

    assert result.summary["tenants"] == 1
    assert result.summary["sessions_deleted"] == 0


def test_cleanup_continues_past_a_failing_tenant(session_factory, monkeypatch):
    tenant_a = seed_tenant(session_factory, "A")
    tenant_b = seed_tenant(session_factory, "B")
    _seed_housekeeping(session_factory, tenant_a)
    _seed_housekeeping(session_factory, tenant_b)

    real_delete_sessions = cleanup_job.delete_expired_sessions

    def delete_sessions(ts, *, now):
        if ts.tenant_id == tenant_a:
            raise OperationalError("DELETE FROM public_sessions", {}, Exception("lock timeout"))
        return real_delete_sessions(ts, now=now)

    monkeypatch.setattr(cleanup_job, "delete_expired_sessions", delete_sessions)

    result = cleanup_job.run_cleanup_job(tenant_b, session_factory=session_factory, now=NOW)

    assert result.summary["tenants"] == 1
    assert result.summary["tenants_failed"] == 1
    assert result.summary["sessions_deleted"] == 1
    with session_factory() as db:
        assert db.query(models.PublicSession).filter_by(tenant_id=tenant_a).count() == 2
        assert db.query(models.PublicSession).filter_by(tenant_id=tenant_b).count() == 1
        assert db.get(models.JobRun, result.job_run_id).status == "COMPLETED"
