from datetime import timedelta

from conftest import NOW, TODAY, seed_contract, seed_handover, seed_partner, seed_project, seed_tenant

from solarflow import models
from solarflow.database import tenant_scope
from solarflow.services import commission_job
from solarflow.services.commission_hold import hold_ends_at
from solarflow.services.event_bus import event_bus


def _completed_contract(SessionLocal, tenant_id, partner_id, total_amount=100_000_000):
    project_id = seed_project(SessionLocal, tenant_id, partner_id=partner_id)
    return seed_contract(
        SessionLocal,
        tenant_id,
        project_id,
        status="COMPLETED",
        total_amount=total_amount,
        deposit_amount=total_amount // 2,
        final_payment_amount=total_amount - total_amount // 2,
    )


def _commissions(SessionLocal):
    with SessionLocal() as db:
        return db.query(models.Commission).order_by(models.Commission.amount.asc()).all()


def test_compute_commission_amount_floors():
    assert commission_job.compute_commission_amount(100_000_000, 5) == 5_000_000
    assert commission_job.compute_commission_amount(999, 2.5) == 24
    assert commission_job.compute_commission_amount(1_000, None) == 50


def test_commission_released_after_hold_and_only_once(session_factory):
    tenant_id = seed_tenant(session_factory)
    partner_id = seed_partner(session_factory, tenant_id, commission_rate=5.0)
    contract_id = _completed_contract(session_factory, tenant_id, partner_id)
    seed_handover(session_factory, tenant_id, contract_id, TODAY - timedelta(days=7))
    events = []
    event_bus.on("commission.approved", events.append)

    first = commission_job.run_commission_job(tenant_id, session_factory=session_factory, now=NOW)
    second = commission_job.run_commission_job(
        tenant_id, session_factory=session_factory, now=NOW + timedelta(hours=1)
    )

    assert first.summary == {"total": 1, "released": 1, "failed": 0}
    assert second.summary == {"total": 0, "released": 0, "failed": 0}

    rows = _commissions(session_factory)
    assert len(rows) == 1
    assert rows[0].contract_id == contract_id
    assert rows[0].partner_id == partner_id
    assert rows[0].amount == 5_000_000
    assert rows[0].status == "AVAILABLE"
    assert len(events) == 1

    with session_factory() as db:
        audit = db.query(models.AuditLog).filter(models.AuditLog.action == "commission.released").one()
    assert audit.actor == "SYSTEM"
    assert audit.meta["contract_id"] == contract_id
    assert audit.meta["amount"] == 5_000_000


def test_commission_not_released_inside_hold(session_factory):
    tenant_id = seed_tenant(session_factory)
    partner_id = seed_partner(session_factory, tenant_id)
    contract_id = _completed_contract(session_factory, tenant_id, partner_id)
    seed_handover(session_factory, tenant_id, contract_id, TODAY - timedelta(days=6))

    result = commission_job.run_commission_job(tenant_id, session_factory=session_factory, now=NOW)

    assert result.summary["released"] == 0
    assert _commissions(session_factory) == []


def test_cancelled_handover_never_releases(session_factory):
    tenant_id = seed_tenant(session_factory)
    partner_id = seed_partner(session_factory, tenant_id)
    handover_date = TODAY - timedelta(days=10)
    end = hold_ends_at(handover_date)

    blocked_contract = _completed_contract(session_factory, tenant_id, partner_id)
    seed_handover(
        session_factory, tenant_id, blocked_contract, handover_date, cancelled_at=end - timedelta(milliseconds=1)
    )
    late_cancel_contract = _completed_contract(session_factory, tenant_id, partner_id)
    seed_handover(
        session_factory,
        tenant_id,
        late_cancel_contract,
        handover_date,
        cancelled_at=end + timedelta(milliseconds=1),
    )

    result = commission_job.run_commission_job(tenant_id, session_factory=session_factory, now=NOW)

    assert result.summary["released"] == 0
    assert _commissions(session_factory) == []


def test_contract_without_partner_is_skipped(session_factory):
    tenant_id = seed_tenant(session_factory)
    contract_id = _completed_contract(session_factory, tenant_id, None)
    seed_handover(session_factory, tenant_id, contract_id, TODAY - timedelta(days=30))

    result = commission_job.run_commission_job(tenant_id, session_factory=session_factory, now=NOW)

    assert result.summary["total"] == 0


def test_maintenance_handovers_do_not_release(session_factory):
    tenant_id = seed_tenant(session_factory)
    partner_id = seed_partner(session_factory, tenant_id)
    contract_id = _completed_contract(session_factory, tenant_id, partner_id)
    seed_handover(
        session_factory, tenant_id, contract_id, TODAY - timedelta(days=30), handover_type="MAINTENANCE"
    )

    result = commission_job.run_commission_job(tenant_id, session_factory=session_factory, now=NOW)

    assert result.summary["total"] == 0


def test_two_handovers_on_one_contract_release_one_commission(session_factory):
    tenant_id = seed_tenant(session_factory)
    partner_id = seed_partner(session_factory, tenant_id)
    contract_id = _completed_contract(session_factory, tenant_id, partner_id)
    seed_handover(session_factory, tenant_id, contract_id, TODAY - timedelta(days=20))
    seed_handover(session_factory, tenant_id, contract_id, TODAY - timedelta(days=9))

    result = commission_job.run_commission_job(tenant_id, session_factory=session_factory, now=NOW)

    assert result.summary["released"] == 1
    assert len(_commissions(session_factory)) == 1


def test_default_rate_applies_when_partner_has_none(session_factory):
    tenant_id = seed_tenant(session_factory)
    partner_id = seed_partner(session_factory, tenant_id, commission_rate=None)
    contract_id = _completed_contract(session_factory, tenant_id, partner_id, total_amount=200_000_000)
    seed_handover(session_factory, tenant_id, contract_id, TODAY - timedelta(days=8))

    commission_job.run_commission_job(tenant_id, session_factory=session_factory, now=NOW)

    assert [c.amount for c in _commissions(session_factory)] == [10_000_000]


def test_commissions_are_tenant_scoped(session_factory):
    tenant_a = seed_tenant(session_factory, "A")
    tenant_b = seed_tenant(session_factory, "B")
    partner_b = seed_partner(session_factory, tenant_b)
    contract_b = _completed_contract(session_factory, tenant_b, partner_b)
    seed_handover(session_factory, tenant_b, contract_b, TODAY - timedelta(days=8))

    result = commission_job.run_commission_job(tenant_a, session_factory=session_factory, now=NOW)
    assert result.summary["total"] == 0

    with tenant_scope(tenant_b, session_factory=session_factory) as ts:
        assert len(commission_job.find_commission_candidates(ts, now=NOW)) == 1
