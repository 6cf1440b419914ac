from datetime import date, datetime, timedelta, timezone

import pytest
from conftest import NOW, TODAY, seed_contract, seed_project, seed_tenant

from solarflow import models
from solarflow.core import contract_states as cs
from solarflow.core.results import (
    InvalidState,
    InvalidToStatus,
    InvalidTransition,
    Locked,
    NotFound,
    Ok,
    ReasonRequired,
)
from solarflow.database import tenant_scope
from solarflow.services import contract_lifecycle as lifecycle
from solarflow.services.event_bus import event_bus


def _setup(SessionLocal, **overrides):
    tenant_id = seed_tenant(SessionLocal)
    project_id = seed_project(SessionLocal, tenant_id)
    contract_id = seed_contract(SessionLocal, tenant_id, project_id, **overrides)
    return tenant_id, contract_id


def _status(SessionLocal, contract_id):
    with SessionLocal() as db:
        return db.get(models.Contract, contract_id).status


def _actions(SessionLocal, entity_id):
    with SessionLocal() as db:
        rows = (
            db.query(models.AuditLog.action)
            .filter(models.AuditLog.entity_id == entity_id)
            .order_by(models.AuditLog.created_at.asc())
            .all()
        )
    return [r[0] for r in rows]


def test_transition_table_is_forward_only():
    assert cs.can_transition("DRAFT", "SIGNED")
    assert cs.can_transition("SIGNED", "IN_PROGRESS")
    assert cs.can_transition("IN_PROGRESS", "COMPLETED")
    assert not cs.can_transition("DRAFT", "IN_PROGRESS")
    assert not cs.can_transition("SIGNED", "COMPLETED")
    assert not cs.can_transition("IN_PROGRESS", "SIGNED")
    assert not cs.can_transition("COMPLETED", "CANCELLED")
    assert cs.CANCELLABLE_STATES == {"DRAFT", "SIGNED", "IN_PROGRESS"}


def test_sign_requires_both_parties(session_factory):
    tenant_id, contract_id = _setup(session_factory)
    events = []
    event_bus.on("contract.signed", events.append)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.sign_contract(ts, contract_id, customer_signed=True, now=NOW)
        assert isinstance(result, Ok)
        assert result.value.status == "DRAFT"
        assert result.value.customer_signed_at is not None

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        later = NOW + timedelta(hours=1)
        result = lifecycle.sign_contract(ts, contract_id, company_signed_by="manager-1", now=later)
        assert result.value.status == "SIGNED"
        assert result.value.company_signed_by == "manager-1"

    assert _actions(session_factory, contract_id) == ["contract.signed"]
    assert [e.data["contract_id"] for e in events] == [contract_id]


def test_sign_keeps_first_signature_timestamp(session_factory):
    tenant_id, contract_id = _setup(session_factory)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        lifecycle.sign_contract(ts, contract_id, customer_signed=True, now=NOW)
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        contract = lifecycle.sign_contract(
            ts, contract_id, customer_signed=True, now=NOW + timedelta(days=1)
        ).value
        assert contract.customer_signed_at.replace(tzinfo=None) == NOW.replace(tzinfo=None)


def test_sign_both_at_once_and_not_twice(session_factory):
    tenant_id, contract_id = _setup(session_factory)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.sign_contract(
            ts, contract_id, customer_signed=True, company_signed_by="manager-1", now=NOW
        )
        assert result.value.status == "SIGNED"
        assert result.from_status == "DRAFT"

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        again = lifecycle.sign_contract(ts, contract_id, customer_signed=True, now=NOW)
    assert again == InvalidState(status="SIGNED")


def test_transition_walks_forward_and_stamps_dates(session_factory):
    tenant_id, contract_id = _setup(session_factory, status="SIGNED")

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        started = lifecycle.transition_contract(ts, contract_id, "IN_PROGRESS", now=NOW)
        assert started.value.actual_start_date == NOW.date()
        assert started.from_status == "SIGNED"

    later = NOW + timedelta(days=5)
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        completed = lifecycle.transition_contract(ts, contract_id, "completed", now=later)
        assert completed.value.status == "COMPLETED"
        assert completed.value.actual_start_date == NOW.date()
        assert completed.value.actual_completion_date == later.date()


def test_transition_keeps_existing_actual_dates(session_factory):
    tenant_id, contract_id = _setup(
        session_factory, status="SIGNED", actual_start_date=date(2026, 9, 1)
    )

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.transition_contract(ts, contract_id, "IN_PROGRESS", now=NOW)
        assert result.value.actual_start_date == date(2026, 9, 1)


@pytest.mark.parametrize(
    "current,requested",
    [
        ("DRAFT", "IN_PROGRESS"),
        ("DRAFT", "COMPLETED"),
        ("SIGNED", "COMPLETED"),
        ("COMPLETED", "IN_PROGRESS"),
        ("IN_PROGRESS", "IN_PROGRESS"),
    ],
)
def test_transition_rejects_skips_and_reversals(session_factory, current, requested):
    tenant_id, contract_id = _setup(session_factory, status=current)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.transition_contract(ts, contract_id, requested, now=NOW)

    assert result == InvalidTransition(current=current, requested=requested)
    assert _status(session_factory, contract_id) == current


@pytest.mark.parametrize("requested", ["SIGNED", "CANCELLED", "DRAFT", "bogus"])
def test_transition_only_accepts_explicit_targets(session_factory, requested):
    tenant_id, contract_id = _setup(session_factory, status="SIGNED")

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.transition_contract(ts, contract_id, requested, now=NOW)

    assert result == InvalidToStatus(to_status=requested)


def test_transition_unknown_contract(session_factory):
    tenant_id = seed_tenant(session_factory)
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.transition_contract(ts, "missing", "IN_PROGRESS", now=NOW)
    assert isinstance(result, NotFound)


def test_cancel_requires_reason(session_factory):
    tenant_id, contract_id = _setup(session_factory)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        assert lifecycle.cancel_contract(ts, contract_id, "   ", now=NOW) == ReasonRequired()
        assert lifecycle.cancel_contract(ts, contract_id, None, now=NOW) == ReasonRequired()

    assert _status(session_factory, contract_id) == "DRAFT"


@pytest.mark.parametrize("current", ["DRAFT", "SIGNED", "IN_PROGRESS"])
def test_cancel_from_non_terminal_states(session_factory, current):
    tenant_id, contract_id = _setup(session_factory, status=current)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.cancel_contract(ts, contract_id, " customer withdrew ", actor="user-1", now=NOW)
        assert result.value.status == "CANCELLED"
        assert result.value.cancellation_reason == " customer withdrew "
        assert result.from_status == current

    assert _actions(session_factory, contract_id) == ["contract.cancelled"]


def test_cancel_terminal_contract_is_invalid_state(session_factory):
    tenant_id, contract_id = _setup(session_factory, status="COMPLETED")

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.cancel_contract(ts, contract_id, "too late", now=NOW)

    assert result == InvalidState(status="COMPLETED")
    assert _actions(session_factory, contract_id) == []


def test_update_allowed_only_in_draft(session_factory):
    tenant_id, contract_id = _setup(session_factory)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.update_contract(
            ts, contract_id, notes="roof access via side gate", expected_start_date=date(2026, 11, 2), now=NOW
        )
        assert result.value.notes == "roof access via side gate"
        assert result.value.expected_start_date == date(2026, 11, 2)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        lifecycle.sign_contract(ts, contract_id, customer_signed=True, company_signed_by="m", now=NOW)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        locked = lifecycle.update_contract(ts, contract_id, notes="changed", now=NOW)
    assert locked == Locked(status="SIGNED")

    with session_factory() as db:
        assert db.get(models.Contract, contract_id).notes == "roof access via side gate"


def test_update_can_clear_a_field(session_factory):
    tenant_id, contract_id = _setup(session_factory, notes="old")

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        result = lifecycle.update_contract(ts, contract_id, notes=None, now=NOW)
        assert result.value.notes is None


def test_timeline_is_ordered_oldest_first(session_factory):
    tenant_id, contract_id = _setup(session_factory)

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        lifecycle.sign_contract(ts, contract_id, customer_signed=True, now=NOW)
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        lifecycle.sign_contract(ts, contract_id, company_signed_by="m", now=NOW + timedelta(hours=1))
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        lifecycle.transition_contract(ts, contract_id, "IN_PROGRESS", now=NOW + timedelta(days=2))
    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        lifecycle.cancel_contract(ts, contract_id, "roof unsuitable", now=NOW + timedelta(days=3))

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        events = lifecycle.get_contract_timeline(ts, contract_id).value

    assert [e.event for e in events] == [
        "created",
        "customer_signed",
        "company_signed",
        "started",
        "cancelled",
    ]
    assert events[-1].detail == {"cancellation_reason": "roof unsuitable"}
    assert [e.at for e in events] == sorted(e.at for e in events)


def test_timeline_keeps_lifecycle_order_when_started_on_creation_day():
    contract = models.Contract(
        status="IN_PROGRESS",
        created_at=NOW,
        customer_signed_at=NOW + timedelta(minutes=1),
        company_signed_at=NOW + timedelta(minutes=2),
        actual_start_date=NOW.date(),
    )

    events = lifecycle.build_contract_timeline(contract)

    assert [e.event for e in events] == ["created", "customer_signed", "company_signed", "started"]
    assert events[-1].at == NOW + timedelta(minutes=2)
    assert events[-1].detail == {"actual_start_date": TODAY.isoformat()}


def test_timeline_places_later_start_date_at_midnight():
    contract = models.Contract(
        status="COMPLETED",
        created_at=NOW,
        actual_start_date=TODAY + timedelta(days=3),
        actual_completion_date=TODAY + timedelta(days=3),
    )

    events = lifecycle.build_contract_timeline(contract)

    assert [e.event for e in events] == ["created", "started", "completed"]
    assert events[1].at == datetime(2026, 10, 22, tzinfo=timezone.utc)
    assert events[2].at == events[1].at
