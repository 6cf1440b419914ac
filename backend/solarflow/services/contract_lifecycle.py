"""Contract lifecycle: sign, transition, cancel, update and the derived timeline.

Every status change is a single conditional UPDATE guarded on the current status, so a
concurrent writer cannot push a contract along an edge that is no longer legal. Expected
business conditions come back as result values; only infrastructure errors raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional, Union

from sqlalchemy import func

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
from solarflow.core.time_utils import ensure_utc, midnight_utc, utcnow
from solarflow.database import TenantSession
from solarflow.services.audit import SYSTEM_ACTOR, write_audit
from solarflow.services.event_bus import emit

logger = logging.getLogger("solarflow.contracts")

_UNSET: Any = object()

SignResult = Union[Ok[models.Contract], NotFound, InvalidState]
TransitionResult = Union[Ok[models.Contract], NotFound, InvalidToStatus, InvalidTransition]
CancelResult = Union[Ok[models.Contract], NotFound, ReasonRequired, InvalidState]
UpdateResult = Union[Ok[models.Contract], NotFound, Locked]


def get_contract(ts: TenantSession, contract_id: str) -> models.Contract | None:
    return ts.get(models.Contract, contract_id)


def _guarded_update(
    ts: TenantSession,
    contract: models.Contract,
    *,
    allowed_from: Iterable[str],
    values: dict[str, Any],
) -> bool:
    """UPDATE contracts SET ... WHERE id = :id AND tenant_id = :tenant AND status IN (...)."""

    rowcount = (
        ts.query(models.Contract)
        .filter(models.Contract.id == contract.id)
        .filter(models.Contract.status.in_(set(allowed_from)))
        .update(values, synchronize_session=False)
    )
    ts.db.refresh(contract)
    return bool(rowcount)


def sign_contract(
    ts: TenantSession,
    contract_id: str,
    *,
    customer_signed: bool = False,
    company_signed_by: Optional[str] = None,
    now: datetime | None = None,
) -> SignResult:
    """Record customer and/or company signatures; DRAFT -> SIGNED once both are present.

    Each signature timestamp is written once (first write wins).
    """

    contract = get_contract(ts, contract_id)
    if contract is None:
        return NotFound(entity="contract", entity_id=str(contract_id))

    from_status = cs.normalize_status(contract.status)
    if from_status != cs.DRAFT:
        return InvalidState(status=from_status)

    current = now or utcnow()
    values: dict[str, Any] = {}
    if customer_signed:
        values[models.Contract.customer_signed_at] = func.coalesce(
            models.Contract.customer_signed_at, current
        )
    if company_signed_by:
        values[models.Contract.company_signed_at] = func.coalesce(
            models.Contract.company_signed_at, current
        )
        values[models.Contract.company_signed_by] = func.coalesce(
            models.Contract.company_signed_by, str(company_signed_by)
        )

    if not values:
        return Ok(contract, from_status=from_status)

    signed = False
    with ts.unit():
        values[models.Contract.updated_at] = current
        if not _guarded_update(ts, contract, allowed_from={cs.DRAFT}, values=values):
            return InvalidState(status=cs.normalize_status(contract.status))

        if contract.customer_signed_at is not None and contract.company_signed_at is not None:
            _guarded_update(
                ts,
                contract,
                allowed_from={cs.DRAFT},
                values={models.Contract.status: cs.SIGNED, models.Contract.updated_at: current},
            )
            signed = cs.normalize_status(contract.status) == cs.SIGNED
            if signed:
                write_audit(
                    ts,
                    company_signed_by or SYSTEM_ACTOR,
                    "contract.signed",
                    "contract",
                    contract.id,
                    {
                        "contract_id": contract.id,
                        "contract_number": contract.contract_number,
                        "customer_signed_at": ensure_utc(contract.customer_signed_at).isoformat(),
                        "company_signed_at": ensure_utc(contract.company_signed_at).isoformat(),
                    },
                    now=current,
                )

    if signed:
        logger.info(
            "contract_signed",
            extra={"tenant_id": ts.tenant_id, "contract_id": contract.id},
        )
        emit(
            "contract.signed",
            ts.tenant_id,
            {"contract_id": contract.id, "contract_number": contract.contract_number},
        )
    return Ok(contract, from_status=from_status)


def transition_contract(
    ts: TenantSession,
    contract_id: str,
    to_status: str,
    *,
    now: datetime | None = None,
) -> TransitionResult:
    """SIGNED -> IN_PROGRESS stamps actual_start_date; IN_PROGRESS -> COMPLETED stamps
    actual_completion_date. Existing dates are kept."""

    target = cs.normalize_status(to_status)
    if target not in cs.EXPLICIT_TARGETS:
        return InvalidToStatus(to_status=str(to_status))

    contract = get_contract(ts, contract_id)
    if contract is None:
        return NotFound(entity="contract", entity_id=str(contract_id))

    from_status = cs.normalize_status(contract.status)
    if not cs.can_transition(from_status, target):
        return InvalidTransition(current=from_status, requested=target)

    current = now or utcnow()
    today = ensure_utc(current).date()
    values: dict[Any, Any] = {models.Contract.status: target, models.Contract.updated_at: current}
    if target == cs.IN_PROGRESS:
        values[models.Contract.actual_start_date] = func.coalesce(
            models.Contract.actual_start_date, today
        )
    else:
        values[models.Contract.actual_completion_date] = func.coalesce(
            models.Contract.actual_completion_date, today
        )

    with ts.unit():
        if not _guarded_update(ts, contract, allowed_from={from_status}, values=values):
            return InvalidTransition(current=cs.normalize_status(contract.status), requested=target)

    logger.info(
        "contract_transitioned",
        extra={
            "tenant_id": ts.tenant_id,
            "contract_id": contract.id,
            "from_status": from_status,
            "to_status": target,
        },
    )
    return Ok(contract, from_status=from_status)


def cancel_contract(
    ts: TenantSession,
    contract_id: str,
    reason: Optional[str],
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> CancelResult:
    if reason is None or not str(reason).strip():
        return ReasonRequired()

    contract = get_contract(ts, contract_id)
    if contract is None:
        return NotFound(entity="contract", entity_id=str(contract_id))

    from_status = cs.normalize_status(contract.status)
    if from_status not in cs.CANCELLABLE_STATES:
        return InvalidState(status=from_status)

    current = now or utcnow()
    with ts.unit():
        updated = _guarded_update(
            ts,
            contract,
            allowed_from=cs.CANCELLABLE_STATES,
            values={
                models.Contract.status: cs.CANCELLED,
                models.Contract.cancellation_reason: str(reason),
                models.Contract.cancelled_at: current,
                models.Contract.updated_at: current,
            },
        )
        if not updated:
            return InvalidState(status=cs.normalize_status(contract.status))
        write_audit(
            ts,
            actor or SYSTEM_ACTOR,
            "contract.cancelled",
            "contract",
            contract.id,
            {"from_status": from_status, "reason": str(reason)},
            now=current,
        )

    logger.info(
        "contract_cancelled",
        extra={"tenant_id": ts.tenant_id, "contract_id": contract.id, "from_status": from_status},
    )
    return Ok(contract, from_status=from_status)


def update_contract(
    ts: TenantSession,
    contract_id: str,
    *,
    notes: Any = _UNSET,
    expected_start_date: Any = _UNSET,
    expected_completion_date: Any = _UNSET,
    now: datetime | None = None,
) -> UpdateResult:
    """Patch notes and expected dates. Only DRAFT contracts are mutable."""

    contract = get_contract(ts, contract_id)
    if contract is None:
        return NotFound(entity="contract", entity_id=str(contract_id))

    status = cs.normalize_status(contract.status)
    if status != cs.DRAFT:
        return Locked(status=status)

    values: dict[Any, Any] = {}
    if notes is not _UNSET:
        values[models.Contract.notes] = notes
    if expected_start_date is not _UNSET:
        values[models.Contract.expected_start_date] = expected_start_date
    if expected_completion_date is not _UNSET:
        values[models.Contract.expected_completion_date] = expected_completion_date
    if not values:
        return Ok(contract, from_status=status)

    values[models.Contract.updated_at] = now or utcnow()
    with ts.unit():
        if not _guarded_update(ts, contract, allowed_from={cs.DRAFT}, values=values):
            return Locked(status=cs.normalize_status(contract.status))

    return Ok(contract, from_status=status)


@dataclass(frozen=True)
class TimelineEvent:
    at: datetime
    event: str
    detail: dict[str, Any] = field(default_factory=dict)


def _instant(value: date | datetime, not_before: datetime | None = None) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    # Date-only stamps carry no time of day; they cannot precede the lifecycle event before them.
    at = midnight_utc(value)
    if not_before is not None and not_before > at:
        return not_before
    return at


def build_contract_timeline(contract: models.Contract) -> list[TimelineEvent]:
    """Lifecycle events derived from the contract's own timestamps, oldest first.

    Events at the same instant keep lifecycle order (created, signatures, started,
    completed, cancelled).
    """

    events: list[TimelineEvent] = []

    def add(value: date | datetime, event: str, detail: dict[str, Any] | None = None) -> None:
        latest = max((e.at for e in events), default=None)
        events.append(TimelineEvent(at=_instant(value, latest), event=event, detail=detail or {}))

    if contract.created_at is not None:
        add(contract.created_at, "created")
    if contract.customer_signed_at is not None:
        add(contract.customer_signed_at, "customer_signed")
    if contract.company_signed_at is not None:
        detail = {"company_signed_by": contract.company_signed_by} if contract.company_signed_by else {}
        add(contract.company_signed_at, "company_signed", detail)
    if contract.actual_start_date is not None:
        add(
            contract.actual_start_date,
            "started",
            {"actual_start_date": contract.actual_start_date.isoformat()},
        )
    if contract.actual_completion_date is not None:
        add(
            contract.actual_completion_date,
            "completed",
            {"actual_completion_date": contract.actual_completion_date.isoformat()},
        )
    if cs.normalize_status(contract.status) == cs.CANCELLED:
        cancelled_at = contract.cancelled_at or contract.updated_at
        if cancelled_at is not None:
            add(cancelled_at, "cancelled", {"cancellation_reason": contract.cancellation_reason})

    events.sort(key=lambda e: e.at)
    return events


def get_contract_timeline(
    ts: TenantSession, contract_id: str
) -> Union[Ok[list[TimelineEvent]], NotFound]:
    contract = get_contract(ts, contract_id)
    if contract is None:
        return NotFound(entity="contract", entity_id=str(contract_id))
    return Ok(build_contract_timeline(contract))
