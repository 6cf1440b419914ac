from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional, Union

from sqlalchemy import func

from solarflow import models
from solarflow.config import settings
from solarflow.core import contract_states as cs
from solarflow.core.results import AlreadyCancelled, InvalidContractState, NotFound, Ok
from solarflow.core.time_utils import utcnow
from solarflow.database import TenantSession
from solarflow.services.audit import SYSTEM_ACTOR, write_audit
from solarflow.services.commission_hold import CommissionHoldStatus, commission_hold_status
from solarflow.services.event_bus import emit

logger = logging.getLogger("solarflow.contracts")

CreateHandoverResult = Union[Ok[models.Handover], NotFound, InvalidContractState]
CancelHandoverResult = Union[Ok[models.Handover], NotFound, AlreadyCancelled]


def get_handover(ts: TenantSession, handover_id: str) -> models.Handover | None:
    return ts.get(models.Handover, handover_id)


def _has_active_installation(ts: TenantSession, contract_id: str) -> bool:
    return (
        ts.query(models.Handover)
        .filter(models.Handover.contract_id == contract_id)
        .filter(models.Handover.handover_type == models.HandoverType.INSTALLATION.value)
        .filter(models.Handover.cancelled_at.is_(None))
        .first()
        is not None
    )


def create_installation_handover(
    ts: TenantSession,
    contract_id: str,
    *,
    handover_date: date,
    checklist: Optional[dict[str, Any]] = None,
    photos: Optional[list[str]] = None,
    notes: Optional[str] = None,
    performed_by: Optional[str] = None,
    accepted_by: Optional[str] = None,
    now: datetime | None = None,
) -> CreateHandoverResult:
    """Insert an INSTALLATION handover and force the contract to COMPLETED.

    The IN_PROGRESS gate does not apply: a handed-over installation is complete whatever
    state the contract was left in. A contract completed by explicit transition may still
    record its one installation handover; a second active one is rejected, as is any
    handover on a cancelled contract. actual_completion_date keeps an existing value.
    """

    contract = ts.get(models.Contract, contract_id)
    if contract is None:
        return NotFound(entity="contract", entity_id=str(contract_id))

    status = cs.normalize_status(contract.status)
    if status == cs.CANCELLED:
        return InvalidContractState(status=status)
    if status == cs.COMPLETED and _has_active_installation(ts, contract.id):
        return InvalidContractState(status=status)

    current = now or utcnow()
    handover = models.Handover(
        contract_id=contract.id,
        handover_type=models.HandoverType.INSTALLATION.value,
        handover_date=handover_date,
        performed_by=performed_by,
        accepted_by=accepted_by,
        checklist=checklist or None,
        photos=list(photos or []),
        notes=notes,
        created_at=current,
    )

    with ts.unit():
        ts.add(handover)
        ts.flush()
        rowcount = (
            ts.query(models.Contract)
            .filter(models.Contract.id == contract.id)
            .filter(models.Contract.status == status)
            .update(
                {
                    models.Contract.status: cs.COMPLETED,
                    models.Contract.actual_completion_date: func.coalesce(
                        models.Contract.actual_completion_date, handover_date
                    ),
                    models.Contract.updated_at: current,
                },
                synchronize_session=False,
            )
        )
        if rowcount != 1:
            raise RuntimeError(f"Contract {contract.id} changed status during handover")
        write_audit(
            ts,
            performed_by or SYSTEM_ACTOR,
            "handover.installation.created",
            "handover",
            handover.id,
            {
                "contract_id": contract.id,
                "handover_date": handover_date.isoformat(),
                "from_status": status,
            },
            now=current,
        )
    ts.db.refresh(contract)

    logger.info(
        "installation_handover_created",
        extra={"tenant_id": ts.tenant_id, "contract_id": contract.id, "handover_id": handover.id},
    )
    emit(
        "installation.completed",
        ts.tenant_id,
        {"contract_id": contract.id, "handover_id": handover.id, "handover_date": handover_date.isoformat()},
    )
    return Ok(handover, from_status=status)


def cancel_handover(
    ts: TenantSession,
    handover_id: str,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> CancelHandoverResult:
    """Stamp cancelled_at. Whether that blocks the commission is decided by the hold window."""

    handover = get_handover(ts, handover_id)
    if handover is None:
        return NotFound(entity="handover", entity_id=str(handover_id))
    if handover.cancelled_at is not None:
        return AlreadyCancelled(cancelled_at=handover.cancelled_at)

    current = now or utcnow()
    with ts.unit():
        rowcount = (
            ts.query(models.Handover)
            .filter(models.Handover.id == handover.id)
            .filter(models.Handover.cancelled_at.is_(None))
            .update({models.Handover.cancelled_at: current}, synchronize_session=False)
        )
        ts.db.refresh(handover)
        if rowcount != 1:
            return AlreadyCancelled(cancelled_at=handover.cancelled_at)

        hold = hold_status_for(handover, now=current)
        write_audit(
            ts,
            actor or SYSTEM_ACTOR,
            "handover.cancelled",
            "handover",
            handover.id,
            {
                "contract_id": handover.contract_id,
                "commission_blocked": hold.blocked,
                "hold_ends_at": hold.hold_ends_at.isoformat(),
            },
            now=current,
        )

    logger.info(
        "handover_cancelled",
        extra={"tenant_id": ts.tenant_id, "handover_id": handover.id},
    )
    return Ok(handover)


def hold_status_for(handover: models.Handover, *, now: datetime | None = None) -> CommissionHoldStatus:
    return commission_hold_status(handover, now=now, hold_days=settings.commission_hold_days)
