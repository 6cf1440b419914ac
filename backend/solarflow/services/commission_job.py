"""Commission settlement: release a partner commission once the handover hold has elapsed.

Idempotency comes from the candidate query itself: contracts that already have a
commission row are never selected again, and ``partner_commissions.contract_id`` is unique.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Optional

from sqlalchemy import exists

from solarflow import models
from solarflow.config import settings
from solarflow.core.time_utils import ensure_utc
from solarflow.database import SessionFactory, TenantSession
from solarflow.services.audit import SYSTEM_ACTOR, write_audit
from solarflow.services.commission_hold import is_commission_released
from solarflow.services.event_bus import emit
from solarflow.services.job_runner import JobContext, JobRunResult, JobType, for_each_row, run_job

logger = logging.getLogger("solarflow.jobs")

JOB_NAME = "commission-job"
JOB_TYPE = JobType.COMMISSION


@dataclass(frozen=True)
class CommissionCandidate:
    handover_id: str
    contract_id: str
    handover_date: date
    total_amount: int
    partner_id: str
    commission_rate: Optional[float]

    @property
    def id(self) -> str:
        return self.handover_id


def compute_commission_amount(total_amount: int, rate_pct: Optional[float]) -> int:
    """floor(total * rate / 100); a missing rate falls back to the configured default."""

    rate = settings.default_commission_rate if rate_pct is None else rate_pct
    raw = Decimal(int(total_amount or 0)) * Decimal(str(rate)) / Decimal(100)
    return int(raw.to_integral_value(rounding=ROUND_FLOOR))


def find_commission_candidates(ts: TenantSession, *, now: datetime) -> list[CommissionCandidate]:
    hold_days = settings.commission_hold_days
    latest_date = (ensure_utc(now) - timedelta(days=hold_days)).date()

    has_commission = exists().where(models.Commission.contract_id == models.Contract.id)
    rows = (
        ts.query(models.Handover)
        .join(
            models.Contract,
            (models.Contract.id == models.Handover.contract_id)
            & (models.Contract.tenant_id == models.Handover.tenant_id),
        )
        .join(
            models.Project,
            (models.Project.id == models.Contract.project_id)
            & (models.Project.tenant_id == models.Handover.tenant_id),
        )
        .outerjoin(
            models.Partner,
            (models.Partner.id == models.Project.partner_id)
            & (models.Partner.tenant_id == models.Handover.tenant_id),
        )
        .with_entities(
            models.Handover.id,
            models.Handover.contract_id,
            models.Handover.handover_date,
            models.Handover.cancelled_at,
            models.Contract.total_amount,
            models.Project.partner_id,
            models.Partner.commission_rate,
        )
        .filter(models.Handover.handover_type == models.HandoverType.INSTALLATION.value)
        .filter(models.Handover.cancelled_at.is_(None))
        .filter(models.Handover.handover_date <= latest_date)
        .filter(~has_commission)
        .filter(models.Project.partner_id.is_not(None))
        .order_by(models.Handover.handover_date.asc(), models.Handover.id.asc())
        .all()
    )

    out: list[CommissionCandidate] = []
    seen_contracts: set[str] = set()
    for r in rows:
        if r.contract_id in seen_contracts:
            continue
        if not is_commission_released(r.handover_date, r.cancelled_at, now=now, hold_days=hold_days):
            continue
        seen_contracts.add(r.contract_id)
        out.append(
            CommissionCandidate(
                handover_id=r.id,
                contract_id=r.contract_id,
                handover_date=r.handover_date,
                total_amount=int(r.total_amount or 0),
                partner_id=r.partner_id,
                commission_rate=float(r.commission_rate) if r.commission_rate is not None else None,
            )
        )
    return out


def release_commission(ts: TenantSession, candidate: CommissionCandidate, *, now: datetime) -> bool:
    amount = compute_commission_amount(candidate.total_amount, candidate.commission_rate)
    commission = models.Commission(
        partner_id=candidate.partner_id,
        contract_id=candidate.contract_id,
        amount=amount,
        status=models.CommissionStatus.AVAILABLE.value,
        created_at=now,
    )
    ts.add(commission)
    ts.flush()

    write_audit(
        ts,
        SYSTEM_ACTOR,
        "commission.released",
        "commission",
        commission.id,
        {
            "contract_id": candidate.contract_id,
            "handover_id": candidate.handover_id,
            "amount": amount,
        },
        now=now,
    )
    emit(
        "commission.approved",
        ts.tenant_id,
        {"commission_id": commission.id, "partner_id": candidate.partner_id, "amount": amount},
    )
    return True


def commission_body(ctx: JobContext) -> dict[str, Any]:
    now = ctx.clock()
    with ctx.scope() as ts:
        candidates = find_commission_candidates(ts, now=now)
        released, failed = for_each_row(
            ts,
            candidates,
            lambda c: release_commission(ts, c, now=now),
            job_name=ctx.job_name,
        )

    logger.info(
        "commissions_released",
        extra={"tenant_id": ctx.tenant_id, "total": len(candidates), "released": released},
    )
    return {"total": len(candidates), "released": released, "failed": failed}


def run_commission_job(
    tenant_id: str,
    *,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> JobRunResult:
    return run_job(
        tenant_id, JOB_NAME, JOB_TYPE, commission_body, session_factory=session_factory, now=now
    )
