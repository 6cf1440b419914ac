from __future__ import annotations

import logging
import secrets
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from solarflow import models
from solarflow.config import settings
from solarflow.core.results import NotFound, Ok, QuoteNotAccepted, QuotePriceRequired, QuoteProjectRequired
from solarflow.core.time_utils import unix_millis, utcnow
from solarflow.database import TenantSession
from solarflow.services.audit import SYSTEM_ACTOR, write_audit
from solarflow.services.event_bus import emit

logger = logging.getLogger("solarflow.contracts")

ACCEPTED_QUOTE_STATUSES = frozenset(
    {
        models.QuoteStatus.CUSTOMER_ACCEPTED.value,
        models.QuoteStatus.ACCEPTED.value,
        models.QuoteStatus.APPROVED.value,
    }
)

CreateContractResult = Union[
    Ok[models.Contract], NotFound, QuoteNotAccepted, QuotePriceRequired, QuoteProjectRequired
]


def generate_contract_number(now: datetime | None = None) -> str:
    """``C-{unixMillis}-{8 lowercase hex}``."""

    return f"C-{unix_millis(now or utcnow())}-{secrets.token_hex(4)}"


def compute_payment_split(total_amount: int, deposit_percentage: float) -> tuple[int, int]:
    """Return (deposit, final); half-up rounding on the deposit, final takes the remainder."""

    total = int(total_amount)
    if total < 0:
        raise ValueError("total_amount must be >= 0")
    pct = Decimal(str(deposit_percentage))
    if pct < 0 or pct > 100:
        raise ValueError("deposit_percentage must be within [0, 100]")

    deposit = int((Decimal(total) * pct / Decimal(100)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return deposit, total - deposit


def create_contract_from_quote(
    ts: TenantSession,
    quote_id: str,
    *,
    deposit_percentage: Optional[float] = None,
    expected_start_date: Optional[date] = None,
    expected_completion_date: Optional[date] = None,
    warranty_years: Optional[int] = None,
    notes: Optional[str] = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> CreateContractResult:
    quote = ts.get(models.Quote, quote_id)
    if quote is None:
        return NotFound(entity="quote", entity_id=str(quote_id))

    status = str(quote.status or "").upper()
    if status not in ACCEPTED_QUOTE_STATUSES:
        return QuoteNotAccepted(status=status)
    if not quote.project_id:
        return QuoteProjectRequired()
    if quote.total_amount is None or int(quote.total_amount) < 0:
        return QuotePriceRequired()

    pct = settings.default_deposit_percentage if deposit_percentage is None else deposit_percentage
    total = int(quote.total_amount)
    deposit, final = compute_payment_split(total, pct)
    current = now or utcnow()

    contract = models.Contract(
        project_id=quote.project_id,
        quote_id=quote.id,
        contract_number=generate_contract_number(current),
        status=models.ContractStatus.DRAFT.value,
        deposit_percentage=float(pct),
        deposit_amount=deposit,
        final_payment_amount=final,
        total_amount=total,
        expected_start_date=expected_start_date,
        expected_completion_date=expected_completion_date,
        warranty_years=settings.default_warranty_years if warranty_years is None else int(warranty_years),
        notes=notes,
        created_at=current,
        updated_at=current,
    )

    with ts.unit():
        ts.add(contract)
        ts.flush()
        write_audit(
            ts,
            actor or SYSTEM_ACTOR,
            "contract.created.from_quote",
            "contract",
            contract.id,
            {
                "quote_id": quote.id,
                "project_id": quote.project_id,
                "contract_number": contract.contract_number,
                "total_amount": total,
                "deposit_percentage": float(pct),
                "deposit_amount": deposit,
                "final_payment_amount": final,
            },
            now=current,
        )

    logger.info(
        "contract_created",
        extra={"tenant_id": ts.tenant_id, "contract_id": contract.id, "quote_id": quote.id},
    )
    emit(
        "contract.created",
        ts.tenant_id,
        {"contract_id": contract.id, "project_id": contract.project_id, "quote_id": quote.id},
    )
    return Ok(contract)
