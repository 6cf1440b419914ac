"""Commission hold window for installation handovers.

Pure date arithmetic, no I/O. The hold ends at midnight UTC ``hold_days`` after the
handover date. A cancellation strictly before that instant blocks the commission; a
cancellation at or after it does not claw back an already-eligible commission.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from solarflow.core.time_utils import ensure_utc, midnight_utc, utcnow

DEFAULT_HOLD_DAYS = 7


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def hold_ends_at(handover_date: date | datetime | str, *, hold_days: int = DEFAULT_HOLD_DAYS) -> datetime:
    return midnight_utc(_as_date(handover_date)) + timedelta(days=int(hold_days))


def is_commission_blocked(
    handover_date: date | datetime | str,
    cancelled_at: Optional[datetime],
    *,
    hold_days: int = DEFAULT_HOLD_DAYS,
) -> bool:
    if cancelled_at is None:
        return False
    return ensure_utc(cancelled_at) < hold_ends_at(handover_date, hold_days=hold_days)


def is_commission_released(
    handover_date: date | datetime | str,
    cancelled_at: Optional[datetime],
    *,
    now: Optional[datetime] = None,
    hold_days: int = DEFAULT_HOLD_DAYS,
) -> bool:
    ends_at = hold_ends_at(handover_date, hold_days=hold_days)
    if cancelled_at is None:
        return ensure_utc(now or utcnow()) >= ends_at
    return ensure_utc(cancelled_at) >= ends_at


@dataclass(frozen=True)
class CommissionHoldStatus:
    hold_ends_at: datetime
    blocked: bool
    released: bool

    @property
    def state(self) -> str:
        if self.blocked:
            return "blocked"
        if self.released:
            return "released"
        return "pending"


def commission_hold_status(
    handover: Any,
    *,
    now: Optional[datetime] = None,
    hold_days: int = DEFAULT_HOLD_DAYS,
) -> CommissionHoldStatus:
    """Evaluate the hold for anything with ``handover_date`` and ``cancelled_at``."""

    handover_date = handover.handover_date
    cancelled_at = getattr(handover, "cancelled_at", None)
    return CommissionHoldStatus(
        hold_ends_at=hold_ends_at(handover_date, hold_days=hold_days),
        blocked=is_commission_blocked(handover_date, cancelled_at, hold_days=hold_days),
        released=is_commission_released(handover_date, cancelled_at, now=now, hold_days=hold_days),
    )
