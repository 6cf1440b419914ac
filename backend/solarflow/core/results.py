"""Tagged outcomes for business operations.

Expected business conditions are returned as one of these values instead of raised.
Each carries a stable `kind` so API handlers can map it to a response without
try/except on the happy path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    kind: ClassVar[str] = "ok"

    value: T
    from_status: str | None = None


@dataclass(frozen=True)
class Busy:
    """Another invocation of the same (tenant, job_name) is RUNNING."""

    kind: ClassVar[str] = "busy"

    tenant_id: str
    job_name: str


@dataclass(frozen=True)
class NotFound:
    kind: ClassVar[str] = "not_found"

    entity: str
    entity_id: str | None = None


@dataclass(frozen=True)
class InvalidState:
    kind: ClassVar[str] = "invalid_state"

    status: str


@dataclass(frozen=True)
class InvalidTransition:
    kind: ClassVar[str] = "invalid_transition"

    current: str
    requested: str


@dataclass(frozen=True)
class InvalidToStatus:
    kind: ClassVar[str] = "invalid_to_status"

    to_status: str


@dataclass(frozen=True)
class ReasonRequired:
    kind: ClassVar[str] = "reason_required"


@dataclass(frozen=True)
class Locked:
    kind: ClassVar[str] = "locked"

    status: str


@dataclass(frozen=True)
class AlreadyCancelled:
    kind: ClassVar[str] = "already_cancelled"

    cancelled_at: Any = None


@dataclass(frozen=True)
class InvalidContractState:
    kind: ClassVar[str] = "invalid_contract_state"

    status: str


@dataclass(frozen=True)
class QuoteNotAccepted:
    kind: ClassVar[str] = "quote_not_accepted"

    status: str


@dataclass(frozen=True)
class QuotePriceRequired:
    kind: ClassVar[str] = "quote_price_required"


@dataclass(frozen=True)
class QuoteProjectRequired:
    kind: ClassVar[str] = "quote_project_required"


VALIDATION_KINDS = frozenset(
    {
        ReasonRequired.kind,
        InvalidToStatus.kind,
        QuotePriceRequired.kind,
        QuoteProjectRequired.kind,
    }
)
STATE_CONFLICT_KINDS = frozenset(
    {
        InvalidState.kind,
        InvalidTransition.kind,
        Locked.kind,
        AlreadyCancelled.kind,
        InvalidContractState.kind,
        QuoteNotAccepted.kind,
    }
)
