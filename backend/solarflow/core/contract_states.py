from __future__ import annotations

from solarflow.models import ContractStatus

DRAFT = ContractStatus.DRAFT.value
SIGNED = ContractStatus.SIGNED.value
IN_PROGRESS = ContractStatus.IN_PROGRESS.value
COMPLETED = ContractStatus.COMPLETED.value
CANCELLED = ContractStatus.CANCELLED.value

# Forward-only; no skips, no reversals.
CONTRACT_STATE_TRANSITIONS: dict[str, frozenset[str]] = {
    DRAFT: frozenset({SIGNED, CANCELLED}),
    SIGNED: frozenset({IN_PROGRESS, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

# Targets reachable through the explicit transition operation.
EXPLICIT_TARGETS = frozenset({IN_PROGRESS, COMPLETED})

CANCELLABLE_STATES = frozenset(s for s, nxt in CONTRACT_STATE_TRANSITIONS.items() if CANCELLED in nxt)


def normalize_status(value: str | ContractStatus | None) -> str:
    if isinstance(value, ContractStatus):
        return value.value
    return str(value or "").strip().upper()


def can_transition(current: str | ContractStatus | None, to_status: str | ContractStatus | None) -> bool:
    cur = normalize_status(current)
    to = normalize_status(to_status)
    return to in CONTRACT_STATE_TRANSITIONS.get(cur, frozenset())
