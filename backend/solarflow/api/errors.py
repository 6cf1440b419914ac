from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status

from solarflow.core.results import STATE_CONFLICT_KINDS, VALIDATION_KINDS, NotFound, Ok


def _payload(result: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"code": result.kind}
    for key, value in vars(result).items():
        if value is not None:
            body[key] = value if isinstance(value, (str, int, float, bool)) else str(value)
    return body


def unwrap(result: Any) -> Any:
    """Return the value of an `Ok`, or raise the HTTP error its kind maps to."""

    if isinstance(result, Ok):
        return result.value
    if isinstance(result, NotFound):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": result.kind, "entity": result.entity, "message": f"{result.entity.title()} not found"},
        )

    kind = getattr(result, "kind", None)
    if kind in VALIDATION_KINDS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_payload(result))
    if kind in STATE_CONFLICT_KINDS:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_payload(result))
    raise RuntimeError(f"Unmapped result: {result!r}")
