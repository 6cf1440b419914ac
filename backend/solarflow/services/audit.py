from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from solarflow import models
from solarflow.core.time_utils import utcnow
from solarflow.database import TenantSession

logger = logging.getLogger("solarflow.audit")

SYSTEM_ACTOR = "SYSTEM"


class AuditTenantRequiredError(ValueError):
    pass


def write_audit(
    ts: TenantSession,
    actor: str | None,
    action: str,
    entity_type: str | None,
    entity_id: Any = None,
    metadata: Optional[Dict[str, Any]] = None,
    *,
    now: datetime | None = None,
) -> models.AuditLog:
    """Append one audit row inside the caller's transaction.

    The row is flushed, not committed: it lands or rolls back together with the state
    change it describes. A missing tenant is a programming error and raises.
    """

    if ts is None or not getattr(ts, "tenant_id", None):
        raise AuditTenantRequiredError(f"Audit write for {action!r} has no tenant context")

    row = models.AuditLog(
        tenant_id=ts.tenant_id,
        actor=str(actor or SYSTEM_ACTOR),
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(metadata or {}),
        created_at=now or utcnow(),
    )
    ts.add(row)
    ts.flush()

    logger.debug(
        "audit_written",
        extra={
            "tenant_id": ts.tenant_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": row.entity_id,
        },
    )
    return row
