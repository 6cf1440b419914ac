from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy import text

from solarflow.core.results import NotFound
from solarflow.core.time_utils import unix_millis, utcnow
from solarflow.database import TenantSession
from solarflow.services.audit import write_audit
from solarflow.services.backup_service import SNAPSHOT_FORMAT, get_backup, read_backup_content
from solarflow.services.content_store import ContentStore, get_content_store

logger = logging.getLogger("solarflow.backup")

SUPER_ADMIN_ROLES = frozenset({"super_admin", "superadmin"})

_WORKSPACE_RE = re.compile(r"^restore_[0-9a-f]+_\d+$")


class RestoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class RestoreResult:
    workspace: str
    backup_id: str
    status: str
    row_counts: dict[str, int] = field(default_factory=dict)


def is_super_admin(role: Optional[str]) -> bool:
    return str(role or "").strip().lower() in SUPER_ADMIN_ROLES


def restore_workspace_name(backup_id: str, now: datetime) -> str:
    return f"restore_{str(backup_id).replace('-', '').lower()}_{unix_millis(now)}"


def _materialize(
    ts: TenantSession,
    workspace: str,
    content: bytes,
    *,
    store: ContentStore,
) -> dict[str, int]:
    doc: dict[str, Any] = json.loads(content.decode("utf-8"))
    if doc.get("format") != SNAPSHOT_FORMAT:
        raise RestoreError(f"Unsupported snapshot format: {doc.get('format')!r}")
    if str(doc.get("tenant_id")) != ts.tenant_id:
        raise RestoreError("Snapshot belongs to another tenant")

    if not _WORKSPACE_RE.match(workspace):
        raise RestoreError(f"Invalid workspace name: {workspace!r}")

    if ts.db.get_bind().dialect.name == "postgresql":
        ts.db.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{workspace}"'))

    store.upload(ts.tenant_id, f"restores/{workspace}/snapshot.json", content)
    return {name: len(rows) for name, rows in (doc.get("tables") or {}).items()}


def restore_to_workspace(
    ts: TenantSession,
    backup_id: str,
    actor: str,
    *,
    store: ContentStore | None = None,
    now: datetime | None = None,
) -> Union[RestoreResult, NotFound]:
    """Materialize a backup into a fresh, uniquely named workspace; never the live schema.

    Authorization (super-admin) is the caller's job. The started/failed audit rows are
    committed as they are written so a failed restore still leaves its trail.
    """

    record = get_backup(ts, backup_id)
    if record is None:
        return NotFound(entity="backup", entity_id=str(backup_id))

    store = store or get_content_store()
    current = now or utcnow()
    workspace = restore_workspace_name(record.id, current)

    write_audit(
        ts,
        actor,
        "backup.restore.started",
        "backup",
        record.id,
        {"schema_name": workspace, "backup_type": record.backup_type},
        now=current,
    )
    ts.commit()

    try:
        content = read_backup_content(record, store=store)
        row_counts = _materialize(ts, workspace, content, store=store)
    except Exception as exc:
        ts.rollback()
        write_audit(
            ts,
            actor,
            "backup.restore.failed",
            "backup",
            record.id,
            {"schema_name": workspace, "error": str(exc)},
            now=current,
        )
        ts.commit()
        logger.exception(
            "backup_restore_failed",
            extra={"tenant_id": ts.tenant_id, "backup_id": record.id, "workspace": workspace},
        )
        raise

    write_audit(
        ts,
        actor,
        "backup.restore.completed",
        "backup",
        record.id,
        {"schema_name": workspace, "status": "COMPLETED", "row_counts": row_counts},
        now=current,
    )
    logger.info(
        "backup_restored",
        extra={"tenant_id": ts.tenant_id, "backup_id": record.id, "workspace": workspace},
    )
    return RestoreResult(workspace=workspace, backup_id=record.id, status="COMPLETED", row_counts=row_counts)
