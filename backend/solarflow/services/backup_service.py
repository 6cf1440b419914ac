"""Tenant snapshots in the content store, recorded in ``backup_jobs``."""

from __future__ import annotations

import json
import logging
import secrets
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from solarflow import models
from solarflow.core.time_utils import ensure_utc, unix_millis, utcnow
from solarflow.database import TenantSession
from solarflow.services.content_store import ContentStore, ContentStoreError, get_content_store

logger = logging.getLogger("solarflow.backup")

SNAPSHOT_FORMAT = "solarflow.tenant.snapshot.v1"

# Table name -> (model, timestamp column used for incremental selection).
SNAPSHOT_TABLES: dict[str, tuple[type, str]] = {
    "projects": (models.Project, "updated_at"),
    "contracts": (models.Contract, "updated_at"),
    "handovers": (models.Handover, "created_at"),
    "partner_commissions": (models.Commission, "created_at"),
}


def _jsonable(v: Any) -> Any:
    if v is None or isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, datetime):
        return ensure_utc(v).isoformat()
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, dict):
        return {str(k): _jsonable(vv) for k, vv in v.items()}
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    return str(v)


def _row_dict(row: Any) -> dict[str, Any]:
    return {
        prop.columns[0].name: _jsonable(getattr(row, prop.key)) for prop in row.__mapper__.column_attrs
    }


def build_snapshot(
    ts: TenantSession,
    backup_type: models.BackupType,
    *,
    since: datetime | None = None,
    now: datetime | None = None,
) -> bytes:
    tables: dict[str, list[dict[str, Any]]] = {}
    for name, (model, ts_column) in SNAPSHOT_TABLES.items():
        q = ts.query(model)
        if since is not None:
            q = q.filter(getattr(model, ts_column) >= since)
        tables[name] = [_row_dict(r) for r in q.order_by(model.id.asc()).all()]

    doc = {
        "format": SNAPSHOT_FORMAT,
        "tenant_id": ts.tenant_id,
        "backup_type": backup_type.value,
        "generated_at": ensure_utc(now or utcnow()).isoformat(),
        "since": ensure_utc(since).isoformat() if since else None,
        "tables": tables,
    }
    return json.dumps(doc, sort_keys=True, separators=(",", ":")).encode("utf-8")


def backup_key(tenant_id: str, backup_type: models.BackupType, now: datetime) -> str:
    prefix = "full" if backup_type == models.BackupType.FULL else "incr"
    return f"backups/{tenant_id}/{prefix}-{unix_millis(now)}-{secrets.token_hex(3)}.json"


def _create_backup(
    ts: TenantSession,
    backup_type: models.BackupType,
    *,
    since: datetime | None = None,
    store: ContentStore | None = None,
    now: datetime | None = None,
) -> models.BackupRecord:
    current = now or utcnow()
    store = store or get_content_store()

    content = build_snapshot(ts, backup_type, since=since, now=current)
    key = backup_key(ts.tenant_id, backup_type, current)
    storage_path = store.upload(ts.tenant_id, key, content)

    record = models.BackupRecord(
        backup_type=backup_type.value,
        storage_path=storage_path,
        size_bytes=len(content),
        status="CREATED",
        created_at=current,
    )
    ts.add(record)
    ts.flush()

    logger.info(
        "backup_created",
        extra={
            "tenant_id": ts.tenant_id,
            "backup_id": record.id,
            "backup_type": backup_type.value,
            "size_bytes": record.size_bytes,
        },
    )
    return record


def create_full_backup(
    ts: TenantSession, *, store: ContentStore | None = None, now: datetime | None = None
) -> models.BackupRecord:
    return _create_backup(ts, models.BackupType.FULL, store=store, now=now)


def create_incremental_backup(
    ts: TenantSession, *, store: ContentStore | None = None, now: datetime | None = None
) -> models.BackupRecord:
    """Rows touched since the newest existing backup; a first incremental covers everything."""

    latest = (
        ts.query(models.BackupRecord)
        .order_by(models.BackupRecord.created_at.desc(), models.BackupRecord.id.desc())
        .first()
    )
    since = ensure_utc(latest.created_at) if latest is not None else None
    return _create_backup(ts, models.BackupType.INCREMENTAL, since=since, store=store, now=now)


def list_backups(ts: TenantSession, *, limit: int = 50) -> list[models.BackupRecord]:
    limit = max(1, min(int(limit), 500))
    return (
        ts.query(models.BackupRecord)
        .order_by(models.BackupRecord.created_at.desc(), models.BackupRecord.id.desc())
        .limit(limit)
        .all()
    )


def get_backup(ts: TenantSession, backup_id: str) -> models.BackupRecord | None:
    return ts.get(models.BackupRecord, backup_id)


def read_backup_content(record: models.BackupRecord, *, store: ContentStore | None = None) -> bytes:
    store = store or get_content_store()
    return store.download(store.key_for(record.storage_path))


def delete_backups_older_than(
    ts: TenantSession,
    days: int = 30,
    *,
    store: ContentStore | None = None,
    now: datetime | None = None,
) -> int:
    """Delete stored objects first, then the rows pointing at them."""

    store = store or get_content_store()
    cutoff = (now or utcnow()) - timedelta(days=int(days))
    expired = (
        ts.query(models.BackupRecord)
        .filter(models.BackupRecord.created_at < cutoff)
        .all()
    )

    for record in expired:
        try:
            store.delete(store.key_for(record.storage_path))
        except ContentStoreError:
            # Object lives in another store (e.g. written before a backend switch); the row still goes.
            logger.warning(
                "backup_object_not_deletable",
                extra={"tenant_id": ts.tenant_id, "backup_id": record.id, "storage_path": record.storage_path},
            )

    if not expired:
        return 0

    deleted = (
        ts.query(models.BackupRecord)
        .filter(models.BackupRecord.id.in_([r.id for r in expired]))
        .delete(synchronize_session=False)
    )
    logger.info("backup_retention_deleted", extra={"tenant_id": ts.tenant_id, "deleted": int(deleted)})
    return int(deleted or 0)
