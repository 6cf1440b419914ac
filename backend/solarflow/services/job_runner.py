"""Single-invocation job runner.

Template for every job: acquire the ledger lock, skip on contention, run the body, then
finalize the ledger row exactly once. Each phase runs in its own transaction so the RUNNING
row is visible to other processes for the whole body duration.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError

from solarflow.core.results import Busy
from solarflow.core.time_utils import utcnow
from solarflow.database import SessionFactory, TenantSession, tenant_scope
from solarflow.services import job_ledger

logger = logging.getLogger("solarflow.jobs")


class JobType:
    PHONE_GATE = "PHONE_GATE"
    CLEANUP = "CLEANUP"
    COMMISSION = "COMMISSION"
    BACKUP = "BACKUP"
    MAINTENANCE = "MAINTENANCE"


class UnknownJobError(KeyError):
    pass


@dataclass(frozen=True)
class JobContext:
    """What a job body gets: who it runs for, its ledger row, and how to open sessions."""

    tenant_id: str
    job_name: str
    job_run_id: str
    session_factory: SessionFactory | None = None
    now: datetime | None = None

    @contextmanager
    def scope(self, tenant_id: str | None = None) -> Iterator[TenantSession]:
        with tenant_scope(tenant_id or self.tenant_id, session_factory=self.session_factory) as ts:
            yield ts

    def clock(self) -> datetime:
        return self.now or utcnow()


JobBody = Callable[[JobContext], dict[str, Any]]


@dataclass(frozen=True)
class JobDefinition:
    job_name: str
    job_type: str
    body: JobBody
    description: str = ""


@dataclass(frozen=True)
class JobRunResult:
    skipped: bool
    summary: dict[str, Any] = field(default_factory=dict)
    job_run_id: str | None = None


def _resolve(job_name: str) -> JobDefinition:
    from solarflow.services.job_registry import JOB_REGISTRY

    try:
        return JOB_REGISTRY[job_name]
    except KeyError:
        raise UnknownJobError(job_name) from None


def run_job(
    tenant_id: str,
    job_name: str,
    job_type: str | None = None,
    body: JobBody | None = None,
    *,
    metadata: dict[str, Any] | None = None,
    session_factory: SessionFactory | None = None,
    now: datetime | None = None,
) -> JobRunResult:
    """Run one job for one tenant.

    Returns ``JobRunResult(skipped=True)`` when another invocation holds the lock. A body
    exception is recorded as a FAILED ledger row and re-raised; nothing retries here.
    """

    if body is None:
        definition = _resolve(job_name)
        body = definition.body
        job_type = job_type or definition.job_type
    if not job_type:
        raise ValueError(f"job_type is required for ad-hoc job {job_name!r}")

    with tenant_scope(tenant_id, session_factory=session_factory) as ts:
        acquired = job_ledger.acquire(ts, job_name, job_type, metadata, now=now)

    if isinstance(acquired, Busy):
        return JobRunResult(skipped=True, summary={}, job_run_id=None)

    run_id = acquired
    ctx = JobContext(
        tenant_id=str(tenant_id),
        job_name=job_name,
        job_run_id=run_id,
        session_factory=session_factory,
        now=now,
    )

    try:
        summary = dict(body(ctx) or {})
        with tenant_scope(tenant_id, session_factory=session_factory) as ts:
            job_ledger.complete(ts, run_id, summary, now=now)
    except Exception as exc:
        logger.exception(
            "job_body_failed",
            extra={"tenant_id": tenant_id, "job_name": job_name, "job_run_id": run_id},
        )
        with tenant_scope(tenant_id, session_factory=session_factory) as ts:
            job_ledger.fail(ts, run_id, str(exc) or type(exc).__name__, now=now)
        raise

    return JobRunResult(skipped=False, summary=summary, job_run_id=run_id)


def for_each_row(
    ts: TenantSession,
    rows: Iterable[Any],
    handler: Callable[[Any], bool],
    *,
    job_name: str,
) -> tuple[int, int]:
    """Apply ``handler`` to each row in its own SAVEPOINT.

    A database error on one row rolls back that row only and is counted as failed; the
    sweep carries on. Any other exception aborts the sweep and fails the job run.
    Returns (applied, failed), where applied counts rows the handler returned True for.
    """

    applied = failed = 0
    for row in rows:
        try:
            with ts.unit():
                if handler(row):
                    applied += 1
        except SQLAlchemyError:
            failed += 1
            logger.exception(
                "job_row_failed",
                extra={
                    "tenant_id": ts.tenant_id,
                    "job_name": job_name,
                    "entity_id": getattr(row, "id", None),
                },
            )
    return applied, failed
