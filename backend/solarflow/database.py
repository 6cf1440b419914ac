from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Query, Session, declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from solarflow.config import settings

connect_args = {}
# Avoid long hangs on DB outages (psycopg3 supports connect_timeout in seconds).
if str(settings.database_url).startswith("postgresql"):
    connect_args = {"connect_timeout": int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS", "10"))}

db_url = str(settings.database_url)
is_postgres = db_url.startswith("postgresql")


def _env_bool(key: str, default: str = "false") -> bool:
    v = os.getenv(key, default)
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


engine_kwargs: dict = {"future": True, "connect_args": connect_args}

if is_postgres:
    engine_kwargs["pool_pre_ping"] = True
    # Job invocations are short-lived; transaction poolers want no client-side pool.
    if _env_bool("DB_USE_NULL_POOL", "false"):
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update(
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
            pool_timeout=int(os.getenv("DB_POOL_TIMEOUT_SECONDS", "30")),
            pool_recycle=int(os.getenv("DB_POOL_RECYCLE_SECONDS", "1800")),
        )

engine = create_engine(db_url, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()

SessionFactory = Callable[[], Session]
M = TypeVar("M")


class TenantRequiredError(ValueError):
    pass


class CrossTenantWriteError(ValueError):
    pass


def _dialect_name(db: Session) -> str:
    return str(db.get_bind().dialect.name)


def apply_tenant_context(db: Session, tenant_id: str) -> None:
    """Expose the tenant to row-level security policies for the current transaction."""

    if _dialect_name(db) != "postgresql":
        return
    db.execute(
        text("SELECT set_config('app.current_tenant', :tenant_id, true)"),
        {"tenant_id": str(tenant_id)},
    )


@dataclass(frozen=True)
class TenantSession:
    """A session bound to exactly one tenant.

    Every read goes through `query()`, which always constrains `tenant_id`,
    and `add()` refuses rows that belong to another tenant.
    """

    db: Session
    tenant_id: str

    def query(self, model: type[M], *extra: Any) -> Query:
        return self.db.query(model, *extra).filter(model.tenant_id == self.tenant_id)

    def get(self, model: type[M], entity_id: Any) -> M | None:
        if entity_id is None:
            return None
        return self.query(model).filter(model.id == str(entity_id)).first()

    def add(self, row: Any) -> Any:
        row_tenant = getattr(row, "tenant_id", None)
        if row_tenant is None:
            row.tenant_id = self.tenant_id
        elif str(row_tenant) != self.tenant_id:
            raise CrossTenantWriteError(
                f"Row belongs to tenant {row_tenant}, session is scoped to {self.tenant_id}"
            )
        self.db.add(row)
        return row

    def flush(self) -> None:
        self.db.flush()

    def commit(self) -> None:
        """Commit mid-scope; the tenant setting is transaction-local so it is re-applied."""

        self.db.commit()
        apply_tenant_context(self.db, self.tenant_id)

    def rollback(self) -> None:
        self.db.rollback()
        apply_tenant_context(self.db, self.tenant_id)

    @contextmanager
    def unit(self) -> Iterator[TenantSession]:
        """Atomic unit (SAVEPOINT) for one entity's update + audit pair."""

        with self.db.begin_nested():
            yield self


@contextmanager
def tenant_scope(
    tenant_id: str | None,
    *,
    session_factory: SessionFactory | None = None,
) -> Iterator[TenantSession]:
    """Open a session scoped to `tenant_id`; commit on success, roll back on error."""

    if not tenant_id:
        raise TenantRequiredError("tenant_id is required for tenant-scoped access")

    factory = session_factory or SessionLocal
    db = factory()
    try:
        apply_tenant_context(db, str(tenant_id))
        yield TenantSession(db=db, tenant_id=str(tenant_id))
        db.commit()
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()


def list_tenant_ids(db: Session) -> list[str]:
    """The one unscoped read: every tenant id, oldest first."""

    from solarflow import models

    rows = db.query(models.Tenant.id).order_by(models.Tenant.created_at.asc(), models.Tenant.id.asc())
    return [str(r[0]) for r in rows.all()]


def get_db():
    db = SessionLocal()
    try:
        if is_postgres:
            timeout_ms = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))
            if timeout_ms > 0:
                db.execute(text(f"SET statement_timeout = {timeout_ms}"))
        yield db
    finally:
        db.close()
