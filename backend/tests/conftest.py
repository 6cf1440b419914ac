import os

# Set before any solarflow import: settings are read at import time.
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["CONTENT_STORE_BACKEND"] = "mock"

import uuid  # noqa: E402
from datetime import date, datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from solarflow import models  # noqa: E402
from solarflow.database import Base  # noqa: E402
from solarflow.services.content_store import MockContentStore, set_content_store  # noqa: E402
from solarflow.services.event_bus import event_bus  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        engine.dispose()


@pytest.fixture()
def fk_session_factory():
    """Like `session_factory`, with SQLite foreign keys enforced."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    finally:
        engine.dispose()


@pytest.fixture(autouse=True)
def _isolate_process_state():
    store = MockContentStore("test-bucket")
    set_content_store(store)
    event_bus.clear()
    try:
        yield
    finally:
        event_bus.clear()
        set_content_store(None)


@pytest.fixture()
def content_store():
    store = MockContentStore("test-bucket")
    set_content_store(store)
    return store


def new_id() -> str:
    return str(uuid.uuid4())


def seed_tenant(SessionLocal, name: str = "Acme Solar") -> str:
    with SessionLocal() as db:
        tenant = models.Tenant(id=new_id(), name=name, created_at=NOW)
        db.add(tenant)
        db.commit()
        return tenant.id


def seed_project(SessionLocal, tenant_id: str, **overrides) -> str:
    values = {
        "id": new_id(),
        "tenant_id": tenant_id,
        "project_number": "P-0001",
        "customer_name": "Customer",
        "customer_phone": "0900000000",
        "status": models.ProjectStatus.LEAD.value,
        "created_at": NOW - timedelta(days=30),
        "updated_at": NOW - timedelta(days=30),
    }
    values.update(overrides)
    with SessionLocal() as db:
        db.add(models.Project(**values))
        db.commit()
    return values["id"]


def seed_partner(SessionLocal, tenant_id: str, commission_rate=None) -> str:
    with SessionLocal() as db:
        partner = models.Partner(
            id=new_id(), tenant_id=tenant_id, name="Installer Co", commission_rate=commission_rate
        )
        db.add(partner)
        db.commit()
        return partner.id


def seed_quote(SessionLocal, tenant_id: str, project_id, *, total_amount=150_000_000, status="CUSTOMER_ACCEPTED") -> str:
    with SessionLocal() as db:
        quote = models.Quote(
            id=new_id(),
            tenant_id=tenant_id,
            project_id=project_id,
            status=status,
            total_amount=total_amount,
            customer_name="Customer",
        )
        db.add(quote)
        db.commit()
        return quote.id


def seed_contract(SessionLocal, tenant_id: str, project_id: str, **overrides) -> str:
    values = {
        "id": new_id(),
        "tenant_id": tenant_id,
        "project_id": project_id,
        "contract_number": f"C-{uuid.uuid4().hex[:12]}",
        "status": models.ContractStatus.DRAFT.value,
        "deposit_percentage": 30.0,
        "deposit_amount": 30_000_000,
        "final_payment_amount": 70_000_000,
        "total_amount": 100_000_000,
        "created_at": NOW - timedelta(days=20),
        "updated_at": NOW - timedelta(days=20),
    }
    values.update(overrides)
    with SessionLocal() as db:
        db.add(models.Contract(**values))
        db.commit()
    return values["id"]


def seed_handover(
    SessionLocal,
    tenant_id: str,
    contract_id: str,
    handover_date: date,
    cancelled_at=None,
    handover_type: str = "INSTALLATION",
) -> str:
    with SessionLocal() as db:
        handover = models.Handover(
            id=new_id(),
            tenant_id=tenant_id,
            contract_id=contract_id,
            handover_type=handover_type,
            handover_date=handover_date,
            cancelled_at=cancelled_at,
            created_at=NOW - timedelta(days=10),
        )
        db.add(handover)
        db.commit()
        return handover.id
