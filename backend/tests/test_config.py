import pytest
from pydantic import ValidationError

from solarflow.config import Settings


def test_postgres_urls_are_routed_to_psycopg3(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db.internal:5432/solar")
    s = Settings()
    assert s.database_url == "postgresql+psycopg://u:p@db.internal:5432/solar"


def test_defaults_match_business_rules():
    s = Settings()
    assert s.commission_hold_days == 7
    assert s.default_commission_rate == 5.0
    assert s.phone_gate_days == 7
    assert s.job_run_retention_days == 30
    assert s.backup_retention_days == 30
    assert s.notification_log_retention_days == 90
    assert s.expiry_warning_hours == 24
    assert s.enable_docs is True


def test_weak_secret_key_is_rejected(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "change-me")
    with pytest.raises(ValidationError):
        Settings()


def test_production_refuses_sqlite(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./prod.db")
    with pytest.raises(ValidationError):
        Settings()


def test_unknown_content_store_backend_is_rejected(monkeypatch):
    monkeypatch.setenv("CONTENT_STORE_BACKEND", "s3")
    with pytest.raises(ValidationError):
        Settings()


def test_api_prefix_normalization(monkeypatch):
    monkeypatch.setenv("API_V1_STR", "api/v1")
    assert Settings().api_prefix == "/api/v1"
