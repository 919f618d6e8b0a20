from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

import app.main as main_module
from app.config import settings
from app.db.migration_check import (
    assert_db_is_up_to_date,
    get_alembic_head_revision,
    get_current_db_revision,
    maybe_create_schema,
)
from app.main import app


@pytest.fixture
def sqlite_engine(tmp_path: Path):
    db_path = tmp_path / "migration-check.db"
    engine = create_engine(f"sqlite+pysqlite:///{db_path}")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def startup_settings():
    previous_engine = main_module.engine
    previous_testing = settings.testing
    previous_auto_create = settings.auto_create_schema
    try:
        yield
    finally:
        main_module.engine = previous_engine
        settings.testing = previous_testing
        settings.auto_create_schema = previous_auto_create


def _stamp(engine, revision: str) -> None:
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
        connection.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {"rev": revision}
        )


def _table_exists(engine, name: str) -> bool:
    with engine.begin() as connection:
        found = connection.execute(
            text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
            {"name": name},
        ).scalar_one_or_none()
    return found == name


def test_alembic_head_is_the_lifecycle_revision():
    assert get_alembic_head_revision() == "20261018_0001"


def test_assert_db_is_up_to_date_fails_when_alembic_version_missing(sqlite_engine):
    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        assert_db_is_up_to_date(sqlite_engine)


def test_assert_db_is_up_to_date_passes_at_head(sqlite_engine):
    head = get_alembic_head_revision()
    _stamp(sqlite_engine, head)

    assert get_current_db_revision(sqlite_engine) == head
    assert_db_is_up_to_date(sqlite_engine)


def test_maybe_create_schema_creates_tables_when_enabled(sqlite_engine, startup_settings):
    settings.auto_create_schema = True
    settings.testing = True

    maybe_create_schema(sqlite_engine)

    for table in ("users", "organizations", "organization_memberships", "orders"):
        assert _table_exists(sqlite_engine, table)
    assert _table_exists(sqlite_engine, "order_audit_records")


def test_maybe_create_schema_refuses_outside_testing(sqlite_engine, startup_settings):
    settings.auto_create_schema = True
    settings.testing = False

    with pytest.raises(RuntimeError, match="AUTO_CREATE_SCHEMA requires COURIER_TESTING"):
        maybe_create_schema(sqlite_engine)


def test_app_startup_auto_creates_schema_in_testing(sqlite_engine, startup_settings):
    main_module.engine = sqlite_engine
    settings.testing = True
    settings.auto_create_schema = True

    with TestClient(app):
        pass

    assert _table_exists(sqlite_engine, "orders")


def test_app_startup_fails_fast_when_revision_missing(sqlite_engine, startup_settings, monkeypatch):
    main_module.engine = sqlite_engine
    settings.testing = False
    monkeypatch.setattr(main_module, "ensure_secure_runtime_settings", lambda: None)

    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        with TestClient(app):
            pass


def test_app_startup_passes_when_db_at_head(sqlite_engine, startup_settings, monkeypatch):
    _stamp(sqlite_engine, get_alembic_head_revision())
    main_module.engine = sqlite_engine
    settings.testing = False
    monkeypatch.setattr(main_module, "ensure_secure_runtime_settings", lambda: None)

    with TestClient(app):
        pass
