"""Pytest fixtures for tenant isolation testing.

Provides reusable test fixtures for:
- A fresh SQLite database per test (file based, shared across threads)
- Session factory and SessionBinder bound to that database
- An in-memory tenant-scoped cache wired into the binder
- Test client with database, binder and cache dependencies overridden
- Bearer token helper

Usage:
    def test_list_schools(client, multi_tenant, auth_headers):
        response = client.get("/api/v1/schools", headers=auth_headers(multi_tenant.principal_a))
        assert response.status_code == 200
"""

import sys
import os
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DB_BIND_BACKOFF_SECONDS", "0")

if "JWT_SECRET" not in os.environ:
    os.environ["JWT_SECRET"] = "test-jwt-secret-key-256-bits-minimum-length-required-for-security"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from models.base import Base
import models  # noqa: F401  (registers every model with Base)
from auth.jwt import create_access_token
from cache.tenant_cache import MemoryCacheBackend, TenantScopedCache
from config import get_settings
from database import get_db as database_get_db
from dependencies import get_cache, get_session_binder
from tenancy.session import SessionBinder

from fixtures.multi_tenant import multi_tenant  # noqa: F401


@pytest.fixture(scope="function")
def engine(tmp_path):
    """Engine on a throwaway SQLite file with all tables created.

    A file (rather than :memory:) lets several connections and threads
    see the same data.
    """
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'tenancy.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Unbound session for global tables (tenant, membership, audit log)."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def cache() -> TenantScopedCache:
    return TenantScopedCache(MemoryCacheBackend(max_entries=1000), default_ttl=60)


@pytest.fixture(scope="function")
def binder(session_factory, cache) -> SessionBinder:
    """SessionBinder whose sessions invalidate the test cache on commit."""
    return SessionBinder(
        session_factory,
        max_attempts=1,
        backoff_seconds=0,
        session_info={"tenant_cache": cache},
    )


@pytest.fixture(scope="function")
def client(session_factory, binder, cache) -> Generator[TestClient, None, None]:
    """Test client with database, binder and cache dependencies overridden."""
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[database_get_db] = override_get_db
    app.dependency_overrides[get_session_binder] = lambda: binder
    app.dependency_overrides[get_cache] = lambda: cache

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build Authorization (and optional tenant) headers for a principal."""
    def _headers(principal_id, tenant_id=None, tenant_ids=(), tenant_header=None):
        token = create_access_token(principal_id, tenant_id=tenant_id, tenant_ids=tenant_ids)
        headers = {"Authorization": f"Bearer {token}"}
        if tenant_header is not None:
            headers[get_settings().TENANT_HEADER] = str(tenant_header)
        return headers

    return _headers


@pytest.fixture
def override_settings(monkeypatch):
    """Change settings for one test.

    Usage:
        override_settings(OWNERSHIP_COLLAPSE_NOT_FOUND=False)
    """
    def _override(**values):
        for key, value in values.items():
            monkeypatch.setenv(key, str(value))
        get_settings.cache_clear()

    yield _override
    get_settings.cache_clear()
