"""Database engine, session factory and the process-wide session binder.

Every session created here is subject to the tenant filtering listeners
registered by ``tenancy`` and the cache invalidation hooks registered by
``cache``. Request handlers obtain sessions only through ``session_binder``;
a session that was never bound raises on its first tenant-scoped statement.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

import cache  # noqa: F401  (registers commit-triggered invalidation)
from config import get_settings
from tenancy.session import SessionBinder

settings = get_settings()

_engine_kwargs = {
    "pool_pre_ping": True,  # Verify connections before using
    "echo": False,
}

# Pool settings only apply to PostgreSQL (not SQLite)
if not settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["pool_size"] = settings.DB_POOL_SIZE
    _engine_kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

session_binder = SessionBinder(SessionLocal)


def get_db() -> Generator[Session, None, None]:
    """Dependency for global (non tenant-scoped) lookups.

    Tenant and membership tables are readable here; tenant-scoped models
    raise ``TenantContextMissingError``.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
