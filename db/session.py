"""
db/session.py

SQLAlchemy engine and session factory for the telemetry warehouse.

Nothing connects at import time: the engine is built on the first session
request, so the API imports and tests run without a reachable database.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import DatabaseSettings, get_database_settings
from db.config import resolve_database_url


def create_db_engine(settings: DatabaseSettings | None = None) -> Engine:
    """
    Build a PostgreSQL engine from the resolved URL and pool settings.
    """

    url = resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    pool = settings or get_database_settings()
    return create_engine(
        url,
        echo=pool.echo,
        pool_pre_ping=True,
        pool_recycle=pool.pool_recycle,
        pool_size=pool.pool_size,
        max_overflow=pool.max_overflow,
        pool_timeout=pool.pool_timeout,
    )


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_session_factory() -> sessionmaker:
    global _engine, _session_factory
    if _session_factory is None:
        if _engine is None:
            _engine = create_db_engine()
        _session_factory = sessionmaker(
            bind=_engine,
            class_=Session,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def SessionLocal() -> Session:
    """Open a warehouse session, creating the engine on first use."""
    return get_session_factory()()
