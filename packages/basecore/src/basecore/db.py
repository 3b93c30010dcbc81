"""
Database access for basecore consumers.

The engine and session factory are built on first use from DATABASE_URL.
Request handlers take a session from ``get_db``; scripts and the CLI open
one with ``new_session``.
"""

import functools

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from basecore.settings import get_settings


@functools.lru_cache()
def get_engine() -> Engine:
    """Get the process-wide engine (cached)."""
    url = get_settings().DATABASE_URL

    if url.startswith("sqlite"):
        # Local development only; request threads share the file
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)


@functools.lru_cache()
def get_sessionmaker() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)


def new_session() -> Session:
    """Open a session the caller must close."""
    return get_sessionmaker()()


def get_db():
    """FastAPI dependency: one session per request, always closed."""
    db = new_session()
    try:
        yield db
    finally:
        db.close()
