"""
Engine and sessions for the CARS-G store.

The engine is bound on first use from DATABASE_URL, so a test can point the
service at a throwaway SQLite file and call `reset_engine()`.
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///./cars.db"

_engine = None
_bound_url = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _build_engine(url: str):
    echo = os.environ.get("SQL_ECHO", "false").lower() == "true"
    if url.startswith("sqlite"):
        # request handlers and the test client share connections across threads
        return create_engine(url, connect_args={"check_same_thread": False}, echo=echo)
    return create_engine(url, pool_size=5, max_overflow=10, pool_pre_ping=True, echo=echo)


def get_engine():
    global _engine, _bound_url
    url = _database_url()
    if _engine is None or _bound_url != url:
        _engine = _build_engine(url)
        _bound_url = url
        SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine():
    """Dispose the engine so the next call rebinds to DATABASE_URL."""
    global _engine, _bound_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _bound_url = None
    SessionLocal.configure(bind=None)


def init_db():
    Base.metadata.create_all(bind=get_engine())


def drop_db():
    Base.metadata.drop_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for route handlers (`Depends(get_db)`)."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session that commits on success, for scripts and test seeding."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
