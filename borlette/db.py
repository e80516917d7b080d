from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from .config import load_settings


def build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        # Concurrent writers wait on the database lock instead of failing fast.
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(
        database_url, future=True, echo=False, pool_pre_ping=True, connect_args=connect_args
    )


settings = load_settings()

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
)


def configure_engine(database_url: str) -> Engine:
    """Rebind the session factory to a new database (used by tests and the app factory)."""
    global engine
    engine.dispose()
    engine = build_engine(database_url)
    SessionLocal.configure(bind=engine)
    return engine


def get_engine() -> Engine:
    return engine


@contextmanager
def session_scope() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
