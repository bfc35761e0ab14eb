"""Database session configuration."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from backstage_gate.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine, relaxing SQLite's same-thread check.

    Request handlers hand sessions between the threadpool and the event loop,
    and the busy timeout lets concurrent SQLite writers queue instead of failing.
    """
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, pool_pre_ping=True, echo=echo, connect_args=connect_args)


# Ensure model modules are imported so that metadata is populated when create_all runs.
import backstage_gate.models  # noqa: E402,F401

engine = build_engine(settings.effective_database_url, echo=settings.sql_debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Engine | None = None) -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=bind or engine)
