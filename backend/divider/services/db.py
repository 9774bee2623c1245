"""
Database configuration and session management for the divider backend.

This module defines a SQLModel engine targeting a SQLite database stored
in the project's ``storage`` directory.  The location can be overridden
with the ``DIVIDER_DATABASE_URL`` environment variable, and tests rebind
the engine to an in-memory database via :func:`configure_engine`.
Creating this layer centrally keeps database configuration isolated
from the geometry engine and the panel store helpers.
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

# Default storage lives in ``backend/storage`` next to the package.
STORAGE_DIR = Path(__file__).resolve().parents[2] / "storage"


def _default_url() -> str:
    url = os.getenv("DIVIDER_DATABASE_URL")
    if url:
        return url
    STORAGE_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{(STORAGE_DIR / 'divider.db').as_posix()}"


def _make_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False)
    # Sessions are opened from FastAPI worker threads as well as the
    # caller's thread; in-memory databases must share one connection.
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=False, connect_args={"check_same_thread": False})


engine: Engine = _make_engine(_default_url())


def configure_engine(url: str) -> Engine:
    """Rebind the module engine to ``url`` and create the schema there."""
    global engine
    engine.dispose()
    engine = _make_engine(url)
    create_db_and_tables()
    return engine


def create_db_and_tables() -> None:
    """Create all tables in the database.

    This should be called once on application startup.  If the
    database file does not exist it will be created automatically.
    """
    # Table classes register themselves on import.
    from . import panels_store  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Return a new SQLModel session bound to the engine.

    Sessions returned by this function should be managed with a
    context manager (``with get_session() as session: ...``) to
    ensure that connections are properly closed.
    """
    return Session(engine)
