"""Helpers for configuring SQLAlchemy engine and session factories."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ..models import Base, FlaggedEvent
from .settings import as_sqlalchemy_url, build_database_url

logger = logging.getLogger(__name__)


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine.

    Args:
        database_url: Optional database URL. When ``None`` the ``DATABASE_URL``
            environment variable (or the ``PG*`` variables) is used.
        **kwargs: Additional keyword arguments forwarded to
            :func:`sqlalchemy.create_engine`.

    Returns:
        Configured SQLAlchemy :class:`~sqlalchemy.engine.Engine` instance.
    """

    url = database_url or build_database_url()
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    engine = create_engine(as_sqlalchemy_url(url), **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):  # pragma: no cover - dialect hook
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory bound to ``engine``."""

    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ensure_schema(engine: Engine) -> None:
    """Create the triage table and its indexes when they do not exist yet.

    Non-destructive and safe to call repeatedly.  The conversation ``events``
    table is owned by the conversation pipeline and is left alone.
    """

    Base.metadata.create_all(engine, tables=[FlaggedEvent.__table__])
    logger.debug("Ensured schema for table %s", FlaggedEvent.__tablename__)


__all__ = ["ensure_schema", "get_engine", "get_sessionmaker", "session_scope"]
