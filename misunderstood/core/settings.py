"""Runtime settings collected from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

DEFAULT_KNOWLEDGE_DIR = "data/bots"
DEFAULT_POLLING_INTERVAL = 10.0
DEFAULT_MAX_BACKOFF_FACTOR = 6


@dataclass(slots=True)
class Settings:
    """Configuration derived from the environment."""

    database_url: str | None
    knowledge_dir: Path
    polling_interval: float
    max_backoff_factor: int
    admin_ui_origins: list[str]


def as_sqlalchemy_url(db_url: str) -> str:
    """Ensure the SQLAlchemy URL uses the ``psycopg`` driver."""

    if db_url.startswith("postgresql+psycopg://"):
        return db_url
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return db_url


def safe_url(db_url: str) -> str:
    """Return a version of ``db_url`` with any password redacted."""

    try:
        parsed = make_url(db_url)
    except ArgumentError:
        return db_url
    if parsed.password is None:
        return db_url
    redacted = parsed.set(password="***")
    return redacted.render_as_string(hide_password=False)


def build_database_url() -> str | None:
    """Compute the database URL from ``DATABASE_URL`` or ``PG*`` variables."""

    direct = os.getenv("DATABASE_URL")
    if direct:
        return direct

    host = os.getenv("PGHOST")
    port = os.getenv("PGPORT", "5432")
    database = os.getenv("PGDATABASE")
    user = os.getenv("PGUSER")
    password = os.getenv("PGPASSWORD")

    if not all([host, database, user]):
        return None

    auth = user
    if password:
        auth = f"{user}:{password}"
    return f"postgresql://{auth}@{host}:{port}/{database}"


def load_settings() -> Settings:
    """Load settings from environment variables."""

    origins = os.getenv("ADMIN_UI_ORIGINS", "")
    return Settings(
        database_url=build_database_url(),
        knowledge_dir=Path(os.getenv("KNOWLEDGE_DIR", DEFAULT_KNOWLEDGE_DIR)).expanduser(),
        polling_interval=float(os.getenv("POLLING_INTERVAL", str(DEFAULT_POLLING_INTERVAL))),
        max_backoff_factor=int(os.getenv("MAX_BACKOFF_FACTOR", str(DEFAULT_MAX_BACKOFF_FACTOR))),
        admin_ui_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )


__all__ = [
    "Settings",
    "as_sqlalchemy_url",
    "build_database_url",
    "load_settings",
    "safe_url",
]
