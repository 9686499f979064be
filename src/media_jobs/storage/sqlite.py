"""SQLite engine policy, timestamps and migrations for the job store."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine

# Repository root: src/media_jobs/storage/sqlite.py -> parents[3]
_PROJECT_ROOT = Path(__file__).resolve().parents[3]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def naive_utc(value: datetime) -> datetime:
    """SQLite DATETIME columns hold naive UTC."""

    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def aware_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int) -> Engine:
    """Engine for a job database shared by a CLI process and its worker threads.

    Connections are not pooled; each one switches the file to WAL so progress
    writes from running jobs do not block readers such as ``jobs status``.
    """

    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: sqlite3.Connection, _record: object) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.execute("PRAGMA synchronous = NORMAL")
            cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
        finally:
            cursor.close()

    return engine


def _alembic_config(db_path: Path) -> Config:
    config = Config(str(_PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def migrate(db_path: Path, *, revision: str = "head") -> None:
    """Upgrade the job database at ``db_path`` to ``revision``."""

    command.upgrade(_alembic_config(db_path), revision)


def current_revision(engine: Engine) -> str | None:
    """Revision recorded in ``alembic_version``, or None for an unmigrated file."""

    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()
