"""
core/db.py -- Shared SQLAlchemy engine and schema metadata.

One Engine (and therefore one connection pool) is created per process by the
application lifespan or the CLI and handed to every store constructor. Stores
never create engines of their own and there is no module-level engine.

All tables register on the shared `metadata` object so cross-table foreign
keys (accounts -> roles, session_tokens -> accounts) resolve at DDL time.

Timestamps are stored as UTC ISO-8601 strings with a fixed microsecond width
so that lexicographic order in SQL matches chronological order.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/ or audit/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Engine

metadata = MetaData()


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. Foreign keys are off by default in SQLite.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Build the process-wide Engine for the given database URL.

    Usage:
        engine = create_db_engine(get_settings().database_url)
        accounts = AccountStore(engine)
        tokens = TokenStore(engine)
        ...
        engine.dispose()
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _configure_sqlite)
    return engine


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime for storage. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
