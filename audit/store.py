"""
audit/store.py -- SQLAlchemy Core persistence for security log entries.

Append-only: there is no update or delete method. Reads are newest first and
offset-paginated; the total for the same filters is computed in the same
call so the caller can derive the page count.

account_id deliberately has no foreign key. Entries are written by the HTTP
layer for events that may not map to a stored account, and a failed insert
would drop the event.

Security: all filters are bound parameters. The ip filter uses LIKE with
autoescape so user-supplied % and _ are matched literally.
"""

from __future__ import annotations

from sqlalchemy import Column, Float, Integer, String, Table, func, select
from sqlalchemy.engine import Engine

from audit.models import LogFilters, SecurityLogEntry
from auth.store import accounts_table, roles_table
from core.db import metadata, to_iso, utcnow

_security_logs = Table(
    "security_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, index=True),
    Column("method", String(16), nullable=False),
    Column("url", String(2048), nullable=False),
    Column("status", Integer, nullable=False, index=True),
    Column("ip", String(64)),
    Column("response_time_ms", Float),
    Column("created_at", String(32), nullable=False, index=True),
)


class SecurityLogStore:
    """Repository for SecurityLogEntry records.

    Usage:
        logs = SecurityLogStore(engine)
        logs.append(SecurityLogEntry(method="POST", url="/api/v1/auth/login", status=401, ip="10.0.0.7"))
        entries, total = logs.query(LogFilters(status=401), page=1, limit=50)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine, tables=[roles_table, accounts_table, _security_logs])

    def append(self, entry: SecurityLogEntry) -> int:
        """Insert one entry and return its ID. created_at defaults to now."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _security_logs.insert().values(
                    account_id=entry.account_id,
                    method=entry.method[:16],
                    url=entry.url[:2048],
                    status=entry.status,
                    ip=entry.ip[:64] if entry.ip else None,
                    response_time_ms=entry.response_time_ms,
                    created_at=entry.created_at or to_iso(utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def query(self, filters: LogFilters, page: int, limit: int) -> tuple[list[SecurityLogEntry], int]:
        """Return (entries on the requested page, total matching entries)."""
        conditions = []
        if filters.status is not None:
            conditions.append(_security_logs.c.status == filters.status)
        if filters.ip:
            conditions.append(_security_logs.c.ip.contains(filters.ip, autoescape=True))
        if filters.start is not None:
            conditions.append(_security_logs.c.created_at >= to_iso(filters.start))
        if filters.end is not None:
            conditions.append(_security_logs.c.created_at <= to_iso(filters.end))

        rows_query = (
            select(
                _security_logs,
                accounts_table.c.email.label("account_email"),
                roles_table.c.name.label("role_name"),
            )
            .select_from(
                _security_logs.outerjoin(accounts_table, _security_logs.c.account_id == accounts_table.c.id).outerjoin(
                    roles_table, accounts_table.c.role_id == roles_table.c.id
                )
            )
            .where(*conditions)
            .order_by(_security_logs.c.created_at.desc(), _security_logs.c.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = select(func.count()).select_from(_security_logs).where(*conditions)

        with self.engine.connect() as conn:
            rows = conn.execute(rows_query).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_entry(r) for r in rows], total


def _row_to_entry(row) -> SecurityLogEntry:
    return SecurityLogEntry(
        id=row.id,
        account_id=row.account_id,
        method=row.method,
        url=row.url,
        status=row.status,
        ip=row.ip,
        response_time_ms=row.response_time_ms,
        created_at=row.created_at,
        account_email=row.account_email,
        role_name=row.role_name,
    )
