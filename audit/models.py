"""
audit/models.py -- Domain dataclasses for the security audit log.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class SecurityLogEntry:
    """One authentication-relevant event. Never updated once written.

    method is the HTTP method, or a synthetic tag such as "LOGIN" for events
    that are not plain requests. account_id is None when the event could not
    be tied to an account (e.g. a login attempt for an unknown email).
    """

    method: str
    url: str
    status: int
    id: int | None = None
    account_id: int | None = None
    ip: str | None = None
    response_time_ms: float | None = None
    created_at: str | None = None
    account_email: str | None = None  # populated by joined reads
    role_name: str | None = None  # populated by joined reads


@dataclass(frozen=True)
class LogFilters:
    """Optional filters for a security log query. None means "any"."""

    status: int | None = None
    ip: str | None = None  # substring match
    start: datetime | None = None  # inclusive
    end: datetime | None = None  # inclusive


@dataclass
class SecurityLogPage:
    entries: list[SecurityLogEntry] = field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0
    pages: int = 0
