"""
audit/service.py -- Role-gated read access to the security log.

SecurityAudit.query() takes the caller's SessionResult rather than a bare
principal so the permission check cannot be skipped: an Unauthenticated or
Forbidden result is returned unchanged and no query runs.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timezone

from audit.models import LogFilters, SecurityLogPage
from audit.store import SecurityLogStore
from auth.guard import Forbidden, SessionResult, Unauthenticated
from auth.models import Capability

logger = logging.getLogger("branchdesk.audit")

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
# Keeps the OFFSET bind inside SQLite's 64-bit INTEGER range.
MAX_PAGE = 100_000
MIN_STATUS = 100
MAX_STATUS = 599


def parse_status(value: str | None) -> int | None:
    """Parse a status filter value. Raises ValueError outside MIN_STATUS..MAX_STATUS."""
    if not value:
        return None
    status = int(value)
    if not MIN_STATUS <= status <= MAX_STATUS:
        raise ValueError(f"HTTP status out of range: {status}")
    return status


def parse_date_bound(value: str | None, *, end: bool = False) -> datetime | None:
    """Parse a startDate/endDate filter value.

    Accepts an ISO date ("2026-10-01") or datetime ("2026-10-01T08:30:00Z").
    A bare date used as an end bound covers the whole day. Naive datetimes are
    taken as UTC and aware ones are converted to UTC. Raises ValueError on
    anything else, including bounds that fall outside the datetime range.
    """
    if not value:
        return None
    value = value.strip()
    if len(value) == 10:
        day = date.fromisoformat(value)
        return datetime.combine(day, time.max if end else time.min, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as exc:
        # e.g. 0001-01-01T00:00:00+01:00 has no UTC equivalent
        raise ValueError(f"Date out of range: {value!r}") from exc


class SecurityAudit:
    def __init__(self, store: SecurityLogStore) -> None:
        self.store = store

    def check_access(self, session: SessionResult) -> Unauthenticated | Forbidden | None:
        """Return the denial for this session, or None when it may read logs."""
        if isinstance(session, (Unauthenticated, Forbidden)):
            return session
        if not session.principal.can(Capability.view_security_logs):
            logger.warning("Account %s denied security log access", session.principal.account_id)
            return Forbidden(session.principal, Capability.view_security_logs)
        return None

    def query(
        self,
        session: SessionResult,
        filters: LogFilters,
        page: int = 1,
        limit: int = DEFAULT_LIMIT,
    ) -> SecurityLogPage | Unauthenticated | Forbidden:
        """Return one page of log entries for an admin principal.

        page is clamped to 1..MAX_PAGE and limit to 1..MAX_LIMIT.
        """
        denied = self.check_access(session)
        if denied is not None:
            return denied

        page = min(max(page, 1), MAX_PAGE)
        limit = min(max(limit, 1), MAX_LIMIT)
        entries, total = self.store.query(filters, page, limit)
        return SecurityLogPage(
            entries=entries,
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit),
        )
