"""
api/routes/v1/security_logs.py -- Read-only security audit log endpoint.

Routes:
  GET /api/v1/security-logs  -- paginated, filterable log entries (admin only)

Query parameters keep the names the back-office frontend already sends:
page, limit, status, ip, startDate, endDate.

Outcomes:
  200  entries + pagination
  401  no valid session (cookie cleared)
  403  session valid but role lacks view_security_logs, whatever the filters
  400  unparseable startDate/endDate (checked after access)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from api.models import Pagination, SecurityLogResponse, SecurityLogRow
from audit.models import LogFilters, SecurityLogPage
from audit.service import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MAX_PAGE,
    MAX_STATUS,
    MIN_STATUS,
    SecurityAudit,
    parse_date_bound,
)
from auth.dependencies import SessionRequired, resolve_session
from auth.guard import Unauthenticated

# Auth policy:
# - GET /api/v1/security-logs: requires session + view_security_logs (admin).
#   The check lives in SecurityAudit, not in a route dependency, so the query
#   cannot run without it.
router = APIRouter()


def _raise_for_denial(denial) -> None:
    if isinstance(denial, Unauthenticated):
        raise SessionRequired(denial)
    if denial is not None:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Insufficient permissions."},
        )


@router.get("/security-logs", response_model=SecurityLogResponse)
def list_security_logs(
    request: Request,
    page: int = Query(default=1, ge=1, le=MAX_PAGE),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    status: Optional[int] = Query(default=None, ge=MIN_STATUS, le=MAX_STATUS),
    ip: Optional[str] = Query(default=None, max_length=64),
    start_date: Optional[str] = Query(default=None, alias="startDate", max_length=40),
    end_date: Optional[str] = Query(default=None, alias="endDate", max_length=40),
) -> SecurityLogResponse:
    """Return security log entries, newest first."""
    audit: SecurityAudit = request.app.state.audit
    session = resolve_session(request)
    _raise_for_denial(audit.check_access(session))

    try:
        filters = LogFilters(
            status=status,
            ip=ip or None,
            start=parse_date_bound(start_date),
            end=parse_date_bound(end_date, end=True),
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_date", "message": "startDate and endDate must be ISO dates."},
        ) from exc

    result = audit.query(session, filters, page, limit)
    if not isinstance(result, SecurityLogPage):
        _raise_for_denial(result)

    return SecurityLogResponse(
        entries=[SecurityLogRow.from_entry(e) for e in result.entries],
        pagination=Pagination(page=result.page, limit=result.limit, total=result.total, pages=result.pages),
    )
