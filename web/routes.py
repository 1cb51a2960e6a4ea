"""
web/routes.py -- Jinja2 template routes for the BranchDesk web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same stores and services) but return HTML and redirects instead of
JSON. Session failures never surface as errors here: the guard's result is
mapped to a redirect to /login, clearing the cookie when one was presented.

Routes:
  GET  /              -- back-office home (any authenticated principal)
  GET  /admin/secure  -- security log table (view_security_logs / admin)
  GET  /login         -- login form
  POST /login         -- handle password login
  POST /logout        -- revoke session, clear cookie, redirect /login
"""

import logging
from pathlib import Path
from typing import Optional, Union

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from audit.models import LogFilters, SecurityLogPage
from audit.service import DEFAULT_LIMIT, MAX_LIMIT, SecurityAudit, parse_date_bound, parse_status
from auth.dependencies import resolve_session
from auth.guard import Authenticated, Forbidden, Unauthenticated
from auth.models import ROLE_CAPABILITIES, Capability
from auth.session import LoginFailed, SessionService
from auth.tokens import SESSION_COOKIE, clear_session_cookie, set_session_cookie

logger = logging.getLogger("branchdesk.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# layout.html shows the security log link through the capability map, never
# by comparing role names.
templates.env.globals["Capability"] = Capability
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login [M3].
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "missing_fields": "Email and password are required.",
    "invalid_email": "Invalid email format.",
    "bad_credentials": "Invalid credentials.",
    "account_inactive": "Account is not active.",
    "session_ended": "Your session has ended. Please log in again.",
}


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths. [C2]

    Rejects absolute URLs and protocol-relative "//host" targets, which would
    redirect off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/"


def _login_redirect(request: Request, result: Unauthenticated) -> RedirectResponse:
    """Send the caller to /login, clearing a cookie that no longer maps to a session."""
    location = f"/login?next={request.url.path}"
    if result.clear_cookie:
        location += "&error=session_ended"
    resp = RedirectResponse(location, status_code=302)
    if result.clear_cookie:
        clear_session_cookie(resp)
    return resp


def _require_session(request: Request) -> Union[Authenticated, RedirectResponse]:
    """Resolve the session or build the redirect that replaces the page.

    Call at the top of protected route handlers:
        session = _require_session(request)
        if isinstance(session, RedirectResponse):
            return session
    """
    result = resolve_session(request)
    if isinstance(result, Unauthenticated):
        return _login_redirect(request, result)
    return result


# ---------------------------------------------------------------------------
# GET / -- home
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request):
    session = _require_session(request)
    if isinstance(session, RedirectResponse):
        return session
    principal = session.principal
    return templates.TemplateResponse(
        request,
        "home.html",
        {
            "principal": principal,
            "capabilities": sorted(c.value for c in ROLE_CAPABILITIES[principal.role]),
        },
    )


# ---------------------------------------------------------------------------
# GET /admin/secure -- security log table
# ---------------------------------------------------------------------------


@router.get("/admin/secure", response_class=HTMLResponse)
def security_logs_page(
    request: Request,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    status: Optional[str] = None,
    ip: Optional[str] = None,
    startDate: Optional[str] = None,  # noqa: N803 -- frontend query param name
    endDate: Optional[str] = None,  # noqa: N803
):
    """Render the security log for admins; 403 page for other roles.

    Bad filter values are dropped with a notice instead of failing the page.
    """
    session = _require_session(request)
    if isinstance(session, RedirectResponse):
        return session

    audit: SecurityAudit = request.app.state.audit
    denial = audit.check_access(session)
    if isinstance(denial, Forbidden):
        return templates.TemplateResponse(
            request,
            "forbidden.html",
            {"principal": session.principal, "capability": Capability.view_security_logs.value},
            status_code=403,
        )

    notice = None
    try:
        status_filter = parse_status(status)
        start = parse_date_bound(startDate)
        end = parse_date_bound(endDate, end=True)
    except ValueError:
        notice = "Ignoring invalid filter values."
        status_filter, start, end = None, None, None

    filters = LogFilters(status=status_filter, ip=ip or None, start=start, end=end)
    result = audit.query(session, filters, page, min(max(limit, 1), MAX_LIMIT))
    if not isinstance(result, SecurityLogPage):
        # Session changed between the two checks (e.g. concurrent logout).
        return _login_redirect(request, Unauthenticated("revoked"))

    return templates.TemplateResponse(
        request,
        "security_logs.html",
        {
            "principal": session.principal,
            "log_page": result,
            "filters": {"status": status or "", "ip": ip or "", "startDate": startDate or "", "endDate": endDate or ""},
            "notice": notice,
        },
    )


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request):
    """Render the login page. Already-authenticated users go to /."""
    if isinstance(resolve_session(request), Authenticated):
        return RedirectResponse("/", status_code=302)

    # Map ?error= query param through whitelist [M3]
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""), None)
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error_msg": error_msg, "next": _safe_next(request.query_params.get("next"))},
    )


@router.post("/login")
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
) -> RedirectResponse:
    """Handle the login form submission."""
    sessions: SessionService = request.app.state.sessions
    result = sessions.login(
        email,
        password,
        device_info=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    if isinstance(result, LoginFailed):
        request.state.account_id = result.account_id
        resp = RedirectResponse(f"/login?error={result.code}", status_code=302)
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    request.state.account_id = result.principal.account_id
    next_url = _safe_next(request.query_params.get("next"))  # [C2]
    resp = RedirectResponse(next_url, status_code=302)
    set_session_cookie(resp, result.token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Revoke the session record, clear the cookie and redirect to the login page."""
    sessions: SessionService = request.app.state.sessions
    sessions.logout(request.cookies.get(SESSION_COOKIE))
    resp = RedirectResponse("/login", status_code=302)
    clear_session_cookie(resp)
    return resp
