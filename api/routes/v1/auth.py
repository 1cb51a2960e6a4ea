"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login     -- password login; sets auth-token cookie
  POST /api/v1/auth/logout    -- revokes the session record, clears cookie; always 200
  GET  /api/v1/auth/me        -- current principal (requires session)
  GET  /api/v1/auth/sessions  -- caller's active sessions, one per device (requires session)
  GET  /api/v1/auth/accounts  -- all accounts (requires manage_accounts)

Security:
  [C1] SessionService.login() runs bcrypt even for unknown emails -- use it,
       never inline get_by_email() + verify_password().
  [M5] Cache-Control: no-store on login and logout responses.
  Login failures never say whether the email or the password was wrong.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AccountSummary,
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    SessionInfo,
)
from auth.dependencies import get_current_principal, require_capability
from auth.models import ROLE_CAPABILITIES, Capability, Principal
from auth.session import LoginFailed, SessionService
from auth.store import AccountStore, TokenStore
from auth.tokens import SESSION_COOKIE, clear_session_cookie, set_session_cookie
from core.db import to_iso

# Auth policy:
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:    public -- logging out needs no valid session
# - GET  /api/v1/auth/me:        requires session (get_current_principal)
# - GET  /api/v1/auth/sessions:  requires session (get_current_principal)
# - GET  /api/v1/auth/accounts:  requires manage_accounts (admin)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the auth-token cookie.

    deviceInfo and ipAddress are optional; they default to the User-Agent
    header and the client address.
    """
    sessions: SessionService = request.app.state.sessions
    result = sessions.login(
        body.email,
        body.password,
        device_info=body.device_info or request.headers.get("user-agent"),
        ip_address=body.ip_address or (request.client.host if request.client else None),
    )

    if isinstance(result, LoginFailed):
        request.state.account_id = result.account_id
        resp = JSONResponse(
            status_code=result.status_code,
            content=ErrorResponse(error=ErrorDetail(code=result.code, message=result.message)).model_dump(
                exclude_none=True
            ),
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    request.state.account_id = result.principal.account_id
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(account=AccountSummary.from_account(result.account)).model_dump(),
    )
    set_session_cookie(resp, result.token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the presented session (if any) and clear the cookie. Always 200."""
    sessions: SessionService = request.app.state.sessions
    sessions.logout(request.cookies.get(SESSION_COOKIE))
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    """Return identity information for the current principal."""
    return MeResponse(
        account_id=principal.account_id,
        email=principal.email,
        role=principal.role.value,
        status=principal.status.value,
        capabilities=sorted(c.value for c in ROLE_CAPABILITIES[principal.role]),
    )


@router.get("/auth/sessions", response_model=list[SessionInfo])
def list_sessions(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> list[SessionInfo]:
    """List the caller's unexpired sessions (one per device). Token values are never returned."""
    tokens: TokenStore = request.app.state.token_store
    return [
        SessionInfo(
            id=record.id,
            device_info=record.device_info,
            ip_address=record.ip_address,
            created_at=to_iso(record.created_at) if record.created_at else "",
            expires_at=to_iso(record.expires_at),
        )
        for record in tokens.list_for_account(principal.account_id)
    ]


@router.get("/auth/accounts", response_model=list[AccountSummary])
def list_accounts(
    request: Request,
    principal: Principal = Depends(require_capability(Capability.manage_accounts)),
) -> list[AccountSummary]:
    """List all accounts, newest first. Admin only."""
    accounts: AccountStore = request.app.state.account_store
    return [AccountSummary.from_account(a) for a in accounts.list_accounts()]
