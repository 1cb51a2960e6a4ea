"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The auth-token cookie is the only way a request acquires a principal. There is
no Bearer header or API key fallback.

resolve_session() is the soft variant: it returns the guard's result and
never raises. get_current_principal() raises SessionRequired (401, cookie
cleared by the handler in api/main.py). require_capability() additionally
raises HTTP 403 when the role lacks the capability.

Layer rule: no imports from web/ or audit/.
  auth/dependencies.py may import from fastapi because this module is part of
  the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.guard import Authenticated, SessionGuard, Unauthenticated
from auth.models import Capability, Principal
from auth.tokens import SESSION_COOKIE


class SessionRequired(Exception):
    """Raised by JSON dependencies when the request has no valid session."""

    def __init__(self, result: Unauthenticated) -> None:
        super().__init__(result.reason)
        self.result = result


def resolve_session(request: Request) -> Authenticated | Unauthenticated:
    """Run the session guard for this request. Never raises for a bad session.

    On success the account id is stashed on request.state so the audit
    middleware can attribute the request.
    """
    guard: SessionGuard = request.app.state.guard
    result = guard.resolve(request.cookies.get(SESSION_COOKIE))
    if isinstance(result, Authenticated):
        request.state.account_id = result.principal.account_id
    return result


def get_current_principal(request: Request) -> Principal:
    """Require a valid session. Raises SessionRequired (-> 401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    result = resolve_session(request)
    if isinstance(result, Unauthenticated):
        raise SessionRequired(result)
    return result.principal


def require_capability(capability: Capability) -> Callable[[Request], Principal]:
    """Build a dependency that requires a session whose role grants capability.

    Raises SessionRequired (-> 401) without a session, HTTP 403 when the role
    lacks the capability.
    """

    def dependency(request: Request) -> Principal:
        principal = get_current_principal(request)
        if not principal.can(capability):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Insufficient permissions."},
            )
        return principal

    return dependency
