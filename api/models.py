"""
API request and response models for BranchDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
audit/models.py, which own the internal domain representation. Route handlers
map between the two. No response model has a password hash field.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from audit.models import SecurityLogEntry
from auth.models import Account

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    email and password are Optional here on purpose: a missing or non-string
    field is reported by SessionService as a 400 "missing_fields" error rather
    than a 422 schema error, matching the login contract.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    device_info: Optional[str] = Field(default=None, alias="deviceInfo", max_length=512)
    ip_address: Optional[str] = Field(default=None, alias="ipAddress", max_length=64)

    @field_validator("email", "password", mode="before")
    @classmethod
    def _non_string_is_missing(cls, value: object) -> object:
        # {"email": 123} is malformed input, not a schema error.
        return value if isinstance(value, str) else None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountSummary(BaseModel):
    """Public view of an account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    account_id: int
    email: str
    status: str
    role: str
    employee_id: Optional[str] = None
    last_login_at: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountSummary":
        return cls(
            account_id=account.id,
            email=account.email,
            status=account.status.value,
            role=account.role.name.value if account.role else "",
            employee_id=account.employee_id,
            last_login_at=account.last_login_at,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Login successful."
    account: AccountSummary


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    account_id: int
    email: str
    role: str
    status: str
    capabilities: list[str]


class SessionInfo(BaseModel):
    """One active session of the caller. The token value is never returned."""

    model_config = ConfigDict(frozen=True)

    id: int
    device_info: Optional[str]
    ip_address: Optional[str]
    created_at: str
    expires_at: str


class SecurityLogRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    account_id: Optional[int]
    email: Optional[str]
    role: Optional[str]
    method: str
    url: str
    status: int
    ip: Optional[str]
    response_time_ms: Optional[float]
    created_at: str

    @classmethod
    def from_entry(cls, entry: SecurityLogEntry) -> "SecurityLogRow":
        return cls(
            id=entry.id,
            account_id=entry.account_id,
            email=entry.account_email,
            role=entry.role_name,
            method=entry.method,
            url=entry.url,
            status=entry.status,
            ip=entry.ip,
            response_time_ms=entry.response_time_ms,
            created_at=entry.created_at or "",
        )


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int
    limit: int
    total: int
    pages: int


class SecurityLogResponse(BaseModel):
    """Response for GET /api/v1/security-logs."""

    model_config = ConfigDict(frozen=True)

    entries: list[SecurityLogRow]
    pagination: Pagination


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
