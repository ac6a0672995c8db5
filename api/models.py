"""
API request and response models for Gatekeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only check shape (types, presence, hard length caps). The
content rules -- what makes an email valid or a password strong -- live in
auth/validation.py so the CLI and the API enforce exactly the same policy.
"""

from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from auth.models import UserProfile

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=254)
    # Hard cap well above the 128-char policy; stops multi-megabyte bodies
    # from reaching bcrypt.
    password: str = Field(max_length=255)


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register. subscription_plan defaults to Free."""

    name: str = Field(max_length=255)
    email: str = Field(max_length=320)
    password: str = Field(max_length=255)
    subscription_plan: Optional[str] = Field(default=None, max_length=32)


class UserUpdate(BaseModel):
    """Request body for PUT /users/{email}.

    email must match the path (emails are immutable); name and
    subscription_plan are optional -- omitted fields stay unchanged.
    """

    email: Optional[str] = Field(default=None, max_length=320)
    name: Optional[str] = Field(default=None, max_length=255)
    subscription_plan: Optional[str] = Field(default=None, max_length=32)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. There is deliberately no password field."""

    model_config = ConfigDict(frozen=True)

    email: str
    name: str
    subscription_plan: str
    role: str
    created_at: str
    updated_at: str

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "UserResponse":
        return cls(
            email=profile.email,
            name=profile.name,
            subscription_plan=profile.subscription_plan.value,
            role=profile.role.value,
            created_at=profile.created_at or "",
            updated_at=profile.updated_at or "",
        )


class LoginData(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope: a localized message plus the payload."""

    message: str
    data: Optional[T] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    code is the stable error kind ("invalid_input", "conflict", ...);
    message is localized. detail carries per-field validation messages for
    invalid_input, or a free-form string elsewhere.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Union[dict[str, list[str]], str, None] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
