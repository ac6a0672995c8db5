"""
api/routes/v1/auth.py -- Login, logout and self-registration endpoints.

Routes:
  POST   /auth/login     -- password login; returns the session token and
                            also sets it as an httpOnly cookie
  DELETE /auth/logout    -- revokes the caller's session; always 204
  POST   /auth/register  -- creates a regular account; 201

Security:
  POST /login and POST /register are rate-limited per IP (slowapi).
  DirectoryService.login() equalizes timing and errors between "unknown
  email" and "wrong password" -- never inline store lookups here.
  Cache-Control: no-store on login responses so tokens are not cached.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ApiResponse, LoginData, LoginRequest, RegisterRequest, UserResponse
from auth.dependencies import get_directory, get_messages, get_session_token
from auth.directory import DirectoryService
from core.config import get_settings
from core.i18n import Messages

# Auth policy:
# - POST   /auth/login:     public
# - DELETE /auth/logout:    session token if present; a missing or dead token is
#                           treated as already logged out
# - POST   /auth/register:  public
router = APIRouter()

_settings = get_settings()


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=ApiResponse[LoginData])
def login(
    request: Request,
    body: LoginRequest,
    directory: DirectoryService = Depends(get_directory),
    messages: Messages = Depends(get_messages),
) -> JSONResponse:
    """Authenticate with email and password; return and set the session token."""
    profile, token = directory.login(body.email, body.password)
    ttl = directory.session_ttl or _settings.session_ttl_seconds
    resp = JSONResponse(
        status_code=200,
        content=ApiResponse[LoginData](
            message=messages.get("auth.login.success"),
            data=LoginData(
                access_token=token,
                token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
                expires_in=ttl,
                user=UserResponse.from_profile(profile),
            ),
        ).model_dump(),
    )
    resp.set_cookie(
        _settings.cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=ttl,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/auth/logout", status_code=204)
def logout(
    request: Request,
    directory: DirectoryService = Depends(get_directory),
) -> Response:
    """Revoke the session and clear the cookie. Idempotent."""
    directory.logout(get_session_token(request))
    resp = Response(status_code=204)
    resp.delete_cookie(_settings.cookie_name)
    return resp


@limiter.limit(_settings.register_rate_limit)
@router.post("/auth/register", response_model=ApiResponse[UserResponse], status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    directory: DirectoryService = Depends(get_directory),
    messages: Messages = Depends(get_messages),
) -> ApiResponse[UserResponse]:
    """Create a regular (non-admin) account."""
    profile = directory.register(body.name, body.email, body.password, body.subscription_plan)
    return ApiResponse[UserResponse](
        message=messages.get("auth.register.success"),
        data=UserResponse.from_profile(profile),
    )
