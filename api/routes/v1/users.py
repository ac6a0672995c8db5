"""
api/routes/v1/users.py -- User directory endpoints.

Routes:
  GET    /users/all        -- list every user (admin)
  GET    /users/{email}    -- fetch one user (self or admin)
  PUT    /users/{email}    -- update name / subscription plan (self or admin)
  DELETE /users/{email}    -- delete a user and revoke its sessions (self or admin)

Every handler passes the raw session token to the directory service, which
checks authentication, then authorization, then existence -- so a 401 or 403
never reveals whether the target email is registered.

/users/all is declared before /users/{email}; FastAPI matches in declaration
order and would otherwise treat "all" as an email.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import ApiResponse, UserResponse, UserUpdate
from auth.dependencies import get_directory, get_messages, get_session_token
from auth.directory import DirectoryService, UserPatch
from core.i18n import Messages

router = APIRouter()


@router.get("/users/all", response_model=ApiResponse[list[UserResponse]])
def list_users(
    request: Request,
    directory: DirectoryService = Depends(get_directory),
    messages: Messages = Depends(get_messages),
) -> ApiResponse[list[UserResponse]]:
    profiles = directory.list_users(get_session_token(request))
    return ApiResponse[list[UserResponse]](
        message=messages.get("user.fetch.all_success"),
        data=[UserResponse.from_profile(p) for p in profiles],
    )


@router.get("/users/{email}", response_model=ApiResponse[UserResponse])
def get_user(
    request: Request,
    email: str,
    directory: DirectoryService = Depends(get_directory),
    messages: Messages = Depends(get_messages),
) -> ApiResponse[UserResponse]:
    profile = directory.get_user(get_session_token(request), email)
    return ApiResponse[UserResponse](
        message=messages.get("user.fetch.success"),
        data=UserResponse.from_profile(profile),
    )


@router.put("/users/{email}", response_model=ApiResponse[UserResponse])
def update_user(
    request: Request,
    email: str,
    body: UserUpdate,
    directory: DirectoryService = Depends(get_directory),
    messages: Messages = Depends(get_messages),
) -> ApiResponse[UserResponse]:
    """Partial update. The body email, if sent, must equal the path email."""
    patch = UserPatch(email=body.email, name=body.name, subscription_plan=body.subscription_plan)
    profile = directory.update_user(get_session_token(request), email, patch)
    return ApiResponse[UserResponse](
        message=messages.get("user.update.success"),
        data=UserResponse.from_profile(profile),
    )


@router.delete("/users/{email}", status_code=204)
def delete_user(
    request: Request,
    email: str,
    directory: DirectoryService = Depends(get_directory),
) -> Response:
    directory.delete_user(get_session_token(request), email)
    return Response(status_code=204)
