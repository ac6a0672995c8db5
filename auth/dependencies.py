"""
auth/dependencies.py -- FastAPI Depends() helpers.

Session token transport, checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. Session cookie (Settings.cookie_name) -- set by POST /auth/login for
     browser clients.

These helpers only *extract* the token; validating it is the directory
service's job, so authentication, authorization and lookup always happen in
the same order no matter which route is hit.

Layer rule: this is the only module in auth/ that may import from fastapi,
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.directory import DirectoryService
from core.config import get_settings
from core.i18n import Messages, resolve_locale


def get_session_token(request: Request) -> str | None:
    """Return the raw session token carried by the request, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(get_settings().cookie_name) or None


def get_directory(request: Request) -> DirectoryService:
    return request.app.state.directory


def get_messages(request: Request) -> Messages:
    """Message catalog for the request's Accept-Language header."""
    locale = resolve_locale(request.headers.get("Accept-Language"), get_settings().default_locale)
    return Messages(locale)
