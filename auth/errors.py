"""
auth/errors.py -- Failure taxonomy surfaced by the directory service.

Every error carries a stable machine-readable ``kind`` and a catalog
``message_key``. The api/ layer maps kind -> HTTP status and renders the key
in the caller's locale; nothing here knows about HTTP or languages.

Store- and session-level failures (UserAlreadyExists, UserNotFound,
SessionInvalid) live next to the components that raise them. The directory
service translates them into these classes so internal detail (e.g. whether
a token was expired or revoked) never reaches a client.
"""

from __future__ import annotations


class DirectoryError(Exception):
    kind = "internal_error"
    default_message_key = "errors.internal_error"

    def __init__(self, message_key: str | None = None, details: dict[str, list[str]] | None = None) -> None:
        self.message_key = message_key or self.default_message_key
        self.details = details or {}
        super().__init__(self.message_key)


class InvalidInput(DirectoryError):
    """Malformed email, weak password, unknown plan, or an email change attempt.

    details maps field name -> list of validation message keys.
    """

    kind = "invalid_input"
    default_message_key = "errors.invalid_input"


class Conflict(DirectoryError):
    kind = "conflict"
    default_message_key = "auth.register.duplicate"


class Unauthenticated(DirectoryError):
    """No session, a dead session, or bad login credentials."""

    kind = "unauthenticated"
    default_message_key = "auth.session.required"


class Forbidden(DirectoryError):
    kind = "forbidden"
    default_message_key = "user.forbidden"


class NotFound(DirectoryError):
    kind = "not_found"
    default_message_key = "user.fetch.not_found"
