"""
auth/gate.py -- Role-based authorization for directory operations.

Capabilities by role:
  user  -- get / update / delete their own record.
  admin -- everything a user can do, on any record, plus listing all users.

The gate only answers "may this caller do this to that target?". It runs
after the caller is authenticated and before the target is looked up, so a
caller who is denied never learns whether the target exists.
"""

from __future__ import annotations

from enum import Enum

from auth.errors import Forbidden
from auth.models import Role, User
from auth.store import normalize_email


class Operation(str, Enum):
    LIST_USERS = "list_users"
    GET_USER = "get_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"


class Capability(str, Enum):
    MANAGE_SELF = "manage_self"
    MANAGE_OTHERS = "manage_others"
    LIST_ALL = "list_all"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: frozenset({Capability.MANAGE_SELF}),
    Role.ADMIN: frozenset({Capability.MANAGE_SELF, Capability.MANAGE_OTHERS, Capability.LIST_ALL}),
}

_TARGETED = {Operation.GET_USER, Operation.UPDATE_USER, Operation.DELETE_USER}


class AuthorizationGate:
    def __init__(self, role_capabilities: dict[Role, frozenset[Capability]] | None = None) -> None:
        self._capabilities = role_capabilities or ROLE_CAPABILITIES

    def capabilities(self, user: User) -> frozenset[Capability]:
        return self._capabilities.get(user.role, frozenset())

    def authorize(self, user: User, operation: Operation, target_email: str | None = None) -> bool:
        caps = self.capabilities(user)
        if operation == Operation.LIST_USERS:
            return Capability.LIST_ALL in caps
        if operation in _TARGETED:
            if target_email is None:
                return False
            if normalize_email(target_email) == user.email:
                return Capability.MANAGE_SELF in caps
            return Capability.MANAGE_OTHERS in caps
        return False

    def require(self, user: User, operation: Operation, target_email: str | None = None) -> None:
        """Raise Forbidden unless authorize() allows the operation."""
        if not self.authorize(user, operation, target_email):
            raise Forbidden()
