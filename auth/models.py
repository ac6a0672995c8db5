"""
auth/models.py -- Domain dataclasses for identity and session entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores and the directory service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SubscriptionPlan(str, Enum):
    FREE = "Free"
    PRO = "Pro"
    ENTERPRISE = "Enterprise"

    @classmethod
    def parse(cls, value: str) -> SubscriptionPlan:
        """Case-insensitive lookup by value ("pro" -> PRO). Raises ValueError."""
        for plan in cls:
            if plan.value.lower() == str(value).strip().lower():
                return plan
        raise ValueError(f"Unknown subscription plan: {value!r}")


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class PasswordHash:
    """Opaque password digest tagged with the algorithm that produced it.

    The tag lets the hasher refuse digests it does not understand instead of
    feeding them to the wrong verifier.
    """

    algorithm: str
    digest: bytes


@dataclass
class User:
    """A registered identity.

    email is the key: stored normalized (trimmed, lower-cased) and never
    changed after creation. role is independent of subscription_plan --
    paying for Pro does not grant admin rights.
    """

    email: str
    name: str
    password_hash: PasswordHash
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE
    role: Role = Role.USER
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def profile(self) -> UserProfile:
        return UserProfile(
            email=self.email,
            name=self.name,
            subscription_plan=self.subscription_plan,
            role=self.role,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class UserProfile:
    """What the directory hands to callers: a User minus its password hash."""

    email: str
    name: str
    subscription_plan: SubscriptionPlan
    role: Role
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Session:
    """Server-side record behind an issued session token.

    Timestamps are epoch seconds. A session is live only while
    revoked is False and now < expires_at; both exits are terminal.
    """

    session_id: str
    email: str
    issued_at: float
    expires_at: float
    revoked: bool = False

    def is_live(self, now: float) -> bool:
        return not self.revoked and now < self.expires_at
