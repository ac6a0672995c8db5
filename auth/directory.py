"""
auth/directory.py -- User directory service: the one entry point the HTTP
layer and the admin CLI talk to.

Composes CredentialStore, PasswordHasher, SessionManager and
AuthorizationGate. Every token-carrying operation runs the same three checks
in the same order:

  1. authenticate -- the token must name a live session of an existing user
                     (Unauthenticated otherwise);
  2. authorize    -- the gate must allow the operation on the target
                     (Forbidden otherwise);
  3. look up      -- only now is the target read (NotFound otherwise).

An unauthenticated or unauthorized caller therefore never learns whether a
target account exists.

Store and session failures are translated into auth.errors classes here.
Internal detail -- "no such user" vs "wrong password", "expired" vs
"revoked" -- goes to the log at most, never into the raised error.

Lifecycle lock: login (issue) and delete (remove + revoke_all) on the same
email serialize on a per-email KeyedLock. Without it a login that verified
the password just before a delete could mint a session after the cascade
revoke ran, and that session would outlive its user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import Conflict, InvalidInput, NotFound, Unauthenticated
from auth.gate import AuthorizationGate, Operation
from auth.hashing import PasswordHasher
from auth.locks import KeyedLock
from auth.models import Role, SubscriptionPlan, User, UserProfile
from auth.sessions import SessionInvalid, SessionManager
from auth.store import CredentialStore, UserAlreadyExists, UserNotFound, normalize_email
from auth.validation import check_registration, parse_plan, validate_name

logger = logging.getLogger("gatekeeper.auth")

_BAD_CREDENTIALS = "auth.login.invalid_credentials"


@dataclass
class UserPatch:
    """Partial update. None means "leave unchanged".

    email is accepted only so clients can echo it back; it must equal the
    target email because emails are immutable.
    """

    email: str | None = None
    name: str | None = None
    subscription_plan: str | SubscriptionPlan | None = None


class DirectoryService:
    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionManager,
        hasher: PasswordHasher,
        gate: AuthorizationGate | None = None,
        session_ttl: int | None = None,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.hasher = hasher
        self.gate = gate or AuthorizationGate()
        self.session_ttl = session_ttl
        self._lifecycle = KeyedLock()

    # ------------------------------------------------------------------
    # Public (no session)
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        email: str,
        password: str,
        plan: str | SubscriptionPlan | None = None,
    ) -> UserProfile:
        """Create a regular (non-admin) account. Raises InvalidInput or Conflict."""
        return self._create(name, email, password, plan, Role.USER).profile()

    def login(self, email: str, password: str) -> tuple[UserProfile, str]:
        """Verify credentials and issue a session token.

        Unknown email and wrong password raise the identical Unauthenticated
        error, and both paths run one bcrypt verification so they also take
        the same time.
        """
        user = self.store.find(email) if email else None
        if user is None:
            self.hasher.verify_dummy(password or "")
            logger.info("Login failed for unknown account")
            raise Unauthenticated(_BAD_CREDENTIALS)
        if not self.hasher.verify(password or "", user.password_hash):
            logger.info("Login failed for %s", user.email)
            raise Unauthenticated(_BAD_CREDENTIALS)

        with self._lifecycle.hold(user.email):
            # The account may have been deleted (or deleted and re-registered)
            # while bcrypt was running.
            current = self.store.find(user.email)
            if current is None or current.id != user.id:
                raise Unauthenticated(_BAD_CREDENTIALS)
            token = self.sessions.issue(current.email, self.session_ttl)
        logger.info("User %s logged in", current.email)
        return current.profile(), token

    def logout(self, token: str | None) -> None:
        """Revoke the session behind token. Idempotent; never raises for bad tokens."""
        if not token:
            return
        if self.sessions.revoke(token):
            logger.info("Session revoked on logout")

    # ------------------------------------------------------------------
    # Session-gated
    # ------------------------------------------------------------------

    def authenticate(self, token: str | None) -> UserProfile:
        return self._caller(token).profile()

    def list_users(self, token: str | None) -> list[UserProfile]:
        caller = self._caller(token)
        self.gate.require(caller, Operation.LIST_USERS)
        return [u.profile() for u in self.store.list_users()]

    def get_user(self, token: str | None, target_email: str) -> UserProfile:
        caller = self._caller(token)
        self.gate.require(caller, Operation.GET_USER, target_email)
        try:
            return self.store.get(target_email).profile()
        except UserNotFound:
            raise NotFound() from None

    def update_user(self, token: str | None, target_email: str, patch: UserPatch) -> UserProfile:
        caller = self._caller(token)
        self.gate.require(caller, Operation.UPDATE_USER, target_email)

        if patch.email is not None and normalize_email(patch.email) != normalize_email(target_email):
            raise InvalidInput("user.update.email_immutable", details={"email": ["user.update.email_immutable"]})
        name = patch.name.strip() if patch.name is not None else None
        if name is not None:
            errors = validate_name(name)
            if errors:
                raise InvalidInput(details={"name": errors})
        plan = parse_plan(patch.subscription_plan) if patch.subscription_plan is not None else None

        try:
            updated = self.store.update(target_email, name=name, plan=plan)
        except UserNotFound:
            raise NotFound() from None
        logger.info("User %s updated by %s", updated.email, caller.email)
        return updated.profile()

    def delete_user(self, token: str | None, target_email: str) -> None:
        """Delete the target and revoke every session it owns."""
        caller = self._caller(token)
        self.gate.require(caller, Operation.DELETE_USER, target_email)
        target = normalize_email(target_email)
        with self._lifecycle.hold(target):
            try:
                self.store.delete(target)
            except UserNotFound:
                raise NotFound() from None
            revoked = self.sessions.revoke_all(target)
        logger.info("User %s deleted by %s (%d session(s) revoked)", target, caller.email, revoked)

    # ------------------------------------------------------------------
    # Operator actions (CLI and startup bootstrap; not exposed over HTTP)
    # ------------------------------------------------------------------

    def create_admin(
        self,
        name: str,
        email: str,
        password: str,
        plan: str | SubscriptionPlan | None = None,
    ) -> UserProfile:
        return self._create(name, email, password, plan, Role.ADMIN).profile()

    def set_role(self, email: str, role: Role) -> UserProfile:
        try:
            updated = self.store.update(email, role=Role(role))
        except UserNotFound:
            raise NotFound() from None
        logger.info("Role of %s set to %s", updated.email, updated.role.value)
        return updated.profile()

    def revoke_sessions(self, email: str) -> int:
        return self.sessions.revoke_all(email)

    def bootstrap_admin(self, name: str, email: str, password: str) -> UserProfile | None:
        """Seed the first admin account if none exists yet.

        An existing non-admin account with the same email is left alone
        rather than promoted: whoever registered it chose its password.
        """
        if self.store.has_admin():
            return None
        try:
            profile = self.create_admin(name, email, password)
        except Conflict:
            logger.warning("Admin bootstrap skipped: %s is already registered", normalize_email(email))
            return None
        logger.info("Bootstrapped admin account %s", profile.email)
        return profile

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create(
        self,
        name: str,
        email: str,
        password: str,
        plan: str | SubscriptionPlan | None,
        role: Role,
    ) -> User:
        check_registration(name, email, password)
        resolved_plan = parse_plan(plan)
        digest = self.hasher.hash(password)
        try:
            user = self.store.create(email, name.strip(), digest, resolved_plan, role)
        except UserAlreadyExists:
            raise Conflict() from None
        logger.info("Registered %s %s (plan=%s)", role.value, user.email, resolved_plan.value)
        return user

    def _caller(self, token: str | None) -> User:
        if not token:
            raise Unauthenticated()
        try:
            email = self.sessions.validate(token)
        except SessionInvalid as exc:
            logger.debug("Rejected session token (%s)", exc.reason)
            raise Unauthenticated() from None
        user = self.store.find(email)
        if user is None:
            raise Unauthenticated()
        return user
