"""
tests/test_directory.py -- DirectoryService behaviour without HTTP.

Coverage:
  - register: defaults, normalization, duplicates, role is never admin
  - login: identical errors for unknown email and wrong password
  - logout: idempotent, tolerant of missing and forged tokens
  - check order: 401 before 403 before 404
  - update: partial, email immutable, validation, empty patch
  - delete: cascades session revocation, re-registration gets a fresh account
  - operator actions: create_admin, set_role, revoke_sessions, bootstrap_admin
  - concurrency: parallel same-email registration yields exactly one account
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from auth.directory import DirectoryService, UserPatch
from auth.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthenticated
from auth.models import Role, SubscriptionPlan

PASSWORD = "Securepassword123."


def _register_and_login(directory: DirectoryService, email: str, name: str = "user") -> str:
    directory.register(name, email, PASSWORD)
    _, token = directory.login(email, PASSWORD)
    return token


class TestRegister:
    def test_defaults(self, directory: DirectoryService) -> None:
        profile = directory.register("user", "h1@gmail.com", PASSWORD)
        assert profile.email == "h1@gmail.com"
        assert profile.subscription_plan == SubscriptionPlan.FREE
        assert profile.role == Role.USER
        assert not hasattr(profile, "password_hash")

    def test_explicit_plan(self, directory: DirectoryService) -> None:
        assert directory.register("user", "h1@gmail.com", PASSWORD, "pro").subscription_plan == SubscriptionPlan.PRO

    def test_email_and_name_are_normalized(self, directory: DirectoryService) -> None:
        profile = directory.register("  Anna Maria ", " H1@Gmail.com ", PASSWORD)
        assert profile.email == "h1@gmail.com"
        assert profile.name == "Anna Maria"

    def test_duplicate(self, directory: DirectoryService) -> None:
        directory.register("user", "h1@gmail.com", PASSWORD)
        with pytest.raises(Conflict):
            directory.register("other", "H1@gmail.com", PASSWORD)

    def test_invalid_data_lists_fields(self, directory: DirectoryService) -> None:
        with pytest.raises(InvalidInput) as exc_info:
            directory.register("u", "not-an-email", "short")
        assert set(exc_info.value.details) == {"name", "email", "password"}
        assert directory.store.list_users() == []

    def test_unknown_plan(self, directory: DirectoryService) -> None:
        with pytest.raises(InvalidInput) as exc_info:
            directory.register("user", "h1@gmail.com", PASSWORD, "Gold")
        assert "subscription_plan" in exc_info.value.details

    def test_concurrent_same_email_creates_one_account(self, directory: DirectoryService) -> None:
        def attempt(i: int) -> str:
            try:
                directory.register("user", "race@example.com", PASSWORD)
            except Conflict:
                return "conflict"
            return "created"

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(attempt, range(8)))

        assert outcomes.count("created") == 1
        assert outcomes.count("conflict") == 7
        assert [u.email for u in directory.store.list_users()] == ["race@example.com"]

    def test_concurrent_distinct_emails_all_succeed(self, directory: DirectoryService) -> None:
        emails = [f"user{i}@example.com" for i in range(6)]
        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(lambda e: directory.register("user", e, PASSWORD), emails))
        assert sorted(u.email for u in directory.store.list_users()) == sorted(emails)


class TestLogin:
    def test_success(self, directory: DirectoryService) -> None:
        directory.register("user", "h1@gmail.com", PASSWORD)
        profile, token = directory.login("H1@gmail.com", PASSWORD)
        assert profile.email == "h1@gmail.com"
        assert directory.authenticate(token).email == "h1@gmail.com"

    def test_unknown_email_and_wrong_password_are_indistinguishable(self, directory: DirectoryService) -> None:
        directory.register("user", "h1@gmail.com", PASSWORD)
        with pytest.raises(Unauthenticated) as unknown:
            directory.login("nobody@gmail.com", PASSWORD)
        with pytest.raises(Unauthenticated) as wrong:
            directory.login("h1@gmail.com", "Wrongpassword123.")
        assert unknown.value.message_key == wrong.value.message_key == "auth.login.invalid_credentials"
        assert unknown.value.details == wrong.value.details == {}

    def test_empty_credentials(self, directory: DirectoryService) -> None:
        with pytest.raises(Unauthenticated):
            directory.login("", "")

    def test_each_login_is_a_new_session(self, directory: DirectoryService) -> None:
        directory.register("user", "h1@gmail.com", PASSWORD)
        _, first = directory.login("h1@gmail.com", PASSWORD)
        _, second = directory.login("h1@gmail.com", PASSWORD)
        assert first != second
        assert directory.sessions.active_count("h1@gmail.com") == 2


class TestLogout:
    def test_logout_ends_session(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        directory.logout(token)
        with pytest.raises(Unauthenticated):
            directory.authenticate(token)

    def test_logout_is_idempotent(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        directory.logout(token)
        directory.logout(token)

    @pytest.mark.parametrize("token", [None, "", "garbage"])
    def test_logout_without_valid_token(self, directory: DirectoryService, token) -> None:
        directory.logout(token)

    def test_expired_session_is_unauthenticated(self, directory: DirectoryService, clock) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        clock.advance(3600)
        with pytest.raises(Unauthenticated) as exc_info:
            directory.authenticate(token)
        assert exc_info.value.message_key == "auth.session.required"


class TestCheckOrder:
    def test_no_token_beats_missing_target(self, directory: DirectoryService) -> None:
        with pytest.raises(Unauthenticated):
            directory.get_user(None, "nobody@example.com")

    def test_forbidden_beats_missing_target(self, directory: DirectoryService) -> None:
        """A regular user probing another email gets 403 whether or not it exists."""
        token = _register_and_login(directory, "h1@gmail.com")
        directory.register("user", "h2@gmail.com", PASSWORD)
        with pytest.raises(Forbidden):
            directory.get_user(token, "h2@gmail.com")
        with pytest.raises(Forbidden):
            directory.get_user(token, "nobody@example.com")

    def test_admin_gets_not_found(self, directory: DirectoryService, admin_token: str) -> None:
        with pytest.raises(NotFound):
            directory.get_user(admin_token, "nobody@example.com")
        with pytest.raises(NotFound):
            directory.update_user(admin_token, "nobody@example.com", UserPatch(name="Name"))
        with pytest.raises(NotFound):
            directory.delete_user(admin_token, "nobody@example.com")

    def test_list_requires_admin(self, directory: DirectoryService, admin_token: str) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        with pytest.raises(Forbidden):
            directory.list_users(token)
        assert [p.email for p in directory.list_users(admin_token)] == ["admin@example.com", "h1@gmail.com"]


class TestUpdate:
    def test_self_update_plan(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        profile = directory.update_user(token, "h1@gmail.com", UserPatch(email="h1@gmail.com", subscription_plan="Pro"))
        assert profile.subscription_plan == SubscriptionPlan.PRO
        assert profile.name == "user"

    def test_email_is_immutable(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        with pytest.raises(InvalidInput) as exc_info:
            directory.update_user(token, "h1@gmail.com", UserPatch(email="new@gmail.com"))
        assert exc_info.value.message_key == "user.update.email_immutable"
        assert directory.store.find("new@gmail.com") is None

    def test_email_echo_is_case_insensitive(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        directory.update_user(token, "h1@gmail.com", UserPatch(email="H1@GMAIL.COM", name="New Name"))
        assert directory.store.get("h1@gmail.com").name == "New Name"

    def test_invalid_name(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        with pytest.raises(InvalidInput) as exc_info:
            directory.update_user(token, "h1@gmail.com", UserPatch(name="x1"))
        assert exc_info.value.details == {"name": ["validation.name.invalid_chars"]}

    def test_invalid_plan(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        with pytest.raises(InvalidInput):
            directory.update_user(token, "h1@gmail.com", UserPatch(subscription_plan="Platinum"))

    def test_empty_patch_returns_current_record(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        before = directory.get_user(token, "h1@gmail.com")
        assert directory.update_user(token, "h1@gmail.com", UserPatch()) == before

    def test_user_cannot_update_other(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        directory.register("user", "h2@gmail.com", PASSWORD)
        with pytest.raises(Forbidden):
            directory.update_user(token, "h2@gmail.com", UserPatch(subscription_plan="Enterprise"))
        assert directory.store.get("h2@gmail.com").subscription_plan == SubscriptionPlan.FREE

    def test_admin_updates_other(self, directory: DirectoryService, admin_token: str) -> None:
        directory.register("user", "h2@gmail.com", PASSWORD)
        profile = directory.update_user(admin_token, "h2@gmail.com", UserPatch(subscription_plan="Enterprise"))
        assert profile.subscription_plan == SubscriptionPlan.ENTERPRISE


class TestDelete:
    def test_self_delete_revokes_every_session(self, directory: DirectoryService) -> None:
        first = _register_and_login(directory, "h1@gmail.com")
        _, second = directory.login("h1@gmail.com", PASSWORD)
        directory.delete_user(first, "h1@gmail.com")
        assert directory.store.find("h1@gmail.com") is None
        for token in (first, second):
            with pytest.raises(Unauthenticated):
                directory.authenticate(token)

    def test_admin_deletes_other(self, directory: DirectoryService, admin_token: str) -> None:
        victim = _register_and_login(directory, "h2@gmail.com")
        directory.delete_user(admin_token, "h2@gmail.com")
        with pytest.raises(Unauthenticated):
            directory.authenticate(victim)
        assert directory.authenticate(admin_token).email == "admin@example.com"

    def test_old_session_does_not_carry_over_to_new_account(self, directory: DirectoryService) -> None:
        old = _register_and_login(directory, "h1@gmail.com")
        directory.delete_user(old, "h1@gmail.com")
        directory.register("user", "h1@gmail.com", PASSWORD)
        with pytest.raises(Unauthenticated):
            directory.authenticate(old)

    def test_user_cannot_delete_other(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        directory.register("user", "h2@gmail.com", PASSWORD)
        with pytest.raises(Forbidden):
            directory.delete_user(token, "h2@gmail.com")
        assert directory.store.find("h2@gmail.com") is not None

    def test_concurrent_login_and_delete_leave_no_live_session(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")

        def login() -> str | None:
            try:
                return directory.login("h1@gmail.com", PASSWORD)[1]
            except Unauthenticated:
                return None

        with ThreadPoolExecutor(max_workers=5) as pool:
            logins = [pool.submit(login) for _ in range(4)]
            deletion = pool.submit(directory.delete_user, token, "h1@gmail.com")
            deletion.result()
            issued = [f.result() for f in logins]

        for t in issued:
            if t is not None:
                with pytest.raises(Unauthenticated):
                    directory.authenticate(t)
        assert directory.sessions.active_count("h1@gmail.com") == 0


class TestOperatorActions:
    def test_create_admin(self, directory: DirectoryService) -> None:
        profile = directory.create_admin("Site Admin", "root@example.com", PASSWORD)
        assert profile.role == Role.ADMIN

    def test_set_role(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        directory.set_role("h1@gmail.com", Role.ADMIN)
        assert directory.list_users(token)[0].email == "h1@gmail.com"

    def test_set_role_unknown(self, directory: DirectoryService) -> None:
        with pytest.raises(NotFound):
            directory.set_role("nobody@example.com", Role.ADMIN)

    def test_revoke_sessions(self, directory: DirectoryService) -> None:
        token = _register_and_login(directory, "h1@gmail.com")
        assert directory.revoke_sessions("h1@gmail.com") == 1
        with pytest.raises(Unauthenticated):
            directory.authenticate(token)

    def test_bootstrap_admin_only_once(self, directory: DirectoryService) -> None:
        assert directory.bootstrap_admin("Site Admin", "root@example.com", PASSWORD) is not None
        assert directory.bootstrap_admin("Other Admin", "other@example.com", PASSWORD) is None
        assert directory.store.count_admins() == 1

    def test_bootstrap_does_not_promote_existing_user(self, directory: DirectoryService) -> None:
        directory.register("user", "root@example.com", PASSWORD)
        assert directory.bootstrap_admin("Site Admin", "root@example.com", PASSWORD) is None
        assert directory.store.get("root@example.com").role == Role.USER
