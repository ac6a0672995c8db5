"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_user is the mapper. Directory and
CLI code never touches SQL directly.

Consistency:
  Emails are normalized (trimmed, lower-cased) before every query, so the
  UNIQUE(email) constraint is a case-insensitive uniqueness check.

  Every mutation on one email runs under that email's KeyedLock and inside a
  single transaction. Concurrent create/update/delete on the same email are
  therefore applied in one total order, while different emails never wait on
  each other. The UNIQUE constraint stays the final word on duplicates (other
  processes sharing the database do not see our in-process locks).

  A caller that gives up mid-request cannot leave a half-written user: each
  operation is one transaction that either commits or rolls back.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, LargeBinary, MetaData, String, Table, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.db import create_db_engine
from auth.locks import KeyedLock
from auth.models import PasswordHash, Role, SubscriptionPlan, User


class UserAlreadyExists(Exception):
    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"user already exists: {email}")


class UserNotFound(Exception):
    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"user not found: {email}")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(254), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("password_hash", LargeBinary, nullable=False),
    Column("password_algorithm", String(32), nullable=False),
    Column("subscription_plan", String(20), nullable=False, server_default=SubscriptionPlan.FREE.value),
    Column("role", String(20), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    # AUTOINCREMENT keeps ids strictly increasing even after deletes, so
    # ORDER BY id is insertion order.
    sqlite_autoincrement=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User records.

    Usage:
        store = CredentialStore("sqlite:///gatekeeper.db")
        store.create("h1@gmail.com", "user", hasher.hash("Securepassword123."), SubscriptionPlan.FREE)
        user = store.get("h1@gmail.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_db_engine(db_url)
        _metadata.create_all(self.engine)
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(
        self,
        email: str,
        name: str,
        password_hash: PasswordHash,
        plan: SubscriptionPlan = SubscriptionPlan.FREE,
        role: Role = Role.USER,
    ) -> User:
        """Insert a new user and return it.

        Raises UserAlreadyExists if the normalized email is taken -- whether
        the loser of the race is detected by the lock ordering or by the
        UNIQUE constraint.
        """
        email = normalize_email(email)
        now = _now_iso()
        with self._locks.hold(email):
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(
                        _users.insert().values(
                            email=email,
                            name=name,
                            password_hash=password_hash.digest,
                            password_algorithm=password_hash.algorithm,
                            subscription_plan=SubscriptionPlan(plan).value,
                            role=Role(role).value,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    user_id = result.inserted_primary_key[0]
            except IntegrityError as exc:
                raise UserAlreadyExists(email) from exc
        return User(
            id=user_id,
            email=email,
            name=name,
            password_hash=password_hash,
            subscription_plan=SubscriptionPlan(plan),
            role=Role(role),
            created_at=now,
            updated_at=now,
        )

    def update(
        self,
        email: str,
        *,
        name: str | None = None,
        plan: SubscriptionPlan | None = None,
        role: Role | None = None,
    ) -> User:
        """Apply a partial update and return the resulting record.

        Fields left as None are unchanged. Email and password are not
        mutable through this path. Raises UserNotFound.
        """
        email = normalize_email(email)
        fields: dict = {}
        if name is not None:
            fields["name"] = name
        if plan is not None:
            fields["subscription_plan"] = SubscriptionPlan(plan).value
        if role is not None:
            fields["role"] = Role(role).value

        with self._locks.hold(email):
            with self.engine.begin() as conn:
                if fields:
                    fields["updated_at"] = _now_iso()
                    result = conn.execute(_users.update().where(_users.c.email == email).values(**fields))
                    if result.rowcount == 0:
                        raise UserNotFound(email)
                row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        if row is None:
            raise UserNotFound(email)
        return _row_to_user(row)

    def delete(self, email: str) -> None:
        """Permanently delete a user record. Raises UserNotFound.

        Sessions are not touched here -- the directory service cascades the
        revocation so the store stays ignorant of sessions.
        """
        email = normalize_email(email)
        with self._locks.hold(email):
            with self.engine.begin() as conn:
                result = conn.execute(_users.delete().where(_users.c.email == email))
        if result.rowcount == 0:
            raise UserNotFound(email)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, email: str) -> User:
        """Look up a user by email (case-insensitive). Raises UserNotFound."""
        email = normalize_email(email)
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        if row is None:
            raise UserNotFound(email)
        return _row_to_user(row)

    def find(self, email: str) -> User | None:
        """Like get(), but returns None instead of raising."""
        try:
            return self.get(email)
        except UserNotFound:
            return None

    def list_users(self) -> list[User]:
        """Return all users in insertion order.

        Each call runs a fresh query, so the result can be re-requested at
        any time and is always finite.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.role == Role.ADMIN.value)
            ).scalar()
        return result or 0

    def has_admin(self) -> bool:
        """Used by the startup bootstrap to decide whether to seed an admin."""
        return self.count_admins() > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=PasswordHash(algorithm=row.password_algorithm, digest=bytes(row.password_hash)),
        subscription_plan=SubscriptionPlan(row.subscription_plan),
        role=Role(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
