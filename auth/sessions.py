"""
auth/sessions.py -- Session issuance, validation and revocation.

Security design decisions:
  Token format: a JWT (python-jose, HS256) signed with SECRET_KEY whose
       claims are sub=<email>, sid=<session id>, iat, exp. The session id is
       secrets.token_urlsafe(32) -- 256 bits of entropy -- so tokens cannot be
       guessed. The signature lets validate() reject forged or mangled tokens
       without touching the database.

  Server-side record: a JWT alone cannot be revoked, so every issued token
       has a row in the sessions table. The row is keyed by
       HMAC-SHA256(SECRET_KEY, sid) -- the raw sid is never persisted, so a
       copy of the database is not a copy of anyone's sessions.

  Expiry: judged against the row's expires_at using the manager's clock.
       The exp claim is informational for clients; jose's own exp check is
       disabled so there is exactly one clock deciding liveness.

State machine per token:  Active -> Expired (time)  |  Active -> Revoked.
Both are terminal. Revocation is one conditional UPDATE
(... SET revoked = 1 WHERE sid_hash = ? AND revoked = 0) -- a
compare-and-swap on the row -- and validation is one SELECT. Once revoke()
has returned, its transaction is committed and no later validate() can see
the row as live.

Dead rows (expired or revoked) are deleted by purge_expired(), which the API
lifespan runs on a timer.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable

from jose import JWTError, jwt
from sqlalchemy import Column, Float, Integer, MetaData, String, Table, func, or_, select
from sqlalchemy.engine import Engine

from auth.db import create_db_engine
from auth.models import Session
from auth.store import normalize_email

logger = logging.getLogger("gatekeeper.sessions")

_ALGORITHM = "HS256"


class SessionInvalid(Exception):
    """Token did not validate. reason is for logs only, never for clients."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("sid_hash", String(64), primary_key=True),  # HMAC-SHA256 hex of the session id
    Column("email", String(254), nullable=False, index=True),
    Column("issued_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False, index=True),
    Column("revoked", Integer, nullable=False, server_default="0"),
)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Owns every Session record.

    Usage:
        sessions = SessionManager("sqlite:///gatekeeper.db", secret_key=settings.secret_key)
        token = sessions.issue("h1@gmail.com")
        sessions.validate(token)   # "h1@gmail.com"
        sessions.revoke(token)
        sessions.validate(token)   # raises SessionInvalid
        sessions.close()
    """

    def __init__(
        self,
        db_url: str,
        secret_key: str,
        default_ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.engine: Engine = create_db_engine(db_url)
        _metadata.create_all(self.engine)
        self._secret_key = secret_key
        self.default_ttl = default_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _hash_sid(self, sid: str) -> str:
        return hmac.new(self._secret_key.encode(), sid.encode(), hashlib.sha256).hexdigest()

    def _decode(self, token: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise SessionInvalid("malformed") from exc
        if not isinstance(payload.get("sid"), str) or not isinstance(payload.get("sub"), str):
            raise SessionInvalid("malformed")
        return payload

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def issue(self, email: str, ttl: int | None = None) -> str:
        """Record a new Active session for email and return its token."""
        duration = ttl if ttl is not None and ttl > 0 else self.default_ttl
        email = normalize_email(email)
        sid = secrets.token_urlsafe(32)
        now = self._clock()
        expires_at = now + duration
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    sid_hash=self._hash_sid(sid),
                    email=email,
                    issued_at=now,
                    expires_at=expires_at,
                    revoked=0,
                )
            )
        return jwt.encode(
            {"sub": email, "sid": sid, "iat": int(now), "exp": int(expires_at)},
            self._secret_key,
            algorithm=_ALGORITHM,
        )

    def validate(self, token: str) -> str:
        """Return the owning email of a live session.

        Raises SessionInvalid if the token is forged, unknown, expired
        (now >= expires_at) or revoked.
        """
        payload = self._decode(token)
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select().where(_sessions.c.sid_hash == self._hash_sid(payload["sid"]))
            ).fetchone()
        if row is None:
            raise SessionInvalid("unknown")
        session = _row_to_session(row, payload["sid"])
        if session.revoked:
            raise SessionInvalid("revoked")
        if not session.is_live(self._clock()):
            raise SessionInvalid("expired")
        if session.email != payload["sub"]:
            raise SessionInvalid("subject_mismatch")
        return session.email

    def revoke(self, token: str) -> bool:
        """Revoke one session. Idempotent.

        Unknown, malformed and already-revoked tokens are not errors. Returns
        True only when this call performed the Active -> Revoked transition.
        """
        try:
            payload = self._decode(token)
        except SessionInvalid:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.sid_hash == self._hash_sid(payload["sid"])) & (_sessions.c.revoked == 0))
                .values(revoked=1)
            )
        return result.rowcount > 0

    def revoke_all(self, email: str) -> int:
        """Revoke every session owned by email. Returns how many were live-flagged."""
        email = normalize_email(email)
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.email == email) & (_sessions.c.revoked == 0))
                .values(revoked=1)
            )
        if result.rowcount:
            logger.info("Revoked %d session(s) for %s", result.rowcount, email)
        return result.rowcount

    def active_count(self, email: str) -> int:
        email = normalize_email(email)
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_sessions)
                .where(
                    (_sessions.c.email == email)
                    & (_sessions.c.revoked == 0)
                    & (_sessions.c.expires_at > self._clock())
                )
            ).scalar()
        return result or 0

    def purge_expired(self) -> int:
        """Delete expired and revoked rows. Returns number of rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.delete().where(or_(_sessions.c.revoked == 1, _sessions.c.expires_at <= self._clock()))
            )
        return result.rowcount

    def close(self) -> None:
        """Drain at shutdown: drop pooled connections. Records stay in the database."""
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_session(row, sid: str) -> Session:
    return Session(
        session_id=sid,
        email=row.email,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        revoked=bool(row.revoked),
    )
