"""
auth/hashing.py -- Password hashing and verification (bcrypt).

Security design decisions:
  bcrypt via the bcrypt package directly (no passlib wrapper). Its cost factor
  makes brute force expensive, and gensalt() draws a fresh salt per call, so
  two hashes of the same password never match byte-for-byte.

  bcrypt only reads the first 72 bytes of its input and bcrypt 4.x+ rejects
  longer inputs outright. Passwords may be up to 128 characters, so the
  plaintext is first reduced to base64(SHA-256(plaintext)) -- 44 bytes -- and
  that is what bcrypt sees. The stored algorithm tag ("bcrypt_sha256") records
  this so a future scheme can be introduced side by side.

  checkpw() compares in constant time. verify_dummy() runs the same amount of
  work against a throwaway digest so a login for an unknown email costs as
  much as a login with a wrong password; response time does not reveal
  whether an account exists.

Plaintext never leaves this module: it is not logged, stored or returned.
"""

from __future__ import annotations

import base64
import hashlib
import logging

import bcrypt

from auth.models import PasswordHash

logger = logging.getLogger("gatekeeper.auth")

ALGORITHM = "bcrypt_sha256"
DEFAULT_ROUNDS = 12


def _prehash(plain: str) -> bytes:
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


class PasswordHasher:
    """One-way salted hashing.

    Usage:
        hasher = PasswordHasher()
        record = hasher.hash("Securepassword123.")
        hasher.verify("Securepassword123.", record)  # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        # Computed once so the first unknown-email login is not measurably
        # slower than later ones.
        self._dummy = self.hash("gatekeeper_timing_dummy")

    def hash(self, plain: str) -> PasswordHash:
        digest = bcrypt.hashpw(_prehash(plain), bcrypt.gensalt(rounds=self.rounds))
        return PasswordHash(algorithm=ALGORITHM, digest=digest)

    def verify(self, plain: str, record: PasswordHash) -> bool:
        """Return True if plain matches record. Corrupt or foreign records never match."""
        if record.algorithm != ALGORITHM:
            logger.warning("Refusing to verify password hash with unknown algorithm %r", record.algorithm)
            return False
        try:
            return bcrypt.checkpw(_prehash(plain), record.digest)
        except ValueError:
            # Malformed salt/digest in storage.
            return False

    def verify_dummy(self, plain: str) -> None:
        self.verify(plain, self._dummy)
