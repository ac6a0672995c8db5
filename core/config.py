"""
core/config.py -- Gatekeeper settings, read from the environment and .env.

This is the only module that reads environment variables; everything else
calls get_settings(). Settings is a pydantic-settings BaseSettings, so each
field is filled from the upper-cased env var of the same name (secret_key
from SECRET_KEY, allowed_hosts from ALLOWED_HOSTS as a JSON list) and coerced
to its annotated type.

get_settings() is wrapped in lru_cache: one Settings instance per process.

SECRET_KEY policy (enforced by the model validator):
  - it signs session tokens and keys the session table's HMAC, so anything
    under 32 characters is rejected;
  - with DEBUG=true a missing key is replaced by a random one and a warning,
    which logs everyone out on restart;
  - without DEBUG a missing key is a startup error.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeeper.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'gatekeeper.db'}"


class Settings(BaseSettings):
    """Every knob of the service. Each field has a default, so tests and the
    CLI can build Settings(...) directly with keyword overrides.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_ttl_seconds: int = 3600
    # bcrypt cost factor. 12 is the production default; tests drop to 4.
    bcrypt_rounds: int = 12
    session_purge_interval_seconds: int = 900
    cookie_name: str = "session_token"
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Locale
    # ------------------------------------------------------------------

    # Used when the request carries no Accept-Language header at all.
    # Unsupported tags fall back to English (see core/i18n.py).
    default_locale: str = "de"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Admin bootstrap (optional -- empty email means no bootstrap)
    # ------------------------------------------------------------------

    admin_email: str = ""
    admin_password: str = ""
    admin_name: str = "Administrator"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Apply the SECRET_KEY policy from the module docstring and sanity-check the TTL."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.session_ttl_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
