"""
core/logs.py -- Logging setup shared by the API and the CLI.

Stdlib logging with one basicConfig call and named "gatekeeper.*" loggers.
A filter on the root handlers rewrites anything that looks like a session
token (a Bearer credential or a JWT) before it is emitted, so a stray
header or exception message never writes a usable token to disk.
"""

from __future__ import annotations

import logging
import re

_REDACTED = "[REDACTED]"

_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]+"),
    re.compile(r"eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
)


def redact_tokens(text: str) -> str:
    text = _TOKEN_PATTERNS[0].sub(lambda m: m.group(1) + _REDACTED, text)
    return _TOKEN_PATTERNS[1].sub(_REDACTED, text)


class TokenRedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_tokens(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, TokenRedactingFilter) for f in handler.filters):
            handler.addFilter(TokenRedactingFilter())
