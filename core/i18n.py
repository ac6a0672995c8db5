"""
core/i18n.py -- Locale selection and JSON message catalogs.

Every user-facing string is looked up by a dotted key ("auth.login.success")
in core/locales/<lang>.json. The auth/ layer only ever produces keys; the
api/ layer turns them into text with Messages.get(). Nothing below api/
branches on the locale.

Locale selection (resolve_locale):
  - No Accept-Language header: the configured default locale.
  - First tag's primary subtag ("de-AT,de;q=0.9" -> "de") if supported.
  - Anything else: English.

Missing keys fall back to the English catalog, then to the caller's default,
then to the key itself -- a lookup never raises.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger("gatekeeper.i18n")

SUPPORTED_LOCALES: tuple[str, ...] = ("en", "de", "id", "ja")
FALLBACK_LOCALE = "en"

_LOCALES_DIR = Path(__file__).parent / "locales"


def resolve_locale(accept_language: str | None, default: str = FALLBACK_LOCALE) -> str:
    """Pick a supported locale from an Accept-Language header value."""
    if not accept_language or not accept_language.strip():
        return default if default in SUPPORTED_LOCALES else FALLBACK_LOCALE
    first_tag = accept_language.split(",")[0].split(";")[0].strip()
    primary = first_tag.split("-")[0].split("_")[0].lower()
    return primary if primary in SUPPORTED_LOCALES else FALLBACK_LOCALE


@lru_cache(maxsize=len(SUPPORTED_LOCALES))
def load_catalog(locale: str) -> dict:
    """Load and cache the JSON catalog for a locale.

    An unreadable or malformed file is logged and treated as empty, so a
    broken translation degrades to English instead of failing the request.
    """
    path = _LOCALES_DIR / f"{locale}.json"
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not load message catalog %s: %s", path, exc)
        return {}


def _lookup(catalog: dict, key: str) -> str | None:
    node = catalog
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node if isinstance(node, str) else None


class Messages:
    """Message lookups bound to one locale.

    Usage:
        messages = Messages("de")
        messages.get("auth.login.success")
    """

    def __init__(self, locale: str) -> None:
        self.locale = locale if locale in SUPPORTED_LOCALES else FALLBACK_LOCALE
        self._catalog = load_catalog(self.locale)

    def get(self, key: str, default: str | None = None) -> str:
        text = _lookup(self._catalog, key)
        if text is None and self.locale != FALLBACK_LOCALE:
            text = _lookup(load_catalog(FALLBACK_LOCALE), key)
        if text is None:
            return default if default is not None else key
        return text

    def get_many(self, keys: list[str]) -> list[str]:
        return [self.get(k) for k in keys]
