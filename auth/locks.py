"""
auth/locks.py -- Per-key mutual exclusion.

KeyedLock hands out one threading.Lock per live key (an email, a session id).
Operations on the same key run one at a time; operations on different keys
never wait on each other. The registry mutex is held only long enough to
find or create the per-key entry -- never while the caller's critical
section runs -- and entries are dropped once no thread holds or waits for
them, so the registry does not grow with the number of keys ever seen.
"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLock:
    """Usage:
    locks = KeyedLock()
    with locks.hold("h1@gmail.com"):
        ...
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextlib.contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)
