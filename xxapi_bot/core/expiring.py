from __future__ import annotations

import time
from typing import Callable, Generic, TypeVar


K = TypeVar("K")
V = TypeVar("V")


class ExpiringRegistry(Generic[K, V]):
    """key -> value table where each entry carries an explicit expiry time.

    Expiry is evaluated against `clock`, so tests can drive it with a fake
    monotonic clock instead of real timers.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[K, tuple[V, float | None]] = {}

    def register(self, key: K, value: V, ttl_seconds: float | None) -> None:
        """Add or replace an entry; `ttl_seconds=None` never expires.

        Expired entries of every key are dropped first, so the table stays
        bounded by the number of live entries.
        """

        now = self._clock()
        self._prune(now)
        expires_at = None if ttl_seconds is None else now + ttl_seconds
        self._entries[key] = (value, expires_at)

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._entries[key]

    def _live(self, key: K) -> tuple[V, float | None] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            return None
        return entry

    def get(self, key: K) -> V | None:
        entry = self._live(key)
        return None if entry is None else entry[0]

    def __contains__(self, key: object) -> bool:
        return self._live(key) is not None  # type: ignore[arg-type]

    def pop(self, key: K) -> V | None:
        """Consume a live entry; expired entries are never returned."""

        entry = self._live(key)
        if entry is None:
            return None
        del self._entries[key]
        return entry[0]

    def remove(self, key: K) -> V | None:
        """Drop an entry whether or not it has expired."""

        entry = self._entries.pop(key, None)
        return None if entry is None else entry[0]

    def keys(self) -> list[K]:
        """All stored keys, including expired ones not pruned yet."""

        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return sum(1 for key in list(self._entries) if self._live(key) is not None)
