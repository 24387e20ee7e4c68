"""Internal TTL cache for memoizing outbound network reads."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from pysquadron._constants import DEFAULT_CACHE_TTL

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class _CacheEntry(Generic[T]):
    value: T
    stored_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl


@dataclass(frozen=True)
class CacheEntryStats:
    key: str
    age: float
    ttl: float
    remaining: float
    expired: bool


@dataclass(frozen=True)
class CacheStats:
    size: int
    valid_count: int
    expired_count: int
    entries: list[CacheEntryStats] = field(default_factory=list)


class TTLCache(Generic[T]):
    """Time-bounded in-memory memoization keyed by string.

    Entries expire once their age strictly exceeds the TTL they were stored
    with.  Expired entries are dropped lazily on read and eagerly by
    :meth:`cleanup_expired`.

    Parameters
    ----------
    ttl : float
        Default time-to-live in seconds.
    clock : callable
        Monotonic clock returning seconds.  Injectable for tests.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, _CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> T | None:
        """Return the cached value, or ``None`` when missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: T, *, ttl: float | None = None) -> None:
        self._entries[key] = _CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=self._ttl if ttl is None else ttl,
        )

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with *prefix*; return the number removed."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T | None]],
        *,
        ttl: float | None = None,
    ) -> T | None:
        """Return the cached value or await *fetch* and memoize its result.

        ``None`` results are not cached, so a failed read is retried on the
        next call.  Exceptions raised by *fetch* propagate unchanged.
        """
        cached = self.get(key)
        if cached is not None:
            _logger.debug("Cache hit for %s", key)
            return cached
        value = await fetch()
        if value is not None:
            self.set(key, value, ttl=ttl)
        return value

    def cleanup_expired(self) -> int:
        """Drop every expired entry; return the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            _logger.debug("Cache: cleaned up %d expired entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        entries: list[CacheEntryStats] = []
        valid = 0
        for key, entry in self._entries.items():
            age = entry.age(now)
            remaining = entry.ttl - age
            expired = entry.is_expired(now)
            if not expired:
                valid += 1
            entries.append(
                CacheEntryStats(
                    key=key,
                    age=age,
                    ttl=entry.ttl,
                    remaining=max(0.0, remaining),
                    expired=expired,
                )
            )
        return CacheStats(
            size=len(self._entries),
            valid_count=valid,
            expired_count=len(self._entries) - valid,
            entries=entries,
        )
