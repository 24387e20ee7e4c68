from __future__ import annotations

import pytest

from pysquadron._cache import TTLCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_strictly_after_ttl() -> None:
    clock = _Clock()
    cache: TTLCache[int] = TTLCache(ttl=30.0, clock=clock)
    cache.set("a", 1)

    clock.now += 30.0
    assert cache.get("a") == 1

    clock.now += 0.1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_per_entry_ttl_and_prefix_delete() -> None:
    clock = _Clock()
    cache: TTLCache[str] = TTLCache(ttl=30.0, clock=clock)
    cache.set("leaderboard:page:1", "one")
    cache.set("leaderboard:page:2", "two", ttl=5.0)
    cache.set("profile", "p")

    clock.now += 10.0
    assert "leaderboard:page:2" not in cache
    assert "leaderboard:page:1" in cache

    # The expired page was already dropped by the read above.
    assert cache.delete_prefix("leaderboard:") == 1
    assert cache.get("profile") == "p"


def test_cleanup_and_stats() -> None:
    clock = _Clock()
    cache: TTLCache[int] = TTLCache(ttl=10.0, clock=clock)
    cache.set("old", 1)
    clock.now += 20.0
    cache.set("new", 2)

    stats = cache.stats()
    assert stats.size == 2
    assert stats.valid_count == 1
    assert stats.expired_count == 1
    by_key = {entry.key: entry for entry in stats.entries}
    assert by_key["old"].expired
    assert by_key["old"].remaining == 0.0
    assert by_key["new"].remaining == 10.0

    assert cache.cleanup_expired() == 1
    assert cache.stats().size == 1


@pytest.mark.asyncio
async def test_get_or_fetch_memoizes_values_but_not_none() -> None:
    cache: TTLCache[int] = TTLCache(ttl=30.0, clock=_Clock())
    calls: list[str] = []

    async def _value() -> int:
        calls.append("value")
        return 7

    async def _missing() -> int | None:
        calls.append("missing")
        return None

    assert await cache.get_or_fetch("k", _value) == 7
    assert await cache.get_or_fetch("k", _value) == 7
    assert await cache.get_or_fetch("m", _missing) is None
    assert await cache.get_or_fetch("m", _missing) is None
    assert calls == ["value", "missing", "missing"]


@pytest.mark.asyncio
async def test_get_or_fetch_propagates_errors() -> None:
    cache: TTLCache[int] = TTLCache(ttl=30.0, clock=_Clock())

    async def _boom() -> int:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await cache.get_or_fetch("k", _boom)
    assert "k" not in cache
