"""Concurrent read of the two score sources."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from pysquadron._api.leaderboard import PageCache, find_squadron
from pysquadron._api.profile import ProfilePage, fetch_profile
from pysquadron._cache import TTLCache
from pysquadron._transport import Transport
from pysquadron.config import TrackerConfig
from pysquadron.exceptions import SquadronError
from pysquadron.models._base import utcnow
from pysquadron.models.leaderboard import LeaderboardLookup

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# The API scan may read several pages, each with its own request timeout.
_API_SCAN_TIMEOUT_FACTOR = 4


@dataclass(frozen=True)
class SourceReadings:
    """What each source reported in one cycle; ``None`` where a source failed."""

    api_value: int | None
    api_timestamp: datetime | None
    web_value: int | None
    web_timestamp: datetime | None
    lookup: LeaderboardLookup | None = None
    profile: ProfilePage | None = None

    @property
    def api_ok(self) -> bool:
        return self.lookup is not None

    @property
    def web_ok(self) -> bool:
        return self.profile is not None

    @property
    def any_succeeded(self) -> bool:
        return self.api_ok or self.web_ok


class DualSourceFetcher:
    """Read the leaderboard API and the profile page concurrently.

    Each read is bounded by its own timeout.  A failing source is logged and
    reported as ``None`` without affecting the other one.
    """

    def __init__(
        self,
        transport: Transport,
        config: TrackerConfig,
        *,
        cache: PageCache | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._transport = transport
        self._config = config
        self._cache: PageCache = cache if cache is not None else TTLCache(ttl=config.cache_ttl)
        self._clock = clock

    @property
    def cache(self) -> PageCache:
        return self._cache

    async def _guarded(self, name: str, coro: Awaitable[T], timeout: float) -> T | None:
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            _logger.warning("%s source timed out after %.0fs", name, timeout)
        except SquadronError as exc:
            _logger.warning("%s source failed: %s", name, exc)
        return None

    async def _read_api(self, tag: str) -> LeaderboardLookup:
        return await find_squadron(
            self._transport,
            tag,
            cache=self._cache,
            url_template=self._config.leaderboard_url_template,
            limit=self._config.leaderboard_limit,
            max_pages=self._config.max_pages,
            timeout=self._config.api_timeout,
        )

    async def _read_web(self) -> ProfilePage | None:
        url = self._config.squadron_page_url
        if not url:
            return None
        return await fetch_profile(self._transport, url, timeout=self._config.web_timeout)

    async def fetch_score(self, tag: str | None = None) -> SourceReadings:
        """Fetch both sources for *tag* (default: the configured squadron)."""
        tag = tag or self._config.squadron_tag
        lookup, profile = await asyncio.gather(
            self._guarded("API", self._read_api(tag), self._config.api_timeout * _API_SCAN_TIMEOUT_FACTOR),
            self._guarded("Web", self._read_web(), self._config.web_timeout),
        )
        now = self._clock()
        api_value = lookup.points if lookup is not None else None
        web_value = profile.total_points if profile is not None else None
        _logger.debug("Readings for %s: api=%s web=%s", tag, api_value, web_value)
        return SourceReadings(
            api_value=api_value,
            api_timestamp=now if lookup is not None else None,
            web_value=web_value,
            web_timestamp=now if profile is not None else None,
            lookup=lookup,
            profile=profile,
        )
