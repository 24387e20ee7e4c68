"""Paginated leaderboard listing reader.

Each page is a JSON document of the form::

    {"status": "ok", "data": [{"pos": 0, "tag": "[ABC]", "tagl": "abc",
                               "name": "...", "astat": {"dr_era5_hist": 1234}}]}

Pages are memoized in the TTL cache under ``leaderboard:page:<n>``.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pysquadron._cache import TTLCache
from pysquadron._constants import DEFAULT_LEADERBOARD_LIMIT, DEFAULT_MAX_PAGES, DEFAULT_TIMEOUT, LEADERBOARD_URL_TEMPLATE
from pysquadron._transport import Transport
from pysquadron.exceptions import SquadronError, SquadronParseError
from pysquadron.models.leaderboard import LeaderboardEntry, LeaderboardLookup, normalize_tag

_logger = logging.getLogger(__name__)

PageCache = TTLCache[list[LeaderboardEntry]]


def page_cache_key(page: int) -> str:
    return f"leaderboard:page:{page}"


def _parse_page(payload: Any, url: str) -> list[LeaderboardEntry]:
    if not isinstance(payload, dict) or payload.get("status") != "ok":
        status = payload.get("status") if isinstance(payload, dict) else type(payload).__name__
        raise SquadronParseError(f"Leaderboard page {url} returned status={status!r}")
    rows = payload.get("data")
    if not isinstance(rows, list):
        return []
    try:
        return [LeaderboardEntry.model_validate(row) for row in rows if isinstance(row, dict)]
    except ValidationError as exc:
        raise SquadronParseError(f"Leaderboard page {url} has malformed rows: {exc}") from exc


async def fetch_page(
    transport: Transport,
    page: int,
    *,
    cache: PageCache | None = None,
    url_template: str = LEADERBOARD_URL_TEMPLATE,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[LeaderboardEntry]:
    """Fetch one listing page (1-based), going through *cache* when given.

    Raises
    ------
    SquadronTransportError
        On network failure, non-200 or invalid JSON.
    SquadronParseError
        When the page does not report ``status == "ok"``.
    """
    url = url_template.format(page=page)

    async def _load() -> list[LeaderboardEntry]:
        payload = await transport.get_json(url, timeout=timeout)
        entries = _parse_page(payload, url)
        _logger.debug("Leaderboard page %d: %d entries", page, len(entries))
        return entries

    if cache is None:
        return await _load()
    result = await cache.get_or_fetch(page_cache_key(page), _load)
    return result if result is not None else []


async def find_squadron(
    transport: Transport,
    tag: str,
    *,
    cache: PageCache | None = None,
    url_template: str = LEADERBOARD_URL_TEMPLATE,
    limit: int = DEFAULT_LEADERBOARD_LIMIT,
    max_pages: int = DEFAULT_MAX_PAGES,
    timeout: float = DEFAULT_TIMEOUT,
) -> LeaderboardLookup:
    """Scan the listing for *tag*, collecting the top *limit* entries on the way.

    The scan stops once the squadron is found and the top list is full, when a
    page comes back empty, or after *max_pages* pages.  The neighbor above may
    come from the previous page; the neighbor below may require reading the
    next page.

    A failure on the first page propagates; later failures end the scan with
    what was collected so far.
    """
    needle = normalize_tag(tag)
    top: list[LeaderboardEntry] = []
    previous: list[LeaderboardEntry] = []
    found: LeaderboardEntry | None = None
    found_page: int | None = None
    above: int | None = None
    below: int | None = None
    pages_read = 0

    for page in range(1, max_pages + 1):
        try:
            entries = await fetch_page(transport, page, cache=cache, url_template=url_template, timeout=timeout)
        except SquadronError:
            if page == 1:
                raise
            _logger.debug("Leaderboard scan stopped at page %d", page, exc_info=True)
            break
        pages_read += 1
        if not entries:
            break

        if len(top) < limit:
            top.extend(entries[: limit - len(top)])

        if found is None and needle:
            idx = next((i for i, entry in enumerate(entries) if entry.matches(needle)), None)
            if idx is not None:
                found = entries[idx]
                found_page = page
                if idx > 0:
                    above = entries[idx - 1].points
                elif previous:
                    above = previous[-1].points
                if idx + 1 < len(entries):
                    below = entries[idx + 1].points
                else:
                    below = await _first_points_of(
                        transport, page + 1, cache=cache, url_template=url_template, timeout=timeout
                    )
                _logger.debug("Found squadron %s on page %d at pos %s", tag, page, found.pos)

        if len(top) >= limit and (found is not None or not needle):
            break
        previous = entries
    else:
        if needle and found is None:
            _logger.info("Squadron %s not found within %d leaderboard pages", tag, max_pages)

    return LeaderboardLookup(
        top=top,
        entry=found,
        page=found_page,
        points_above=above,
        points_below=below,
        pages_read=pages_read,
    )


async def _first_points_of(
    transport: Transport,
    page: int,
    *,
    cache: PageCache | None,
    url_template: str,
    timeout: float,
) -> int | None:
    try:
        entries = await fetch_page(transport, page, cache=cache, url_template=url_template, timeout=timeout)
    except SquadronError:
        _logger.debug("Could not read page %d for the neighbor below", page, exc_info=True)
        return None
    return entries[0].points if entries else None
