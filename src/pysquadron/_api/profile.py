"""Squadron profile page reader.

The profile page is server-rendered HTML.  It carries the squadron's total
points in a counter block and the roster either as a ``<table>`` or, on the
newer layout, as a flat grid of six cells per member.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Tag
from pydantic import Field

from pysquadron._constants import DEFAULT_TIMEOUT
from pysquadron._transport import Transport
from pysquadron.exceptions import SquadronParseError
from pysquadron.models._base import SquadronBaseModel, to_num
from pysquadron.models.member import Member

_logger = logging.getLogger(__name__)

_ERROR_PAGE_RE = re.compile(r"(cloudflare|just a moment|error code|404 not found|checking your browser)", re.IGNORECASE)
_TOTAL_LABEL_RE = re.compile(r"total\s*points", re.IGNORECASE)
_TOTAL_AFTER_LABEL_RE = re.compile(r"total\s*points[^\d]*([\d\s,.]+)", re.IGNORECASE)
_NUMBER_3_RE = re.compile(r"([\d\s,.]{3,})")
_NUMBER_4_RE = re.compile(r"([\d\s,.]{4,})")
_POINTS_WORD_RE = re.compile(r"points?", re.IGNORECASE)
_PLACE_RE = re.compile(r"place[^\d]*(\d+)", re.IGNORECASE)

_COUNTER_SELECTOR = "div.squadrons-counter__item:nth-child(1) > div:nth-child(2)"
_TABLE_SELECTOR = "div.squadrons-members__table table"
_GRID_SELECTOR = "div.squadrons-profile__body.squadrons-members div.squadrons-members__grid-item"
_PLAYER_LINK_SELECTOR = 'a[href*="userinfo/?nick="]'

GRID_HEADERS = ("num.", "Player", "Personal clan rating", "Activity", "Role", "Date of entry")
_GRID_WIDTH = len(GRID_HEADERS)


class ProfilePage(SquadronBaseModel):
    """Values read from one squadron profile page."""

    total_points: int | None = None
    place: int | None = None
    members: list[Member] = Field(default_factory=list)


def _norm(text: str) -> str:
    return "".join(text.split()).lower()


def _digits(text: str) -> int | None:
    cleaned = re.sub(r"[^\d]", "", text or "")
    return int(cleaned) if cleaned else None


def looks_like_error_page(html: str) -> bool:
    """``True`` for CDN challenge and error pages served with status 200."""
    return bool(_ERROR_PAGE_RE.search(html or ""))


# ------------------------------------------------------------------
# Total points and place
# ------------------------------------------------------------------


def _total_from_counter(soup: BeautifulSoup) -> int | None:
    node = soup.select_one(_COUNTER_SELECTOR)
    if node is None:
        return None
    value = _digits(node.get_text(strip=True))
    return value if value else None


def _total_from_label(soup: BeautifulSoup) -> int | None:
    for text_node in soup.find_all(string=_TOTAL_LABEL_RE):
        element = text_node.parent
        if not isinstance(element, Tag):
            continue
        match = _TOTAL_AFTER_LABEL_RE.search(element.get_text(" ", strip=True))
        if match:
            value = _digits(match.group(1))
            if value is not None:
                return value
        neighbours: list[Tag] = [child for child in element.children if isinstance(child, Tag)]
        sibling = element.find_next_sibling()
        if sibling is not None:
            neighbours.append(sibling)
        for neighbour in neighbours:
            match = _NUMBER_3_RE.search(neighbour.get_text(" ", strip=True))
            if match:
                value = _digits(match.group(1))
                if value is not None:
                    return value
    return None


def _total_from_heuristic(soup: BeautifulSoup) -> int | None:
    for text_node in soup.find_all(string=_POINTS_WORD_RE):
        element = text_node.parent
        if not isinstance(element, Tag) or element.name in ("script", "style"):
            continue
        match = _NUMBER_4_RE.search(element.get_text(" ", strip=True))
        if match:
            value = _digits(match.group(1))
            if value:
                return value
    return None


def parse_total_points(html: str) -> tuple[int | None, int | None]:
    """Extract ``(total_points, place)`` from a profile page.

    The total is taken from the counter block, then from text anchored on a
    "Total points" label, then from the first number of four or more digits
    next to the word "points".
    """
    soup = BeautifulSoup(html, "html.parser")
    total = _total_from_counter(soup)
    if total is None:
        total = _total_from_label(soup)
    if total is None:
        total = _total_from_heuristic(soup)

    place: int | None = None
    match = _PLACE_RE.search(soup.get_text(" ", strip=True))
    if match:
        place = int(match.group(1))
    return total, place


# ------------------------------------------------------------------
# Roster
# ------------------------------------------------------------------


def _members_from_table(soup: BeautifulSoup) -> list[Member]:
    table = soup.select_one(_TABLE_SELECTOR)
    if table is None:
        return []
    headers = [th.get_text(strip=True) for th in table.select("thead th")]
    members: list[Member] = []
    for tr in table.select("tbody tr"):
        cells = [cell for cell in tr.children if isinstance(cell, Tag)]
        row = {
            (headers[i] if i < len(headers) else f"col_{i}"): cell.get_text(strip=True)
            for i, cell in enumerate(cells)
        }
        member = Member.from_row(row)
        if member is not None:
            members.append(member)
    _logger.debug("Profile table: headers=%d rows=%d", len(headers), len(members))
    return members


def _player_name(cell: Tag) -> str:
    link = cell.select_one(_PLAYER_LINK_SELECTOR)
    if link is None:
        return cell.get_text(strip=True)
    name = link.get_text(strip=True)
    if not name:
        href = str(link.get("href") or "")
        name = href.split("nick=", 1)[-1].strip()
    return name


def _members_from_grid(soup: BeautifulSoup) -> list[Member]:
    cells = soup.select(_GRID_SELECTOR)
    start = 0
    if len(cells) >= _GRID_WIDTH:
        first_row = [_norm(cell.get_text(strip=True)) for cell in cells[:_GRID_WIDTH]]
        if first_row == [_norm(header) for header in GRID_HEADERS]:
            start = _GRID_WIDTH

    members: list[Member] = []
    for i in range(start, len(cells) - _GRID_WIDTH + 1, _GRID_WIDTH):
        group = cells[i : i + _GRID_WIDTH]
        row = dict(zip(GRID_HEADERS, (cell.get_text(strip=True) for cell in group), strict=True))
        row["Player"] = _player_name(group[1])
        if not row["num."].strip():
            row["num."] = str(len(members) + 1)
        row["Personal clan rating"] = str(to_num(row["Personal clan rating"]))
        member = Member.from_row(row)
        if member is not None:
            members.append(member)
    _logger.debug("Profile grid: cells=%d members=%d", len(cells), len(members))
    return members


def parse_members(html: str) -> list[Member]:
    """Parse the roster from the members table, falling back to the grid layout."""
    soup = BeautifulSoup(html, "html.parser")
    return _members_from_table(soup) or _members_from_grid(soup)


async def fetch_profile(
    transport: Transport,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProfilePage:
    """Fetch and parse the squadron profile page.

    Raises
    ------
    SquadronTransportError
        On network failure or non-200 response.
    SquadronParseError
        When the page looks like an error or bot-challenge page.
    """
    html = await transport.get_text(url, timeout=timeout)
    if looks_like_error_page(html):
        raise SquadronParseError(f"Profile page {url} looks like an error page")
    total, place = parse_total_points(html)
    members = parse_members(html)
    _logger.debug("Profile %s: total=%s place=%s members=%d", url, total, place, len(members))
    return ProfilePage(total_points=total, place=place, members=members)
