from __future__ import annotations

from typing import Any

import pytest

from pysquadron._api.profile import fetch_profile, looks_like_error_page, parse_members, parse_total_points
from pysquadron.exceptions import SquadronParseError

COUNTER_AND_TABLE_PAGE = """
<html><body>
<div class="squadrons-counter">
  <div class="squadrons-counter__item">
    <div class="squadrons-counter__title">Total points</div>
    <div class="squadrons-counter__value">12 345</div>
  </div>
  <div class="squadrons-counter__item">
    <div class="squadrons-counter__title">Members</div>
    <div class="squadrons-counter__value">3</div>
  </div>
</div>
<div class="squadrons-info">Place: 7</div>
<div class="squadrons-members__table">
  <table>
    <thead><tr>
      <th>num.</th><th>Player</th><th>Personal clan rating</th><th>Activity</th><th>Role</th><th>Date of entry</th>
    </tr></thead>
    <tbody>
      <tr><td>1</td><td>Alpha</td><td>2 100</td><td>340</td><td>Commander</td><td>01.01.2024</td></tr>
      <tr><td>2</td><td>Bravo</td><td>1 050</td><td>12</td><td>Private</td><td>15.06.2025</td></tr>
      <tr><td>3</td><td></td><td>5</td><td>0</td><td>Private</td><td>15.06.2025</td></tr>
    </tbody>
  </table>
</div>
</body></html>
"""

GRID_PAGE = """
<html><body>
<div class="squadrons-profile__body squadrons-members">
  <div class="squadrons-members__grid-item">num.</div>
  <div class="squadrons-members__grid-item">Player</div>
  <div class="squadrons-members__grid-item">Personal clan rating</div>
  <div class="squadrons-members__grid-item">Activity</div>
  <div class="squadrons-members__grid-item">Role</div>
  <div class="squadrons-members__grid-item">Date of entry</div>

  <div class="squadrons-members__grid-item">1</div>
  <div class="squadrons-members__grid-item"><a href="/en/community/userinfo/?nick=Alpha">Alpha</a></div>
  <div class="squadrons-members__grid-item">1 234</div>
  <div class="squadrons-members__grid-item">56</div>
  <div class="squadrons-members__grid-item">Officer</div>
  <div class="squadrons-members__grid-item">01.02.2025</div>

  <div class="squadrons-members__grid-item"></div>
  <div class="squadrons-members__grid-item"><a href="/en/community/userinfo/?nick=Bravo"></a></div>
  <div class="squadrons-members__grid-item">987</div>
  <div class="squadrons-members__grid-item">-</div>
  <div class="squadrons-members__grid-item">Private</div>
  <div class="squadrons-members__grid-item">03.03.2025</div>
</div>
</body></html>
"""


def test_total_and_place_from_counter_block() -> None:
    assert parse_total_points(COUNTER_AND_TABLE_PAGE) == (12345, 7)


def test_total_anchored_on_label() -> None:
    html = "<div class='stats'><span>Total points</span><span>23,456</span></div>"
    assert parse_total_points(html) == (23456, None)


def test_total_from_label_text_itself() -> None:
    html = "<p>Squadron total points: 8 765</p>"
    assert parse_total_points(html)[0] == 8765


def test_total_heuristic_needs_four_digits() -> None:
    assert parse_total_points("<div>Rating 45 678 points</div>")[0] == 45678
    assert parse_total_points("<div>Only 7 points here</div>")[0] is None


def test_members_from_table() -> None:
    members = parse_members(COUNTER_AND_TABLE_PAGE)

    assert [member.name for member in members] == ["Alpha", "Bravo"]
    alpha = members[0]
    assert alpha.score == 2100
    assert alpha.role == "Commander"
    assert alpha.join_date == "01.01.2024"
    assert alpha.activity == 340
    assert alpha.row_number == 1


def test_members_from_grid_layout() -> None:
    members = parse_members(GRID_PAGE)

    assert [member.name for member in members] == ["Alpha", "Bravo"]
    alpha, bravo = members
    assert (alpha.score, alpha.role, alpha.join_date, alpha.activity) == (1234, "Officer", "01.02.2025", 56)
    assert bravo.score == 987
    assert bravo.activity is None
    assert bravo.row_number == 2


def test_page_without_roster_yields_no_members() -> None:
    assert parse_members("<html><body><p>Maintenance</p></body></html>") == []


@pytest.mark.parametrize(
    "html",
    [
        "<title>Just a moment...</title>",
        "<h1>Error code 1020</h1>",
        "<p>Checking your browser before accessing</p>",
    ],
)
def test_error_pages_are_detected(html: str) -> None:
    assert looks_like_error_page(html)


class _HtmlTransport:
    def __init__(self, html: str) -> None:
        self.html = html
        self.urls: list[str] = []

    async def get_json(self, url: str, *, timeout: float = 15.0) -> Any:  # pragma: no cover
        raise AssertionError("unexpected JSON request")

    async def get_text(self, url: str, *, timeout: float = 15.0) -> str:
        self.urls.append(url)
        return self.html


@pytest.mark.asyncio
async def test_fetch_profile_parses_page() -> None:
    transport = _HtmlTransport(COUNTER_AND_TABLE_PAGE)
    page = await fetch_profile(transport, "https://site.test/squadron")

    assert transport.urls == ["https://site.test/squadron"]
    assert page.total_points == 12345
    assert page.place == 7
    assert len(page.members) == 2


@pytest.mark.asyncio
async def test_fetch_profile_rejects_error_page() -> None:
    with pytest.raises(SquadronParseError):
        await fetch_profile(_HtmlTransport("<title>Just a moment...</title>"), "https://site.test/squadron")
