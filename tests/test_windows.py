from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from pysquadron.windows import (
    ScoringWindow,
    WindowLabel,
    date_key,
    is_within_window,
    parse_window_key,
    seconds_until_next_utc_midnight,
    window_at,
)


def _at(hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2026, 3, 14, hour, minute, second, tzinfo=UTC)


@pytest.mark.parametrize(
    ("moment", "expected"),
    [
        (_at(1, 59, 59), None),
        (_at(2), "2026-03-14|US"),
        (_at(9, 59, 59), "2026-03-14|US"),
        (_at(10), None),
        (_at(13, 59), None),
        (_at(14), "2026-03-14|EU"),
        (_at(21, 59, 59), "2026-03-14|EU"),
        (_at(22), None),
        (_at(23, 30), None),
    ],
)
def test_window_boundaries_are_half_open(moment: datetime, expected: str | None) -> None:
    window = window_at(moment)
    assert (window.key if window is not None else None) == expected


def test_naive_datetimes_are_read_as_utc() -> None:
    window = window_at(datetime(2026, 3, 14, 3, 0))
    assert window is not None
    assert window.label is WindowLabel.US


def test_aware_datetimes_are_converted_to_utc() -> None:
    # 16:00 at UTC+2 is 14:00 UTC.
    moment = datetime(2026, 3, 14, 16, 0, tzinfo=timezone(timedelta(hours=2)))
    window = window_at(moment)
    assert window is not None
    assert window.key == "2026-03-14|EU"


def test_key_round_trip() -> None:
    window = ScoringWindow.for_day(date(2026, 3, 14), WindowLabel.EU)
    assert window.key == "2026-03-14|EU"
    assert window.duration == timedelta(hours=8)
    assert parse_window_key(window.key) == window


@pytest.mark.parametrize("key", [None, "", "2026-03-14", "2026-03-14|ASIA", "not-a-date|US"])
def test_parse_window_key_rejects_malformed_keys(key: str | None) -> None:
    assert parse_window_key(key) is None


def test_is_within_window() -> None:
    window = ScoringWindow.for_day(date(2026, 3, 14), WindowLabel.US)
    assert is_within_window(_at(5), window)
    assert not is_within_window(_at(10), window)
    assert not is_within_window(_at(5), None)


def test_date_key_and_midnight() -> None:
    assert date_key(_at(23, 59)) == "2026-03-14"
    assert seconds_until_next_utc_midnight(_at(23, 0)) == 3600.0
