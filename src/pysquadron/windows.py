"""Scoring window calculator.

Two fixed windows exist per UTC day:

* ``US``: 02:00 to 10:00 UTC
* ``EU``: 14:00 to 22:00 UTC

Boundaries are half-open (``start <= t < end``).  Outside both windows no
window is active.  Every function here is pure; naive datetimes are read
as UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import StrEnum

from pysquadron.models._base import ensure_utc


class WindowLabel(StrEnum):
    US = "US"
    EU = "EU"


# label -> (start hour, end hour), UTC
_WINDOW_HOURS: dict[WindowLabel, tuple[int, int]] = {
    WindowLabel.US: (2, 10),
    WindowLabel.EU: (14, 22),
}

KEY_SEPARATOR = "|"


@dataclass(frozen=True)
class ScoringWindow:
    """A recurring, fixed-duration scoring interval."""

    label: WindowLabel
    start: datetime
    end: datetime

    @property
    def key(self) -> str:
        """Unique, stable identifier ``"YYYY-MM-DD|LABEL"``."""
        return f"{self.start.date().isoformat()}{KEY_SEPARATOR}{self.label.value}"

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, moment: datetime) -> bool:
        return self.start <= ensure_utc(moment) < self.end

    @classmethod
    def for_day(cls, day: date, label: WindowLabel) -> ScoringWindow:
        start_hour, end_hour = _WINDOW_HOURS[label]
        return cls(
            label=label,
            start=datetime.combine(day, time(start_hour), tzinfo=UTC),
            end=datetime.combine(day, time(end_hour), tzinfo=UTC),
        )


def window_at(moment: datetime) -> ScoringWindow | None:
    """Return the window containing *moment*, or ``None`` between windows."""
    moment = ensure_utc(moment)
    for label in _WINDOW_HOURS:
        window = ScoringWindow.for_day(moment.date(), label)
        if window.contains(moment):
            return window
    return None


def parse_window_key(key: str | None) -> ScoringWindow | None:
    """Inverse of :attr:`ScoringWindow.key`; ``None`` for malformed keys."""
    if not key or KEY_SEPARATOR not in key:
        return None
    day_text, _, label_text = key.partition(KEY_SEPARATOR)
    try:
        day = date.fromisoformat(day_text)
        label = WindowLabel(label_text)
    except ValueError:
        return None
    return ScoringWindow.for_day(day, label)


def is_within_window(moment: datetime, window: ScoringWindow | None) -> bool:
    return window is not None and window.contains(moment)


def date_key(moment: datetime) -> str:
    """UTC calendar date of *moment* as ``YYYY-MM-DD``."""
    return ensure_utc(moment).date().isoformat()


def seconds_until_next_utc_midnight(moment: datetime) -> float:
    moment = ensure_utc(moment)
    next_midnight = datetime.combine(moment.date() + timedelta(days=1), time(0), tzinfo=UTC)
    return (next_midnight - moment).total_seconds()
