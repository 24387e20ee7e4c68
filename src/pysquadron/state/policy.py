"""Deterministic score reconciliation policy.

The two sources report the same total but refresh at different moments.
Each source gets a :class:`SourceTracker` recording when its value last
changed; the source that changed most recently is authoritative.  This
module contains no I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from pysquadron.state.events import ScoreSource

_logger = logging.getLogger(__name__)


def classify_delta(delta: int | None) -> tuple[int, int]:
    """Map a points delta to ``(won, lost)``.

    One observed delta counts as at most one win or one loss, however many
    matches it actually spans.
    """
    if delta is None or delta == 0:
        return 0, 0
    return (1, 0) if delta > 0 else (0, 1)


@dataclass
class SourceTracker:
    """Last value seen from one source and when it last changed."""

    source: ScoreSource
    last_value: int | None = None
    last_changed_at: datetime | None = None

    def seed(self, value: int | None) -> None:
        """Set a starting value without marking it as a change."""
        self.last_value = value
        self.last_changed_at = None

    def observe(self, value: int | None, at: datetime) -> bool:
        """Record a reading; returns ``True`` when the value changed."""
        if value is None or value == self.last_value:
            return False
        self.last_value = value
        self.last_changed_at = at
        return True


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of one reconciliation cycle."""

    value: int | None
    source: ScoreSource | None
    changed: bool
    api_value: int | None
    web_value: int | None

    @property
    def disagreement(self) -> bool:
        """Both sources answered this cycle and their answers differ."""
        return self.api_value is not None and self.web_value is not None and self.api_value != self.web_value


class Reconciler:
    """Pick the authoritative total from the API and web readings.

    Ties on change time go to the previously chosen source, or to the API
    when nothing was chosen yet.
    """

    def __init__(self) -> None:
        self.api = SourceTracker(ScoreSource.API)
        self.web = SourceTracker(ScoreSource.WEB)
        self._chosen: ScoreSource | None = None
        self._last_reported: int | None = None

    @property
    def chosen(self) -> ScoreSource | None:
        return self._chosen

    @property
    def last_reported(self) -> int | None:
        return self._last_reported

    def seed(self, total: int | None) -> None:
        """Initialise both trackers from the last persisted total."""
        if total is None:
            return
        self.api.seed(total)
        self.web.seed(total)
        self._last_reported = total

    def _pick(self) -> SourceTracker | None:
        api_ts = self.api.last_changed_at
        web_ts = self.web.last_changed_at
        if api_ts is None and web_ts is None:
            return None
        if web_ts is None or (api_ts is not None and api_ts > web_ts):
            return self.api
        if api_ts is None or web_ts > api_ts:
            return self.web
        # Same change time.
        return self.web if self._chosen == ScoreSource.WEB else self.api

    def reconcile(self, api_value: int | None, web_value: int | None, now: datetime) -> Reconciliation:
        self.api.observe(api_value, now)
        self.web.observe(web_value, now)

        tracker = self._pick()
        if tracker is None or tracker.last_value is None:
            return Reconciliation(
                value=self._last_reported,
                source=self._chosen,
                changed=False,
                api_value=api_value,
                web_value=web_value,
            )

        self._chosen = tracker.source
        changed = tracker.last_value != self._last_reported
        if changed:
            self._last_reported = tracker.last_value
        result = Reconciliation(
            value=tracker.last_value,
            source=tracker.source,
            changed=changed,
            api_value=api_value,
            web_value=web_value,
        )
        if changed and result.disagreement:
            _logger.info(
                "Source diff: api=%s web=%s (chosen=%s)",
                api_value,
                web_value,
                tracker.source,
            )
        return result
