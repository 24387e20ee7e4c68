"""Append-only JSON event log.

The log file holds a single document ``{"events": [...]}``.  Every read
is a full re-read; every append rewrites the file atomically.  A missing
or corrupt file reads as an empty log.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pysquadron.state._files import read_json, write_json_atomic
from pysquadron.state.events import EventType, TrackerEvent, dump_event, parse_event
from pysquadron.windows import parse_window_key

_logger = logging.getLogger(__name__)


class EventLog:
    """File-backed, append-only store of :data:`TrackerEvent` records."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_raw(self) -> list[Any]:
        if not self._path.exists():
            return []
        try:
            document = read_json(self._path)
        except (OSError, json.JSONDecodeError):
            _logger.warning("Event log %s is unreadable; treating it as empty", self._path, exc_info=True)
            return []
        events = document.get("events") if isinstance(document, dict) else None
        if not isinstance(events, list):
            _logger.warning("Event log %s has no events array; treating it as empty", self._path)
            return []
        return events

    def read_all(self) -> list[TrackerEvent]:
        """All valid events ordered by ``ts`` (stable for equal timestamps)."""
        parsed: list[TrackerEvent] = []
        skipped = 0
        for raw in self._read_raw():
            try:
                parsed.append(parse_event(raw))
            except ValidationError:
                skipped += 1
        if skipped:
            _logger.debug("Skipped %d unrecognised records in %s", skipped, self._path)
        return sorted(parsed, key=lambda event: event.ts)

    def iter_events(self) -> Iterator[TrackerEvent]:
        yield from self.read_all()

    def append(self, event: TrackerEvent) -> None:
        """Append *event*; a corrupt file is replaced by a fresh log."""
        events = self._read_raw()
        events.append(dump_event(event))
        write_json_atomic(self._path, {"events": events})
        _logger.debug("Appended %s event (window=%s)", event.type, event.window_key)

    def events_for_window(self, window_key: str) -> list[TrackerEvent]:
        """Events tagged with *window_key*.

        Records written without a key are matched by timestamp instead.
        """
        window = parse_window_key(window_key)
        selected: list[TrackerEvent] = []
        for event in self.read_all():
            if event.window_key is not None:
                if event.window_key == window_key:
                    selected.append(event)
            elif window is not None and window.contains(event.ts):
                selected.append(event)
        return selected

    def has_session_start(self, window_key: str) -> bool:
        return any(
            event.type == EventType.SESSION_START and event.window_key == window_key for event in self.read_all()
        )
