from __future__ import annotations

import json
import random
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from pysquadron.config import TrackerConfig
from pysquadron.exceptions import SquadronTransportError
from pysquadron.models import Member, Snapshot
from pysquadron.state.event_log import EventLog
from pysquadron.state.events import EventType, MemberJoinEvent, MemberLeaveEvent, PointsChangeEvent, SourceDiffEvent
from pysquadron.state.session import SessionPhase
from pysquadron.state.snapshot_store import SnapshotStore
from pysquadron.tracker import DAILY_ARCHIVE_KEY, SquadronTracker

PAGE_URL = "https://site.test/squadron"
LB_URL = "https://lb.test/page/{page}"


@dataclass
class FakeSite:
    """Serves both sources from mutable in-memory state."""

    api_points: int = 500
    web_points: int = 500
    members: dict[str, int] = field(default_factory=lambda: {"Alpha": 300, "Bravo": 150, "Charlie": 50})
    api_down: bool = False
    web_down: bool = False
    calls: dict[str, int] = field(default_factory=dict)

    def _record(self, kind: str) -> None:
        self.calls[kind] = self.calls.get(kind, 0) + 1

    async def get_json(self, url: str, *, timeout: float = 15.0) -> Any:
        self._record("api")
        if self.api_down:
            raise SquadronTransportError(f"HTTP 502 from {url}", status_code=502, url=url)
        if not url.endswith("/1"):
            return {"status": "ok", "data": []}
        rows = [
            {"pos": 1, "tag": "[TOP]", "name": "Top", "astat": {"dr_era5_hist": 9000}},
            {"pos": 2, "tag": "[ABCD]", "name": "Our squadron", "astat": {"dr_era5_hist": self.api_points}},
            {"pos": 3, "tag": "[LOW]", "name": "Low", "astat": {"dr_era5_hist": 100}},
        ]
        return {"status": "ok", "data": rows}

    async def get_text(self, url: str, *, timeout: float = 15.0) -> str:
        self._record("web")
        if self.web_down:
            raise SquadronTransportError(f"HTTP 503 from {url}", status_code=503, url=url)
        rows = "".join(
            f"<tr><td>{i}</td><td>{name}</td><td>{score}</td><td>1</td><td>Private</td><td>01.01.2025</td></tr>"
            for i, (name, score) in enumerate(self.members.items(), start=1)
        )
        return f"""
        <div class="squadrons-counter">
          <div class="squadrons-counter__item"><div>Total points</div><div>{self.web_points}</div></div>
        </div>
        <div class="squadrons-members__table"><table>
          <thead><tr><th>num.</th><th>Player</th><th>Personal clan rating</th><th>Activity</th>
          <th>Role</th><th>Date of entry</th></tr></thead>
          <tbody>{rows}</tbody>
        </table></div>
        """


class RecordingReporter:
    def __init__(self) -> None:
        self.published: list[str] = []
        self.updated: dict[str, str] = {}

    async def publish_summary(self, text: str) -> None:
        self.published.append(text)

    async def update_summary(self, key: str, text: str) -> bool:
        self.updated[key] = text
        return True


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now += timedelta(minutes=minutes)


def _config(tmp_path: Path) -> TrackerConfig:
    return TrackerConfig(
        squadron_tag="ABCD",
        squadron_page_url=PAGE_URL,
        leaderboard_url_template=LB_URL,
        data_dir=tmp_path,
        leaderboard_limit=3,
        max_pages=5,
    )


def _tracker(tmp_path: Path, site: FakeSite, clock: _Clock, reporter: RecordingReporter) -> SquadronTracker:
    return SquadronTracker(
        _config(tmp_path),
        transport=site,
        reporter=reporter,
        clock=clock,
        rng=random.Random(7),
    )


@pytest.mark.asyncio
async def test_fresher_source_wins_and_disagreement_is_logged(tmp_path: Path) -> None:
    site = FakeSite()
    clock = _Clock(datetime(2026, 1, 5, 3, 0, tzinfo=UTC))
    reporter = RecordingReporter()

    async with _tracker(tmp_path, site, clock, reporter) as tracker:
        first = await tracker.start()
        assert first is not None
        assert first.snapshot.total_score == 500
        assert first.snapshot.rank == 2
        assert (first.snapshot.neighbor_score_above, first.snapshot.neighbor_score_below) == (9000, 100)
        assert tracker.sessions.phase is SessionPhase.ACTIVE

        # The API still reports 500 while the profile page already moved on.
        site.web_points = 510
        clock.advance(5)
        tracker.cache.clear()
        second = await tracker.capture_once()

    assert second is not None
    assert second.reconciliation.value == 510
    assert second.snapshot.total_score == 510

    events = EventLog(tmp_path / "squadron_events.json").read_all()
    diffs = [event for event in events if isinstance(event, SourceDiffEvent)]
    assert [(diff.api_value, diff.web_value, diff.chosen) for diff in diffs] == [(500, 510, "web")]
    changes = [event for event in events if isinstance(event, PointsChangeEvent)]
    assert [(change.delta, change.chosen_source, change.won_count) for change in changes] == [(10, "web", 1)]
    assert changes[0].window_key == "2026-01-05|US"

    assert any("Points change: 500 → 510 (+10)" in text for text in reporter.published)
    assert "+ 10 points" in reporter.updated["2026-01-05|US"]


@pytest.mark.asyncio
async def test_roster_transition_emits_one_event_per_member(tmp_path: Path) -> None:
    site = FakeSite()
    clock = _Clock(datetime(2026, 1, 5, 15, 0, tzinfo=UTC))

    async with _tracker(tmp_path, site, clock, RecordingReporter()) as tracker:
        await tracker.start()
        site.members = {"Alpha": 300, "Charlie": 50, "Delta": 0}
        clock.advance(5)
        tracker.cache.clear()
        outcome = await tracker.capture_once()

    assert outcome is not None
    assert outcome.persist.changed
    events = EventLog(tmp_path / "squadron_events.json").read_all()
    roster = [event for event in events if isinstance(event, (MemberJoinEvent, MemberLeaveEvent))]
    assert [(event.type, event.member.name) for event in roster] == [
        (EventType.MEMBER_LEAVE, "Bravo"),
        (EventType.MEMBER_JOIN, "Delta"),
    ]
    assert all(event.window_key == "2026-01-05|EU" for event in roster)


@pytest.mark.asyncio
async def test_unchanged_capture_records_nothing(tmp_path: Path) -> None:
    site = FakeSite()
    clock = _Clock(datetime(2026, 1, 5, 3, 0, tzinfo=UTC))

    async with _tracker(tmp_path, site, clock, RecordingReporter()) as tracker:
        await tracker.start()
        before = (tmp_path / "squadron_events.json").read_text(encoding="utf-8")
        clock.advance(1)
        tracker.cache.clear()
        outcome = await tracker.capture_once()

    assert outcome is not None
    assert not outcome.persist.changed
    assert (tmp_path / "squadron_events.json").read_text(encoding="utf-8") == before


@pytest.mark.asyncio
async def test_stale_data_is_archived_before_first_capture(tmp_path: Path) -> None:
    yesterday = datetime(2026, 1, 4, 20, 0, tzinfo=UTC)
    SnapshotStore(tmp_path / "squadron_data.json").persist_if_changed(
        Snapshot(timestamp=yesterday, roster=[Member(name="Alpha", score=280)], total_score=400)
    )
    site = FakeSite()
    clock = _Clock(datetime(2026, 1, 5, 0, 30, tzinfo=UTC))

    async with _tracker(tmp_path, site, clock, RecordingReporter()) as tracker:
        outcome = await tracker.start()

    assert outcome is not None
    archived = json.loads((tmp_path / "logs" / "squadron_data-2026-01-04.json").read_text(encoding="utf-8"))
    assert archived["totalScore"] == 400
    live = json.loads((tmp_path / "squadron_data.json").read_text(encoding="utf-8"))
    assert live["totalScore"] == 500


@pytest.mark.asyncio
async def test_failed_profile_keeps_previous_roster(tmp_path: Path) -> None:
    site = FakeSite()
    clock = _Clock(datetime(2026, 1, 5, 3, 0, tzinfo=UTC))

    async with _tracker(tmp_path, site, clock, RecordingReporter()) as tracker:
        await tracker.start()
        site.web_down = True
        site.api_points = 520
        clock.advance(5)
        tracker.cache.clear()
        outcome = await tracker.capture_once()

    assert outcome is not None
    assert outcome.snapshot.total_score == 520
    assert not outcome.snapshot.members_captured
    assert [member.name for member in outcome.snapshot.roster] == ["Alpha", "Bravo", "Charlie"]
    assert outcome.snapshot.sources_used == ["api"]
    events = EventLog(tmp_path / "squadron_events.json").read_all()
    assert not any(event.type == EventType.MEMBER_LEAVE for event in events)


@pytest.mark.asyncio
async def test_both_sources_failing_leaves_no_trace(tmp_path: Path) -> None:
    site = FakeSite(api_down=True, web_down=True)
    clock = _Clock(datetime(2026, 1, 5, 3, 0, tzinfo=UTC))

    async with _tracker(tmp_path, site, clock, RecordingReporter()) as tracker:
        outcome = await tracker.start()

    assert outcome is None
    assert site.calls == {"api": 1, "web": 1}
    assert not (tmp_path / "squadron_data.json").exists()
    assert not (tmp_path / "squadron_events.json").exists()


def test_poll_delay_is_jittered_within_bounds(tmp_path: Path) -> None:
    tracker = SquadronTracker(
        TrackerConfig(squadron_tag="ABCD", data_dir=tmp_path, poll_interval=60.0, poll_jitter_pct=0.15),
        transport=FakeSite(),
        rng=random.Random(1),
    )
    delays = [tracker.next_delay() for _ in range(50)]
    assert all(51.0 <= delay <= 69.0 for delay in delays)
    assert len(set(delays)) > 1


@pytest.mark.asyncio
async def test_daily_archive_copies_live_file_and_rearms(tmp_path: Path) -> None:
    site = FakeSite()
    clock = _Clock(datetime(2026, 1, 5, 22, 30, tzinfo=UTC))

    async with _tracker(tmp_path, site, clock, RecordingReporter()) as tracker:
        await tracker.start()
        assert tracker.scheduler.is_scheduled(DAILY_ARCHIVE_KEY)

        # Midnight has passed; the archive is named after the data's date.
        clock.advance(95)
        await tracker._archive_daily()

        archived = tmp_path / "logs" / "squadron_data-2026-01-05.json"
        assert json.loads(archived.read_text(encoding="utf-8"))["totalScore"] == 500
        assert tracker.scheduler.is_scheduled(DAILY_ARCHIVE_KEY)
