from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from pysquadron.models import Member, Snapshot
from pysquadron.state import snapshot_store
from pysquadron.state.snapshot_store import SnapshotStore, diff_snapshots

_NOW = datetime(2026, 1, 5, 3, 0, tzinfo=UTC)


def _snapshot(names: dict[str, int], total: int | None, *, ts: datetime = _NOW) -> Snapshot:
    return Snapshot(
        timestamp=ts,
        roster=[Member(name=name, score=score, role="Private", join_date="01.01.2025") for name, score in names.items()],
        total_score=total,
    )


def _store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "squadron_data.json", clock=lambda: _NOW)


def test_first_persist_writes_camel_case_document(tmp_path: Path) -> None:
    store = _store(tmp_path)
    result = store.persist_if_changed(_snapshot({"A": 10}, 1000))

    assert result.changed
    assert result.previous is None
    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["totalScore"] == 1000
    assert document["roster"][0]["joinDate"] == "01.01.2025"
    assert document["timestamp"].startswith("2026-01-05T03:00:00")


def test_identical_content_is_not_rewritten(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    store.persist_if_changed(_snapshot({"A": 10, "B": 5}, 1000))

    def _fail(*_args: Any, **_kwargs: Any) -> None:
        raise AssertionError("snapshot file must not be rewritten")

    monkeypatch.setattr(snapshot_store, "write_json_atomic", _fail)
    later = _snapshot({"B": 5, "A": 10}, 1000, ts=datetime(2026, 1, 5, 3, 5, tzinfo=UTC))
    result = store.persist_if_changed(later)

    assert not result.changed
    assert not result.rejected


def test_volatile_columns_do_not_count_as_changes(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.persist_if_changed(_snapshot({"A": 10}, 1000))

    busier = Snapshot(
        timestamp=_NOW,
        roster=[Member(name="A", score=10, role="Private", join_date="01.01.2025", activity=42, row_number=1)],
        total_score=1000,
        rank=7,
    )
    assert not store.persist_if_changed(busier).changed


def test_force_writes_unchanged_content(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.persist_if_changed(_snapshot({"A": 10}, 1000))
    result = store.persist_if_changed(_snapshot({"A": 10}, 1000), force=True)
    assert result.changed
    assert result.diff is not None
    assert not result.diff.is_meaningful


def test_empty_capture_is_rejected_and_keeps_good_data(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.persist_if_changed(_snapshot({"A": 10}, 1000))
    before = store.path.read_text(encoding="utf-8")

    result = store.persist_if_changed(Snapshot(timestamp=_NOW), force=True)

    assert result.rejected
    assert not result.changed
    assert store.path.read_text(encoding="utf-8") == before


def test_empty_capture_never_creates_the_file(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.persist_if_changed(Snapshot(timestamp=_NOW)).rejected
    assert not store.path.exists()


def test_read_last_survives_restart_and_corruption(tmp_path: Path) -> None:
    _store(tmp_path).persist_if_changed(_snapshot({"A": 10}, 1000))

    reloaded = _store(tmp_path).read_last()
    assert reloaded is not None
    assert reloaded.total_score == 1000
    assert reloaded.roster[0].name == "A"

    (tmp_path / "squadron_data.json").write_text("{not json", encoding="utf-8")
    assert _store(tmp_path).read_last() is None


def test_roster_diff_reports_only_real_joins_and_leaves() -> None:
    previous = _snapshot({"A": 100, "B": 50, "C": 30}, 1000)
    current = _snapshot({"A": 120, "C": 30, "D": 0}, 1020)

    diff = diff_snapshots(previous, current)

    assert [member.name for member in diff.removed] == ["B"]
    assert [member.name for member in diff.added] == ["D"]
    assert [(change.player, change.delta) for change in diff.increased] == [("A", 20)]
    assert diff.decreased == []
    assert diff.points_delta == 20
    assert diff.is_meaningful


def test_points_delta_needs_both_totals() -> None:
    diff = diff_snapshots(_snapshot({"A": 1}, None), _snapshot({"A": 1}, 1000))
    assert diff.points_delta is None
    assert not diff.is_meaningful


def test_archive_never_overwrites(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.archive("2026-01-04") is None

    store.persist_if_changed(_snapshot({"A": 10}, 1000))
    first = store.archive("2026-01-04")
    second = store.archive("2026-01-04")

    assert first is not None and second is not None
    assert first.name == "squadron_data-2026-01-04.json"
    assert second.name.startswith("squadron_data-2026-01-04-")
    assert second != first
    assert sorted(path.name for path in (tmp_path / "logs").iterdir()) == sorted([first.name, second.name])
    assert json.loads(first.read_text(encoding="utf-8"))["totalScore"] == 1000


def test_archive_if_stale_uses_the_data_date(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.persist_if_changed(_snapshot({"A": 10}, 1000, ts=datetime(2026, 1, 4, 21, 30, tzinfo=UTC)))

    assert store.data_date_key() == "2026-01-04"
    archived = store.archive_if_stale(_NOW)

    assert archived is not None
    assert archived.name == "squadron_data-2026-01-04.json"


def test_archive_if_stale_skips_current_data(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.persist_if_changed(_snapshot({"A": 10}, 1000))
    assert store.archive_if_stale(_NOW) is None
    assert not (tmp_path / "logs").exists()
