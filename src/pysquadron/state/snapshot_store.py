"""Snapshot persistence, change detection and daily archival."""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from pysquadron._constants import ARCHIVE_DIR
from pysquadron.models._base import utcnow
from pysquadron.models.member import Member
from pysquadron.models.snapshot import Snapshot
from pysquadron.state._files import read_json, write_json_atomic
from pysquadron.state.events import MemberScoreChange
from pysquadron.windows import date_key as utc_date_key

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotDiff:
    """Differences between two consecutive snapshots."""

    added: list[Member] = field(default_factory=list)
    removed: list[Member] = field(default_factory=list)
    increased: list[MemberScoreChange] = field(default_factory=list)
    decreased: list[MemberScoreChange] = field(default_factory=list)
    points_delta: int | None = None

    @property
    def has_roster_change(self) -> bool:
        return bool(self.added or self.removed)

    @property
    def is_meaningful(self) -> bool:
        return bool(self.points_delta) or self.has_roster_change


@dataclass(frozen=True)
class PersistResult:
    changed: bool
    rejected: bool = False
    diff: SnapshotDiff | None = None
    previous: Snapshot | None = None


def diff_snapshots(previous: Snapshot | None, current: Snapshot) -> SnapshotDiff:
    """Compare rosters by member name and totals between two snapshots.

    ``points_delta`` is ``None`` unless both snapshots carry a total.
    """
    prev_members = previous.members_by_name() if previous is not None else {}
    cur_members = current.members_by_name()

    removed = [member for name, member in prev_members.items() if name not in cur_members]
    added = [member for name, member in cur_members.items() if name not in prev_members]

    increased: list[MemberScoreChange] = []
    decreased: list[MemberScoreChange] = []
    for name, before in prev_members.items():
        after = cur_members.get(name)
        if after is None or after.score == before.score:
            continue
        change = MemberScoreChange(
            player=name,
            from_score=before.score,
            to_score=after.score,
            delta=after.score - before.score,
        )
        (increased if change.delta > 0 else decreased).append(change)

    points_delta: int | None = None
    if previous is not None and previous.total_score is not None and current.total_score is not None:
        points_delta = current.total_score - previous.total_score

    return SnapshotDiff(
        added=added,
        removed=removed,
        increased=increased,
        decreased=decreased,
        points_delta=points_delta,
    )


class SnapshotStore:
    """Owns the live snapshot file and its dated archive copies.

    Parameters
    ----------
    path : Path
        Live snapshot file (``squadron_data.json``).
    archive_dir : Path, optional
        Directory for archive copies; defaults to ``logs`` beside *path*.
    clock : callable
        Returns the current UTC datetime.  Injectable for tests.
    """

    def __init__(
        self,
        path: Path,
        *,
        archive_dir: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._path = Path(path)
        self._archive_dir = Path(archive_dir) if archive_dir is not None else self._path.parent / ARCHIVE_DIR
        self._clock = clock
        self._last: Snapshot | None = None
        self._last_signature: str | None = None
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def archive_dir(self) -> Path:
        return self._archive_dir

    def _load(self) -> Snapshot | None:
        if not self._path.exists():
            return None
        try:
            document = read_json(self._path)
        except (OSError, json.JSONDecodeError):
            _logger.warning("Snapshot file %s is unreadable", self._path, exc_info=True)
            return None
        if not isinstance(document, dict) or not document:
            return None
        try:
            return Snapshot.model_validate(document)
        except ValidationError:
            _logger.warning("Snapshot file %s does not hold a valid snapshot", self._path, exc_info=True)
            return None

    def read_last(self) -> Snapshot | None:
        """Return the last persisted snapshot, or ``None`` when there is none."""
        if not self._loaded:
            self._last = self._load()
            self._last_signature = self._last.signature() if self._last is not None else None
            self._loaded = True
        return self._last

    def persist_if_changed(self, snapshot: Snapshot, *, force: bool = False) -> PersistResult:
        """Write *snapshot* unless its signature matches the last persisted one.

        Snapshots with neither a roster nor a total score are rejected and
        never reach the disk.  *force* writes even when nothing changed.
        """
        previous = self.read_last()
        if not snapshot.has_signal():
            _logger.warning("Skipping snapshot write: empty roster and no total score")
            return PersistResult(changed=False, rejected=True, previous=previous)

        signature = snapshot.signature()
        if signature == self._last_signature and not force:
            _logger.debug("Snapshot unchanged")
            return PersistResult(changed=False, previous=previous)

        write_json_atomic(self._path, snapshot.to_json_dict())
        self._last = snapshot
        self._last_signature = signature
        self._loaded = True
        diff = diff_snapshots(previous, snapshot)
        _logger.info(
            "Snapshot recorded: total=%s delta=%s joined=%d left=%d",
            snapshot.total_score,
            diff.points_delta,
            len(diff.added),
            len(diff.removed),
        )
        return PersistResult(changed=True, diff=diff, previous=previous)

    # ------------------------------------------------------------------
    # Archival
    # ------------------------------------------------------------------

    def data_date_key(self) -> str | None:
        """UTC date of the live file's data, falling back to its mtime."""
        if not self._path.exists():
            return None
        snapshot = self._load()
        if snapshot is not None:
            return utc_date_key(snapshot.timestamp)
        try:
            mtime = self._path.stat().st_mtime
        except OSError:
            return None
        return utc_date_key(datetime.fromtimestamp(mtime, tz=UTC))

    def archive(self, date_key: str | None = None) -> Path | None:
        """Copy the live file to ``<archive_dir>/squadron_data-<date>.json``.

        An existing archive of the same name is never overwritten; a
        timestamp suffix is added instead.  Returns the archive path, or
        ``None`` when there is no live file.
        """
        if not self._path.exists():
            return None
        now = self._clock()
        day = date_key or utc_date_key(now)
        self._archive_dir.mkdir(parents=True, exist_ok=True)
        stem = self._path.stem
        dest = self._archive_dir / f"{stem}-{day}.json"
        if dest.exists():
            stamp = now.isoformat().replace(":", "-").replace(".", "-").replace("+", "-")
            dest = self._archive_dir / f"{stem}-{day}-{stamp}.json"
        shutil.copyfile(self._path, dest)
        _logger.info("Archived %s to %s", self._path.name, dest)
        return dest

    def archive_if_stale(self, now: datetime | None = None) -> Path | None:
        """Archive the live file when its data predates today's UTC date."""
        today = utc_date_key(now or self._clock())
        data_day = self.data_date_key()
        if data_day is not None and data_day < today:
            return self.archive(data_day)
        return None
