"""Squadron tracker: the polling loop that ties sources, snapshots and sessions together."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import aiohttp

from pysquadron._api.leaderboard import PageCache
from pysquadron._cache import TTLCache
from pysquadron._scheduler import TaskScheduler
from pysquadron._transport import HttpTransport, Transport
from pysquadron.config import TrackerConfig
from pysquadron.exceptions import SquadronError
from pysquadron.fetcher import DualSourceFetcher, SourceReadings
from pysquadron.models._base import utcnow
from pysquadron.models.snapshot import Snapshot
from pysquadron.reporting import LoggingReporter, SummaryReporter, publish_quietly
from pysquadron.state.event_log import EventLog
from pysquadron.state.events import ScoreSource, SourceDiffEvent
from pysquadron.state.policy import Reconciler, Reconciliation, classify_delta
from pysquadron.state.session import SessionMachine
from pysquadron.state.snapshot_store import PersistResult, SnapshotStore
from pysquadron.summary import build_change_message
from pysquadron.windows import seconds_until_next_utc_midnight

_logger = logging.getLogger(__name__)

DAILY_ARCHIVE_KEY = "daily-archive"
_MIN_POLL_DELAY = 1.0


@dataclass(frozen=True)
class CaptureOutcome:
    """What one poll cycle observed and did."""

    readings: SourceReadings
    reconciliation: Reconciliation
    snapshot: Snapshot
    persist: PersistResult


class SquadronTracker:
    """Track one squadron's score and roster across scoring windows.

    Usage::

        async with SquadronTracker(TrackerConfig.from_env()) as tracker:
            await tracker.run()

    Parameters
    ----------
    config : TrackerConfig
        Tracker settings.
    session : aiohttp.ClientSession, optional
        Shared HTTP session.  When omitted one is created and owned.
    transport : Transport, optional
        Replaces the HTTP transport entirely (test doubles).
    reporter : SummaryReporter, optional
        External summary channel; defaults to :class:`LoggingReporter`.
    clock : callable
        Returns the current UTC datetime.
    rng : random.Random, optional
        Source of poll jitter.
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        reporter: SummaryReporter | None = None,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._reporter: SummaryReporter = reporter if reporter is not None else LoggingReporter()
        self._clock = clock
        self._rng = rng or random.Random()

        self._cache: PageCache = TTLCache(ttl=config.cache_ttl)
        self._scheduler = TaskScheduler()
        self._reconciler = Reconciler()
        self._reconciler_seeded = False
        self._stopping = asyncio.Event()
        self._fetcher: DualSourceFetcher | None = None

        self.snapshots = SnapshotStore(config.snapshot_path, archive_dir=config.archive_dir, clock=clock)
        self.events = EventLog(config.events_path)
        self.sessions = SessionMachine(
            self.events,
            last_session_path=config.last_session_path,
            scheduler=self._scheduler,
            reporter=self._reporter,
            grace_period=config.grace_period,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SquadronTracker:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._http_session)
        self._fetcher = DualSourceFetcher(self._transport, self._config, cache=self._cache, clock=self._clock)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.stop()
        await self._scheduler.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._fetcher = None

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def cache(self) -> PageCache:
        return self._cache

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    @property
    def reconciler(self) -> Reconciler:
        return self._reconciler

    def _require_fetcher(self) -> DualSourceFetcher:
        if self._fetcher is None:
            raise SquadronError("Tracker not initialized. Use 'async with SquadronTracker(...) as tracker:'")
        return self._fetcher

    # ------------------------------------------------------------------
    # Startup and polling loop
    # ------------------------------------------------------------------

    async def start(self) -> CaptureOutcome | None:
        """Archive a stale data file, recover the session, then capture once (forced)."""
        now = self._clock()
        self.snapshots.archive_if_stale(now)
        await self.sessions.recover(now)
        self._schedule_daily_archive()
        return await self._capture_safely(force=True)

    async def run(self) -> None:
        """Start, then poll until :meth:`stop` is called."""
        await self.start()
        while not self._stopping.is_set():
            delay = self.next_delay()
            _logger.debug("Next poll in %.1fs", delay)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except asyncio.TimeoutError:
                await self._capture_safely()
        _logger.info("Tracker stopped")

    def stop(self) -> None:
        self._stopping.set()

    def next_delay(self) -> float:
        """Poll delay jittered uniformly around the configured interval."""
        base = self._config.poll_interval
        jitter = self._config.poll_jitter_pct
        low = max(_MIN_POLL_DELAY, base * (1 - jitter))
        high = max(low, base * (1 + jitter))
        return self._rng.uniform(low, high)

    async def _capture_safely(self, *, force: bool = False) -> CaptureOutcome | None:
        try:
            return await self.capture_once(force=force)
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.error("Poll cycle failed", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Daily archival
    # ------------------------------------------------------------------

    def _schedule_daily_archive(self) -> None:
        delay = max(_MIN_POLL_DELAY, seconds_until_next_utc_midnight(self._clock()))
        self._scheduler.schedule(DAILY_ARCHIVE_KEY, delay, self._archive_daily)
        _logger.info("Daily archive scheduled in %.1f minutes", delay / 60)

    async def _archive_daily(self) -> None:
        try:
            self.snapshots.archive(self.snapshots.data_date_key())
        except OSError:
            _logger.error("Daily archive failed", exc_info=True)
        self._schedule_daily_archive()

    # ------------------------------------------------------------------
    # Capture cycle
    # ------------------------------------------------------------------

    def _build_snapshot(
        self,
        now: datetime,
        readings: SourceReadings,
        reconciliation: Reconciliation,
        last: Snapshot | None,
    ) -> Snapshot:
        lookup = readings.lookup
        profile = readings.profile

        if profile is not None and profile.members:
            roster = list(profile.members)
            captured = True
        else:
            # Keep the last known roster when the page could not be read.
            roster = list(last.roster) if last is not None else []
            captured = False

        total = reconciliation.value
        if total is None and last is not None:
            total = last.total_score

        rank = lookup.rank if lookup is not None else None
        if rank is None and profile is not None:
            rank = profile.place
        if rank is None and last is not None:
            rank = last.rank

        above = last.neighbor_score_above if last is not None else None
        below = last.neighbor_score_below if last is not None else None
        if lookup is not None and lookup.entry is not None:
            above, below = lookup.points_above, lookup.points_below

        leaderboard = list(last.leaderboard) if last is not None else []
        if lookup is not None and lookup.top:
            leaderboard = list(lookup.top)

        sources: list[str] = []
        if readings.api_ok:
            sources.append(ScoreSource.API.value)
        if readings.web_ok:
            sources.append(ScoreSource.WEB.value)

        return Snapshot(
            timestamp=now,
            roster=roster,
            total_score=total,
            rank=rank,
            neighbor_score_above=above,
            neighbor_score_below=below,
            sources_used=sources,
            leaderboard=leaderboard,
            members_captured=captured,
        )

    async def capture_once(self, *, force: bool = False) -> CaptureOutcome | None:
        """Run one poll cycle.

        Returns ``None`` when both sources failed; nothing is recorded then.
        """
        fetcher = self._require_fetcher()
        readings = await fetcher.fetch_score()
        if not readings.any_succeeded:
            _logger.warning("Both sources failed; skipping this cycle")
            return None

        now = self._clock()
        last = self.snapshots.read_last()
        if not self._reconciler_seeded:
            self._reconciler.seed(last.total_score if last is not None else None)
            self._reconciler_seeded = True

        reconciliation = self._reconciler.reconcile(readings.api_value, readings.web_value, now)
        candidate = self._build_snapshot(now, readings, reconciliation, last)
        previous_total = last.total_score if last is not None else None

        state = await self.sessions.sync_window(
            now,
            previous_total=previous_total,
            current_total=candidate.total_score,
            rank=candidate.rank,
        )

        if reconciliation.changed and reconciliation.disagreement:
            self.events.append(
                SourceDiffEvent(
                    ts=now,
                    window_key=state.window_key,
                    api_value=reconciliation.api_value,
                    web_value=reconciliation.web_value,
                    chosen=reconciliation.source,
                )
            )

        persist = self.snapshots.persist_if_changed(candidate, force=force)
        if persist.changed and persist.diff is not None:
            await self._record_changes(now, candidate, persist, reconciliation)
        elif not persist.rejected:
            _logger.debug("No change")

        expired = self._cache.cleanup_expired()
        stats = self._cache.stats()
        _logger.debug("Cache: %d entries (%d valid), %d expired removed", stats.size, stats.valid_count, expired)
        return CaptureOutcome(readings=readings, reconciliation=reconciliation, snapshot=candidate, persist=persist)

    async def _record_changes(
        self,
        now: datetime,
        snapshot: Snapshot,
        persist: PersistResult,
        reconciliation: Reconciliation,
    ) -> None:
        diff = persist.diff
        if diff is None:
            return
        previous_total = persist.previous.total_score if persist.previous is not None else None
        won, lost = classify_delta(diff.points_delta)

        if diff.points_delta:
            await self.sessions.record_points_change(
                now=now,
                delta=diff.points_delta,
                from_score=previous_total,
                to_score=snapshot.total_score,
                source=reconciliation.source,
                place=snapshot.rank,
                points_above=snapshot.neighbor_score_above,
                points_below=snapshot.neighbor_score_below,
                increased=diff.increased,
                decreased=diff.decreased,
            )

        # The first capture has nothing to compare the roster against.
        if persist.previous is not None:
            self.sessions.record_roster_changes(
                now=now,
                added=diff.added,
                removed=diff.removed,
                delta=diff.points_delta,
            )

        if not diff.is_meaningful or persist.previous is None:
            return
        state = self.sessions.state
        message = build_change_message(
            now=now,
            previous_total=previous_total,
            new_total=snapshot.total_score,
            points_delta=diff.points_delta,
            added=diff.added,
            removed=diff.removed,
            won=won,
            lost=lost,
            baseline=state.baseline_score,
            wins=state.wins,
            losses=state.losses,
        )
        await publish_quietly(self._reporter, message)
