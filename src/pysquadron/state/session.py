"""Session state machine.

A session tracks the squadron's score over one scoring window.  Its live
aggregate (:class:`SessionState`) is never stored: it is a pure fold of the
window's events, so it can be rebuilt from the event log after a restart.

Lifecycle::

    NO_SESSION -> ACTIVE -> PENDING_FINALIZATION -> (finalized) -> NO_SESSION

When the window closes the session stays mutable for a grace period, so
score changes that the sources report late still count towards it.  The
grace timer is keyed by the window key and cancelled outright if a new
window opens first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import StrEnum
from pathlib import Path

from pysquadron._constants import MAX_MEMBER_CHANGES
from pysquadron._scheduler import TaskScheduler
from pysquadron.models._base import SquadronBaseModel, UtcDatetime, ensure_utc, utcnow
from pysquadron.models.member import Member
from pysquadron.reporting import LoggingReporter, SummaryReporter, publish_quietly, update_or_publish
from pysquadron.state._files import write_json_atomic
from pysquadron.state.event_log import EventLog
from pysquadron.state.events import (
    MemberJoinEvent,
    MemberLeaveEvent,
    MemberRef,
    MemberScoreChange,
    PointsChangeEvent,
    ScoreSource,
    SessionResetEvent,
    SessionStartEvent,
    TrackerEvent,
)
from pysquadron.state.policy import classify_delta
from pysquadron.summary import build_window_summary, session_line
from pysquadron.windows import ScoringWindow, date_key, parse_window_key, window_at

_logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 300.0


class SessionPhase(StrEnum):
    NO_SESSION = "no_session"
    ACTIVE = "active"
    PENDING_FINALIZATION = "pending_finalization"


@dataclass(frozen=True)
class SessionState:
    """Aggregate of one window's events."""

    window_key: str | None = None
    started_at: datetime | None = None
    baseline_score: int | None = None
    baseline_pos: int | None = None
    wins: int = 0
    losses: int = 0
    current_score: int | None = None

    @property
    def is_open(self) -> bool:
        return self.window_key is not None

    @property
    def delta(self) -> int | None:
        if self.baseline_score is None or self.current_score is None:
            return None
        return self.current_score - self.baseline_score


class CompletedSession(SquadronBaseModel):
    """Immutable summary of the last finalized session."""

    window_key: str
    started_at: UtcDatetime | None = None
    finalized_at: UtcDatetime
    baseline_score: int | None = None
    baseline_pos: int | None = None
    final_score: int | None = None
    wins: int = 0
    losses: int = 0
    delta: int | None = None


# ------------------------------------------------------------------
# Pure reducer
# ------------------------------------------------------------------


def apply_event(state: SessionState, event: TrackerEvent) -> SessionState:
    """Fold one event into *state*.

    ``session_start`` sets the baseline and zeroes the tally;
    ``points_change`` adds its win/loss increments and back-fills a missing
    baseline from its ``from`` value; ``session_reset`` clears the session.
    Other events leave the state unchanged.
    """
    if isinstance(event, SessionStartEvent):
        return SessionState(
            window_key=event.window_key,
            started_at=event.ts,
            baseline_score=event.starting_points,
            baseline_pos=event.starting_pos,
            current_score=event.starting_points,
        )
    if isinstance(event, PointsChangeEvent):
        baseline = state.baseline_score if state.baseline_score is not None else event.from_score
        return replace(
            state,
            window_key=state.window_key if state.window_key is not None else event.window_key,
            started_at=state.started_at if state.started_at is not None else event.ts,
            baseline_score=baseline,
            wins=state.wins + event.won_count,
            losses=state.losses + event.lost_count,
            current_score=event.to_score if event.to_score is not None else state.current_score,
        )
    if isinstance(event, SessionResetEvent):
        return SessionState()
    return state


def replay(events: Iterable[TrackerEvent], window_key: str) -> SessionState:
    """Rebuild the state of *window_key* from its events.

    Events tagged with another window are ignored; untagged events are
    assumed to have been pre-selected by the caller.
    """
    state = SessionState()
    for event in sorted(events, key=lambda item: item.ts):
        if event.window_key is not None and event.window_key != window_key:
            continue
        state = apply_event(state, event)
    if state.is_open and state.window_key != window_key:
        state = replace(state, window_key=window_key)
    return state


# ------------------------------------------------------------------
# State machine
# ------------------------------------------------------------------


class SessionMachine:
    """Drive session transitions and record session events.

    Parameters
    ----------
    event_log : EventLog
        Durable store of every event; the only source of session history.
    last_session_path : Path
        Where the :class:`CompletedSession` summary is written.
    scheduler : TaskScheduler
        Runs the keyed grace-period timers.
    reporter : SummaryReporter, optional
        Receives window summaries; defaults to :class:`LoggingReporter`.
    grace_period : float
        Seconds a closed window stays mutable before it is finalized.
    clock : callable
        Returns the current UTC datetime.
    """

    def __init__(
        self,
        event_log: EventLog,
        *,
        last_session_path: Path,
        scheduler: TaskScheduler,
        reporter: SummaryReporter | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._log = event_log
        self._last_session_path = Path(last_session_path)
        self._scheduler = scheduler
        self._reporter: SummaryReporter = reporter if reporter is not None else LoggingReporter()
        self._grace_period = grace_period
        self._clock = clock
        self._state = SessionState()
        self._phase = SessionPhase.NO_SESSION
        self._finalized: set[str] = set()

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def window_key(self) -> str | None:
        return self._state.window_key

    @property
    def grace_period(self) -> float:
        return self._grace_period

    # -- transitions ---------------------------------------------------

    async def sync_window(
        self,
        now: datetime,
        *,
        previous_total: int | None,
        current_total: int | None,
        rank: int | None = None,
    ) -> SessionState:
        """Reconcile the session with the window open at *now*.

        Opens (or re-adopts from the log) the current window's session, and
        moves an active session whose window has closed into the grace period.
        """
        now = ensure_utc(now)
        window = window_at(now)
        active_key = self._state.window_key

        if window is not None and window.key != active_key and window.key not in self._finalized:
            if active_key is not None:
                await self._supersede(active_key, now)
            await self._open(window, now, previous_total=previous_total, current_total=current_total, rank=rank)
        elif self._phase is SessionPhase.ACTIVE and (window is None or window.key != active_key):
            self._begin_pending(now)
        return self._state

    async def _supersede(self, old_key: str, now: datetime) -> None:
        if self._phase is SessionPhase.PENDING_FINALIZATION:
            self._scheduler.cancel(old_key)
            _logger.info("Session %s superseded before finalization", old_key)
            self._reset()
            return
        # Still ACTIVE: its window ended while nothing was polling.
        self._phase = SessionPhase.PENDING_FINALIZATION
        await self.finalize(old_key, now=now)

    async def _open(
        self,
        window: ScoringWindow,
        now: datetime,
        *,
        previous_total: int | None,
        current_total: int | None,
        rank: int | None,
    ) -> None:
        key = window.key
        if self._log.has_session_start(key):
            state = replay(self._log.events_for_window(key), key)
            if not state.is_open:
                _logger.info("Session %s was already finalized", key)
                self._finalized.add(key)
                self._reset()
                return
            self._state = state
            self._phase = SessionPhase.ACTIVE
            _logger.info("Resumed session %s from the event log (W/L %d/%d)", key, state.wins, state.losses)
            return

        baseline = previous_total if previous_total is not None else current_total
        event = SessionStartEvent(
            ts=now,
            window_key=key,
            starting_points=baseline,
            starting_pos=rank,
            date_key=date_key(window.start),
        )
        self._log.append(event)
        self._state = apply_event(SessionState(), event)
        self._phase = SessionPhase.ACTIVE
        _logger.info("Session %s started: baseline=%s pos=%s", key, baseline, rank)
        await self._refresh_summary(window)

    def _begin_pending(self, now: datetime, *, delay: float | None = None) -> None:
        key = self._state.window_key
        if key is None:
            return
        self._phase = SessionPhase.PENDING_FINALIZATION
        wait = self._grace_period if delay is None else delay

        async def _fire() -> None:
            await self.finalize(key)

        self._scheduler.schedule(key, wait, _fire)
        _logger.info("Session %s closed at %s; finalizing in %.0fs", key, now.isoformat(), wait)

    async def finalize(self, key: str, *, now: datetime | None = None) -> CompletedSession | None:
        """Lock in the session for *key*.

        A no-op unless the machine is still pending finalization on *key*.
        """
        if self._phase is not SessionPhase.PENDING_FINALIZATION or self._state.window_key != key:
            _logger.debug("Ignoring stale finalization for %s", key)
            return None

        finalized_at = ensure_utc(now or self._clock())
        state = self._state
        completed = CompletedSession(
            window_key=key,
            started_at=state.started_at,
            finalized_at=finalized_at,
            baseline_score=state.baseline_score,
            baseline_pos=state.baseline_pos,
            final_score=state.current_score,
            wins=state.wins,
            losses=state.losses,
            delta=state.delta,
        )
        write_json_atomic(self._last_session_path, completed.to_json_dict())
        self._log.append(
            SessionResetEvent(
                ts=finalized_at,
                window_key=key,
                reason="window_end",
                wins=state.wins,
                losses=state.losses,
                final_points=state.current_score,
            )
        )
        self._scheduler.cancel(key)
        self._finalized.add(key)
        self._reset()
        _logger.info(
            "Session %s finalized: %s -> %s W/L %d/%d",
            key,
            completed.baseline_score,
            completed.final_score,
            completed.wins,
            completed.losses,
        )

        window = parse_window_key(key)
        if window is not None:
            text = build_window_summary(window, self._log.events_for_window(key))
            final_line = session_line(completed.baseline_score, completed.final_score, completed.wins, completed.losses)
            await publish_quietly(self._reporter, f"{text}\nFinal {final_line}")
        return completed

    def _reset(self) -> None:
        self._state = SessionState()
        self._phase = SessionPhase.NO_SESSION

    # -- recording -------------------------------------------------------

    async def record_points_change(
        self,
        *,
        delta: int,
        from_score: int | None,
        to_score: int | None,
        source: ScoreSource | None = None,
        place: int | None = None,
        points_above: int | None = None,
        points_below: int | None = None,
        increased: list[MemberScoreChange] | None = None,
        decreased: list[MemberScoreChange] | None = None,
        now: datetime | None = None,
    ) -> PointsChangeEvent:
        """Append a ``points_change`` and fold it into the open session.

        Changes observed during the grace period count towards the closing
        session.  Outside any session the event is logged without a key.
        """
        won, lost = classify_delta(delta)
        key = self._state.window_key if self._phase is not SessionPhase.NO_SESSION else None
        event = PointsChangeEvent(
            ts=ensure_utc(now or self._clock()),
            window_key=key,
            delta=delta,
            from_score=from_score,
            to_score=to_score,
            won_count=won,
            lost_count=lost,
            chosen_source=source,
            place=place,
            points_above=points_above,
            points_below=points_below,
            members_increased=(increased or [])[:MAX_MEMBER_CHANGES],
            members_decreased=(decreased or [])[:MAX_MEMBER_CHANGES],
        )
        self._log.append(event)
        if key is None:
            _logger.info("Points change %+d outside any session", delta)
            return event

        self._state = apply_event(self._state, event)
        _logger.info(
            "Points change %+d in %s (W/L %d/%d)",
            delta,
            key,
            self._state.wins,
            self._state.losses,
        )
        window = parse_window_key(key)
        if window is not None:
            await self._refresh_summary(window)
        return event

    def record_roster_changes(
        self,
        *,
        added: Iterable[Member],
        removed: Iterable[Member],
        delta: int | None,
        now: datetime | None = None,
    ) -> list[TrackerEvent]:
        """Append one ``member_leave`` per departure and one ``member_join`` per arrival."""
        ts = ensure_utc(now or self._clock())
        key = self._state.window_key
        events: list[TrackerEvent] = [
            MemberLeaveEvent(ts=ts, window_key=key, member=MemberRef.model_validate(member.short()), delta=delta)
            for member in removed
        ]
        left = len(events)
        events.extend(
            MemberJoinEvent(ts=ts, window_key=key, member=MemberRef.model_validate(member.short()), delta=delta)
            for member in added
        )
        for event in events:
            self._log.append(event)
        if events:
            _logger.info("Roster change: %d joined, %d left", len(events) - left, left)
        return events

    # -- recovery --------------------------------------------------------

    async def recover(self, now: datetime | None = None) -> SessionState:
        """Rebuild the in-memory session from the event log before the first poll.

        Resumes the session of the window open at *now*.  An unfinished session
        from an earlier window is resumed too and put back into its grace
        period, so it is finalized once the remaining grace time has elapsed.
        """
        now = ensure_utc(now or self._clock())
        window = window_at(now)
        if window is not None and self._log.has_session_start(window.key):
            state = replay(self._log.events_for_window(window.key), window.key)
            if state.is_open:
                self._state = state
                self._phase = SessionPhase.ACTIVE
                _logger.info("Recovered session %s: W/L %d/%d", window.key, state.wins, state.losses)
            else:
                self._finalized.add(window.key)
            return self._state

        unfinished = self._unfinished_key()
        if unfinished is None:
            return self._state
        old_window = parse_window_key(unfinished)
        state = replay(self._log.events_for_window(unfinished), unfinished)
        if old_window is None or not state.is_open:
            return self._state
        self._state = state
        self._phase = SessionPhase.ACTIVE
        _logger.info("Recovered unfinished session %s", unfinished)
        if window is None:
            deadline = old_window.end + timedelta(seconds=self._grace_period)
            self._begin_pending(now, delay=max(0.0, (deadline - now).total_seconds()))
        return self._state

    def _unfinished_key(self) -> str | None:
        """Key of the last started session that was never reset."""
        open_key: str | None = None
        for event in self._log.read_all():
            if isinstance(event, SessionStartEvent):
                open_key = event.window_key
            elif isinstance(event, SessionResetEvent) and event.window_key == open_key:
                open_key = None
        return open_key

    # -- reporting -------------------------------------------------------

    async def _refresh_summary(self, window: ScoringWindow) -> None:
        text = build_window_summary(window, self._log.events_for_window(window.key))
        await update_or_publish(self._reporter, window.key, text)
