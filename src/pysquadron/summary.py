"""Plain-text summaries of scoring windows and snapshot changes."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from pysquadron.models.member import Member
from pysquadron.state.events import PointsChangeEvent, TrackerEvent
from pysquadron.windows import ScoringWindow

_SHOWN_MEMBERS = 10
_NAME_WIDTH = 30
_SCORE_WIDTH = 5


def _match_text(won: int, lost: int) -> str:
    if won > 0:
        return f"{won} match{'es' if won > 1 else ''} won"
    if lost > 0:
        return f"{lost} match{'es' if lost > 1 else ''} lost"
    return "no matches"


def _interval_text(won: int, lost: int) -> str:
    if won and lost:
        return f"{won} won, {lost} lost"
    return _match_text(won, lost)


def _signed(value: int) -> str:
    return f"{value:+d}"


def window_summary_lines(events: Iterable[TrackerEvent]) -> list[str]:
    """One line per ``points_change``: delta, running W/L, UTC time, session delta."""
    lines: list[str] = []
    wins = losses = session_delta = 0
    changes = sorted(
        (event for event in events if isinstance(event, PointsChangeEvent)),
        key=lambda event: event.ts,
    )
    for event in changes:
        session_delta += event.delta
        wins += event.won_count
        losses += event.lost_count
        points = f"+ {event.delta} points" if event.delta >= 0 else f"- {abs(event.delta)} points"
        lines.append(
            " ".join(
                (
                    points.ljust(13),
                    f"{wins}/{losses}".ljust(6),
                    event.ts.strftime("%H:%M").ljust(7),
                    _signed(session_delta),
                    _match_text(event.won_count, event.lost_count),
                )
            )
        )
    return lines


def window_title(window: ScoringWindow) -> str:
    start = window.start
    return f"{window.label} Session Start - {start.day}/{start.month}/{start.year}"


def build_window_summary(window: ScoringWindow, events: Iterable[TrackerEvent]) -> str:
    lines = window_summary_lines(events)
    body = "\n".join(lines) if lines else "(no entries yet)"
    return f"{window_title(window)}\n{body}"


def session_line(
    baseline: int | None,
    current: int | None,
    wins: int,
    losses: int,
) -> str:
    if baseline is None or current is None:
        return f"Session change: n/a (Δ n/a) W/L {wins}/{losses}"
    return f"Session change: {baseline} → {current} (Δ {_signed(current - baseline)}) W/L {wins}/{losses}"


def _member_lines(members: Sequence[Member], symbol: str) -> list[str]:
    shown = list(members[:_SHOWN_MEMBERS])
    if not shown:
        return []
    name_width = min(max(len(member.identity[:_NAME_WIDTH]) for member in shown), _NAME_WIDTH)
    score_width = min(max(max(len(str(member.score)[:_SCORE_WIDTH]) for member in shown), 1), _SCORE_WIDTH)
    return [
        f"   {symbol} {member.identity[:_NAME_WIDTH].ljust(name_width)} "
        f"({str(member.score)[:_SCORE_WIDTH].rjust(score_width)}, {(member.role or 'Member')[:20]})"
        for member in shown
    ]


def build_change_message(
    *,
    now: datetime,
    previous_total: int | None,
    new_total: int | None,
    points_delta: int | None,
    added: Sequence[Member],
    removed: Sequence[Member],
    won: int,
    lost: int,
    baseline: int | None,
    wins: int,
    losses: int,
) -> str:
    """Compose the notification sent for a meaningful snapshot change."""
    lines = [f"Squadron tracker update ({now.strftime('%Y-%m-%d %H:%M')} UTC)"]
    if removed:
        lines.append("Departures:")
        lines.extend(_member_lines(removed, "-"))
    if added:
        lines.append("New members:")
        lines.extend(_member_lines(added, "+"))
    if points_delta:
        lines.append(
            f"Points change: {previous_total} → {new_total} ({_signed(points_delta)}); "
            f"interval: {_interval_text(won, lost)}"
        )
    lines.append(session_line(baseline, new_total, wins, losses))
    return "\n".join(lines)
