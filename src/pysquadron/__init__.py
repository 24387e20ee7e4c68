"""pysquadron - Async tracker for squadron score, roster and session results."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysquadron")
except PackageNotFoundError:
    __version__ = "0+local"
from pysquadron.config import TrackerConfig
from pysquadron.exceptions import (
    SquadronConfigError,
    SquadronError,
    SquadronParseError,
    SquadronTransportError,
)
from pysquadron.fetcher import DualSourceFetcher, SourceReadings
from pysquadron.models import LeaderboardEntry, LeaderboardLookup, Member, Snapshot
from pysquadron.reporting import LoggingReporter, SummaryReporter
from pysquadron.state.event_log import EventLog
from pysquadron.state.events import EventType, ScoreSource, TrackerEvent
from pysquadron.state.policy import Reconciler, SourceTracker, classify_delta
from pysquadron.state.session import CompletedSession, SessionMachine, SessionPhase, SessionState, apply_event, replay
from pysquadron.state.snapshot_store import PersistResult, SnapshotDiff, SnapshotStore, diff_snapshots
from pysquadron.tracker import CaptureOutcome, SquadronTracker
from pysquadron.windows import ScoringWindow, WindowLabel, parse_window_key, window_at

__all__ = [
    "__version__",
    "CaptureOutcome",
    "CompletedSession",
    "DualSourceFetcher",
    "EventLog",
    "EventType",
    "LeaderboardEntry",
    "LeaderboardLookup",
    "LoggingReporter",
    "Member",
    "PersistResult",
    "Reconciler",
    "ScoreSource",
    "ScoringWindow",
    "SessionMachine",
    "SessionPhase",
    "SessionState",
    "Snapshot",
    "SnapshotDiff",
    "SnapshotStore",
    "SourceReadings",
    "SourceTracker",
    "SquadronConfigError",
    "SquadronError",
    "SquadronParseError",
    "SquadronTracker",
    "SquadronTransportError",
    "SummaryReporter",
    "TrackerConfig",
    "TrackerEvent",
    "WindowLabel",
    "apply_event",
    "classify_delta",
    "diff_snapshots",
    "parse_window_key",
    "replay",
    "window_at",
]
