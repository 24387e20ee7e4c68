"""Data models for squadron tracking."""

from pysquadron.models._base import SquadronBaseModel, UtcDatetime, ensure_utc, safe_int, to_num
from pysquadron.models.leaderboard import LeaderboardEntry, LeaderboardLookup, normalize_tag
from pysquadron.models.member import Member
from pysquadron.models.snapshot import Snapshot

__all__ = [
    "LeaderboardEntry",
    "LeaderboardLookup",
    "Member",
    "Snapshot",
    "SquadronBaseModel",
    "UtcDatetime",
    "ensure_utc",
    "normalize_tag",
    "safe_int",
    "to_num",
]
