"""Persisted squadron snapshot model."""

from __future__ import annotations

import json
from typing import Any

from pydantic import Field

from pysquadron.models._base import SquadronBaseModel, UtcDatetime, utcnow
from pysquadron.models.leaderboard import LeaderboardEntry
from pysquadron.models.member import Member


class Snapshot(SquadronBaseModel):
    """Point-in-time capture of the squadron's roster and total score.

    Snapshots are immutable once persisted; a newer snapshot supersedes the
    previous one.  ``members_captured`` is ``False`` when the roster was
    carried over from the previous snapshot because the profile page could
    not be read this cycle.
    """

    timestamp: UtcDatetime = Field(default_factory=utcnow)
    roster: list[Member] = Field(default_factory=list)
    total_score: int | None = None
    rank: int | None = None
    neighbor_score_above: int | None = None
    neighbor_score_below: int | None = None
    sources_used: list[str] = Field(default_factory=list)
    leaderboard: list[LeaderboardEntry] = Field(default_factory=list)
    members_captured: bool = True

    def has_signal(self) -> bool:
        """``False`` for the empty captures that must never overwrite good data."""
        return bool(self.roster) or self.total_score is not None

    def members_by_name(self) -> dict[str, Member]:
        return {member.identity: member for member in self.roster if member.identity}

    def canonical(self) -> dict[str, Any]:
        roster = sorted((member.canonical() for member in self.roster), key=lambda item: item["name"])
        leaderboard = [
            {"pos": entry.pos, "tag": entry.tag, "name": entry.name, "points": entry.points}
            for entry in self.leaderboard
        ]
        return {"roster": roster, "totalScore": self.total_score, "leaderboard": leaderboard}

    def signature(self) -> str:
        """Sorted-key JSON of the change-relevant content.

        Timestamps, rank, neighbor scores and the volatile member columns are
        left out, so re-capturing identical content yields the same signature.
        """
        return json.dumps(self.canonical(), sort_keys=True, separators=(",", ":"))
