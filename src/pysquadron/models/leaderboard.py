"""Ranked listing models."""

from __future__ import annotations

import re
from typing import Any

from pydantic import Field, model_validator

from pysquadron.models._base import SquadronBaseModel, safe_int, to_num

_TAG_CHARS = re.compile(r"[A-Za-z0-9_]+")


def normalize_tag(tag: str | None) -> str:
    """Reduce a squadron tag to lower-cased alphanumerics and underscores."""
    return "".join(_TAG_CHARS.findall(str(tag or ""))).lower()


class LeaderboardEntry(SquadronBaseModel):
    """One row of the leaderboard listing.

    Raw rows carry the score under ``astat.dr_era5_hist``; the before-validator
    lifts it into ``points``.
    """

    pos: int | None = None
    tag: str = ""
    tagl: str = ""
    name: str = ""
    points: int = 0

    @model_validator(mode="before")
    @classmethod
    def _lift_points(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        astat = merged.get("astat")
        if "points" not in merged and isinstance(astat, dict):
            merged["points"] = to_num(astat.get("dr_era5_hist"))
        elif "points" in merged:
            merged["points"] = to_num(merged["points"])
        merged["pos"] = safe_int(merged.get("pos"))
        if not merged.get("tagl") and merged.get("tag"):
            merged["tagl"] = normalize_tag(merged["tag"])
        return merged

    def matches(self, needle: str) -> bool:
        return bool(needle) and normalize_tag(self.tagl or self.tag) == needle


class LeaderboardLookup(SquadronBaseModel):
    """Result of scanning the listing for one squadron.

    ``entry`` is ``None`` when the squadron was not found within the page cap;
    ``top`` is still populated in that case.
    """

    top: list[LeaderboardEntry] = Field(default_factory=list)
    entry: LeaderboardEntry | None = None
    page: int | None = None
    points_above: int | None = None
    points_below: int | None = None
    pages_read: int = 0

    @property
    def rank(self) -> int | None:
        return self.entry.pos if self.entry is not None else None

    @property
    def points(self) -> int | None:
        return self.entry.points if self.entry is not None else None
