"""Roster member model."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pysquadron.models._base import SquadronBaseModel, to_num

# Header spellings seen on the profile page, normalised by _norm_header.
_NAME_HEADERS = frozenset({"player", "name", "nick"})
_SCORE_HEADERS = frozenset({"points", "personalclanrating", "rating"})
_ROLE_HEADERS = frozenset({"role"})
_JOIN_HEADERS = frozenset({"dateofentry", "date", "joindate"})
_ACTIVITY_HEADERS = frozenset({"activity"})
_NUMBER_HEADERS = frozenset({"num.", "num", "#"})

_NAME_MAX = 30
_ROLE_MAX = 20


def _norm_header(text: str) -> str:
    return "".join(str(text).split()).lower()


class Member(SquadronBaseModel):
    """One row of the squadron roster.

    ``activity`` and ``row_number`` are parsed for completeness but are
    volatile and never take part in change detection.
    """

    name: str
    score: int = 0
    role: str = ""
    join_date: str = ""
    activity: int | None = None
    row_number: int | None = None

    @property
    def identity(self) -> str:
        return self.name.strip()

    def canonical(self) -> dict[str, Any]:
        """Stable, change-relevant view used for snapshot signatures."""
        return {
            "name": self.identity,
            "score": self.score,
            "role": self.role,
            "joinDate": self.join_date,
        }

    def short(self) -> dict[str, Any]:
        """Truncated copy carried on member_join / member_leave events."""
        return {
            "name": self.identity[:_NAME_MAX] or "Unknown",
            "score": self.score,
            "role": (self.role or "Member")[:_ROLE_MAX],
            "joinDate": self.join_date,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Member | None:
        """Build a member from a header→cell mapping; ``None`` without a name."""
        fields: dict[str, Any] = {}
        for header, cell in row.items():
            key = _norm_header(header)
            text = str(cell or "").strip()
            if key in _NAME_HEADERS:
                fields["name"] = text
            elif key in _SCORE_HEADERS:
                fields["score"] = to_num(text)
            elif key in _ROLE_HEADERS:
                fields["role"] = text
            elif key in _JOIN_HEADERS:
                fields["join_date"] = text
            elif key in _ACTIVITY_HEADERS:
                fields["activity"] = to_num(text) if any(ch.isdigit() for ch in text) else None
            elif key in _NUMBER_HEADERS:
                fields["row_number"] = to_num(text) or None
        if not fields.get("name"):
            return None
        return cls(**fields)
