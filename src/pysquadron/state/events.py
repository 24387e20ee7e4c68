"""Tracker event records.

Every observable change is appended to the event log as one of these
records.  The union is discriminated on ``type``; all records carry
``ts`` (UTC) and the scoring window key they belong to, if any.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from pysquadron.models._base import SquadronBaseModel, UtcDatetime, utcnow


class EventType(StrEnum):
    SESSION_START = "session_start"
    SESSION_RESET = "session_reset"
    POINTS_CHANGE = "points_change"
    MEMBER_JOIN = "member_join"
    MEMBER_LEAVE = "member_leave"
    SOURCE_DIFF = "source_diff"


class ScoreSource(StrEnum):
    API = "api"
    WEB = "web"


class MemberRef(SquadronBaseModel):
    """Truncated member description carried on join/leave events."""

    name: str
    score: int = 0
    role: str = ""
    join_date: str = ""


class MemberScoreChange(SquadronBaseModel):
    player: str
    from_score: int = Field(alias="from")
    to_score: int = Field(alias="to")
    delta: int


class _EventBase(SquadronBaseModel):
    ts: UtcDatetime = Field(default_factory=utcnow)
    window_key: str | None = None


class SessionStartEvent(_EventBase):
    type: Literal["session_start"] = "session_start"
    starting_points: int | None = None
    starting_pos: int | None = None
    date_key: str | None = None


class SessionResetEvent(_EventBase):
    type: Literal["session_reset"] = "session_reset"
    reason: str = "window_end"
    wins: int = 0
    losses: int = 0
    final_points: int | None = None


class PointsChangeEvent(_EventBase):
    type: Literal["points_change"] = "points_change"
    delta: int
    from_score: int | None = Field(default=None, alias="from")
    to_score: int | None = Field(default=None, alias="to")
    won_count: int = 0
    lost_count: int = 0
    chosen_source: ScoreSource | None = None
    place: int | None = None
    points_above: int | None = None
    points_below: int | None = None
    members_increased: list[MemberScoreChange] = Field(default_factory=list)
    members_decreased: list[MemberScoreChange] = Field(default_factory=list)


class MemberJoinEvent(_EventBase):
    type: Literal["member_join"] = "member_join"
    member: MemberRef
    delta: int | None = None


class MemberLeaveEvent(_EventBase):
    type: Literal["member_leave"] = "member_leave"
    member: MemberRef
    delta: int | None = None


class SourceDiffEvent(_EventBase):
    type: Literal["source_diff"] = "source_diff"
    api_value: int | None = None
    web_value: int | None = None
    chosen: ScoreSource | None = None


TrackerEvent = Annotated[
    SessionStartEvent | SessionResetEvent | PointsChangeEvent | MemberJoinEvent | MemberLeaveEvent | SourceDiffEvent,
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[TrackerEvent] = TypeAdapter(TrackerEvent)


def parse_event(raw: Any) -> TrackerEvent:
    """Validate one raw record into its event model.

    Raises
    ------
    pydantic.ValidationError
        For unknown ``type`` values or malformed payloads.
    """
    return _EVENT_ADAPTER.validate_python(raw)


def dump_event(event: TrackerEvent) -> dict[str, Any]:
    return event.model_dump(mode="json", by_alias=True)
