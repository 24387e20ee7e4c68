"""Base model and parsing helpers for pysquadron data.

Every persisted model inherits from :class:`SquadronBaseModel` which
provides:

* ``alias_generator=to_camel`` so models serialize with camelCase keys
  while Python code uses snake_case fields.
* ``frozen=True``: snapshots and events are superseded, never mutated.
* ``extra="ignore"`` so older files with additional keys still load.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_NON_DIGITS = re.compile(r"[^0-9]")


def to_num(value: Any) -> int:
    """Keep only the digits of *value* and parse them (``"12 345"`` → ``12345``).

    Returns ``0`` when no digit is present, matching how the upstream pages
    render empty counters.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return 0 if math.isnan(value) else int(value)
    cleaned = _NON_DIGITS.sub("", str(value))
    return int(cleaned) if cleaned else 0


def safe_int(value: Any) -> int | None:
    """Parse *value* as an int, returning ``None`` when absent or unparseable."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return int(result)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
"""Annotated type that always holds a timezone-aware UTC datetime."""


def utcnow() -> datetime:
    return datetime.now(UTC)


class SquadronBaseModel(BaseModel):
    """Base for pysquadron models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump with camelCase keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)
