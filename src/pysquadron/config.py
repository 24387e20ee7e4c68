"""Tracker configuration for pysquadron."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pysquadron._constants import (
    ARCHIVE_DIR,
    DEFAULT_CACHE_TTL,
    DEFAULT_LEADERBOARD_LIMIT,
    DEFAULT_MAX_PAGES,
    DEFAULT_TIMEOUT,
    EVENTS_FILE,
    LAST_SESSION_FILE,
    LEADERBOARD_URL_TEMPLATE,
    SNAPSHOT_FILE,
)
from pysquadron.exceptions import SquadronConfigError

_MAX_JITTER_PCT = 0.9


def _clamp_jitter(value: float) -> float:
    return max(0.0, min(_MAX_JITTER_PCT, value))


def _env_float(env: Mapping[str, str], key: str) -> float | None:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise SquadronConfigError(f"{key} must be numeric, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Tracker configuration.

    Parameters
    ----------
    squadron_tag : str
        Tag of the squadron to track (e.g. ``"ABCD"``).  Matching against
        the leaderboard ignores punctuation and case.
    squadron_page_url : str or None
        Public squadron profile page.  When ``None`` the web source is
        disabled and only the leaderboard listing is polled.
    leaderboard_url_template : str
        Ranked listing URL with a ``{page}`` placeholder (pages start at 1).
    data_dir : Path
        Directory holding the snapshot file, the event log and the archive.
    poll_interval : float
        Nominal seconds between poll cycles.
    poll_jitter_pct : float
        Relative jitter applied to every poll delay.  Clamped to ``[0, 0.9]``.
    grace_period : float
        Seconds a closed window's session stays mutable before it is finalized.
    cache_ttl : float
        Time-to-live for memoized leaderboard pages.
    api_timeout : float
        Per-cycle timeout for the leaderboard source.
    web_timeout : float
        Per-cycle timeout for the profile page source.
    max_pages : int
        Page cap when scanning the leaderboard for the squadron.
    leaderboard_limit : int
        Number of top leaderboard rows stored on each snapshot.
    """

    squadron_tag: str
    squadron_page_url: str | None = None
    leaderboard_url_template: str = LEADERBOARD_URL_TEMPLATE
    data_dir: Path = dataclasses.field(default_factory=lambda: Path("."))
    poll_interval: float = 60.0
    poll_jitter_pct: float = 0.15
    grace_period: float = 300.0
    cache_ttl: float = DEFAULT_CACHE_TTL
    api_timeout: float = DEFAULT_TIMEOUT
    web_timeout: float = DEFAULT_TIMEOUT
    max_pages: int = DEFAULT_MAX_PAGES
    leaderboard_limit: int = DEFAULT_LEADERBOARD_LIMIT

    def __post_init__(self) -> None:
        if not self.squadron_tag or not self.squadron_tag.strip():
            raise SquadronConfigError("squadron_tag must be non-empty")
        if "{page}" not in self.leaderboard_url_template:
            raise SquadronConfigError("leaderboard_url_template must contain a {page} placeholder")
        if self.poll_interval <= 0:
            raise SquadronConfigError("poll_interval must be positive")
        if self.grace_period < 0:
            raise SquadronConfigError("grace_period must not be negative")
        if self.max_pages < 1:
            raise SquadronConfigError("max_pages must be at least 1")
        # Frozen dataclass: normalise through object.__setattr__.
        object.__setattr__(self, "data_dir", Path(self.data_dir))
        object.__setattr__(self, "poll_jitter_pct", _clamp_jitter(float(self.poll_jitter_pct)))

    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / SNAPSHOT_FILE

    @property
    def events_path(self) -> Path:
        return self.data_dir / EVENTS_FILE

    @property
    def last_session_path(self) -> Path:
        return self.data_dir / LAST_SESSION_FILE

    @property
    def archive_dir(self) -> Path:
        return self.data_dir / ARCHIVE_DIR

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads ``SQUADRON_TAG`` and optional ``SQUADRON_*`` variables.
        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.

        Raises
        ------
        SquadronConfigError
            If a numeric variable cannot be parsed or the result is invalid.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "SQUADRON_TAG": "squadron_tag",
            "SQUADRON_PAGE_URL": "squadron_page_url",
            "SQUADRON_LEADERBOARD_URL": "leaderboard_url_template",
            "SQUADRON_DATA_DIR": "data_dir",
        }
        _ENV_FLOAT_MAP = {
            "SQUADRON_POLL_INTERVAL": "poll_interval",
            "SQUADRON_POLL_JITTER_PCT": "poll_jitter_pct",
            "SQUADRON_GRACE_PERIOD": "grace_period",
            "SQUADRON_CACHE_TTL": "cache_ttl",
            "SQUADRON_API_TIMEOUT": "api_timeout",
            "SQUADRON_WEB_TIMEOUT": "web_timeout",
        }
        _ENV_INT_MAP = {
            "SQUADRON_MAX_PAGES": "max_pages",
            "SQUADRON_LEADERBOARD_LIMIT": "leaderboard_limit",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            parsed = _env_float(env, env_key)
            if parsed is not None:
                config_kwargs[field_name] = parsed

        for env_key, field_name in _ENV_INT_MAP.items():
            parsed = _env_float(env, env_key)
            if parsed is not None:
                config_kwargs[field_name] = int(parsed)

        config_kwargs.update(overrides)
        if "squadron_tag" not in config_kwargs:
            raise SquadronConfigError("SQUADRON_TAG is not set")

        return cls(**config_kwargs)
