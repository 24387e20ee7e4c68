"""Custom exception hierarchy for pysquadron."""

from __future__ import annotations


class SquadronError(Exception):
    """Base exception for all pysquadron errors."""


class SquadronConfigError(SquadronError):
    """Invalid or missing configuration."""


class SquadronTransportError(SquadronError):
    """HTTP-level failure (network, timeout, non-200, undecodable or invalid JSON body)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class SquadronParseError(SquadronError):
    """Upstream document was fetched but could not be used.

    Raised for leaderboard pages without ``status == "ok"`` and for profile
    pages that turn out to be an error or bot-challenge page.
    """
