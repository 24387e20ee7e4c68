"""External summary reporting channel."""

from __future__ import annotations

import logging
from typing import Protocol

_logger = logging.getLogger(__name__)


class SummaryReporter(Protocol):
    """Receives plain summary text produced by the tracker.

    ``update_summary`` edits the message previously published under *key*
    and returns ``False`` when there is nothing to edit, in which case the
    tracker publishes the text as a new message.
    """

    async def publish_summary(self, text: str) -> None:
        ...

    async def update_summary(self, key: str, text: str) -> bool:
        ...


class LoggingReporter:
    """Default reporter: writes every summary to the library logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level
        self.latest: dict[str, str] = {}

    async def publish_summary(self, text: str) -> None:
        _logger.log(self._level, "Summary:\n%s", text)

    async def update_summary(self, key: str, text: str) -> bool:
        if self.latest.get(key) == text:
            return True
        self.latest[key] = text
        _logger.log(self._level, "Summary %s:\n%s", key, text)
        return True


async def publish_quietly(reporter: SummaryReporter, text: str) -> None:
    try:
        await reporter.publish_summary(text)
    except Exception:
        _logger.warning("Reporter failed to publish summary", exc_info=True)


async def update_or_publish(reporter: SummaryReporter, key: str, text: str) -> None:
    """Update the summary for *key*, publishing a new one when that fails."""
    try:
        updated = await reporter.update_summary(key, text)
    except Exception:
        _logger.warning("Reporter failed to update summary %s", key, exc_info=True)
        updated = False
    if not updated:
        await publish_quietly(reporter, text)
