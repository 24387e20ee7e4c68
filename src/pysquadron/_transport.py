"""HTTP transport for the two upstream sources."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from pysquadron._constants import DEFAULT_TIMEOUT, HTML_REQUEST_HEADERS, USER_AGENT
from pysquadron.exceptions import SquadronTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the source modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, url: str, *, timeout: float = DEFAULT_TIMEOUT) -> Any:
        ...

    async def get_text(self, url: str, *, timeout: float = DEFAULT_TIMEOUT) -> str:
        ...


class HttpTransport:
    """aiohttp-backed transport with per-request timeouts."""

    def __init__(self, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session

    async def _get(self, url: str, *, headers: dict[str, str], timeout: float) -> str:
        _logger.debug("GET %s", url)
        try:
            async with self._http.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise SquadronTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except SquadronTransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise SquadronTransportError(f"Request to {url} timed out after {timeout}s", url=url) from exc
        except aiohttp.ClientError as exc:
            raise SquadronTransportError(f"Request to {url} failed: {exc}", url=url) from exc
        except UnicodeDecodeError as exc:
            raise SquadronTransportError(f"Undecodable body from {url}: {exc}", url=url) from exc

        _logger.debug("Received %d chars from %s", len(text), url)
        return text

    async def get_json(self, url: str, *, timeout: float = DEFAULT_TIMEOUT) -> Any:
        text = await self._get(
            url,
            headers={"user-agent": USER_AGENT, "accept": "application/json"},
            timeout=timeout,
        )
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SquadronTransportError(f"Invalid JSON from {url}: {text[:200]}", url=url) from exc

    async def get_text(self, url: str, *, timeout: float = DEFAULT_TIMEOUT) -> str:
        return await self._get(url, headers=dict(HTML_REQUEST_HEADERS), timeout=timeout)
