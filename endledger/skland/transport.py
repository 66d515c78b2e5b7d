"""HTTP transport with bounded retries on network failures."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import aiohttp

from ..domain.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetryPolicy:
    """Exponential backoff for transport-level failures only."""

    max_attempts: int = 3
    base_delay: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 8.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = self.base_delay * (self.backoff_factor ** (attempt - 1))
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return min(delay, self.max_delay)


@dataclass(slots=True)
class HttpResponse:
    status: int
    text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any | None:
        """Parsed body, or ``None`` when the body is not JSON."""
        if not self.text:
            return None
        try:
            return json.loads(self.text)
        except ValueError:
            return None


class Transport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: str | None = None,
    ) -> HttpResponse:
        ...

    async def close(self) -> None:
        ...


class AiohttpTransport(Transport):
    """Transport backed by a shared :class:`aiohttp.ClientSession`."""

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 20.0,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry = retry or RetryPolicy()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: str | None = None,
    ) -> HttpResponse:
        session = self._get_session()
        last_error: Exception | None = None

        for attempt in range(1, self._retry.max_attempts + 1):
            try:
                async with session.request(
                    method,
                    url,
                    headers=dict(headers or {}),
                    data=data.encode("utf-8") if data is not None else None,
                    timeout=self._timeout,
                ) as resp:
                    text = await resp.text(errors="replace")
                    return HttpResponse(status=resp.status, text=text, headers=dict(resp.headers))
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = exc
                if attempt >= self._retry.max_attempts:
                    break
                delay = self._retry.delay_for(attempt)
                logger.warning(
                    "%s %s failed (%s), retrying in %.2fs (attempt %d/%d)",
                    method,
                    _strip_query(url),
                    type(exc).__name__,
                    delay,
                    attempt,
                    self._retry.max_attempts,
                )
                await asyncio.sleep(delay)

        raise TransportError(
            f"{method} {_strip_query(url)} failed after {self._retry.max_attempts} attempts"
        ) from last_error

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def _strip_query(url: str) -> str:
    """URL without its query string; queries may carry tokens."""
    return url.split("?", 1)[0]
