"""Short-lived session token cache keyed by a hash of the credential."""

from __future__ import annotations

import logging
import time
from typing import Callable

from cachetools import TTLCache

from ..domain.exceptions import TransportError
from .api import REFRESH_TOKEN_URL
from .headers import refresh_headers
from .signature import md5_hex
from .transport import Transport

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 180.0
TOKEN_CACHE_SIZE = 1024


def token_cache_key(credential: str) -> str:
    return md5_hex(credential)


class TokenCache:
    """Caches the refresh endpoint result for ``ttl`` seconds per credential."""

    def __init__(
        self,
        transport: Transport,
        *,
        user_agent: str,
        ttl: float = TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._user_agent = user_agent
        self._entries = TTLCache(maxsize=TOKEN_CACHE_SIZE, ttl=ttl, timer=clock)

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def invalidate(self, credential: str) -> None:
        self._entries.pop(token_cache_key(credential.strip()), None)

    async def refresh_token(self, credential: str, force: bool = False) -> str:
        cred = (credential or "").strip()
        if not cred:
            return ""

        key = token_cache_key(cred)
        if not force:
            cached = self._entries.get(key)
            if cached:
                logger.debug("Session token cache hit %s", key[:8])
                return cached

        try:
            resp = await self._transport.request("GET", REFRESH_TOKEN_URL, headers=refresh_headers(cred, self._user_agent))
        except TransportError as exc:
            logger.warning("Session token refresh failed: %s", exc)
            return ""

        payload = resp.json()
        if not isinstance(payload, dict):
            logger.warning("Session token refresh returned a non-JSON body (HTTP %s)", resp.status)
            return ""
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        token = data.get("token")
        if payload.get("code") == 0 and payload.get("message") == "OK" and token:
            self._entries[key] = str(token)
            return str(token)

        logger.warning(
            "Session token refresh rejected: code=%s message=%s",
            payload.get("code"),
            payload.get("message"),
        )
        return ""
