"""Pull-history page fetcher."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping
from urllib.parse import urlencode

from ..domain.exceptions import UpstreamError
from ..domain.models import PullRecord, safe_int
from ..skland.transport import Transport

logger = logging.getLogger(__name__)


class RecordFetcher:
    """Pages through one record endpoint with a ``seq_id`` cursor."""

    def __init__(self, transport: Transport, *, lang: str = "zh-cn", page_delay: float = 0.1) -> None:
        self._transport = transport
        self._lang = lang
        self._page_delay = page_delay

    async def fetch(
        self,
        url: str,
        access_token: str,
        *,
        server_id: str = "1",
        extra_params: Mapping[str, str] | None = None,
        low_water_mark: int = 0,
    ) -> list[PullRecord]:
        """Collect records newer than ``low_water_mark``.

        Paging stops at the first record whose ``seqId`` is positive and not
        above the mark; that record is not returned. It also stops when the
        last ``seqId`` of a page would not move the cursor further back.
        """
        records: list[PullRecord] = []
        cursor = 0
        pages = 0

        while True:
            params: dict[str, Any] = {
                "lang": self._lang,
                "token": str(access_token),
                "server_id": str(server_id or "1"),
                **(extra_params or {}),
            }
            if cursor > 0:
                params["seq_id"] = str(cursor)

            page = await self._get_page(url, params)
            pages += 1
            items = [item for item in page.get("list") or [] if isinstance(item, Mapping)]
            logger.debug("Fetched page %d of %s (%d records, cursor=%s)", pages, url, len(items), cursor)

            for item in items:
                seq = safe_int(item.get("seqId"))
                if low_water_mark > 0 and 0 < seq <= low_water_mark:
                    return records
                records.append(PullRecord.from_dict(item))

            if not page.get("hasMore") or not items:
                return records
            next_cursor = safe_int(items[-1].get("seqId"))
            if next_cursor <= 0 or (cursor > 0 and next_cursor >= cursor):
                logger.warning("Pull history paging of %s stopped, cursor %s does not advance from %s", url, next_cursor, cursor)
                return records
            cursor = next_cursor
            await asyncio.sleep(self._page_delay)

    async def _get_page(self, url: str, params: Mapping[str, Any]) -> dict:
        resp = await self._transport.request("GET", f"{url}?{urlencode(params)}")
        if not resp.ok:
            raise UpstreamError(f"Pull history request failed: HTTP {resp.status}", code=resp.status)
        payload = resp.json()
        if not isinstance(payload, dict) or payload.get("code") != 0 or not isinstance(payload.get("data"), dict):
            msg = payload.get("msg") if isinstance(payload, dict) else None
            code = payload.get("code") if isinstance(payload, dict) else None
            raise UpstreamError(f"Pull history request failed: {msg or 'unknown error'}", code=code)
        return payload["data"]
