"""Signed client for the Skland gameplay API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlsplit

from ..domain.exceptions import DeviceIdUnavailable, TransportError
from .api import (
    BINDING_URL,
    CARD_DETAIL_URL,
    ENDFIELD_ATTENDANCE_URL,
    GAME_ID_ENDFIELD,
    PLATFORM_ENDFIELD,
    SIGN_VNAME,
    SKLAND_APP_PLATFORM,
    SKLAND_APP_VNAME,
    USER_INFO_URL,
)
from .device_id import DeviceIdProvider
from .headers import build_base_header, endfield_web_headers, header_lookup, skland_app_headers
from .signature import build_query_string, compact_json, sign
from .tokens import TokenCache
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserAgents:
    ios: str = "Skland/1.21.0 (com.hypergryph.skland; build:102100065; iOS 17.6.0) Alamofire/5.7.1"
    android: str = (
        "Mozilla/5.0 (Linux; Android 12; SM-S9280 Build/V417IR; wv) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Version/4.0 Chrome/101.0.4951.61 Mobile Safari/537.36; SKLand/1.52.1"
    )
    skland_app: str = "Skland/1.52.1 (com.hypergryph.skland; build:105201003; Android 32; ) Okhttp/4.11.0"
    web: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36"
    )


class GameApiClient:
    """Issues signed requests on behalf of an account credential."""

    def __init__(
        self,
        transport: Transport,
        tokens: TokenCache,
        device_ids: DeviceIdProvider,
        *,
        user_agents: UserAgents | None = None,
    ) -> None:
        self._transport = transport
        self._tokens = tokens
        self._device_ids = device_ids
        self._ua = user_agents or UserAgents()

    @property
    def tokens(self) -> TokenCache:
        return self._tokens

    async def request(
        self,
        url: str,
        method: str = "POST",
        *,
        credential: str,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        use_device_id: bool = False,
        role_id: str | None = None,
        game_id: int | str | None = None,
        extra_headers: Mapping[str, str] | None = None,
        user_agent: str | None = None,
        accept_encoding: str = "gzip",
        platform: int | str = PLATFORM_ENDFIELD,
        v_name: str = SIGN_VNAME,
    ) -> dict | None:
        cred = (credential or "").strip()
        if not cred:
            raise ValueError("missing credential")

        token = await self._tokens.refresh_token(cred)
        if not token:
            return None

        method = method.upper()
        query = build_query_string(params)
        body_text = compact_json(body) if body else ""
        final_url = f"{url}?{query}" if method == "GET" and query else url
        payload = query if method == "GET" else f"{query}{body_text}"

        effective_ua = user_agent or header_lookup(extra_headers, "User-Agent") or self._ua.android

        device_id = ""
        if use_device_id:
            device_id = await self._device_id_or_empty(
                user_agent=effective_ua,
                accept_language=header_lookup(extra_headers, "Accept-Language", "language"),
                referer=header_lookup(extra_headers, "Referer", "Origin"),
            )

        signed = sign(
            token,
            urlsplit(url).path,
            payload,
            platform=platform,
            v_name=v_name,
            device_id=device_id,
        )
        headers = build_base_header(
            credential=cred,
            timestamp=signed.timestamp,
            sign=signed.sign,
            user_agent=effective_ua,
            platform=platform,
            role_id=role_id,
            game_id=game_id,
            v_name=v_name,
            device_id=device_id,
            accept_encoding=accept_encoding,
        )
        if extra_headers:
            headers.update(extra_headers)

        try:
            resp = await self._transport.request(
                method,
                final_url,
                headers=headers,
                data=None if method == "GET" else (body_text or None),
            )
        except TransportError as exc:
            logger.warning("Signed request to %s failed: %s", urlsplit(url).path, exc)
            return None

        data = resp.json()
        if not isinstance(data, dict):
            data = None
        # Signature and auth failures arrive as 400/403 with a JSON body.
        if resp.status in (400, 403):
            return data
        if resp.status != 200:
            logger.warning("Signed request to %s answered HTTP %s", urlsplit(url).path, resp.status)
            return None
        return data

    async def _device_id_or_empty(self, **kwargs: str) -> str:
        try:
            return await self._device_ids.get_device_id(**kwargs)
        except DeviceIdUnavailable as exc:
            logger.warning("Continuing without device id: %s", exc)
            return ""

    async def get_binding(self, credential: str) -> dict | None:
        return await self.request(BINDING_URL, "GET", credential=credential)

    async def get_user_info(self, credential: str, *, extra_headers: Mapping[str, str] | None = None) -> dict | None:
        ua = header_lookup(extra_headers, "User-Agent") or self._ua.skland_app
        headers = {**skland_app_headers(ua), **(extra_headers or {})}
        return await self.request(
            USER_INFO_URL,
            "GET",
            credential=credential,
            use_device_id=True,
            user_agent=ua,
            extra_headers=headers,
            platform=SKLAND_APP_PLATFORM,
            v_name=SKLAND_APP_VNAME,
        )

    async def attendance(self, credential: str, role_id: str) -> dict | None:
        return await self.request(
            ENDFIELD_ATTENDANCE_URL,
            "POST",
            credential=credential,
            role_id=role_id,
            game_id=GAME_ID_ENDFIELD,
            body={"uid": role_id, "gameId": str(GAME_ID_ENDFIELD)},
            accept_encoding="gzip, deflate",
        )

    async def get_card_detail(
        self,
        credential: str,
        role_id: str,
        *,
        server_id: str = "1",
        session_user_id: str,
    ) -> dict | None:
        return await self.request(
            CARD_DETAIL_URL,
            "GET",
            credential=credential,
            params={"roleId": role_id, "serverId": str(server_id or "1"), "userId": str(session_user_id)},
            use_device_id=True,
            extra_headers=endfield_web_headers(),
            accept_encoding="gzip, deflate",
        )
