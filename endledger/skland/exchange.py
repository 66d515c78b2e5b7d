"""Login token to pull-history access token exchange.

The pull-history API does not accept the gameplay credential. Its access
token is obtained in three strictly sequential steps:

1. ``grant``: login token (and optional device token) to an OAuth grant token.
2. ``binding``: grant token to the binding list, picking the entry whose roles
   contain the requested role id. This yields the record uid.
3. ``access_token``: record uid plus grant token to the access token.

A bare login token can also be traded for a gameplay credential
(:meth:`CredentialExchange.cred_by_login_token`): a Skland OAuth grant yields a
code, which the credential endpoint turns into ``cred``.

Any failing step raises :class:`ExchangeError` and stops the chain.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from ..domain.exceptions import DeviceIdUnavailable, ExchangeError, TransportError
from ..domain.models import Account
from .api import (
    BINDING_APP_CODE,
    BINDING_LIST_URL,
    CRED_API,
    OAUTH_API,
    SKLAND_APP_CODE,
    SKLAND_WEB_URL,
    U8_TOKEN_BY_UID_URL,
)
from .device_id import DeviceIdProvider
from .headers import ACCEPT_LANGUAGE, skland_web_headers
from .hg_device import HypergryphDeviceRegistry
from .signature import compact_json
from .transport import HttpResponse, Transport

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ExchangeResult:
    access_token: str
    record_uid: str


@dataclass(slots=True, frozen=True)
class CredentialInfo:
    credential: str
    session_user_id: str = ""


@dataclass(slots=True, frozen=True)
class Binding:
    uid: str
    roles: list[dict[str, Any]]


def pick_binding(payload: Any, role_id: str | None) -> Binding | None:
    """Select the binding entry owning ``role_id`` from a binding-list payload."""
    data = payload.get("data") if isinstance(payload, dict) else None
    groups = data.get("list") if isinstance(data, dict) else None
    if not isinstance(groups, list) or not groups or not isinstance(groups[0], dict):
        return None
    entries = [entry for entry in groups[0].get("bindingList") or [] if isinstance(entry, dict)]
    if not entries:
        return None

    rid = str(role_id or "").strip()
    picked = None
    if rid:
        picked = next(
            (
                entry
                for entry in entries
                if any(
                    isinstance(role, dict) and str(role.get("roleId") or "") == rid
                    for role in entry.get("roles") or []
                )
            ),
            None,
        )
    picked = picked or entries[0]
    uid = picked.get("uid")
    roles = picked.get("roles") if isinstance(picked.get("roles"), list) else []
    return Binding(uid="" if uid is None else str(uid), roles=roles)


class CredentialExchange:
    def __init__(
        self,
        transport: Transport,
        devices: HypergryphDeviceRegistry,
        *,
        device_ids: DeviceIdProvider | None = None,
        web_user_agent: str = "Mozilla/5.0",
    ) -> None:
        self._transport = transport
        self._devices = devices
        self._device_ids = device_ids
        self._web_user_agent = web_user_agent

    async def exchange(self, account: Account, user_id: str | None = None) -> ExchangeResult:
        login_token = account.login_token.strip()
        if not login_token:
            raise ExchangeError("grant", "account has no login token")

        grant_token = await self.grant_token(login_token, account.device_token, user_id=user_id)
        binding = await self.binding(grant_token, account.role_id, user_id=user_id)
        record_uid = (binding.uid if binding else "") or account.record_uid.strip()
        if not record_uid:
            raise ExchangeError("binding", "no record uid in binding list and none stored; bind the account again")
        access_token = await self.access_token(record_uid, grant_token, user_id=user_id)
        logger.info("Exchanged pull-history token for role %s", account.role_id)
        return ExchangeResult(access_token=access_token, record_uid=record_uid)

    async def grant_token(self, login_token: str, device_token: str = "", *, user_id: str | None = None) -> str:
        body: dict[str, Any] = {"token": str(login_token), "appCode": BINDING_APP_CODE, "type": 1}
        if device_token and device_token.strip():
            body["deviceToken"] = device_token.strip()
        resp = await self._call("grant", "POST", OAUTH_API, user_id=user_id, body=body)
        return self._require_token("grant", resp)

    async def binding(self, grant_token: str, role_id: str | None, *, user_id: str | None = None) -> Binding | None:
        query = urlencode({"appCode": "endfield", "token": grant_token})
        resp = await self._call("binding", "GET", f"{BINDING_LIST_URL}?{query}", user_id=user_id)
        payload = self._require_ok("binding", resp)
        if not isinstance(payload.get("data"), dict):
            raise ExchangeError("binding", _upstream_message(payload), code=payload.get("status"))
        return pick_binding(payload, role_id)

    async def access_token(self, record_uid: str, grant_token: str, *, user_id: str | None = None) -> str:
        body = {"uid": str(record_uid), "token": str(grant_token)}
        resp = await self._call("access_token", "POST", U8_TOKEN_BY_UID_URL, user_id=user_id, body=body)
        return self._require_token("access_token", resp)

    async def cred_by_login_token(self, login_token: str, *, user_id: str | None = None) -> CredentialInfo:
        """Trade a login token for a gameplay credential and the Skland user id."""
        body = {"appCode": SKLAND_APP_CODE, "token": str(login_token).strip(), "type": 0}
        resp = await self._call("grant", "POST", OAUTH_API, user_id=user_id, body=body)
        if resp.status == 405:
            raise ExchangeError("grant", "token login is refused upstream, bind with a credential instead", code=405)
        payload = self._require_ok("grant", resp)
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        code = data.get("code")
        if not code:
            raise ExchangeError("grant", _upstream_message(payload, "response has no code"), code=payload.get("status"))

        if self._device_ids is None:
            raise ExchangeError("cred", "device id generator is not available")
        try:
            device_id = await self._device_ids.get_device_id(
                user_agent=self._web_user_agent,
                accept_language=ACCEPT_LANGUAGE,
                referer=SKLAND_WEB_URL,
            )
        except DeviceIdUnavailable as exc:
            raise ExchangeError("cred", str(exc)) from exc

        headers = skland_web_headers(self._web_user_agent, device_id, str(int(time.time())))
        try:
            resp = await self._transport.request(
                "POST",
                CRED_API,
                headers=headers,
                data=compact_json({"kind": 1, "code": str(code)}),
            )
        except TransportError as exc:
            raise ExchangeError("cred", str(exc)) from exc

        payload = resp.json()
        data = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else {}
        if not resp.ok or not isinstance(payload, dict) or payload.get("code") != 0 or not data.get("cred"):
            message = payload.get("message") if isinstance(payload, dict) else None
            status = payload.get("code") if isinstance(payload, dict) else resp.status
            raise ExchangeError("cred", str(message or f"HTTP {resp.status}"), code=status)

        session_user_id = next(
            (data[name] for name in ("userId", "user_id", "uid", "sklandUserId") if data.get(name) is not None),
            "",
        )
        logger.info("Traded a login token for a credential")
        return CredentialInfo(credential=str(data["cred"]), session_user_id=str(session_user_id))

    async def _call(
        self,
        step: str,
        method: str,
        url: str,
        *,
        user_id: str | None,
        body: dict[str, Any] | None = None,
    ) -> HttpResponse:
        headers = await self._devices.headers_for(user_id, json=body is not None)
        try:
            return await self._transport.request(
                method,
                url,
                headers=headers,
                data=compact_json(body) if body is not None else None,
            )
        except TransportError as exc:
            raise ExchangeError(step, str(exc)) from exc

    def _require_ok(self, step: str, resp: HttpResponse) -> dict:
        if not resp.ok:
            raise ExchangeError(step, f"HTTP {resp.status}", code=resp.status)
        payload = resp.json()
        if not isinstance(payload, dict) or payload.get("status") != 0:
            code = payload.get("status") if isinstance(payload, dict) else None
            raise ExchangeError(step, _upstream_message(payload), code=code)
        return payload

    def _require_token(self, step: str, resp: HttpResponse) -> str:
        payload = self._require_ok(step, resp)
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        token = data.get("token")
        if not token:
            raise ExchangeError(step, _upstream_message(payload, "response has no token"), code=payload.get("status"))
        return str(token)


def _upstream_message(payload: Any, default: str = "unknown error") -> str:
    if isinstance(payload, dict) and payload.get("msg"):
        return str(payload["msg"])
    return default
