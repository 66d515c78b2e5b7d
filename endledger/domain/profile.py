"""Profile card detail with lazy session user id resolution."""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable

from cachetools import TTLCache

from ..skland.client import GameApiClient
from .accounts import AccountService
from .exceptions import TransportError
from .models import Account, safe_int
from .results import ServiceResult

logger = logging.getLogger(__name__)

NOT_BOUND_MESSAGE = "No account bound yet. Bind one with a credential first."
CARD_CACHE_SIZE = 512


class ProfileService:
    def __init__(
        self,
        accounts: AccountService,
        client: GameApiClient,
        *,
        cache_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._accounts = accounts
        self._client = client
        self._cache_seconds = cache_seconds
        self._cache = TTLCache(maxsize=CARD_CACHE_SIZE, ttl=max(cache_seconds, 0.0), timer=clock)

    async def ensure_session_user_id(self, user_id: str, account: Account) -> str:
        """Return the account's Skland user id, fetching and saving it if missing."""
        if account.session_user_id:
            return account.session_user_id
        info = await self._client.get_user_info(account.credential)
        data = info.get("data") if isinstance(info, dict) else None
        user = data.get("user") if isinstance(data, dict) else None
        session_user_id = str(user.get("id") or "") if isinstance(user, dict) else ""
        if not session_user_id:
            return ""
        account.session_user_id = session_user_id
        await self._accounts.upsert_account(user_id, {"cred": account.credential, "sklandUserId": session_user_id})
        return session_user_id

    async def card_detail(self, user_id: str, *, force: bool = False) -> ServiceResult:
        active = await self._accounts.get_active_account(user_id)
        account = active.account
        if account is None or not account.can_call_api:
            return ServiceResult.failure(NOT_BOUND_MESSAGE)

        key = (str(user_id), account.role_id)
        if not force and self._cache_seconds > 0:
            cached = self._cache.get(key)
            if cached is not None:
                return ServiceResult.success(account=account, response=copy.deepcopy(cached), from_cache=True)

        try:
            session_user_id = await self.ensure_session_user_id(user_id, account)
        except (TransportError, ValueError) as exc:
            logger.debug("Session user id lookup failed: %s", exc)
            session_user_id = ""
        if not session_user_id:
            return ServiceResult.failure("Could not resolve the Skland user id for this account")

        response = await self._client.get_card_detail(
            account.credential,
            account.role_id,
            server_id=account.server_id,
            session_user_id=session_user_id,
        )
        if response is None:
            return ServiceResult.failure("Card detail request failed")
        if response.get("code") != 0:
            return ServiceResult.failure(
                f"Card detail request failed: {response.get('message') or response.get('code')}"
            )

        if self._cache_seconds > 0:
            self._cache[key] = copy.deepcopy(response)
        return ServiceResult.success(account=account, response=response, from_cache=False)


def render_card_text(account: Account, response: dict[str, Any], *, from_cache: bool = False, top: int = 12) -> str:
    """Plain text summary of a card detail response."""
    data = response.get("data") if isinstance(response.get("data"), dict) else {}
    detail = data.get("detail") if isinstance(data.get("detail"), dict) else {}
    base = detail.get("base") if isinstance(detail.get("base"), dict) else {}
    chars = [c for c in detail.get("chars") or [] if isinstance(c, dict)]

    def level(char: dict[str, Any]) -> int:
        return safe_int(char.get("level"))

    best = sorted(chars, key=level, reverse=True)[:top]
    names = []
    for char in best:
        info = char.get("charData") if isinstance(char.get("charData"), dict) else {}
        names.append(f"{info.get('name') or '-'} Lv{level(char)}")

    lines = [
        "[Endfield] Card" + (" (cached)" if from_cache else ""),
        f"Name: {base.get('name') or account.nickname or '-'}",
        f"UID: {base.get('roleId') or account.role_id or '-'}",
        f"Level: {base.get('level', '-')}  World level: {base.get('worldLevel', '-')}",
        f"Characters: {base.get('charNum', len(chars))}  Weapons: {base.get('weaponNum', '-')}",
    ]
    if names:
        lines.append(f"Top {len(names)}: " + " / ".join(names))
    return "\n".join(lines)
