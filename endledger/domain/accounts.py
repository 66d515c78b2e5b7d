"""Account bookkeeping on top of the key-value account store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from cachetools import TTLCache

from ..skland.client import GameApiClient
from ..skland.exchange import CredentialExchange
from ..storage.base import AccountStore
from .exceptions import ExchangeError
from .models import Account, UserData, normalize_account, normalize_user_data
from .results import ServiceResult

logger = logging.getLogger(__name__)

ROLE_OWNER_TTL_SECONDS = 600.0
ROLE_OWNER_NEGATIVE_TTL_SECONDS = 60.0
ROLE_OWNER_CACHE_SIZE = 4096


@dataclass(slots=True)
class ActiveAccount:
    data: UserData
    account: Account | None
    index: int


@dataclass(slots=True)
class RoleOwner:
    user_id: str = ""
    nickname: str = ""


class RoleOwnerCache:
    """Remembers which chat user owns a role id, including misses."""

    def __init__(
        self,
        *,
        ttl: float = ROLE_OWNER_TTL_SECONDS,
        negative_ttl: float = ROLE_OWNER_NEGATIVE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._found = TTLCache(maxsize=ROLE_OWNER_CACHE_SIZE, ttl=ttl, timer=clock)
        self._missing = TTLCache(maxsize=ROLE_OWNER_CACHE_SIZE, ttl=negative_ttl, timer=clock)

    def get(self, role_id: str) -> RoleOwner | None:
        owner = self._found.get(role_id)
        if owner is not None:
            return owner
        return self._missing.get(role_id)

    def put(self, role_id: str, owner: RoleOwner) -> None:
        self.forget(role_id)
        if owner.user_id:
            self._found[role_id] = owner
        else:
            self._missing[role_id] = owner

    def forget(self, role_id: str) -> None:
        self._found.pop(role_id, None)
        self._missing.pop(role_id, None)


class AccountService:
    """Reads, migrates and updates the accounts bound by each chat user."""

    def __init__(
        self,
        store: AccountStore,
        *,
        client: GameApiClient | None = None,
        exchange: CredentialExchange | None = None,
        owners: RoleOwnerCache | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._exchange = exchange
        self._owners = owners or RoleOwnerCache()

    @property
    def store(self) -> AccountStore:
        return self._store

    async def get_user_data(self, user_id: str) -> UserData:
        raw = await self._store.load(str(user_id))
        data, needs_save = normalize_user_data(raw)
        if needs_save:
            await self.save_user_data(user_id, data)
        return data

    async def save_user_data(self, user_id: str, data: UserData) -> None:
        await self._store.save(str(user_id), data.to_dict())

    async def get_active_account(self, user_id: str) -> ActiveAccount:
        raw = await self._store.load(str(user_id))
        data, needs_save = normalize_user_data(raw)
        if not data.accounts:
            if needs_save:
                await self.save_user_data(user_id, data)
            return ActiveAccount(data, None, -1)

        stored_active = raw.get("active") if isinstance(raw, Mapping) else None
        if stored_active is not None and str(stored_active).strip() != str(data.active):
            needs_save = True
        if needs_save:
            await self.save_user_data(user_id, data)
        return ActiveAccount(data, data.accounts[data.active], data.active)

    async def upsert_account(self, user_id: str, account: Account | Mapping[str, Any]) -> UserData:
        """Insert or merge an account keyed by its credential and make it active.

        A mapping is treated as a partial update: keys it does not carry keep
        their stored values.
        """
        partial = account.to_dict() if isinstance(account, Account) else dict(account)
        cred = str(partial.get("cred") or "").strip()
        if not cred:
            raise ValueError("missing credential")

        data = await self.get_user_data(user_id)
        idx = next((i for i, a in enumerate(data.accounts) if a.credential == cred), -1)
        if idx >= 0:
            merged = {**data.accounts[idx].to_dict(), **partial}
            updated, _ = normalize_account(merged)
            data.accounts[idx] = updated
        else:
            created, _ = normalize_account(partial)
            data.accounts.append(created)
            idx = len(data.accounts) - 1
        data.active = idx
        await self.save_user_data(user_id, data)

        role_id = data.accounts[idx].role_id
        if role_id:
            self._owners.put(role_id, RoleOwner(str(user_id), data.accounts[idx].nickname))
        return data

    async def set_active_account(self, user_id: str, target: str | int) -> ServiceResult:
        data = await self.get_user_data(user_id)
        if not data.accounts:
            return ServiceResult.failure("No bound accounts", reason="empty")
        idx = _find_target(data.accounts, target)
        if idx < 0:
            return ServiceResult.failure(f"Account {target} not found", reason="not_found")
        data.active = idx
        await self.save_user_data(user_id, data)
        return ServiceResult.success(
            f"Switched to {data.accounts[idx].display_name}", index=idx, data=data
        )

    async def delete_account(self, user_id: str, target: str | int) -> ServiceResult:
        data = await self.get_user_data(user_id)
        if not data.accounts:
            return ServiceResult.failure("No bound accounts", reason="empty")
        idx = _find_target(data.accounts, target)
        if idx < 0:
            return ServiceResult.failure(f"Account {target} not found", reason="not_found")

        removed = data.accounts.pop(idx)
        if not data.accounts:
            data.active = 0
            data.auto_sign = False
        elif data.active >= len(data.accounts):
            data.active = 0
        await self.save_user_data(user_id, data)
        if removed.role_id:
            self._owners.forget(removed.role_id)
        return ServiceResult.success(f"Removed {removed.display_name}", data=data)

    async def set_auto_sign(self, user_id: str, enabled: bool) -> UserData:
        data = await self.get_user_data(user_id)
        data.auto_sign = bool(enabled)
        await self.save_user_data(user_id, data)
        return data

    async def list_bound_users(self) -> list[str]:
        out: list[str] = []
        for user_id in await self._store.list_user_ids():
            data = await self.get_user_data(user_id)
            if data.accounts:
                out.append(str(user_id))
        return out

    async def list_auto_sign_users(self) -> list[str]:
        out: list[str] = []
        for user_id in await self._store.list_user_ids():
            data = await self.get_user_data(user_id)
            if data.auto_sign and data.accounts:
                out.append(str(user_id))
        return out

    async def find_bound_user_by_role_id(self, role_id: str) -> RoleOwner:
        rid = str(role_id or "").strip()
        if not rid:
            return RoleOwner()
        cached = self._owners.get(rid)
        if cached is not None:
            return cached

        for user_id in await self._store.list_user_ids():
            data = await self.get_user_data(user_id)
            found = data.find_by_role_id(rid)
            if found is not None:
                owner = RoleOwner(str(user_id), found.nickname)
                self._owners.put(rid, owner)
                return owner

        self._owners.put(rid, RoleOwner())
        return RoleOwner()

    async def bind_by_credential(
        self,
        user_id: str,
        credential: str,
        *,
        login_token: str = "",
        device_token: str = "",
        session_user_id: str = "",
    ) -> ServiceResult:
        """Look up the Endfield role behind ``credential`` and bind it."""
        if self._client is None:
            raise RuntimeError("AccountService was created without an API client")
        cred = credential.strip()
        if not cred:
            return ServiceResult.failure("Binding failed: empty credential")
        binding = await self._client.get_binding(cred)
        if not binding or binding.get("code") != 0 or binding.get("message") != "OK":
            return ServiceResult.failure("Binding failed: check that the credential is valid")

        parsed = parse_binding(binding)
        if parsed is None:
            return ServiceResult.failure("No Endfield role is bound to this credential")

        account: dict[str, Any] = {
            "cred": cred,
            **parsed,
            "updatedAt": int(time.time() * 1000),
        }
        if session_user_id:
            account["sklandUserId"] = session_user_id
        if login_token:
            account["token"] = login_token
        if device_token:
            account["deviceToken"] = device_token

        data = await self.upsert_account(user_id, account)
        bound = data.accounts[data.active]
        logger.info("User %s bound role %s", user_id, bound.role_id)
        return ServiceResult.success(
            f"Bound {bound.nickname} ({bound.channel_name}) UID:{bound.role_id}",
            account=bound,
        )

    async def bind_from_input(self, user_id: str, text: str) -> ServiceResult:
        """Bind from ``<cred> [login token]`` or a bare login token."""
        parts = (text or "").split()
        if not parts:
            return ServiceResult.failure("Binding failed: send a credential or a login token")
        kind, value = parse_credential(parts[0])
        if kind == "token":
            return await self.bind_by_login_token(user_id, value)
        login_token = parts[1] if len(parts) > 1 else ""
        return await self.bind_by_credential(user_id, value, login_token=login_token)

    async def bind_by_login_token(self, user_id: str, login_token: str) -> ServiceResult:
        """Trade a Hypergryph login token for a credential, then bind it.

        The token is kept on the account since pull-history updates need it.
        """
        if self._exchange is None:
            raise RuntimeError("AccountService was created without a credential exchange")
        token = login_token.strip()
        if not token:
            return ServiceResult.failure("Binding failed: empty login token")
        try:
            info = await self._exchange.cred_by_login_token(token, user_id=str(user_id))
        except ExchangeError as exc:
            logger.warning("Token login for user %s failed: %s", user_id, exc)
            return ServiceResult.failure(f"Token login failed: {exc.reason}")
        return await self.bind_by_credential(
            user_id,
            info.credential,
            login_token=token,
            session_user_id=info.session_user_id,
        )


def parse_credential(text: str) -> tuple[str, str]:
    """Classify bind input as ``("cred", value)``, ``("token", value)`` or ``("", text)``.

    Explicit ``cred=`` / ``token=`` prefixes win; otherwise a 32 character
    value is a credential and a 24 character value a login token.
    """
    raw = (text or "").strip()
    lower = raw.lower()
    for prefix in ("cred=", "cred:", "token=", "token:"):
        if lower.startswith(prefix):
            return ("cred" if prefix.startswith("cred") else "token"), raw[len(prefix):].strip()
    if len(raw) == 32:
        return "cred", raw
    if len(raw) == 24:
        return "token", raw
    return "", raw


def parse_binding(binding: Mapping[str, Any]) -> dict[str, str] | None:
    """Extract the Endfield role from the player binding payload."""
    data = binding.get("data") if isinstance(binding.get("data"), Mapping) else {}
    for item in data.get("list") or []:
        if not isinstance(item, Mapping) or item.get("appCode") != "endfield":
            continue
        entries = item.get("bindingList") or []
        first = entries[0] if entries and isinstance(entries[0], Mapping) else None
        if first is None:
            return None
        role = first.get("defaultRole")
        if not role and isinstance(first.get("roles"), list) and first["roles"]:
            role = first["roles"][0]
        if not isinstance(role, Mapping) or not role.get("roleId"):
            return None
        return {
            "uid": str(role["roleId"]),
            "nickname": str(role.get("nickname") or first.get("nickName") or "Endfield role"),
            "channelName": str(first.get("channelName") or "Official"),
            "recordUid": str(first.get("uid") or ""),
            "serverId": str(role.get("serverId") or "1"),
        }
    return None


def _find_target(accounts: Sequence[Account], target: str | int) -> int:
    """Resolve a 1-based position or a role id to a list index."""
    text = str(target if target is not None else "").strip()
    if not text:
        return -1
    if text.isdigit():
        num = int(text)
        if 1 <= num <= len(accounts):
            return num - 1
    return next((i for i, a in enumerate(accounts) if a.role_id == text), -1)
