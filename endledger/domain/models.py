"""Typed models for accounts, pull records and ledgers.

Upstream payloads and historical account records use many spellings for the
same field. Everything entering the domain goes through the ``from_dict`` /
``normalize_*`` functions below, which accept the permissive shapes and report
whether a migration to the canonical shape happened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

logger = logging.getLogger(__name__)

RARE_RARITY = 6

LEDGER_VERSION = "v1.0"

_ACCOUNT_KEYS = {
    "cred",
    "uid",
    "nickname",
    "serverId",
    "channelName",
    "recordUid",
    "token",
    "deviceToken",
    "sklandUserId",
    "updatedAt",
}

_UID_ALIASES = ("endfieldUid", "endUid", "enduid", "roleId", "role_id", "gameUid", "game_uid")
_NICKNAME_ALIASES = ("nickName", "nick_name", "name")
_SERVER_ALIASES = ("server_id", "server", "sid")


def safe_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).replace(",", "").strip()
    try:
        return int(text)
    except ValueError:
        try:
            return int(float(text))
        except ValueError:
            return default


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _first_alias(raw: Mapping[str, Any], names: Iterable[str]) -> str:
    for name in names:
        value = _clean(raw.get(name))
        if value:
            return value
    return ""


@dataclass(slots=True)
class Account:
    """One bound game identity."""

    credential: str
    role_id: str = ""
    nickname: str = ""
    server_id: str = "1"
    channel_name: str = ""
    record_uid: str = ""
    login_token: str = ""
    device_token: str = ""
    session_user_id: str = ""
    updated_at: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def can_call_api(self) -> bool:
        return bool(self.credential and self.role_id)

    @property
    def display_name(self) -> str:
        return self.nickname or self.role_id or "unnamed"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Account":
        account, _ = normalize_account(raw)
        if account is None:
            raise ValueError("Account payload must be a mapping")
        return account

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data["cred"] = self.credential
        data["uid"] = self.role_id
        data["nickname"] = self.nickname
        data["serverId"] = self.server_id
        if self.channel_name:
            data["channelName"] = self.channel_name
        if self.record_uid:
            data["recordUid"] = self.record_uid
        if self.login_token:
            data["token"] = self.login_token
        if self.device_token:
            data["deviceToken"] = self.device_token
        if self.session_user_id:
            data["sklandUserId"] = self.session_user_id
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data


def normalize_account(raw: Any) -> tuple[Account | None, bool]:
    """Parse a stored account record, accepting historical field spellings.

    Returns the canonical account and whether any alias had to be used.
    """
    if not isinstance(raw, Mapping):
        return None, False

    migrated = False
    role_id = _clean(raw.get("uid"))
    if not role_id:
        role_id = _first_alias(raw, _UID_ALIASES)
        migrated = migrated or bool(role_id)

    nickname = _clean(raw.get("nickname"))
    if not nickname:
        nickname = _first_alias(raw, _NICKNAME_ALIASES)
        migrated = migrated or bool(nickname)

    server_id = _clean(raw.get("serverId"))
    if not server_id:
        server_id = _first_alias(raw, _SERVER_ALIASES)
        migrated = migrated or bool(server_id)

    device_token = _clean(raw.get("deviceToken"))
    if not device_token and raw.get("device_token") is not None:
        device_token = _clean(raw.get("device_token"))
        migrated = True

    updated_at = raw.get("updatedAt")
    aliases = set(_UID_ALIASES) | set(_NICKNAME_ALIASES) | set(_SERVER_ALIASES) | {"device_token"}
    extra = {
        key: value
        for key, value in raw.items()
        if key not in _ACCOUNT_KEYS and key not in aliases
    }

    account = Account(
        credential=_clean(raw.get("cred")),
        role_id=role_id,
        nickname=nickname,
        server_id=server_id or "1",
        channel_name=_clean(raw.get("channelName")),
        record_uid=_clean(raw.get("recordUid")),
        login_token=_clean(raw.get("token")),
        device_token=device_token,
        session_user_id=_clean(raw.get("sklandUserId")),
        updated_at=safe_int(updated_at) if updated_at is not None else None,
        extra=extra,
    )
    return account, migrated


@dataclass(slots=True)
class UserData:
    """Accounts bound by one chat user."""

    accounts: list[Account] = field(default_factory=list)
    active: int = 0
    auto_sign: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "accounts": [account.to_dict() for account in self.accounts],
            "active": self.active,
            "autoSign": self.auto_sign,
        }

    def find_by_role_id(self, role_id: str) -> Account | None:
        rid = _clean(role_id)
        if not rid:
            return None
        return next((a for a in self.accounts if a.role_id == rid), None)


def normalize_user_data(parsed: Any) -> tuple[UserData, bool]:
    """Upgrade any historical user record shape to :class:`UserData`.

    Older records stored a bare account list, a single account object, or used
    ``list`` / ``account`` / ``activeIndex`` / ``auto_sign`` keys. The second
    element of the result tells the caller to persist the upgraded shape.
    """
    if not parsed:
        return UserData(), False

    needs_save = False
    accounts_raw: Sequence[Any] = ()
    active: Any = 0
    auto_sign: Any = False

    if isinstance(parsed, list):
        accounts_raw = parsed
        needs_save = True
    elif isinstance(parsed, Mapping):
        active = _first_present(parsed, ("active", "activeIndex", "activeUid", "currentUid"), 0)
        auto_sign = _first_present(parsed, ("autoSign", "auto_sign", "autoSignIn"), False)
        if "active" not in parsed and active != 0:
            needs_save = True
        if "autoSign" not in parsed and auto_sign is not False:
            needs_save = True

        if isinstance(parsed.get("accounts"), list):
            accounts_raw = parsed["accounts"]
        elif isinstance(parsed.get("list"), list):
            accounts_raw = parsed["list"]
            needs_save = True
        elif isinstance(parsed.get("accounts"), Mapping):
            accounts_raw = [parsed["accounts"]]
            needs_save = True
        elif isinstance(parsed.get("account"), list):
            accounts_raw = parsed["account"]
            needs_save = True
        elif isinstance(parsed.get("account"), Mapping):
            accounts_raw = [parsed["account"]]
            needs_save = True
        elif any(parsed.get(key) is not None for key in ("cred", "uid", "token")):
            accounts_raw = [parsed]
            needs_save = True
        else:
            return UserData(), False
    else:
        return UserData(), False

    accounts: list[Account] = []
    for raw in accounts_raw:
        account, migrated = normalize_account(raw)
        if account is None:
            needs_save = True
            continue
        needs_save = needs_save or migrated
        accounts.append(account)

    data = UserData(accounts=accounts, active=_resolve_active(active, accounts), auto_sign=bool(auto_sign))
    if needs_save:
        logger.info("Migrated stored user data to the current shape (%d accounts)", len(accounts))
    return data, needs_save


def _first_present(raw: Mapping[str, Any], keys: Sequence[str], default: Any) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return default


def _resolve_active(raw: Any, accounts: Sequence[Account]) -> int:
    """Map an index, 1-based index, or uid string onto a valid list index."""
    if not accounts:
        return 0
    text = _clean(raw)
    if text.lstrip("-").isdigit():
        num = int(text)
        if 0 <= num < len(accounts):
            return num
        if num == len(accounts) == 1:
            return 0
    if text:
        for idx, account in enumerate(accounts):
            if account.role_id == text:
                return idx
    return 0


@dataclass(slots=True)
class PullRecord:
    """One reward draw as reported by the pull-history API."""

    seq_id: int
    gacha_ts: int = 0
    pool_id: str = ""
    pool_name: str = ""
    rarity: int = 0
    is_free: bool = False
    is_new: bool = False
    char_id: str = ""
    char_name: str = ""
    weapon_id: str = ""
    weapon_name: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return classify_record(self.raw) if self.raw else ("weapon" if self.weapon_id or self.weapon_name else "char")

    @property
    def is_rare(self) -> bool:
        return self.rarity == RARE_RARITY

    @property
    def name(self) -> str:
        return self.char_name or self.weapon_name or "unknown"

    @property
    def key(self) -> tuple[str, int, int]:
        """Identity used for cost accounting."""
        return (self.pool_id, self.gacha_ts, self.seq_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PullRecord":
        return cls(
            seq_id=safe_int(data.get("seqId")),
            gacha_ts=safe_int(data.get("gachaTs")),
            pool_id=_clean(data.get("poolId")),
            pool_name=_clean(data.get("poolName")),
            rarity=safe_int(data.get("rarity")),
            is_free=bool(data.get("isFree")),
            is_new=bool(data.get("isNew")),
            char_id=_clean(data.get("charId")),
            char_name=_clean(data.get("charName")),
            weapon_id=_clean(data.get("weaponId")),
            weapon_name=_clean(data.get("weaponName")),
            raw=dict(data),
        )

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        data: dict[str, Any] = {
            "seqId": str(self.seq_id),
            "gachaTs": str(self.gacha_ts),
            "poolId": self.pool_id,
            "poolName": self.pool_name,
            "rarity": self.rarity,
            "isFree": self.is_free,
            "isNew": self.is_new,
        }
        if self.weapon_id or self.weapon_name:
            data["weaponId"] = self.weapon_id
            data["weaponName"] = self.weapon_name
        else:
            data["charId"] = self.char_id
            data["charName"] = self.char_name
        return data


def classify_record(record: Mapping[str, Any]) -> str:
    """Return ``"weapon"``, ``"char"`` or ``""`` based on payload fields."""
    if not isinstance(record, Mapping):
        return ""
    if record.get("weaponId") is not None or record.get("weaponName") is not None:
        return "weapon"
    if record.get("charId") is not None or record.get("charName") is not None:
        return "char"
    return ""


@dataclass(slots=True)
class LedgerInfo:
    uid: str
    lang: str = "zh-cn"
    timezone: int = 8
    export_timestamp: int = 0
    version: str = LEDGER_VERSION
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LedgerInfo":
        known = {"uid", "lang", "timezone", "exportTimestamp", "version"}
        return cls(
            uid=_clean(data.get("uid")),
            lang=_clean(data.get("lang")) or "zh-cn",
            timezone=safe_int(data.get("timezone"), 8),
            export_timestamp=safe_int(data.get("exportTimestamp")),
            version=_clean(data.get("version")) or LEDGER_VERSION,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "uid": self.uid,
            "lang": self.lang,
            "timezone": self.timezone,
            "exportTimestamp": self.export_timestamp,
            "version": self.version,
        }


@dataclass(slots=True)
class Ledger:
    """Per-role aggregate of pull records."""

    info: LedgerInfo
    char_records: list[PullRecord] = field(default_factory=list)
    weapon_records: list[PullRecord] = field(default_factory=list)

    @classmethod
    def empty(cls, role_id: str) -> "Ledger":
        return cls(info=LedgerInfo(uid=role_id))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Ledger":
        info_raw = data.get("info")
        info = LedgerInfo.from_dict(info_raw if isinstance(info_raw, Mapping) else {})
        return cls(
            info=info,
            char_records=_parse_records(data.get("charList")),
            weapon_records=_parse_records(data.get("weaponList")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "info": self.info.to_dict(),
            "charList": [record.to_dict() for record in self.char_records],
            "weaponList": [record.to_dict() for record in self.weapon_records],
        }

    @property
    def total(self) -> int:
        return len(self.char_records) + len(self.weapon_records)


def _parse_records(raw: Any) -> list[PullRecord]:
    if not isinstance(raw, list):
        return []
    return [PullRecord.from_dict(item) for item in raw if isinstance(item, Mapping)]
