"""Pull-history operations exposed to the chat layer.

Every method returns a :class:`ServiceResult` instead of raising, so the
caller only has to format ``message`` or read the payload.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping
from urllib.parse import unquote

from ..domain.accounts import AccountService
from ..domain.events import IMPORT_COMPLETED, LEDGER_DELETED, SYNC_COMPLETED, EventBus, LedgerEvent
from ..domain.exceptions import EndLedgerError, LedgerStateError, SyncBusy
from ..domain.models import Account, PullRecord, classify_record
from ..domain.results import ServiceResult
from ..storage.ledger import LedgerStore
from .statistics import build_gacha_view
from .sync import LedgerSynchronizer, SyncResult

logger = logging.getLogger(__name__)

NOT_BOUND = "No account bound yet. Bind one with a credential first."
NEEDS_LOGIN = "Pull history needs a Hypergryph login token. Log in again to refresh it."
BUSY = "Pull history for this account is already being updated. Try again shortly."
NO_LEDGER = "No pull history stored yet. Run an update first."

_TOKEN_PARAM = re.compile(r"u8_?token=([^&#]+)", re.IGNORECASE)
_BARE_TOKEN = re.compile(r"^[A-Za-z0-9._-]{12,}$")


def extract_access_token(text: str) -> str:
    """Pull the access token out of a raw token or a URL carrying it."""
    compact = re.sub(r"\s+", "", text or "")
    if not compact:
        return ""
    match = _TOKEN_PARAM.search(compact)
    if match:
        return unquote(match.group(1))
    if _BARE_TOKEN.match(compact):
        return compact
    return ""


def normalize_import(payload: Any) -> tuple[list[PullRecord], list[PullRecord]]:
    """Split an imported document into character and weapon records.

    Accepts the ledger shape (``charList`` / ``weaponList``) or a map of pool
    name to record list, optionally wrapped in ``data``.
    """
    if not isinstance(payload, Mapping):
        return [], []

    char_direct = payload.get("charList")
    weapon_direct = payload.get("weaponList")
    if isinstance(char_direct, list) or isinstance(weapon_direct, list):
        return _records(char_direct), _records(weapon_direct)

    data = payload.get("data")
    if isinstance(data, Mapping):
        pools = data
    elif payload and all(isinstance(value, list) for value in payload.values()):
        pools = payload
    else:
        return [], []

    chars: list[PullRecord] = []
    weapons: list[PullRecord] = []
    for records in pools.values():
        if not isinstance(records, list):
            continue
        for raw in records:
            if not isinstance(raw, Mapping):
                continue
            target = weapons if classify_record(raw) == "weapon" else chars
            target.append(PullRecord.from_dict(raw))
    return chars, weapons


def import_uid(payload: Any) -> str:
    """Role id recorded in an exported ledger's ``info`` block, if any."""
    info = payload.get("info") if isinstance(payload, Mapping) else None
    if not isinstance(info, Mapping) or info.get("uid") is None:
        return ""
    return str(info["uid"]).strip()


def _records(raw: Any) -> list[PullRecord]:
    if not isinstance(raw, list):
        return []
    return [PullRecord.from_dict(item) for item in raw if isinstance(item, Mapping)]


def _sync_payload(result: SyncResult) -> dict[str, Any]:
    return {
        "role_id": result.role_id,
        "path": result.path,
        "new_char_count": result.new_char_count,
        "new_weapon_count": result.new_weapon_count,
        "total_char": result.total_char,
        "total_weapon": result.total_weapon,
        "export_timestamp": result.export_timestamp,
    }


def _sync_message(result: SyncResult, verb: str) -> str:
    return (
        f"{verb} UID:{result.role_id}: +{result.new_char_count} character, "
        f"+{result.new_weapon_count} weapon "
        f"(total {result.total_char} character, {result.total_weapon} weapon)"
    )


class GachaLogService:
    def __init__(
        self,
        accounts: AccountService,
        synchronizer: LedgerSynchronizer,
        store: LedgerStore,
        *,
        event_bus: EventBus | None = None,
        tool_url: str = "",
    ) -> None:
        self._accounts = accounts
        self._sync = synchronizer
        self._store = store
        self._event_bus = event_bus
        self._tool_url = tool_url

    async def update_for_user(self, user_id: str) -> ServiceResult:
        active = await self._accounts.get_active_account(user_id)
        if active.account is None or not active.account.can_call_api:
            return ServiceResult.failure(NOT_BOUND)
        return await self._update(user_id, active.account)

    async def update_for_role_id(self, user_id: str, role_id: str) -> ServiceResult:
        rid = str(role_id or "").strip()
        if not rid:
            return ServiceResult.failure("Give a UID to update.")
        data = await self._accounts.get_user_data(user_id)
        account = data.find_by_role_id(rid)
        if account is None or not account.credential:
            return ServiceResult.failure(f"UID:{rid} is not among your bound accounts.")
        return await self._update(user_id, account)

    async def _update(self, user_id: str, account: Account) -> ServiceResult:
        if not account.login_token:
            return ServiceResult.failure(NEEDS_LOGIN)
        try:
            result = await self._sync.sync(user_id, account)
        except SyncBusy:
            return ServiceResult.failure(BUSY)
        except EndLedgerError as exc:
            logger.warning("Pull history update for role %s failed: %s", account.role_id, exc)
            return ServiceResult.failure(f"refresh failed: {exc}")
        except Exception as exc:
            logger.exception("Pull history update for role %s crashed", account.role_id)
            return ServiceResult.failure(f"refresh failed: {exc}")

        await self._publish(SYNC_COMPLETED, user_id, result, "sync")
        return ServiceResult.success(_sync_message(result, "Updated"), account=account, **_sync_payload(result))

    async def import_from_access_token(self, user_id: str, token_or_url: str) -> ServiceResult:
        active = await self._accounts.get_active_account(user_id)
        account = active.account
        if account is None or not account.can_call_api:
            return ServiceResult.failure(NOT_BOUND)

        token = extract_access_token(token_or_url)
        if not token:
            hint = f" The token page is {self._tool_url}" if self._tool_url else ""
            return ServiceResult.failure(
                "No access token recognised. Paste the token or a link containing u8_token=." + hint
            )
        try:
            result = await self._sync.sync_with_access_token(account.role_id, token, server_id=account.server_id)
        except SyncBusy:
            return ServiceResult.failure(BUSY)
        except EndLedgerError as exc:
            logger.warning("Pull history import for role %s failed: %s", account.role_id, exc)
            return ServiceResult.failure(f"import failed: {exc}")
        except Exception as exc:
            logger.exception("Pull history import for role %s crashed", account.role_id)
            return ServiceResult.failure(f"import failed: {exc}")

        await self._publish(IMPORT_COMPLETED, user_id, result, "access_token")
        return ServiceResult.success(_sync_message(result, "Imported"), account=account, **_sync_payload(result))

    async def import_from_json(self, user_id: str, raw_json: str | bytes) -> ServiceResult:
        active = await self._accounts.get_active_account(user_id)
        account = active.account
        if account is None or not account.can_call_api:
            return ServiceResult.failure(NOT_BOUND)

        try:
            payload = json.loads(raw_json or "")
        except ValueError:
            return ServiceResult.failure("Import failed: the content is not valid JSON.")
        source_uid = import_uid(payload)
        if source_uid and source_uid != account.role_id:
            return ServiceResult.failure(
                f"Import failed: the file belongs to UID:{source_uid}, the active account is UID:{account.role_id}."
            )
        chars, weapons = normalize_import(payload)
        if not chars and not weapons:
            return ServiceResult.failure("Import failed: no pull records found in the JSON.")

        try:
            result = await self._sync.import_records(account.role_id, chars, weapons)
        except SyncBusy:
            return ServiceResult.failure(BUSY)
        except LedgerStateError as exc:
            return ServiceResult.failure(f"import failed: {exc}")
        except Exception as exc:
            logger.exception("JSON import for role %s crashed", account.role_id)
            return ServiceResult.failure(f"import failed: {exc}")

        await self._publish(IMPORT_COMPLETED, user_id, result, "json")
        return ServiceResult.success(_sync_message(result, "Imported"), account=account, **_sync_payload(result))

    async def export_for_user(self, user_id: str) -> ServiceResult:
        active = await self._accounts.get_active_account(user_id)
        if active.account is None or not active.account.can_call_api:
            return ServiceResult.failure(NOT_BOUND)
        role_id = active.account.role_id
        try:
            content = await self._store.read_bytes(role_id)
        except LedgerStateError as exc:
            return ServiceResult.failure(f"Stored pull history is unusable: {exc}")
        if content is None:
            return ServiceResult.failure(NO_LEDGER)
        return ServiceResult.success(
            role_id=role_id,
            path=self._store.path_for(role_id),
            file_name=f"endfield_gacha_{role_id}.json",
            content=content,
        )

    async def delete_for_user(self, user_id: str) -> ServiceResult:
        active = await self._accounts.get_active_account(user_id)
        if active.account is None or not active.account.can_call_api:
            return ServiceResult.failure(NOT_BOUND)
        role_id = active.account.role_id
        try:
            with self._sync.guard.hold(role_id):
                backup = await self._store.delete(role_id)
        except SyncBusy:
            return ServiceResult.failure(BUSY)
        except LedgerStateError as exc:
            return ServiceResult.failure(f"delete failed: {exc}")
        if backup is None:
            return ServiceResult.failure("No pull history stored, nothing to delete.")
        if self._event_bus is not None:
            await self._event_bus.publish(LEDGER_DELETED, LedgerEvent(user_id=str(user_id), role_id=role_id, source="delete"))
        return ServiceResult.success(f"Deleted pull history of UID:{role_id}", role_id=role_id, backup_path=backup)

    async def view_for_user(self, user_id: str) -> ServiceResult:
        active = await self._accounts.get_active_account(user_id)
        if active.account is None or not active.account.can_call_api:
            return ServiceResult.failure(NOT_BOUND)
        return await self._view(active.account.role_id, active.account)

    async def view_for_role_id(
        self,
        role_id: str,
        user_id: str | None = None,
        *,
        allow_unbound: bool = False,
    ) -> ServiceResult:
        rid = str(role_id or "").strip()
        if not rid:
            return ServiceResult.failure("Give a UID to view.")

        account: Account | None = None
        caller = str(user_id or "").strip()
        if caller:
            account = (await self._accounts.get_user_data(caller)).find_by_role_id(rid)
            if account is None and not allow_unbound:
                return ServiceResult.failure(f"UID:{rid} is not among your bound accounts.")
        elif not allow_unbound:
            return ServiceResult.failure("Cannot tell who owns this UID.")

        owner_id = caller if account is not None else ""
        if account is None:
            owner = await self._accounts.find_bound_user_by_role_id(rid)
            owner_id = owner.user_id
            account = Account(credential="", role_id=rid, nickname=owner.nickname or f"UID:{rid}")

        result = await self._view(rid, account)
        if result.ok:
            result.payload["owner_user_id"] = owner_id
        return result

    async def _view(self, role_id: str, account: Account) -> ServiceResult:
        try:
            ledger = await self._store.load(role_id)
        except LedgerStateError as exc:
            return ServiceResult.failure(f"Stored pull history is unusable: {exc}")
        if ledger is None:
            return ServiceResult.failure(NO_LEDGER)
        view = build_gacha_view(ledger, account)
        return ServiceResult.success(view.text, account=account, ledger=ledger, view=view)

    async def _publish(self, name: str, user_id: str, result: SyncResult, source: str) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            name,
            LedgerEvent(
                user_id=str(user_id),
                role_id=result.role_id,
                new_char_count=result.new_char_count,
                new_weapon_count=result.new_weapon_count,
                source=source,
            ),
        )
