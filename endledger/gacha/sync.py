"""Incremental synchronization of the pull ledger."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Sequence

from ..domain.accounts import AccountService
from ..domain.exceptions import SyncBusy
from ..domain.models import Account, Ledger, LedgerInfo, PullRecord
from ..skland.api import CHARACTER_POOL_TYPES, EF_CHAR_URL, EF_WEAPON_URL
from ..skland.exchange import CredentialExchange
from ..storage.ledger import LedgerStore
from .merge import max_seq_id, merge_records
from .records import RecordFetcher

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncResult:
    role_id: str
    new_char_count: int
    new_weapon_count: int
    total_char: int
    total_weapon: int
    export_timestamp: int
    path: Path


class SingleFlight:
    """Set of keys with an operation in progress; a second entry is rejected."""

    def __init__(self) -> None:
        self._running: set[str] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._running

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        if key in self._running:
            raise SyncBusy(key)
        self._running.add(key)
        try:
            yield
        finally:
            self._running.discard(key)


class LedgerSynchronizer:
    """Runs every read-modify-write cycle against a ledger file.

    Each cycle holds the single-flight guard for its role id, loads the stored
    ledger, merges the new records and writes the result once at the end.
    """

    def __init__(
        self,
        store: LedgerStore,
        exchange: CredentialExchange,
        fetcher: RecordFetcher,
        accounts: AccountService,
        *,
        guard: SingleFlight | None = None,
        lang: str = "zh-cn",
        timezone: int = 8,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._exchange = exchange
        self._fetcher = fetcher
        self._accounts = accounts
        self._guard = guard or SingleFlight()
        self._lang = lang
        self._timezone = timezone
        self._clock = clock

    @property
    def guard(self) -> SingleFlight:
        return self._guard

    async def sync(self, user_id: str, account: Account) -> SyncResult:
        role_id = account.role_id
        with self._guard.hold(role_id):
            ledger = await self._load(role_id)
            exchanged = await self._exchange.exchange(account, user_id=user_id)
            if exchanged.record_uid != account.record_uid:
                logger.info("Record uid of role %s changed, updating account", role_id)
                await self._accounts.upsert_account(
                    user_id,
                    {
                        "cred": account.credential,
                        "recordUid": exchanged.record_uid,
                        "updatedAt": int(self._clock() * 1000),
                    },
                )
                account.record_uid = exchanged.record_uid
            char, weapon = await self._fetch_all(exchanged.access_token, account.server_id, ledger)
            return await self._commit(role_id, ledger, char, weapon)

    async def sync_with_access_token(self, role_id: str, access_token: str, *, server_id: str = "1") -> SyncResult:
        with self._guard.hold(role_id):
            ledger = await self._load(role_id)
            char, weapon = await self._fetch_all(access_token, server_id, ledger)
            return await self._commit(role_id, ledger, char, weapon)

    async def import_records(
        self,
        role_id: str,
        char_records: Sequence[PullRecord],
        weapon_records: Sequence[PullRecord],
    ) -> SyncResult:
        with self._guard.hold(role_id):
            ledger = await self._load(role_id)
            return await self._commit(role_id, ledger, char_records, weapon_records)

    async def _load(self, role_id: str) -> Ledger:
        return await self._store.load(role_id) or Ledger.empty(role_id)

    async def _fetch_all(
        self, access_token: str, server_id: str, ledger: Ledger
    ) -> tuple[list[PullRecord], list[PullRecord]]:
        char_mark = max_seq_id(ledger.char_records)
        weapon_mark = max_seq_id(ledger.weapon_records)

        char: list[PullRecord] = []
        for pool_type in CHARACTER_POOL_TYPES:
            char.extend(
                await self._fetcher.fetch(
                    EF_CHAR_URL,
                    access_token,
                    server_id=server_id,
                    extra_params={"pool_type": pool_type},
                    low_water_mark=char_mark,
                )
            )
        weapon = await self._fetcher.fetch(
            EF_WEAPON_URL,
            access_token,
            server_id=server_id,
            low_water_mark=weapon_mark,
        )
        return char, weapon

    async def _commit(
        self,
        role_id: str,
        ledger: Ledger,
        char: Sequence[PullRecord],
        weapon: Sequence[PullRecord],
    ) -> SyncResult:
        merged_char, new_char = merge_records(ledger.char_records, char)
        merged_weapon, new_weapon = merge_records(ledger.weapon_records, weapon)
        exported = int(self._clock())
        updated = Ledger(
            info=LedgerInfo(
                uid=role_id,
                lang=self._lang,
                timezone=self._timezone,
                export_timestamp=exported,
            ),
            char_records=merged_char,
            weapon_records=merged_weapon,
        )
        path = await self._store.save(role_id, updated)
        logger.info("Ledger %s saved: +%d char, +%d weapon", role_id, new_char, new_weapon)
        return SyncResult(
            role_id=role_id,
            new_char_count=new_char,
            new_weapon_count=new_weapon,
            total_char=len(merged_char),
            total_weapon=len(merged_weapon),
            export_timestamp=exported,
            path=path,
        )
