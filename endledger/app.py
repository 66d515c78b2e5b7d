"""Top level application object wiring the EndLedger services."""

from __future__ import annotations

from random import Random
from typing import Any

from .config import EndLedgerConfig
from .domain.accounts import AccountService
from .domain.attendance import AttendanceService
from .domain.events import EventBus
from .domain.profile import ProfileService
from .gacha.records import RecordFetcher
from .gacha.service import GachaLogService
from .gacha.sync import LedgerSynchronizer
from .skland.client import GameApiClient
from .skland.device_id import DeviceIdProvider, SubprocessDeviceIdProvider
from .skland.exchange import CredentialExchange
from .skland.hg_device import HypergryphDeviceRegistry
from .skland.tokens import TokenCache
from .skland.transport import AiohttpTransport, Transport
from .storage.base import AccountStore, SignStatsStore
from .storage.ledger import LedgerStore
from .storage.memory import InMemoryAccountStore, InMemorySignStatsStore
from .storage.sqlalchemy import AsyncSQLAlchemyStorage


class EndLedgerApp:
    """Central dependency container used by the chat layer and the CLI."""

    def __init__(
        self,
        config: EndLedgerConfig,
        *,
        account_store: AccountStore | None = None,
        sign_stats_store: SignStatsStore | None = None,
        transport: Transport | None = None,
        device_ids: DeviceIdProvider | None = None,
        event_bus: EventBus | None = None,
        rng: Random | None = None,
    ) -> None:
        self.config = config
        self.event_bus = event_bus or EventBus()

        self._sqlalchemy_storage: AsyncSQLAlchemyStorage | None = None
        self.account_store, self.sign_stats_store = self._wire_storage(account_store, sign_stats_store)
        self.ledger_store = LedgerStore(config.storage.ledger_dir)

        self.transport = transport or AiohttpTransport(
            timeout=config.skland.request_timeout,
            retry=config.skland.retry_policy(),
        )
        self.device_ids = device_ids or SubprocessDeviceIdProvider.from_settings(
            config.device_id.command,
            config.device_id.sdk_path,
            timeout=config.device_id.timeout_seconds,
            cache_seconds=config.device_id.cache_seconds,
        )
        agents = config.skland.user_agents
        self.tokens = TokenCache(self.transport, user_agent=agents.ios)
        self.client = GameApiClient(self.transport, self.tokens, self.device_ids, user_agents=agents)

        self.hypergryph_devices = HypergryphDeviceRegistry(self.account_store)
        self.exchange = CredentialExchange(
            self.transport,
            self.hypergryph_devices,
            device_ids=self.device_ids,
            web_user_agent=agents.web,
        )
        self.accounts = AccountService(self.account_store, client=self.client, exchange=self.exchange)
        self.synchronizer = LedgerSynchronizer(
            self.ledger_store,
            self.exchange,
            RecordFetcher(self.transport, lang=config.gacha.lang, page_delay=config.gacha.page_delay),
            self.accounts,
            lang=config.gacha.lang,
            timezone=config.gacha.timezone,
        )
        self.gacha = GachaLogService(
            self.accounts,
            self.synchronizer,
            self.ledger_store,
            event_bus=self.event_bus,
            tool_url=config.gacha.tool_url,
        )
        self.attendance = AttendanceService(
            self.accounts,
            self.client,
            self.sign_stats_store,
            event_bus=self.event_bus,
            concurrency=config.auto_sign.concurrency,
            min_interval=config.auto_sign.min_interval,
            max_interval=config.auto_sign.max_interval,
            rng=rng,
        )
        self.profile = ProfileService(self.accounts, self.client, cache_seconds=config.card_cache_seconds)

    def _wire_storage(
        self,
        account_store: AccountStore | None,
        sign_stats_store: SignStatsStore | None,
    ) -> tuple[AccountStore, SignStatsStore]:
        if account_store and sign_stats_store:
            return account_store, sign_stats_store

        backend = self.config.storage.backend
        if backend == "memory":
            return account_store or InMemoryAccountStore(), sign_stats_store or InMemorySignStatsStore()
        if backend == "sqlalchemy":
            dsn = self.config.storage.resolve_dsn()
            if not dsn:
                raise ValueError("SQLAlchemy backend requires a DSN")
            storage = AsyncSQLAlchemyStorage(dsn, echo=self.config.storage.echo_sql)
            self._sqlalchemy_storage = storage
            return (
                account_store or storage.account_store(),
                sign_stats_store or storage.sign_stats_store(),
            )
        raise ValueError(f"Unsupported storage backend {backend}")

    def snapshot(self) -> dict[str, Any]:
        """Export current wiring for debugging."""
        return {
            "storage": self.config.storage.backend,
            "ledger_dir": str(self.ledger_store.directory),
            "device_id_command": bool(self.config.device_id.command),
            "retry_attempts": self.config.skland.retry_attempts,
            "auto_sign_concurrency": self.config.auto_sign.concurrency,
        }

    async def init_backend(self) -> None:
        """Initialize storage backend resources (e.g., database tables)."""
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.init_models()

    async def close(self) -> None:
        await self.transport.close()
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.dispose()
