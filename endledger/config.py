"""Configuration models for EndLedger."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal

from .scheduler import parse_daily_time
from .skland.client import UserAgents
from .skland.transport import RetryPolicy

StorageBackend = Literal["memory", "sqlalchemy"]

PREFIX = "ENDLEDGER_"
_TRUE = {"1", "true", "yes"}


@dataclass(slots=True)
class StorageConfig:
    """Where accounts, check-in stats and ledgers are persisted."""

    backend: StorageBackend = "memory"
    dsn: str | None = None
    echo_sql: bool = False
    ledger_dir: str = "./data/gachalog"

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        if self.backend == "sqlalchemy":
            return "sqlite+aiosqlite:///./endledger.db"
        return None


@dataclass(slots=True)
class SklandConfig:
    """Upstream HTTP behaviour."""

    user_agents: UserAgents = field(default_factory=UserAgents)
    request_timeout: float = 20.0
    retry_attempts: int = 3
    retry_base_delay: float = 0.5
    retry_backoff: float = 2.0
    retry_max_delay: float = 8.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            backoff_factor=self.retry_backoff,
            max_delay=self.retry_max_delay,
        )


@dataclass(slots=True)
class DeviceIdConfig:
    """External device fingerprint generator."""

    command: str = ""
    sdk_path: str = ""
    timeout_seconds: float = 15.0
    cache_seconds: float = 3600.0


@dataclass(slots=True)
class GachaConfig:
    lang: str = "zh-cn"
    timezone: int = 8
    page_delay: float = 0.1
    tool_url: str = ""


@dataclass(slots=True)
class AutoSignConfig:
    """Daily batch check-in."""

    enabled: bool = True
    daily_time: str = "04:05"
    notify_chat_id: int | None = None
    concurrency: int = 3
    min_interval: float = 1.0
    max_interval: float = 3.0


@dataclass(slots=True)
class EndLedgerConfig:
    """Top-level configuration container."""

    bot_token: str = ""
    command_prefix: str = "/"
    admin_ids: set[int] = field(default_factory=set)
    storage: StorageConfig = field(default_factory=StorageConfig)
    skland: SklandConfig = field(default_factory=SklandConfig)
    device_id: DeviceIdConfig = field(default_factory=DeviceIdConfig)
    gacha: GachaConfig = field(default_factory=GachaConfig)
    auto_sign: AutoSignConfig = field(default_factory=AutoSignConfig)
    card_cache_seconds: float = 600.0

    @classmethod
    def from_env(cls) -> "EndLedgerConfig":
        """Create config from environment variables prefixed with ENDLEDGER_."""
        defaults = UserAgents()
        backend = _env("STORAGE_BACKEND", "memory")
        if backend not in ("memory", "sqlalchemy"):
            raise ValueError(f"{PREFIX}STORAGE_BACKEND must be 'memory' or 'sqlalchemy', got {backend!r}")
        daily_time = _env("AUTOSIGN_TIME", "04:05")
        try:
            parse_daily_time(daily_time)
        except ValueError as exc:
            raise ValueError(f"{PREFIX}AUTOSIGN_TIME: {exc}") from exc

        return cls(
            bot_token=_env("BOT_TOKEN", ""),
            command_prefix=_env("COMMAND_PREFIX", "/") or "/",
            admin_ids=_id_set("ADMIN_IDS"),
            storage=StorageConfig(
                backend=backend,
                dsn=os.getenv(f"{PREFIX}STORAGE_DSN") or None,
                echo_sql=_env("STORAGE_ECHO_SQL", "false").lower() in _TRUE,
                ledger_dir=_env("LEDGER_DIR", "./data/gachalog"),
            ),
            skland=SklandConfig(
                user_agents=UserAgents(
                    ios=_env("UA_IOS", defaults.ios),
                    android=_env("UA_ANDROID", defaults.android),
                    skland_app=_env("UA_SKLAND_APP", defaults.skland_app),
                    web=_env("UA_WEB", defaults.web),
                ),
                request_timeout=_float("REQUEST_TIMEOUT", 20.0),
                retry_attempts=_int("RETRY_ATTEMPTS", 3),
                retry_base_delay=_float("RETRY_BASE_DELAY", 0.5),
                retry_backoff=_float("RETRY_BACKOFF", 2.0),
                retry_max_delay=_float("RETRY_MAX_DELAY", 8.0),
            ),
            device_id=DeviceIdConfig(
                command=_env("DEVICE_ID_COMMAND", ""),
                sdk_path=_env("DEVICE_ID_SDK_PATH", ""),
                timeout_seconds=_float("DEVICE_ID_TIMEOUT", 15.0),
                cache_seconds=_float("DEVICE_ID_CACHE_SECONDS", 3600.0),
            ),
            gacha=GachaConfig(
                lang=_env("GACHA_LANG", "zh-cn"),
                timezone=_int("GACHA_TIMEZONE", 8),
                page_delay=_float("GACHA_PAGE_DELAY", 0.1),
                tool_url=_env("GACHA_TOOL_URL", ""),
            ),
            auto_sign=AutoSignConfig(
                enabled=_env("AUTOSIGN_ENABLED", "true").lower() in _TRUE,
                daily_time=daily_time,
                notify_chat_id=_int("AUTOSIGN_NOTIFY_CHAT_ID", 0) or None,
                concurrency=max(1, _int("AUTOSIGN_CONCURRENCY", 3)),
                min_interval=_float("AUTOSIGN_MIN_INTERVAL", 1.0),
                max_interval=_float("AUTOSIGN_MAX_INTERVAL", 3.0),
            ),
            card_cache_seconds=_float("CARD_CACHE_SECONDS", 600.0),
        )


def _env(name: str, default: str) -> str:
    return os.getenv(f"{PREFIX}{name}", default)


def _int(name: str, default: int) -> int:
    raw = os.getenv(f"{PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{PREFIX}{name} must be an integer, got {raw!r}") from exc


def _float(name: str, default: float) -> float:
    raw = os.getenv(f"{PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{PREFIX}{name} must be a number, got {raw!r}") from exc


def _id_set(name: str) -> set[int]:
    raw = os.getenv(f"{PREFIX}{name}", "")
    try:
        return {int(part.strip()) for part in raw.split(",") if part.strip()}
    except ValueError as exc:
        raise ValueError(f"{PREFIX}{name} must be a comma separated list of integers, got {raw!r}") from exc
