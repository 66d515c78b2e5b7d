"""Device fingerprint (``dId``) provider.

The fingerprint comes from a third-party script that is never loaded into this
process. It runs as a child process, receives its inputs through ``SMSDK_*``
environment variables and prints the id as the last line of stdout.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import time
from pathlib import Path
from typing import Callable, Mapping, Protocol, Sequence

from cachetools import TTLCache

from ..domain.exceptions import DeviceIdTimeout, DeviceIdUnavailable

logger = logging.getLogger(__name__)

# Grace period for the child to honour SMSDK_TIMEOUT before it is killed.
KILL_GRACE_SECONDS = 2.0
DEVICE_ID_CACHE_SIZE = 256


class DeviceIdProvider(Protocol):
    async def get_device_id(
        self,
        user_agent: str = "",
        accept_language: str = "",
        referer: str = "",
        platform: str = "",
    ) -> str:
        ...


class SubprocessDeviceIdProvider(DeviceIdProvider):
    def __init__(
        self,
        command: Sequence[str],
        *,
        timeout: float = 15.0,
        cache_seconds: float = 3600.0,
        extra_env: Mapping[str, str] | None = None,
        clock: Callable[[], float] = time.monotonic,
        config_hint: str = "ENDLEDGER_DEVICE_ID_COMMAND",
    ) -> None:
        self._command = tuple(command)
        self._timeout = timeout
        self._cache_seconds = cache_seconds
        self._cache = TTLCache(maxsize=DEVICE_ID_CACHE_SIZE, ttl=max(cache_seconds, 0.0), timer=clock)
        self._extra_env = dict(extra_env or {})
        self._config_hint = config_hint

    @classmethod
    def from_settings(
        cls,
        command: str,
        sdk_path: str = "",
        *,
        timeout: float = 15.0,
        cache_seconds: float = 3600.0,
    ) -> "SubprocessDeviceIdProvider":
        argv = shlex.split(command) if command else []
        if argv and sdk_path:
            argv.append(sdk_path)
        hint = "ENDLEDGER_DEVICE_ID_COMMAND"
        if sdk_path and not Path(sdk_path).is_file():
            argv = []
            hint = "ENDLEDGER_DEVICE_ID_SDK_PATH"
        return cls(argv, timeout=timeout, cache_seconds=cache_seconds, config_hint=hint)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def get_device_id(
        self,
        user_agent: str = "",
        accept_language: str = "",
        referer: str = "",
        platform: str = "",
    ) -> str:
        if not self._command:
            raise DeviceIdUnavailable(f"Device id generator is not configured; set {self._config_hint}")

        cache_key = (*self._command, user_agent, accept_language, referer, str(platform))
        if self._cache_seconds > 0:
            cached = self._cache.get(cache_key)
            if cached:
                logger.debug("Device id cache hit")
                return cached

        device_id = await self._run(self._build_env(user_agent, accept_language, referer, platform))
        if self._cache_seconds > 0:
            self._cache[cache_key] = device_id
        return device_id

    def _build_env(self, user_agent: str, accept_language: str, referer: str, platform: str) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self._extra_env)
        env["SMSDK_TIMEOUT"] = str(int(self._timeout * 1000))
        for name, value in (
            ("SMSDK_USER_AGENT", user_agent),
            ("SMSDK_ACCEPT_LANGUAGE", accept_language),
            ("SMSDK_REFERER", referer),
            ("SMSDK_PLATFORM", platform),
        ):
            if value:
                env[name] = str(value)
        return env

    async def _run(self, env: dict[str, str]) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise DeviceIdUnavailable(
                f"Cannot start device id generator ({exc}); check {self._config_hint}"
            ) from exc

        deadline = self._timeout + KILL_GRACE_SECONDS
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=deadline)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise DeviceIdTimeout(deadline) from None

        out = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() or out.strip()
            raise DeviceIdUnavailable(f"Device id generator failed (code={proc.returncode}): {detail}")

        lines = [line.strip() for line in out.splitlines() if line.strip()]
        if not lines:
            raise DeviceIdUnavailable("Device id generator produced no output")
        return lines[-1]
