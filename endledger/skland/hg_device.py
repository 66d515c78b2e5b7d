"""Per-user device identity sent to the Hypergryph account services."""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from typing import Any, Mapping

from ..storage.base import AccountStore

logger = logging.getLogger(__name__)

_HEX32 = re.compile(r"^[0-9a-f]{32}$")


def device_key(user_id: str) -> str:
    return f"hg_device:{user_id}"


@dataclass(slots=True, frozen=True)
class HypergryphDevice:
    device_id: str
    device_id2: str
    device_model: str
    device_type: str = "2"

    @classmethod
    def generate(cls) -> "HypergryphDevice":
        device_id = secrets.token_hex(16)
        return cls(device_id, device_id, f"LAPTOP-{device_id[:8]}", "2")

    @classmethod
    def from_dict(cls, raw: Any) -> "HypergryphDevice | None":
        """Parse a stored device, returning ``None`` if it is unusable."""
        if not isinstance(raw, Mapping):
            return None
        first = _pick(raw, "deviceId", "device_id", "deviceId1", "device_id1")
        second = _pick(raw, "deviceId2", "device_id2", "deviceId_2", "device_id_2") or first
        device_id = first.lower()
        device_id2 = second.lower()
        if not _HEX32.match(device_id) or not _HEX32.match(device_id2):
            return None
        model = _pick(raw, "deviceModel", "device_model", "deviceModelName", "device_model_name")
        raw_type = _pick(raw, "deviceType", "device_type") or "2"
        device_type = str(int(raw_type)) if raw_type.lstrip("-").isdigit() else "2"
        return cls(device_id, device_id2, model or f"LAPTOP-{device_id[:8]}", device_type)

    def to_dict(self) -> dict[str, str]:
        return {
            "deviceId": self.device_id,
            "deviceId2": self.device_id2,
            "deviceModel": self.device_model,
            "deviceType": self.device_type,
        }


def _pick(raw: Mapping[str, Any], *names: str) -> str:
    for name in names:
        value = raw.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def build_hypergryph_headers(device: HypergryphDevice | None, *, json: bool = True) -> dict[str, str]:
    headers = {"User-Agent": "Mozilla/5.0"}
    if device is not None:
        headers["X-DeviceId"] = device.device_id
        headers["X-DeviceId2"] = device.device_id2
        headers["X-DeviceModel"] = device.device_model
        headers["X-DeviceType"] = device.device_type
    if json:
        headers["Content-Type"] = "application/json;charset=utf-8"
    return headers


class HypergryphDeviceRegistry:
    """Creates one device identity per chat user and keeps it in the account store."""

    def __init__(self, store: AccountStore) -> None:
        self._store = store

    async def get_or_create(self, user_id: str) -> HypergryphDevice:
        uid = str(user_id or "").strip()
        if not uid:
            raise ValueError("missing user id")
        device = HypergryphDevice.from_dict(await self._store.get_value(device_key(uid)))
        if device is not None:
            return device
        device = HypergryphDevice.generate()
        await self._store.set_value(device_key(uid), device.to_dict())
        logger.info("Generated Hypergryph device identity for user %s", uid)
        return device

    async def headers_for(self, user_id: str | None, *, json: bool = True) -> dict[str, str]:
        if not user_id or not str(user_id).strip():
            return build_hypergryph_headers(None, json=json)
        return build_hypergryph_headers(await self.get_or_create(str(user_id)), json=json)
