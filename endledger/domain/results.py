"""Structured outcomes returned to the chat layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class ServiceResult:
    ok: bool
    message: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, message: str = "", **payload: Any) -> "ServiceResult":
        return cls(ok=True, message=message, payload=payload)

    @classmethod
    def failure(cls, message: str, **payload: Any) -> "ServiceResult":
        return cls(ok=False, message=message, payload=payload)

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.payload[key]
