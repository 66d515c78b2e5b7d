"""Storage abstractions used by the EndLedger services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol, Sequence

SIGN_STATS_RETENTION_DAYS = 14


@dataclass(slots=True)
class SignCounts:
    success: int = 0
    fail: int = 0


class AccountStore(Protocol):
    """Key-value persistence for per-user account records.

    Values are stored exactly as given; shape migration happens in
    :mod:`endledger.domain.accounts`.
    """

    async def load(self, user_id: str) -> Any | None:
        ...

    async def save(self, user_id: str, data: dict) -> None:
        ...

    async def list_user_ids(self) -> Sequence[str]:
        ...

    async def get_value(self, key: str) -> Any | None:
        ...

    async def set_value(self, key: str, value: Any) -> None:
        ...


class SignStatsStore(Protocol):
    async def increment(self, day: date, field: str, count: int = 1) -> None:
        ...

    async def counts(self, day: date) -> SignCounts:
        ...
