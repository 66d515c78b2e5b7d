"""In-memory storage backend for EndLedger."""

from __future__ import annotations

import copy
from datetime import date, timedelta
from typing import Any, Sequence

from .base import SIGN_STATS_RETENTION_DAYS, AccountStore, SignCounts, SignStatsStore


class InMemoryAccountStore(AccountStore):
    def __init__(self) -> None:
        self._users: dict[str, Any] = {}
        self._values: dict[str, Any] = {}

    async def load(self, user_id: str) -> Any | None:
        value = self._users.get(str(user_id))
        return copy.deepcopy(value)

    async def save(self, user_id: str, data: dict) -> None:
        self._users[str(user_id)] = copy.deepcopy(data)

    async def list_user_ids(self) -> Sequence[str]:
        return list(self._users)

    async def get_value(self, key: str) -> Any | None:
        return copy.deepcopy(self._values.get(key))

    async def set_value(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    def seed(self, user_id: str, raw: Any) -> None:
        """Store a raw record bypassing normalization, for migration tests."""
        self._users[str(user_id)] = copy.deepcopy(raw)


class InMemorySignStatsStore(SignStatsStore):
    def __init__(self, *, retention_days: int = SIGN_STATS_RETENTION_DAYS) -> None:
        self._retention = timedelta(days=retention_days)
        self._days: dict[date, SignCounts] = {}

    async def increment(self, day: date, field: str, count: int = 1) -> None:
        if field not in {"success", "fail"}:
            raise ValueError(f"Unknown sign counter {field}")
        if count <= 0:
            return
        counts = self._days.setdefault(day, SignCounts())
        setattr(counts, field, getattr(counts, field) + count)
        self._expire(day)

    async def counts(self, day: date) -> SignCounts:
        counts = self._days.get(day)
        return SignCounts(counts.success, counts.fail) if counts else SignCounts()

    def _expire(self, today: date) -> None:
        cutoff = today - self._retention
        for day in [d for d in self._days if d <= cutoff]:
            del self._days[day]
