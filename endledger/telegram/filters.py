"""Reusable aiogram filters for EndLedger bots."""

from __future__ import annotations

from aiogram.filters import BaseFilter
from aiogram.types import Message

from ..config import EndLedgerConfig


class AdminFilter(BaseFilter):
    def __init__(self, config: EndLedgerConfig) -> None:
        self._admins = set(config.admin_ids)

    async def __call__(self, message: Message) -> bool:
        user = message.from_user
        return bool(user and user.id in self._admins)
