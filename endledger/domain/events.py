"""Ledger event dispatch."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, DefaultDict, Iterable, Protocol

SYNC_COMPLETED = "gachalog.sync.completed"
IMPORT_COMPLETED = "gachalog.import.completed"
LEDGER_DELETED = "gachalog.deleted"
SIGN_COMPLETED = "attendance.completed"


class EventPayload(Protocol):
    """Marker protocol for event payloads."""


EventListener = Callable[[EventPayload], Awaitable[None]]


@dataclass(slots=True)
class LedgerEvent:
    user_id: str
    role_id: str
    new_char_count: int = 0
    new_weapon_count: int = 0
    source: str = "sync"


@dataclass(slots=True)
class SignEvent:
    user_id: str
    role_id: str
    success: bool
    already_signed: bool = False


class EventBus:
    """Async pub-sub shared by the ledger and check-in services."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: EventListener) -> None:
        self._listeners[event_name].append(listener)

    async def publish(self, event_name: str, payload: EventPayload) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            await listener(payload)

    def clear(self) -> None:
        self._listeners.clear()

    def listeners(self, event_name: str) -> Iterable[EventListener]:
        return tuple(self._listeners.get(event_name, ()))
