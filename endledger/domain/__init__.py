"""Domain models and services."""

from .events import EventBus, LedgerEvent, SignEvent
from .exceptions import (
    DeviceIdTimeout,
    DeviceIdUnavailable,
    EndLedgerError,
    ExchangeError,
    InvalidRoleId,
    LedgerCorrupted,
    LedgerRoleMismatch,
    LedgerStateError,
    LedgerWriteError,
    SyncBusy,
    TransportError,
    UpstreamError,
)
from .models import Account, Ledger, LedgerInfo, PullRecord, UserData, normalize_user_data
from .results import ServiceResult

__all__ = [
    "EventBus",
    "LedgerEvent",
    "SignEvent",
    "DeviceIdTimeout",
    "DeviceIdUnavailable",
    "EndLedgerError",
    "ExchangeError",
    "InvalidRoleId",
    "LedgerCorrupted",
    "LedgerRoleMismatch",
    "LedgerStateError",
    "LedgerWriteError",
    "SyncBusy",
    "TransportError",
    "UpstreamError",
    "Account",
    "Ledger",
    "LedgerInfo",
    "PullRecord",
    "UserData",
    "normalize_user_data",
    "ServiceResult",
]
