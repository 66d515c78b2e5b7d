"""Storage backends for EndLedger."""

from .base import AccountStore, SignCounts, SignStatsStore
from .ledger import LedgerStore
from .memory import InMemoryAccountStore, InMemorySignStatsStore
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "AccountStore",
    "SignCounts",
    "SignStatsStore",
    "LedgerStore",
    "InMemoryAccountStore",
    "InMemorySignStatsStore",
    "AsyncSQLAlchemyStorage",
]
