"""EndLedger: Skland account tooling and Endfield pull history ledger."""

from .app import EndLedgerApp
from .config import EndLedgerConfig

__version__ = "0.1.0"

__all__ = [
    "EndLedgerApp",
    "EndLedgerConfig",
]
