"""Exceptions raised by EndLedger services."""

from __future__ import annotations


class EndLedgerError(RuntimeError):
    """Base class for domain exceptions."""


class UpstreamError(EndLedgerError):
    """Raised when the upstream service answers with a non-success status."""

    def __init__(self, message: str, *, code: int | str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ExchangeError(UpstreamError):
    """Raised when a step of the credential exchange chain fails."""

    def __init__(self, step: str, message: str, *, code: int | str | None = None) -> None:
        super().__init__(f"{step} failed: {message}", code=code)
        self.step = step
        self.reason = message


class TransportError(EndLedgerError):
    """Raised when a request could not be completed at the HTTP level."""


class LedgerStateError(EndLedgerError):
    """Base class for problems with the locally persisted ledger."""


class LedgerCorrupted(LedgerStateError):
    """Raised when a ledger file exists but cannot be parsed."""


class InvalidRoleId(LedgerStateError, ValueError):
    """Raised when a role id cannot be used as a ledger file name."""


class LedgerWriteError(LedgerStateError):
    """Raised when the ledger directory cannot be written."""


class LedgerRoleMismatch(LedgerStateError):
    """Raised when a ledger file belongs to a different role id."""

    def __init__(self, expected: str, found: str) -> None:
        super().__init__(f"Ledger uid {found} does not match role id {expected}")
        self.expected = expected
        self.found = found


class SyncBusy(EndLedgerError):
    """Raised when a ledger operation for the same key is already running."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Ledger operation already running for {key}")
        self.key = key


class DeviceIdUnavailable(EndLedgerError):
    """Raised when the external device fingerprint generator cannot be used."""


class DeviceIdTimeout(DeviceIdUnavailable):
    """Raised when the device fingerprint generator exceeds its deadline."""

    def __init__(self, seconds: float) -> None:
        super().__init__(f"Device id generator timed out after {seconds:.1f}s")
        self.seconds = seconds
