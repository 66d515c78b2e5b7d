"""Testing utilities for EndLedger."""

from .factory import AccountFactory, PullRecordFactory, build_ledger
from .fixtures import app_fixture, fake_transport, memory_app
from .transport import FakeTransport, RecordedRequest, StaticDeviceIdProvider, json_response

__all__ = [
    "AccountFactory",
    "PullRecordFactory",
    "build_ledger",
    "app_fixture",
    "fake_transport",
    "memory_app",
    "FakeTransport",
    "RecordedRequest",
    "StaticDeviceIdProvider",
    "json_response",
]
