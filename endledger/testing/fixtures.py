"""Pytest fixtures for EndLedger."""

from __future__ import annotations

from pathlib import Path
from random import Random

import pytest

from ..app import EndLedgerApp
from ..config import AutoSignConfig, EndLedgerConfig, GachaConfig, StorageConfig
from .transport import FakeTransport, StaticDeviceIdProvider


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def memory_app(tmp_path: Path, fake_transport: FakeTransport) -> EndLedgerApp:
    return app_fixture(ledger_dir=tmp_path / "gachalog", transport=fake_transport)


def app_fixture(
    bot_token: str = "test",
    *,
    ledger_dir: str | Path = "./data/gachalog",
    transport: FakeTransport | None = None,
    device_ids: StaticDeviceIdProvider | None = None,
) -> EndLedgerApp:
    """Memory-backed app with no pauses between pages or check-in batches."""
    config = EndLedgerConfig(
        bot_token=bot_token,
        storage=StorageConfig(backend="memory", ledger_dir=str(ledger_dir)),
        gacha=GachaConfig(page_delay=0.0),
        auto_sign=AutoSignConfig(concurrency=3, min_interval=0.0, max_interval=0.0),
    )
    return EndLedgerApp(
        config,
        transport=transport or FakeTransport(),
        device_ids=device_ids or StaticDeviceIdProvider(),
        rng=Random(0),
    )
