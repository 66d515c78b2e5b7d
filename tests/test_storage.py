import json
from datetime import date, timedelta

import pytest
import pytest_asyncio

from endledger.domain.exceptions import LedgerCorrupted, LedgerRoleMismatch
from endledger.storage.ledger import LedgerStore
from endledger.storage.memory import InMemoryAccountStore, InMemorySignStatsStore
from endledger.storage.sqlalchemy import AsyncSQLAlchemyStorage
from endledger.testing import AccountFactory, PullRecordFactory, build_ledger

DAY = date(2025, 3, 15)


@pytest_asyncio.fixture()
async def sql_storage(tmp_path):
    storage = AsyncSQLAlchemyStorage(f"sqlite+aiosqlite:///{tmp_path / 'db.sqlite'}")
    await storage.init_models()
    yield storage
    await storage.dispose()


@pytest.mark.asyncio()
async def test_missing_ledger_loads_as_none(tmp_path):
    store = LedgerStore(tmp_path)
    assert await store.load("4242") is None
    assert not await store.exists("4242")
    assert await store.read_bytes("4242") is None
    assert await store.delete("4242") is None


@pytest.mark.asyncio()
async def test_save_and_load_keep_records(tmp_path):
    factory = PullRecordFactory()
    store = LedgerStore(tmp_path / "nested")
    ledger = build_ledger("4242", [factory.build(2), factory.build(1)], [factory.build(9, weapon=True)])

    path = await store.save("4242", ledger)

    assert path == tmp_path / "nested" / "4242.json"
    loaded = await store.load("4242")
    assert loaded.info.uid == "4242"
    assert [r.seq_id for r in loaded.char_records] == [2, 1]
    assert loaded.weapon_records[0].weapon_name
    assert list(path.parent.glob("*.tmp")) == []


@pytest.mark.asyncio()
async def test_corrupted_file_raises(tmp_path):
    store = LedgerStore(tmp_path)
    (tmp_path / "4242.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(LedgerCorrupted):
        await store.load("4242")

    (tmp_path / "4242.json").write_text("[]", encoding="utf-8")
    with pytest.raises(LedgerCorrupted):
        await store.load("4242")


@pytest.mark.asyncio()
async def test_foreign_uid_is_rejected(tmp_path):
    store = LedgerStore(tmp_path)
    (tmp_path / "4242.json").write_text(json.dumps({"info": {"uid": "9999"}}), encoding="utf-8")

    with pytest.raises(LedgerRoleMismatch) as excinfo:
        await store.load("4242")
    assert excinfo.value.found == "9999"

    with pytest.raises(LedgerRoleMismatch):
        await store.save("4242", build_ledger("9999", [], []))


@pytest.mark.parametrize("role_id", ["../etc", "a/b", "", "4242.json"])
def test_path_for_rejects_unsafe_role_ids(tmp_path, role_id):
    with pytest.raises(ValueError):
        LedgerStore(tmp_path).path_for(role_id)


@pytest.mark.asyncio()
async def test_delete_keeps_backup(tmp_path):
    store = LedgerStore(tmp_path)
    await store.save("4242", build_ledger("4242", [PullRecordFactory().build(1)]))
    original = await store.read_bytes("4242")

    backup = await store.delete("4242")

    assert backup == tmp_path / "4242.json.bak"
    assert backup.read_bytes() == original
    assert not await store.exists("4242")


@pytest.mark.asyncio()
async def test_memory_sign_stats_expire_old_days():
    stats = InMemorySignStatsStore(retention_days=7)
    await stats.increment(DAY - timedelta(days=7), "success")
    await stats.increment(DAY, "fail", 2)
    await stats.increment(DAY, "success", 0)

    assert (await stats.counts(DAY - timedelta(days=7))).success == 0
    counts = await stats.counts(DAY)
    assert (counts.success, counts.fail) == (0, 2)
    with pytest.raises(ValueError):
        await stats.increment(DAY, "signed")


@pytest.mark.asyncio()
async def test_memory_account_store_returns_copies():
    store = InMemoryAccountStore()
    await store.save("u1", {"accounts": []})
    loaded = await store.load("u1")
    loaded["accounts"].append("mutated")

    assert await store.load("u1") == {"accounts": []}


@pytest.mark.asyncio()
async def test_sqlalchemy_account_store(sql_storage):
    store = sql_storage.account_store()
    record = {"accounts": [AccountFactory().raw("4242")], "active": 0, "autoSign": True}

    assert await store.load("u1") is None
    await store.save("u1", record)
    await store.save("u2", {"accounts": []})
    await store.save("u1", {**record, "autoSign": False})

    assert (await store.load("u1"))["autoSign"] is False
    assert sorted(await store.list_user_ids()) == ["u1", "u2"]


@pytest.mark.asyncio()
async def test_sqlalchemy_values(sql_storage):
    store = sql_storage.account_store()

    assert await store.get_value("hg:device") is None
    await store.set_value("hg:device", {"deviceId": "a"})
    await store.set_value("hg:device", {"deviceId": "b"})

    assert await store.get_value("hg:device") == {"deviceId": "b"}


@pytest.mark.asyncio()
async def test_sqlalchemy_sign_stats(sql_storage):
    stats = sql_storage.sign_stats_store()
    old_day = DAY - timedelta(days=30)

    await stats.increment(old_day, "success")
    await stats.increment(DAY, "success")
    await stats.increment(DAY, "success", 2)
    await stats.increment(DAY, "fail")

    counts = await stats.counts(DAY)
    assert (counts.success, counts.fail) == (3, 1)
    assert (await stats.counts(old_day)).success == 0
