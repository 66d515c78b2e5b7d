import pytest

from endledger.domain.accounts import AccountService, RoleOwner, RoleOwnerCache, parse_credential
from endledger.domain.models import Account, normalize_user_data
from endledger.storage.memory import InMemoryAccountStore
from endledger.testing import AccountFactory, json_response

REFRESH_PATH = "/api/v1/auth/refresh"
BINDING_PATH = "/api/v1/game/player/binding"
GRANT_PATH = "/user/oauth2/v2/grant"
CRED_PATH = "/api/v1/user/auth/generate_cred_by_code"
LOGIN_TOKEN = "T" * 24


def binding_payload(**entry) -> dict:
    base = {
        "uid": "hg-1",
        "channelName": "Bilibili",
        "defaultRole": {"roleId": "4242", "nickname": "Endmin", "serverId": "2"},
    }
    base.update(entry)
    return {"code": 0, "message": "OK", "data": {"list": [{"appCode": "endfield", "bindingList": [base]}]}}


def test_bare_list_and_aliases_are_migrated():
    data, needs_save = normalize_user_data(
        [{"cred": "c1", "roleId": "1", "nickName": "A", "server": "2", "device_token": "d"}]
    )
    account = data.accounts[0]
    assert needs_save
    assert (account.role_id, account.nickname, account.server_id, account.device_token) == ("1", "A", "2", "d")
    assert "roleId" not in account.to_dict()


def test_legacy_keys_for_active_and_auto_sign():
    data, needs_save = normalize_user_data(
        {"list": [{"cred": "a", "uid": "1"}, {"cred": "b", "uid": "2"}], "activeUid": "2", "auto_sign": True}
    )
    assert needs_save
    assert data.active == 1
    assert data.auto_sign


def test_single_account_object_and_one_based_index():
    data, needs_save = normalize_user_data({"cred": "a", "uid": "1", "active": 1})
    assert needs_save
    assert len(data.accounts) == 1
    assert data.active == 0


def test_canonical_shape_needs_no_save():
    raw = {"accounts": [AccountFactory().raw("1")], "active": 0, "autoSign": False}
    data, needs_save = normalize_user_data(raw)
    assert not needs_save
    assert data.to_dict() == raw


def test_unknown_fields_survive_round_trip():
    account = Account.from_dict({"cred": "c", "uid": "1", "avatar": "x.png"})
    assert account.to_dict()["avatar"] == "x.png"


@pytest.mark.asyncio()
async def test_migrated_record_is_saved_back():
    store = InMemoryAccountStore()
    store.seed("u1", [{"cred": "c1", "roleId": "1"}])
    service = AccountService(store)

    data = await service.get_user_data("u1")

    assert data.accounts[0].role_id == "1"
    assert await store.load("u1") == data.to_dict()


@pytest.mark.asyncio()
async def test_invalid_active_index_is_repaired():
    store = InMemoryAccountStore()
    store.seed("u1", {"accounts": [{"cred": "a", "uid": "1"}, {"cred": "b", "uid": "2"}], "active": 7})
    service = AccountService(store)

    active = await service.get_active_account("u1")

    assert active.index == 0
    assert active.account.role_id == "1"
    assert (await store.load("u1"))["active"] == 0


@pytest.mark.asyncio()
async def test_upsert_merges_by_credential_and_activates():
    service = AccountService(InMemoryAccountStore())
    factory = AccountFactory()
    first = factory.build("1")
    second = factory.build("2")

    await service.upsert_account("u1", first)
    await service.upsert_account("u1", second)
    data = await service.upsert_account("u1", {"cred": first.credential, "recordUid": "rec"})

    assert len(data.accounts) == 2
    assert data.active == 0
    assert data.accounts[0].record_uid == "rec"
    assert data.accounts[0].nickname == first.nickname


@pytest.mark.asyncio()
async def test_upsert_requires_credential():
    service = AccountService(InMemoryAccountStore())
    with pytest.raises(ValueError):
        await service.upsert_account("u1", {"uid": "1"})


@pytest.mark.asyncio()
async def test_switch_by_position_or_uid():
    service = AccountService(InMemoryAccountStore())
    factory = AccountFactory()
    for role_id in ("11", "22", "33"):
        await service.upsert_account("u1", factory.build(role_id))

    assert (await service.set_active_account("u1", "1"))["index"] == 0
    assert (await service.set_active_account("u1", "33"))["index"] == 2
    missing = await service.set_active_account("u1", "99")
    assert not missing.ok and missing["reason"] == "not_found"
    empty = await service.set_active_account("nobody", "1")
    assert empty["reason"] == "empty"


@pytest.mark.asyncio()
async def test_delete_repairs_active_and_clears_auto_sign():
    service = AccountService(InMemoryAccountStore())
    factory = AccountFactory()
    await service.upsert_account("u1", factory.build("11"))
    await service.upsert_account("u1", factory.build("22"))
    await service.set_auto_sign("u1", True)

    result = await service.delete_account("u1", "2")
    assert result.ok
    assert result["data"].active == 0
    assert await service.list_auto_sign_users() == ["u1"]

    result = await service.delete_account("u1", "11")
    assert result["data"].accounts == []
    assert result["data"].auto_sign is False
    assert await service.list_auto_sign_users() == []
    assert await service.list_bound_users() == []


@pytest.mark.asyncio()
async def test_role_owner_lookup_scans_and_caches():
    store = InMemoryAccountStore()
    store.seed("owner", {"accounts": [{"cred": "c", "uid": "555", "nickname": "Owner"}], "active": 0, "autoSign": False})
    service = AccountService(store)

    owner = await service.find_bound_user_by_role_id("555")
    assert owner == RoleOwner("owner", "Owner")

    store.seed("owner", {})
    assert (await service.find_bound_user_by_role_id("555")).user_id == "owner"
    assert (await service.find_bound_user_by_role_id("404")).user_id == ""


def test_role_owner_cache_expiry():
    now = [0.0]
    cache = RoleOwnerCache(ttl=10, negative_ttl=1, clock=lambda: now[0])
    cache.put("1", RoleOwner("u", "n"))
    cache.put("2", RoleOwner())

    now[0] = 5
    assert cache.get("1").user_id == "u"
    assert cache.get("2") is None
    now[0] = 11
    assert cache.get("1") is None


def test_role_owner_cache_replaces_miss_with_owner():
    now = [0.0]
    cache = RoleOwnerCache(ttl=10, negative_ttl=5, clock=lambda: now[0])
    cache.put("1", RoleOwner())
    cache.put("1", RoleOwner("u", "n"))

    now[0] = 7
    assert cache.get("1") == RoleOwner("u", "n")
    cache.forget("1")
    assert cache.get("1") is None


@pytest.mark.asyncio()
async def test_bind_by_credential(memory_app, fake_transport):
    fake_transport.add(REFRESH_PATH, {"code": 0, "message": "OK", "data": {"token": "t"}})
    fake_transport.add(BINDING_PATH, binding_payload())

    result = await memory_app.accounts.bind_by_credential("u1", " cred ", login_token="login")

    assert result.ok
    account = result["account"]
    assert (account.credential, account.role_id, account.server_id) == ("cred", "4242", "2")
    assert (account.channel_name, account.record_uid, account.login_token) == ("Bilibili", "hg-1", "login")
    assert "Endmin" in result.message


@pytest.mark.asyncio()
async def test_bind_falls_back_to_first_role(memory_app, fake_transport):
    fake_transport.add(REFRESH_PATH, {"code": 0, "message": "OK", "data": {"token": "t"}})
    fake_transport.add(BINDING_PATH, binding_payload(defaultRole=None, roles=[{"roleId": "7"}]))

    result = await memory_app.accounts.bind_by_credential("u1", "cred")

    assert result["account"].role_id == "7"
    assert result["account"].server_id == "1"


@pytest.mark.asyncio()
async def test_bind_rejects_upstream_failure(memory_app, fake_transport):
    fake_transport.add(REFRESH_PATH, {"code": 0, "message": "OK", "data": {"token": "t"}})
    fake_transport.add(BINDING_PATH, {"code": 10001, "message": "cred invalid"})

    result = await memory_app.accounts.bind_by_credential("u1", "cred")

    assert not result.ok
    assert (await memory_app.accounts.get_user_data("u1")).accounts == []


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("c" * 32, ("cred", "c" * 32)),
        ("t" * 24, ("token", "t" * 24)),
        ("token=abc", ("token", "abc")),
        ("CRED: xyz", ("cred", "xyz")),
        ("short", ("", "short")),
    ],
)
def test_parse_credential(text, expected):
    assert parse_credential(text) == expected


def install_token_login(transport, cred="c" * 32, user_id=99):
    transport.add(GRANT_PATH, {"status": 0, "data": {"code": "oauth-code"}})
    transport.add(CRED_PATH, {"code": 0, "message": "OK", "data": {"cred": cred, "userId": user_id}})
    transport.add(REFRESH_PATH, {"code": 0, "message": "OK", "data": {"token": "t"}})
    transport.add(BINDING_PATH, binding_payload())


@pytest.mark.asyncio()
async def test_bind_by_login_token_keeps_token_for_pull_history(memory_app, fake_transport):
    install_token_login(fake_transport)

    result = await memory_app.accounts.bind_by_login_token("u1", f" {LOGIN_TOKEN} ")

    assert result.ok
    account = result["account"]
    assert (account.credential, account.login_token, account.session_user_id) == ("c" * 32, LOGIN_TOKEN, "99")
    grant = fake_transport.calls(GRANT_PATH)[0].json()
    assert grant == {"appCode": "4ca99fa6b56cc2ba", "token": LOGIN_TOKEN, "type": 0}
    cred_request = fake_transport.calls(CRED_PATH)[0]
    assert cred_request.json() == {"kind": 1, "code": "oauth-code"}
    assert cred_request.headers["dId"] == "B" + "0" * 31
    assert cred_request.headers["platform"] == "3"
    assert fake_transport.calls(BINDING_PATH)[0].headers["cred"] == "c" * 32


@pytest.mark.asyncio()
async def test_bind_from_input_routes_token_and_cred(memory_app, fake_transport):
    install_token_login(fake_transport)

    by_token = await memory_app.accounts.bind_from_input("u1", LOGIN_TOKEN)
    by_cred = await memory_app.accounts.bind_from_input("u2", "my-cred login")

    assert by_token.ok and len(fake_transport.calls(CRED_PATH)) == 1
    assert by_cred.ok and len(fake_transport.calls(CRED_PATH)) == 1
    assert (by_cred["account"].credential, by_cred["account"].login_token) == ("my-cred", "login")
    assert not (await memory_app.accounts.bind_from_input("u3", "  ")).ok


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    ("grant", "reason"),
    [
        (json_response({}, status=405), "refused"),
        ({"status": 1, "msg": "token expired"}, "token expired"),
        ({"status": 0, "data": {}}, "no code"),
    ],
)
async def test_bind_by_login_token_reports_grant_failure(memory_app, fake_transport, grant, reason):
    fake_transport.add(GRANT_PATH, grant)

    result = await memory_app.accounts.bind_by_login_token("u1", LOGIN_TOKEN)

    assert not result.ok
    assert result.message.startswith("Token login failed:")
    assert reason in result.message
    assert fake_transport.calls(CRED_PATH) == []
    assert (await memory_app.accounts.get_user_data("u1")).accounts == []


@pytest.mark.asyncio()
async def test_bind_by_login_token_reports_cred_failure(memory_app, fake_transport):
    fake_transport.add(GRANT_PATH, {"status": 0, "data": {"code": "oauth-code"}})
    fake_transport.add(CRED_PATH, {"code": 10003, "message": "code expired", "data": {}})

    result = await memory_app.accounts.bind_by_login_token("u1", LOGIN_TOKEN)

    assert not result.ok
    assert "code expired" in result.message
