"""Upstream fakes shared by the pull-history tests."""

from __future__ import annotations

from endledger.app import EndLedgerApp
from endledger.domain.models import Account
from endledger.testing import FakeTransport, PullRecordFactory, json_response

GRANT_PATH = "/user/oauth2/v2/grant"
BINDING_LIST_PATH = "/account/binding/v1/binding_list"
U8_PATH = "/account/binding/v1/u8_token_by_uid"
CHAR_PATH = "/api/record/char"
WEAPON_PATH = "/api/record/weapon"

STANDARD = "E_CharacterGachaPoolType_Standard"
SPECIAL = "E_CharacterGachaPoolType_Special"


def install_exchange(transport: FakeTransport, role_id: str, record_uid: str = "rec-1") -> None:
    transport.add(GRANT_PATH, {"status": 0, "data": {"token": "grant-token"}})
    transport.add(
        BINDING_LIST_PATH,
        {"status": 0, "data": {"list": [{"bindingList": [{"uid": record_uid, "roles": [{"roleId": role_id}]}]}]}},
    )
    transport.add(U8_PATH, {"status": 0, "data": {"token": "access-token"}})


def install_records(transport: FakeTransport, char_pools: dict[str, list[dict]], weapons: list[dict]) -> None:
    """Serve one page per character pool type and one weapon page."""

    def char_page(request):
        items = char_pools.get(request.query.get("pool_type", ""), [])
        return json_response({"code": 0, "data": {"list": items, "hasMore": False}})

    transport.route(CHAR_PATH, char_page)
    transport.route(
        WEAPON_PATH,
        lambda request: json_response({"code": 0, "data": {"list": weapons, "hasMore": False}}),
    )


def sample_pools(factory: PullRecordFactory) -> tuple[dict[str, list[dict]], list[dict]]:
    char_pools = {
        STANDARD: [factory.raw(3, pool_id="standard", rarity=6), factory.raw(2, pool_id="standard")],
        SPECIAL: [factory.raw(5, pool_id="special_1_0_1"), factory.raw(4, pool_id="special_1_0_1")],
    }
    weapons = [factory.raw(101, pool_id="weponbox_1", weapon=True)]
    return char_pools, weapons


async def bind(app: EndLedgerApp, user_id: str = "u1", role_id: str = "4242", **overrides) -> Account:
    fields = {"nickname": "Endmin", "login_token": "login-token", **overrides}
    account = Account(credential=f"cred-{role_id}", role_id=role_id, **fields)
    await app.accounts.upsert_account(user_id, account)
    return account
