import pytest

from endledger.domain.exceptions import TransportError
from endledger.skland.signature import md5_hex
from endledger.skland.tokens import TokenCache, token_cache_key
from endledger.testing import FakeTransport, json_response

REFRESH_PATH = "/api/v1/auth/refresh"


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def ok(token: str) -> dict:
    return {"code": 0, "message": "OK", "data": {"token": token}}


@pytest.mark.asyncio()
async def test_token_cached_until_ttl_expires():
    clock = Clock()
    transport = FakeTransport().add(REFRESH_PATH, ok("first"), ok("second"))
    cache = TokenCache(transport, user_agent="ua", ttl=180, clock=clock)

    assert await cache.refresh_token("cred-a") == "first"
    clock.now += 179
    assert await cache.refresh_token("cred-a") == "first"
    assert len(transport.calls(REFRESH_PATH)) == 1

    clock.now += 2
    assert await cache.refresh_token("cred-a") == "second"
    assert len(transport.calls(REFRESH_PATH)) == 2


@pytest.mark.asyncio()
async def test_force_bypasses_cache():
    transport = FakeTransport().add(REFRESH_PATH, ok("first"), ok("second"))
    cache = TokenCache(transport, user_agent="ua")

    await cache.refresh_token("cred-a")
    assert await cache.refresh_token("cred-a", force=True) == "second"


@pytest.mark.asyncio()
async def test_cache_keyed_by_credential_hash():
    transport = FakeTransport().add(REFRESH_PATH, ok("tok"))
    cache = TokenCache(transport, user_agent="ua")

    await cache.refresh_token("  my-credential ")

    assert cache.keys() == [md5_hex("my-credential")]
    assert token_cache_key("my-credential") != "my-credential"
    request = transport.calls(REFRESH_PATH)[0]
    assert request.headers["cred"] == "my-credential"
    assert request.headers["User-Agent"] == "ua"


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "response",
    [
        json_response({"code": 10002, "message": "expired", "data": {}}),
        json_response({"code": 0, "message": "OK", "data": {}}),
        json_response([1, 2]),
        TransportError("down"),
    ],
)
async def test_failures_yield_empty_token(response):
    transport = FakeTransport().add(REFRESH_PATH, response)
    cache = TokenCache(transport, user_agent="ua")

    assert await cache.refresh_token("cred") == ""
    assert len(cache) == 0


@pytest.mark.asyncio()
async def test_empty_credential_skips_upstream():
    transport = FakeTransport()
    cache = TokenCache(transport, user_agent="ua")

    assert await cache.refresh_token("   ") == ""
    assert transport.requests == []


@pytest.mark.asyncio()
async def test_invalidate_drops_entry():
    transport = FakeTransport().add(REFRESH_PATH, ok("a"), ok("b"))
    cache = TokenCache(transport, user_agent="ua")

    await cache.refresh_token("cred")
    cache.invalidate("cred")
    assert await cache.refresh_token("cred") == "b"


@pytest.mark.asyncio()
async def test_expired_tokens_are_evicted():
    clock = Clock()
    transport = FakeTransport().add(REFRESH_PATH, ok("a"), ok("b"))
    cache = TokenCache(transport, user_agent="ua", ttl=180, clock=clock)

    await cache.refresh_token("cred-a")
    await cache.refresh_token("cred-b")
    assert len(cache) == 2

    clock.now += 181
    assert len(cache) == 0
    assert cache.keys() == []
