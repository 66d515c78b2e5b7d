import hashlib
import hmac
import json

from endledger.skland.signature import build_query_string, compact_json, md5_hex, sign


def test_sign_matches_hmac_then_md5():
    result = sign("secret", "/api/v1/game/endfield/attendance", '{"uid":"1"}', timestamp=1700000000, device_id="dev")

    header = json.dumps(
        {"platform": "3", "timestamp": "1700000000", "dId": "dev", "vName": "1.0.0"},
        separators=(",", ":"),
    )
    message = '/api/v1/game/endfield/attendance{"uid":"1"}1700000000' + header
    inner = hmac.new(b"secret", message.encode(), hashlib.sha256).hexdigest()
    assert result.sign == hashlib.md5(inner.encode()).hexdigest()
    assert result.timestamp == "1700000000"


def test_sign_is_deterministic():
    first = sign("tok", "/p", "a=1", timestamp=100, device_id="d")
    second = sign("tok", "/p", "a=1", timestamp=100, device_id="d")
    assert first == second


def test_sign_changes_with_every_input():
    base = dict(token="tok", path="/p", query_or_body="a=1", timestamp=100, device_id="d")
    reference = sign(**base).sign
    for field, value in (
        ("token", "other"),
        ("path", "/q"),
        ("query_or_body", "a=2"),
        ("timestamp", 101),
        ("device_id", "e"),
    ):
        assert sign(**{**base, field: value}).sign != reference, field


def test_header_for_sign_key_order_is_fixed():
    result = sign("tok", "/p", timestamp=1, platform=1, v_name="1.52.1", device_id="x")
    assert list(result.header_for_sign) == ["platform", "timestamp", "dId", "vName"]
    assert result.header_for_sign["vName"] == "1.52.1"


def test_query_string_sorted_and_skips_empty_values():
    assert build_query_string({"serverId": "1", "roleId": "42", "empty": "", "none": None}) == "roleId=42&serverId=1"
    assert build_query_string({"b": 2, "a": 1}) == build_query_string({"a": 1, "b": 2})
    assert build_query_string(None) == ""


def test_compact_json_and_md5_helpers():
    assert compact_json({"a": [1, 2], "b": "x"}) == '{"a":[1,2],"b":"x"}'
    assert md5_hex("abc") == "900150983cd24fb0d6963f7d28e17f72"
