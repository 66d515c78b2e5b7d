"""Request signing for the Skland gameplay API.

The signature is ``md5(hmac_sha256(token, path + payload + ts + header_json))``
where ``header_json`` is the compact JSON of ``platform``, ``timestamp``,
``dId`` and ``vName`` in exactly that order.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Mapping

from Crypto.Hash import HMAC, MD5, SHA256

from .api import PLATFORM_ENDFIELD, SIGN_VNAME


@dataclass(slots=True, frozen=True)
class SignResult:
    sign: str
    timestamp: str
    header_for_sign: dict[str, str]


def compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def build_query_string(params: Mapping[str, Any] | None) -> str:
    """Join non-empty params as ``k=v`` pairs sorted by key, unescaped."""
    if not params:
        return ""
    entries = sorted(
        (str(key), value)
        for key, value in params.items()
        if value is not None and str(value) != ""
    )
    return "&".join(f"{key}={value}" for key, value in entries)


def md5_hex(text: str) -> str:
    return MD5.new(text.encode("utf-8")).hexdigest()


def sign(
    token: str,
    path: str,
    query_or_body: str = "",
    timestamp: int | str | None = None,
    platform: int | str = PLATFORM_ENDFIELD,
    v_name: str = SIGN_VNAME,
    device_id: str = "",
) -> SignResult:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    header_for_sign = {
        "platform": str(platform),
        "timestamp": ts,
        "dId": device_id or "",
        "vName": str(v_name),
    }
    sign_string = f"{path}{query_or_body}{ts}{compact_json(header_for_sign)}"
    mac = HMAC.new(str(token).encode("utf-8"), sign_string.encode("utf-8"), digestmod=SHA256)
    return SignResult(sign=md5_hex(mac.hexdigest()), timestamp=ts, header_for_sign=header_for_sign)
