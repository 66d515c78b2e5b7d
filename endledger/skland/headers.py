"""Header builders for the different upstream client personas."""

from __future__ import annotations

from typing import Any, Mapping

from .api import PLATFORM_ENDFIELD, SIGN_VNAME, SKLAND_APP_VCODE, SKLAND_WEB_PLATFORM, SKLAND_WEB_URL

ACCEPT_LANGUAGE = "zh-CN,zh;q=0.9,en-US;q=0.8,en;q=0.7"

_MANUFACTURERS = (
    (("samsung", "sm-"), "Samsung"),
    (("xiaomi", "mi ", "redmi", "poco"), "Xiaomi"),
    (("huawei", "honor"), "Huawei"),
    (("oneplus",), "OnePlus"),
    (("oppo",), "Oppo"),
    (("vivo",), "Vivo"),
)


def refresh_headers(credential: str, user_agent: str) -> dict[str, str]:
    return {
        "cred": credential,
        "User-Agent": user_agent,
        "Content-Type": "application/json",
    }


def guess_manufacturer(user_agent: str | None) -> str:
    ua = (user_agent or "").lower()
    for needles, name in _MANUFACTURERS:
        if any(needle in ua for needle in needles):
            return name
    return "Samsung"


def skland_app_headers(user_agent: str | None) -> dict[str, str]:
    return {
        "language": "zh-cn",
        "os": "32",
        "nId": "1",
        "vCode": SKLAND_APP_VCODE,
        "channel": "OF",
        "manufacturer": guess_manufacturer(user_agent),
        "Accept-Language": ACCEPT_LANGUAGE,
    }


def endfield_web_headers() -> dict[str, str]:
    return {
        "Accept": "*/*",
        "Origin": "https://game.skland.com",
        "X-Requested-With": "com.hypergryph.skland",
        "Sec-Fetch-Site": "same-site",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Dest": "empty",
        "Referer": "https://game.skland.com/",
        "Accept-Encoding": "gzip, deflate",
        "Accept-Language": ACCEPT_LANGUAGE,
        "Host": "zonai.skland.com",
        "Connection": "keep-alive",
    }


def skland_web_headers(user_agent: str, device_id: str, timestamp: str) -> dict[str, str]:
    """Headers of the Skland website, used when trading an OAuth code for a credential."""
    return {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        "Referer": SKLAND_WEB_URL,
        "Origin": SKLAND_WEB_URL.rstrip("/"),
        "dId": device_id,
        "platform": str(SKLAND_WEB_PLATFORM),
        "timestamp": str(timestamp),
        "vName": SIGN_VNAME,
    }


def build_base_header(
    *,
    credential: str,
    timestamp: str,
    sign: str,
    user_agent: str,
    platform: int | str = PLATFORM_ENDFIELD,
    role_id: str | None = None,
    game_id: int | str | None = None,
    v_name: str = SIGN_VNAME,
    device_id: str = "",
    accept_encoding: str = "gzip",
) -> dict[str, str]:
    headers = {
        "User-Agent": user_agent,
        "Accept-Encoding": accept_encoding,
        "Content-Type": "application/json",
        "cred": str(credential),
        "timestamp": str(timestamp),
        "sign": str(sign),
        "vName": str(v_name),
        "dId": device_id or "",
        "platform": str(platform),
    }
    if role_id and game_id:
        headers["sk-game-role"] = f"{platform}_{role_id}_{game_id}"
    return headers


def header_lookup(headers: Mapping[str, Any] | None, *names: str) -> str:
    """Return the first non-empty header among ``names``, case-insensitively."""
    if not headers:
        return ""
    lowered = {str(key).lower(): value for key, value in headers.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value:
            return str(value)
    return ""
