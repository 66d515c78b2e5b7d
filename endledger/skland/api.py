"""Upstream hosts, paths and protocol constants."""

MAIN_URL = "https://zonai.skland.com/"
API_VERSION = "v1"

PLATFORM_ENDFIELD = 3
GAME_ID_ENDFIELD = 1

REFRESH_TOKEN_URL = f"{MAIN_URL}api/{API_VERSION}/auth/refresh"
BINDING_URL = f"{MAIN_URL}api/{API_VERSION}/game/player/binding"
USER_INFO_URL = f"{MAIN_URL}api/{API_VERSION}/user"
ENDFIELD_ATTENDANCE_URL = f"{MAIN_URL}api/{API_VERSION}/game/endfield/attendance"
CARD_DETAIL_URL = f"{MAIN_URL}api/{API_VERSION}/game/endfield/card/detail"
CRED_API = f"{MAIN_URL}api/{API_VERSION}/user/auth/generate_cred_by_code"

OAUTH_API = "https://as.hypergryph.com/user/oauth2/v2/grant"
# Skland app code for the login token to credential grant.
SKLAND_APP_CODE = "4ca99fa6b56cc2ba"
BINDING_APP_CODE = "be36d44aa36bfb5b"
BINDING_LIST_URL = "https://binding-api-account-prod.hypergryph.com/account/binding/v1/binding_list"
U8_TOKEN_BY_UID_URL = "https://binding-api-account-prod.hypergryph.com/account/binding/v1/u8_token_by_uid"

EF_CHAR_URL = "https://ef-webview.hypergryph.com/api/record/char"
EF_WEAPON_URL = "https://ef-webview.hypergryph.com/api/record/weapon"

CHARACTER_POOL_TYPES = (
    "E_CharacterGachaPoolType_Special",
    "E_CharacterGachaPoolType_Beginner",
    "E_CharacterGachaPoolType_Standard",
)

SIGN_VNAME = "1.0.0"
SKLAND_APP_VNAME = "1.52.1"
SKLAND_APP_VCODE = "105201003"
SKLAND_APP_PLATFORM = 1
SKLAND_WEB_PLATFORM = 3
SKLAND_WEB_URL = "https://www.skland.com/"

# Attendance answers this code when the role already checked in today.
ATTENDANCE_ALREADY_SIGNED = 10001
