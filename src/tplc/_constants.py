"""Internal constants extracted from the Kasa and Tapo Android apps."""

from __future__ import annotations

from pathlib import Path

# The backends accept a fixed timestamp instead of wall-clock time.
SIGNING_TIMESTAMP = "9999999999"

APP_VERSION = "3.4.451"

USER_AGENT = "Dalvik/2.1.0 (Linux; U; Android 14; Pixel Build/UP1A)"

# Account-level paths (V2 API)
PATH_ACCOUNT_STATUS = "/api/v2/account/getAccountStatusAndUrl"
PATH_LOGIN = "/api/v2/account/login"
PATH_REFRESH_TOKEN = "/api/v2/account/refreshToken"
PATH_MFA_LOGIN = "/api/v2/account/checkMFACodeAndLogin"

# Business error codes returned in ``error_code`` / ``result.errorCode``
ERR_WRONG_CREDENTIALS = -20601
ERR_MFA_REQUIRED = -20651
ERR_REFRESH_TOKEN_EXPIRED = -20655
ERR_TOKEN_EXPIRED = -20675
ERR_ACCOUNT_LOCKED = -20677
ERR_DEVICE_OFFLINE = -20571

ACCOUNT_TIMEOUT = 15  # seconds
DEVICE_TIMEOUT = 600  # seconds

# Static device identity sent as query parameters on every call.
# ``appName``, ``appVer`` and ``termID`` are added per cloud / per session.
TERMINAL_PARAMS: dict[str, str] = {
    "netType": "wifi",
    "ospf": "Android 14",
    "brand": "TPLINK",
    "locale": "en_US",
    "model": "Pixel",
    "termName": "Pixel",
    "termMeta": "Pixel",
}

# Private CA chain the TP-Link backends are issued from
CA_CERT_FILE = Path(__file__).parent / "certs" / "tplink-ca-chain.pem"

CRED_DIR = Path.home() / ".config" / "tplc"
CRED_FILENAME = "credentials.json"
