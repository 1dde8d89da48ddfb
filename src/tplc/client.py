"""TP-Link cloud account API client.

Provides account-level access to the Kasa and Tapo clouds: regional
discovery, login (with MFA), token refresh and device listing.  Every
request is signed with the cloud's app identity (see
:mod:`tplc._signing`)::

    import asyncio
    from tplc import CloudClient, CloudType

    api = CloudClient(CloudType.KASA)
    result = await api.login("email@example.com", "password")
    devices = await api.get_device_list(result.token)
"""

from __future__ import annotations

import functools
import json
import logging
import ssl
import uuid
from dataclasses import dataclass
from typing import Any, NoReturn

import aiohttp

from tplc._constants import (
    ACCOUNT_TIMEOUT,
    ERR_ACCOUNT_LOCKED,
    ERR_MFA_REQUIRED,
    ERR_REFRESH_TOKEN_EXPIRED,
    ERR_TOKEN_EXPIRED,
    ERR_WRONG_CREDENTIALS,
    PATH_ACCOUNT_STATUS,
    PATH_LOGIN,
    PATH_MFA_LOGIN,
    PATH_REFRESH_TOKEN,
    TERMINAL_PARAMS,
    USER_AGENT,
)
from tplc._signing import signing_headers
from tplc.cloud import CloudType
from tplc.config import ca_cert_path
from tplc.errors import (
    ApiError,
    AuthError,
    InvalidInputError,
    MfaRequiredError,
    RefreshTokenExpiredError,
    ResponseFormatError,
    TokenExpiredError,
    TransportError,
)

logger = logging.getLogger(__name__)

_SECRET_FIELDS = frozenset({"cloudPassword", "refreshToken", "token", "code"})


@dataclass
class ApiResponse:
    """The ``{error_code, result, msg}`` envelope every endpoint returns."""

    error_code: int
    result: dict[str, Any] | None = None
    msg: str | None = None

    @property
    def successful(self) -> bool:
        return self.error_code == 0

    @classmethod
    def from_text(cls, text: str) -> ApiResponse:
        """Decode a response body, rejecting anything without an ``error_code``."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseFormatError(f"Invalid JSON in response: {e}") from e
        if not isinstance(data, dict):
            raise ResponseFormatError("Response is not a JSON object")
        error_code = data.get("error_code")
        if not isinstance(error_code, int) or isinstance(error_code, bool):
            raise ResponseFormatError("Response has no integer error_code")
        result = data.get("result")
        msg = data.get("msg")
        return cls(
            error_code=error_code,
            result=result if isinstance(result, dict) else None,
            msg=msg if isinstance(msg, str) else None,
        )


@dataclass
class LoginResult:
    token: str
    refresh_token: str | None
    regional_url: str


class CloudClient:
    """Account-level client for one TP-Link cloud.

    *host* defaults to the cloud's global endpoint; pass a stored regional
    URL to talk to the account's home region directly.  *term_id* is the
    terminal UUID this client identifies as; a fresh one is generated when
    omitted.
    """

    def __init__(
        self,
        cloud_type: CloudType = CloudType.KASA,
        *,
        host: str | None = None,
        term_id: str | None = None,
    ) -> None:
        self.cloud_type = cloud_type
        self.host = host or cloud_type.host
        self.term_id = term_id or str(uuid.uuid4())

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _request_v2(
        self,
        base_url: str,
        url_path: str,
        body: dict[str, Any],
        token: str | None = None,
    ) -> ApiResponse:
        """Signed request to a V2 path with a plain JSON body."""
        status, text = await post_signed(
            self.cloud_type,
            f"{base_url}{url_path}",
            url_path,
            body,
            query_params(self.cloud_type, self.term_id, token),
            timeout=ACCOUNT_TIMEOUT,
        )
        return _decode(self.cloud_type, status, text)

    async def _request_v1(self, body: dict[str, Any], token: str | None = None) -> ApiResponse:
        """Signed request to the root path with a ``method``/``params`` body."""
        status, text = await post_signed(
            self.cloud_type,
            self.host,
            "/",
            body,
            query_params(self.cloud_type, self.term_id, token),
            timeout=ACCOUNT_TIMEOUT,
        )
        return _decode(self.cloud_type, status, text)

    # ------------------------------------------------------------------
    # Account operations
    # ------------------------------------------------------------------

    async def get_regional_url(self, username: str) -> str:
        """Discover the account's regional server, falling back to :attr:`host`."""
        body = {"appType": self.cloud_type.app_type, "cloudUserName": username}
        try:
            response = await self._request_v2(self.host, PATH_ACCOUNT_STATUS, body)
        except (ApiError, TransportError, ResponseFormatError) as e:
            logger.debug("[%s] Regional discovery failed: %s", self.cloud_type, e)
            return self.host
        if response.successful and response.result:
            url = response.result.get("appServerUrl")
            if isinstance(url, str) and url:
                return url
        return self.host

    async def login(self, username: str, password: str) -> LoginResult:
        """Authenticate and rebind this client to the account's regional URL.

        Raises:
            InvalidInputError: If *username* or *password* is empty.
            MfaRequiredError: If the account needs a second factor.
            AuthError: For wrong credentials or a locked account.
            ApiError: For any other rejection.
        """
        if not username:
            raise InvalidInputError("Username is required")
        if not password:
            raise InvalidInputError("Password is required")

        regional_url = await self.get_regional_url(username)
        self.host = regional_url

        body = {
            "appType": self.cloud_type.app_type,
            "appVersion": self.cloud_type.app_version,
            "cloudPassword": password,
            "cloudUserName": username,
            "platform": "Android",
            "refreshTokenNeeded": True,
            "supportBindAccount": False,
            "terminalUUID": self.term_id,
            "terminalName": "Pixel",
            "terminalMeta": "Pixel",
        }
        response = await self._request_v2(regional_url, PATH_LOGIN, body)
        result = response.result or {}

        if response.successful:
            # A successful envelope may still carry a failure in result.errorCode.
            inner_code = _inner_error_code(result)
            if inner_code == 0:
                return _login_result(result, regional_url)
            message = result.get("errorMsg")
            _raise_login_error(
                inner_code,
                message if isinstance(message, str) else "Login failed",
                result,
                username,
            )

        _raise_login_error(
            response.error_code,
            response.msg or f"Login failed with error code {response.error_code}",
            result,
            username,
        )

    async def verify_mfa(self, username: str, password: str, mfa_code: str) -> LoginResult:
        """Complete a login that raised :class:`MfaRequiredError`."""
        body = {
            "appType": self.cloud_type.app_type,
            "cloudPassword": password,
            "cloudUserName": username,
            "code": mfa_code,
            "terminalUUID": self.term_id,
        }
        response = await self._request_v2(self.host, PATH_MFA_LOGIN, body)
        if response.successful:
            return _login_result(response.result or {}, self.host)
        raise AuthError(
            response.msg or "MFA verification failed", error_code=response.error_code
        )

    async def refresh_token(self, refresh_token: str) -> LoginResult:
        """Exchange a refresh token for a new access token.

        Raises :class:`RefreshTokenExpiredError` when the refresh token
        itself is no longer accepted.
        """
        body = {
            "appType": self.cloud_type.app_type,
            "refreshToken": refresh_token,
            "terminalUUID": self.term_id,
        }
        response = await self._request_v2(self.host, PATH_REFRESH_TOKEN, body)
        if response.successful:
            return _login_result(response.result or {}, self.host)
        if response.error_code == ERR_REFRESH_TOKEN_EXPIRED:
            raise RefreshTokenExpiredError(
                "Refresh token has expired. Run 'tplc login' to re-authenticate.",
                error_code=response.error_code,
            )
        raise ApiError(
            response.msg or f"Token refresh failed with error code {response.error_code}",
            error_code=response.error_code,
        )

    async def get_device_list(self, token: str) -> list[dict[str, Any]]:
        """Fetch the raw device records bound to the account.

        Any failure other than an expired token yields an empty list.
        """
        response = await self._request_v1({"method": "getDeviceList"}, token)
        if response.successful:
            devices = (response.result or {}).get("deviceList")
            if isinstance(devices, list):
                return [d for d in devices if isinstance(d, dict)]
            return []
        if response.error_code == ERR_TOKEN_EXPIRED:
            raise TokenExpiredError("Auth token expired", error_code=response.error_code)
        logger.debug(
            "[%s] getDeviceList failed (%s): %s",
            self.cloud_type,
            response.error_code,
            response.msg,
        )
        return []


# ---------------------------------------------------------------------------
# Shared HTTP helpers
# ---------------------------------------------------------------------------


def query_params(cloud_type: CloudType, term_id: str, token: str | None = None) -> dict[str, str]:
    """Device-identity query parameters attached to every call."""
    params = {
        "appName": cloud_type.app_type,
        "appVer": cloud_type.app_version,
        "termID": term_id,
        **TERMINAL_PARAMS,
    }
    if token is not None:
        params["token"] = token
    return params


@functools.cache
def make_tls_context() -> ssl.SSLContext:
    """SSL context trusting only the TP-Link CA chain.

    Falls back to the system trust store (with a warning) when the pinned
    bundle is not installed.

    Raises:
        TransportError: If the bundle exists but cannot be loaded.
    """
    ca_file = ca_cert_path()
    if ca_file.is_file():
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        try:
            ctx.load_verify_locations(cafile=str(ca_file))
        except (OSError, ssl.SSLError) as e:
            raise TransportError(f"Cannot load CA bundle {ca_file}: {e}") from e
        return ctx
    logger.warning("Pinned CA bundle %s not found; using the system trust store.", ca_file)
    return ssl.create_default_context()


async def post_signed(
    cloud_type: CloudType,
    url: str,
    url_path: str,
    body: dict[str, Any],
    params: dict[str, str],
    *,
    timeout: float,
) -> tuple[int, str]:
    """POST a signed JSON body and return ``(status, text)``.

    Connection failures and timeouts are raised as :class:`TransportError`;
    the caller decides what a non-2xx status means.
    """
    body_json = json.dumps(body, separators=(",", ":"))
    headers = {
        "Content-Type": "application/json;charset=UTF-8",
        **signing_headers(body_json, url_path, cloud_type).as_headers(),
    }

    logger.debug("[%s] POST %s", cloud_type, url)
    logger.debug("Body: %s", json.dumps(_redact(body)))

    try:
        async with aiohttp.ClientSession(headers={"User-Agent": USER_AGENT}) as session:
            async with session.post(
                url,
                params=params,
                data=body_json.encode("utf-8"),
                headers=headers,
                ssl=make_tls_context(),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                return resp.status, await resp.text()
    except (aiohttp.ClientError, TimeoutError) as e:
        reason = str(e) or type(e).__name__
        raise TransportError(f"[{cloud_type}] POST {url} failed: {reason}") from e


def _decode(cloud_type: CloudType, status: int, text: str) -> ApiResponse:
    if not 200 <= status < 300:
        raise TransportError(f"{status}: {text}", status=status, body=text)
    response = ApiResponse.from_text(text)
    logger.debug(
        "[%s] Response: error_code=%s, msg=%r", cloud_type, response.error_code, response.msg
    )
    return response


def _redact(body: dict[str, Any]) -> dict[str, Any]:
    return {k: ("***" if k in _SECRET_FIELDS else v) for k, v in body.items()}


def _inner_error_code(result: dict[str, Any]) -> int:
    """Read ``result.errorCode``, which arrives as either an int or a string."""
    raw = result.get("errorCode")
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw)
        except ValueError:
            return 0
    return 0


def _login_result(result: dict[str, Any], regional_url: str) -> LoginResult:
    token = result.get("token")
    refresh_token = result.get("refreshToken")
    return LoginResult(
        token=token if isinstance(token, str) else "",
        refresh_token=refresh_token if isinstance(refresh_token, str) else None,
        regional_url=regional_url,
    )


def _raise_login_error(
    code: int, message: str, result: dict[str, Any], username: str
) -> NoReturn:
    if code == ERR_MFA_REQUIRED:
        mfa_type = result.get("mfaType")
        raise MfaRequiredError(
            mfa_type=mfa_type if isinstance(mfa_type, str) else None,
            email=username,
        )
    if code in (ERR_WRONG_CREDENTIALS, ERR_ACCOUNT_LOCKED):
        raise AuthError(message, error_code=code)
    raise ApiError(message, error_code=code)
