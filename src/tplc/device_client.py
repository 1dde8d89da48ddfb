"""Device passthrough client.

Relays an opaque command envelope through the cloud to one device and
returns the device's reply.  The reply arrives JSON-encoded inside the
outer JSON response (``result.responseData``) and is decoded twice.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from tplc._constants import DEVICE_TIMEOUT, ERR_DEVICE_OFFLINE, ERR_TOKEN_EXPIRED
from tplc.client import ApiResponse, post_signed, query_params
from tplc.cloud import CloudType
from tplc.errors import (
    ApiError,
    DeviceOfflineError,
    ResponseFormatError,
    TokenExpiredError,
    TransportError,
)

logger = logging.getLogger(__name__)


class DeviceClient:
    """Passthrough client bound to one device endpoint and session token."""

    def __init__(
        self,
        host: str,
        token: str,
        term_id: str,
        cloud_type: CloudType = CloudType.KASA,
    ) -> None:
        self.host = host.rstrip("/")
        self.token = token
        self.term_id = term_id
        self.cloud_type = cloud_type

    def _envelope(self, device_id: str, request_data: str) -> dict[str, Any]:
        if self.cloud_type.uses_method_wrapper:
            return {
                "method": "passthrough",
                "params": {"deviceId": device_id, "requestData": request_data},
            }
        return {"deviceId": device_id, "requestData": request_data}

    async def passthrough(
        self, device_id: str, request_data: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Send *request_data* to *device_id* and return the decoded reply.

        Returns ``None`` when the cloud accepted the call but relayed no
        ``responseData``, or relayed a JSON ``null``.

        Raises:
            TokenExpiredError: If the session token was rejected.
            DeviceOfflineError: If the cloud cannot reach the device.
            ApiError: For any other business failure.
            TransportError: For a non-2xx HTTP status.
            ResponseFormatError: If either JSON layer cannot be decoded.
        """
        url_path = self.cloud_type.passthrough_path
        url = self.host if url_path == "/" else f"{self.host}{url_path}"
        body = self._envelope(device_id, json.dumps(request_data, separators=(",", ":")))

        status, text = await post_signed(
            self.cloud_type,
            url,
            url_path,
            body,
            query_params(self.cloud_type, self.term_id, self.token),
            timeout=DEVICE_TIMEOUT,
        )
        if not 200 <= status < 300:
            raise TransportError(f"{status}: {text}", status=status, body=text)

        response = ApiResponse.from_text(text)
        logger.debug(
            "[%s] Response: error_code=%s, msg=%r",
            self.cloud_type,
            response.error_code,
            response.msg,
        )

        if response.error_code == ERR_TOKEN_EXPIRED:
            raise TokenExpiredError("Auth token expired", error_code=response.error_code)
        if response.error_code == ERR_DEVICE_OFFLINE:
            raise DeviceOfflineError(response.msg or device_id, error_code=response.error_code)
        if not response.successful:
            raise ApiError(
                response.msg or f"Device error code {response.error_code}",
                error_code=response.error_code,
            )

        raw = (response.result or {}).get("responseData")
        if not isinstance(raw, str):
            return None
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ResponseFormatError(f"Invalid responseData: {e}") from e
        if parsed is None:
            return None
        if not isinstance(parsed, dict):
            raise ResponseFormatError("responseData is not a JSON object")
        logger.debug("Passthrough response: %s", json.dumps(parsed, indent=2))
        return parsed
