"""Internal request-signing helpers for the TP-Link V2 API."""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass

from Crypto.Hash import HMAC, MD5, SHA1

from tplc._constants import SIGNING_TIMESTAMP
from tplc.cloud import CloudType


@dataclass(frozen=True)
class SigningHeaders:
    content_md5: str
    x_authorization: str

    def as_headers(self) -> dict[str, str]:
        return {"Content-MD5": self.content_md5, "X-Authorization": self.x_authorization}


def compute_content_md5(body: str) -> str:
    """Base64-encoded MD5 digest of the UTF-8 request body."""
    digest = MD5.new(body.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def compute_signature(body: str, url_path: str, cloud_type: CloudType) -> tuple[str, str]:
    """Sign one request for *cloud_type*.

    The signing string is ``content_md5``, the fixed timestamp, a fresh
    UUID4 nonce and the URL path, joined with newlines.  The signature is
    HMAC-SHA1 keyed by the cloud's app secret, hex-encoded.

    Returns ``(content_md5, x_authorization)``.
    """
    content_md5 = compute_content_md5(body)
    nonce = str(uuid.uuid4())

    sig_string = "\n".join((content_md5, SIGNING_TIMESTAMP, nonce, url_path))
    mac = HMAC.new(cloud_type.secret_key.encode("utf-8"), digestmod=SHA1)
    mac.update(sig_string.encode("utf-8"))
    signature = mac.hexdigest()

    authorization = (
        f"Timestamp={SIGNING_TIMESTAMP}, Nonce={nonce}, "
        f"AccessKey={cloud_type.access_key}, Signature={signature}"
    )
    return content_md5, authorization


def signing_headers(body: str, url_path: str, cloud_type: CloudType) -> SigningHeaders:
    """Headers required on every signed request."""
    content_md5, authorization = compute_signature(body, url_path, cloud_type)
    return SigningHeaders(content_md5=content_md5, x_authorization=authorization)
