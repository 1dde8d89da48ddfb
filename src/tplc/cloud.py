"""The two TP-Link cloud ecosystems and their fixed app identities."""

from __future__ import annotations

from enum import Enum

from tplc._constants import APP_VERSION


class CloudType(Enum):
    """Which TP-Link cloud a session or device belongs to.

    The access/secret key pairs identify the *app* to the backend, not the
    user.  They are identical across every installation of the Android
    apps.  Signing a request with one cloud's keys and sending it to the
    other cloud is always rejected.
    """

    KASA = "kasa"
    TAPO = "tapo"

    @property
    def host(self) -> str:
        return _HOSTS[self]

    @property
    def access_key(self) -> str:
        return _ACCESS_KEYS[self]

    @property
    def secret_key(self) -> str:
        return _SECRET_KEYS[self]

    @property
    def app_type(self) -> str:
        return _APP_TYPES[self]

    @property
    def app_version(self) -> str:
        return APP_VERSION

    @property
    def passthrough_path(self) -> str:
        """URL path for device passthrough calls.

        Kasa wraps passthrough in a ``method``/``params`` body on the root
        path; Tapo posts a flat body to a dedicated path.
        """
        return _PASSTHROUGH_PATHS[self]

    @property
    def uses_method_wrapper(self) -> bool:
        return self.passthrough_path == "/"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def key_prefix(self) -> str:
        """Prefix for this cloud's keys in the credential store."""
        return "" if self is CloudType.KASA else f"{self.value}_"

    def __str__(self) -> str:
        return self.value


_HOSTS = {
    CloudType.KASA: "https://n-wap.tplinkcloud.com",
    CloudType.TAPO: "https://n-wap.i.tplinkcloud.com",
}

_ACCESS_KEYS = {
    CloudType.KASA: "e37525375f8845999bcc56d5e6faa76d",
    CloudType.TAPO: "4d11b6b9d5ea4d19a829adbb9714b057",
}

_SECRET_KEYS = {
    CloudType.KASA: "314bc6700b3140ca80bc655e527cb062",
    CloudType.TAPO: "6ed7d97f3e73467f8a5bab90b577ba4c",
}

_APP_TYPES = {
    CloudType.KASA: "Kasa_Android_Mix",
    CloudType.TAPO: "TP-Link_Tapo_Android",
}

_PASSTHROUGH_PATHS = {
    CloudType.KASA: "/",
    CloudType.TAPO: "/api/v2/common/passthrough",
}
