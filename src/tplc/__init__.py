"""Python API and CLI for controlling TP-Link Kasa and Tapo devices through the cloud."""

from tplc.auth import AuthContext, CloudSession, load_auth, login, refresh_auth, store_auth
from tplc.client import CloudClient, LoginResult
from tplc.cloud import CloudType
from tplc.credentials import CredentialStore, FileCredentialStore
from tplc.device import Device
from tplc.device_client import DeviceClient
from tplc.errors import TplcError
from tplc.models import ChildInfo, DeviceInfo, DeviceType
from tplc.resolve import CatalogEntry, Discovery, fetch_all_devices, match_device, resolve_device

__all__ = [
    "AuthContext",
    "CatalogEntry",
    "ChildInfo",
    "CloudClient",
    "CloudSession",
    "CloudType",
    "CredentialStore",
    "Device",
    "DeviceClient",
    "DeviceInfo",
    "DeviceType",
    "Discovery",
    "FileCredentialStore",
    "LoginResult",
    "TplcError",
    "fetch_all_devices",
    "load_auth",
    "login",
    "match_device",
    "refresh_auth",
    "resolve_device",
    "store_auth",
]
