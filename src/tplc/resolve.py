"""Cross-cloud device discovery and name resolution.

Builds one flattened catalog from both clouds (Kasa first, Tapo
best-effort), expanding composite devices into one entry per outlet, and
resolves a user-supplied name or id to a :class:`~tplc.device.Device`::

    store = FileCredentialStore(credentials_path())
    device = await resolve_device("Kitchen", store)
    await device.power_on()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tplc.auth import AuthContext, load_auth, refresh_auth
from tplc.client import CloudClient
from tplc.cloud import CloudType
from tplc.credentials import CredentialStore
from tplc.device import Device, TokenRefresher
from tplc.device_client import DeviceClient
from tplc.errors import DeviceNotFoundError, NotAuthenticatedError, TokenExpiredError, TplcError
from tplc.models import DeviceInfo, DeviceType

logger = logging.getLogger(__name__)


@dataclass
class CatalogEntry:
    """One row of the flattened catalog; *child_id* marks an outlet entry."""

    info: DeviceInfo
    device_type: DeviceType
    child_alias: str | None = None
    child_id: str | None = None

    @property
    def alias(self) -> str:
        """Effective alias: the outlet's own alias, else the parent's."""
        return self.child_alias or self.info.alias_or_name

    @property
    def display_name(self) -> str:
        if self.child_id is not None and not self.child_alias:
            return f"{self.info.alias_or_name} (outlet {self.child_id[-2:]})"
        return self.alias

    @property
    def is_child(self) -> bool:
        return self.child_id is not None

    def to_dict(self) -> dict[str, object]:
        record: dict[str, object] = {
            "alias": self.display_name,
            "model": self.info.model,
            "type": self.device_type.display_name,
            "category": self.device_type.category,
            "status": "online" if self.info.online else "offline",
            "has_emeter": self.device_type.has_emeter,
            "cloud": self.info.cloud_type.value,
            "device_id": self.info.id,
        }
        if self.child_id is not None:
            record["child_id"] = self.child_id
        return record


@dataclass
class CloudFetch:
    """Result of listing one cloud: entries plus the failure, if any."""

    cloud_type: CloudType
    entries: list[CatalogEntry] = field(default_factory=list)
    error: TplcError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Discovery:
    """Full catalog across both clouds.

    *secondary* is the Tapo fetch outcome (``None`` when no Tapo session
    exists); its failure never fails discovery.
    """

    entries: list[CatalogEntry]
    auth: AuthContext
    secondary: CloudFetch | None = None


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def device_endpoint(info: DeviceInfo, auth: AuthContext) -> str:
    """The URL a device's passthrough calls go to."""
    if info.app_server_url:
        return info.app_server_url
    session = auth.session(info.cloud_type)
    if session is not None and session.regional_url:
        return session.regional_url
    return info.cloud_type.host


def make_refresher(auth: AuthContext, cloud_type: CloudType) -> TokenRefresher:
    """Hook that refreshes *cloud_type*'s session and returns the new token."""

    async def refresh() -> str:
        await refresh_auth(auth, cloud_type)
        session = auth.session(cloud_type)
        if session is None:
            raise NotAuthenticatedError()
        return session.token

    return refresh


def build_device(entry: CatalogEntry, auth: AuthContext) -> Device:
    """Bind a catalog entry to a passthrough client for its own cloud."""
    cloud_type = entry.info.cloud_type
    session = auth.session(cloud_type)
    if session is None or not session.active:
        raise NotAuthenticatedError()
    client = DeviceClient(
        device_endpoint(entry.info, auth), session.token, auth.term_id, cloud_type
    )
    return Device(
        client,
        entry.info.id,
        entry.info,
        entry.device_type,
        entry.child_id,
        alias=entry.child_alias,
        refresh_token=make_refresher(auth, cloud_type),
    )


async def _list_devices(auth: AuthContext, cloud_type: CloudType) -> list[DeviceInfo]:
    session = auth.session(cloud_type)
    if session is None or not session.active:
        raise NotAuthenticatedError()
    api = CloudClient(cloud_type, host=session.regional_url or None, term_id=auth.term_id)
    try:
        raw = await api.get_device_list(session.token)
    except TokenExpiredError:
        logger.debug("[%s] Token expired while listing devices; refreshing", cloud_type)
        await refresh_auth(auth, cloud_type)
        raw = await api.get_device_list(session.token)
    return [DeviceInfo.from_json(d, cloud_type) for d in raw]


async def _expand(info: DeviceInfo, auth: AuthContext) -> list[CatalogEntry]:
    device_type = DeviceType.from_model(info.model)
    parent = CatalogEntry(info, device_type)
    if not device_type.has_children:
        return [parent]

    try:
        children = await build_device(parent, auth).get_children()
    except TplcError as e:
        logger.debug("Could not enumerate outlets of %s: %s", info.alias_or_name, e)
        return [parent]

    entries = [parent]
    child_type = device_type.child_type
    for child in children:
        entries.append(
            CatalogEntry(info, child_type, child_alias=child.alias or None, child_id=child.id)
        )
    return entries


async def _fetch_cloud(
    auth: AuthContext, cloud_type: CloudType, seen: set[str]
) -> list[CatalogEntry]:
    entries: list[CatalogEntry] = []
    for info in await _list_devices(auth, cloud_type):
        if info.id in seen:
            logger.debug("[%s] Skipping duplicate device %s", cloud_type, info.id)
            continue
        seen.add(info.id)
        entries.extend(await _expand(info, auth))
    return entries


async def fetch_all_devices(auth: AuthContext) -> Discovery:
    """List every device on both clouds as a flattened, deduplicated catalog.

    Kasa failures propagate.  Tapo is only queried with an active session
    and its failure is captured in :attr:`Discovery.secondary`.
    """
    seen: set[str] = set()
    entries = await _fetch_cloud(auth, CloudType.KASA, seen)

    secondary: CloudFetch | None = None
    if auth.has_tapo:
        try:
            tapo_entries = await _fetch_cloud(auth, CloudType.TAPO, seen)
        except TplcError as e:
            logger.warning("Tapo device fetch failed (non-fatal): %s", e)
            secondary = CloudFetch(CloudType.TAPO, error=e)
        else:
            secondary = CloudFetch(CloudType.TAPO, tapo_entries)
            entries.extend(tapo_entries)

    return Discovery(entries, auth, secondary)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def match_device(entries: list[CatalogEntry], query: str) -> CatalogEntry:
    """Pick the one entry *query* names.

    Priority: exact alias, parent device id, case-insensitive alias, then a
    case-insensitive alias substring that must be unique.
    """
    for entry in entries:
        if entry.alias == query:
            return entry

    for entry in entries:
        if entry.child_id is None and entry.info.id == query:
            return entry

    lowered = query.lower()
    for entry in entries:
        if entry.alias.lower() == lowered:
            return entry

    partial = [e for e in entries if lowered in e.alias.lower()]
    if len(partial) == 1:
        return partial[0]
    if partial:
        names = [e.alias for e in partial]
        raise DeviceNotFoundError(
            f"'{query}' is ambiguous. Matches: {', '.join(names)}", candidates=names
        )
    raise DeviceNotFoundError(f"'{query}'")


def search_devices(entries: list[CatalogEntry], query: str) -> list[CatalogEntry]:
    """Every entry whose alias contains *query*, case-insensitively."""
    lowered = query.lower()
    return [e for e in entries if lowered in e.alias.lower()]


async def resolve_entry(
    name_or_id: str, store: CredentialStore
) -> tuple[CatalogEntry, AuthContext]:
    auth = load_auth(store)
    discovery = await fetch_all_devices(auth)
    return match_device(discovery.entries, name_or_id), auth


async def resolve_device(name_or_id: str, store: CredentialStore) -> Device:
    """Load the stored sessions, discover devices and bind the named one."""
    entry, auth = await resolve_entry(name_or_id, store)
    logger.debug("Resolved '%s' to %s (%s)", name_or_id, entry.info.id, entry.alias)
    return build_device(entry, auth)
