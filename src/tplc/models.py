"""Device records and kinds, plus typed views of common device replies."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from tplc.cloud import CloudType


class DeviceType(Enum):
    """Device kind derived from the cloud-reported model string.

    The value is the human-readable display name.
    """

    HS100 = "HS100"
    HS103 = "HS103"
    HS105 = "HS105"
    HS110 = "HS110"
    HS200 = "HS200"
    HS300 = "HS300"
    HS300_CHILD = "HS300 Outlet"
    KP115 = "KP115"
    KP125 = "KP125"
    KP200 = "KP200"
    KP200_CHILD = "KP200 Outlet"
    KP303 = "KP303"
    KP303_CHILD = "KP303 Outlet"
    KP400 = "KP400"
    KP400_CHILD = "KP400 Outlet"
    KL420L5 = "KL420L5"
    KL430 = "KL430"
    EP40 = "EP40"
    EP40_CHILD = "EP40 Outlet"
    UNKNOWN = "Unknown"

    @classmethod
    def from_model(cls, model: str) -> DeviceType:
        """Return the kind bound to the longest prefix of *model*."""
        best: DeviceType = cls.UNKNOWN
        best_len = 0
        for prefix, device_type in MODEL_PREFIXES.items():
            if len(prefix) > best_len and model.startswith(prefix):
                best, best_len = device_type, len(prefix)
        return best

    @property
    def display_name(self) -> str:
        return self.value

    @property
    def has_children(self) -> bool:
        return self in _CHILD_TYPES

    @property
    def child_type(self) -> DeviceType:
        return _CHILD_TYPES.get(self, DeviceType.UNKNOWN)

    @property
    def is_child(self) -> bool:
        return self in _CHILD_TYPES.values()

    @property
    def has_emeter(self) -> bool:
        return self in _EMETER_TYPES

    @property
    def is_light(self) -> bool:
        return self in _LIGHT_TYPES

    @property
    def category(self) -> str:
        if self.is_light:
            return "light"
        if self is DeviceType.HS200:
            return "switch"
        return "plug"


MODEL_PREFIXES: dict[str, DeviceType] = {
    "HS100": DeviceType.HS100,
    "HS103": DeviceType.HS103,
    "HS105": DeviceType.HS105,
    "HS110": DeviceType.HS110,
    "HS200": DeviceType.HS200,
    "HS300": DeviceType.HS300,
    "KP115": DeviceType.KP115,
    "KP125": DeviceType.KP125,
    "KP200": DeviceType.KP200,
    "KP303": DeviceType.KP303,
    "KP400": DeviceType.KP400,
    "KL420L5": DeviceType.KL420L5,
    "KL430": DeviceType.KL430,
    "EP40": DeviceType.EP40,
}

_CHILD_TYPES: dict[DeviceType, DeviceType] = {
    DeviceType.HS300: DeviceType.HS300_CHILD,
    DeviceType.KP200: DeviceType.KP200_CHILD,
    DeviceType.KP303: DeviceType.KP303_CHILD,
    DeviceType.KP400: DeviceType.KP400_CHILD,
    DeviceType.EP40: DeviceType.EP40_CHILD,
}

_EMETER_TYPES = frozenset(
    {DeviceType.HS110, DeviceType.KP115, DeviceType.KP125, DeviceType.HS300_CHILD}
)

_LIGHT_TYPES = frozenset({DeviceType.KL420L5, DeviceType.KL430})


# ---------------------------------------------------------------------------
# Cloud device records
# ---------------------------------------------------------------------------


def _str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _float(data: dict[str, Any], *keys: str) -> float | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


@dataclass
class DeviceInfo:
    """One entry of the cloud ``deviceList``."""

    device_id: str | None = None
    alias: str | None = None
    device_name: str | None = None
    device_model: str | None = None
    device_type: str | None = None
    app_server_url: str | None = None
    status: int | None = None
    role: int | None = None
    fw_ver: str | None = None
    device_hw_ver: str | None = None
    device_region: str | None = None
    device_mac: str | None = None
    oem_id: str | None = None
    hw_id: str | None = None
    fw_id: str | None = None
    is_same_region: bool | None = None
    cloud_type: CloudType = CloudType.KASA

    @classmethod
    def from_json(
        cls, data: dict[str, Any], cloud_type: CloudType = CloudType.KASA
    ) -> DeviceInfo:
        same_region = data.get("isSameRegion")
        return cls(
            device_id=_str(data, "deviceId"),
            alias=_str(data, "alias"),
            device_name=_str(data, "deviceName"),
            device_model=_str(data, "deviceModel"),
            device_type=_str(data, "deviceType"),
            app_server_url=_str(data, "appServerUrl"),
            status=_int(data, "status"),
            role=_int(data, "role"),
            fw_ver=_str(data, "fwVer"),
            device_hw_ver=_str(data, "deviceHwVer"),
            device_region=_str(data, "deviceRegion"),
            device_mac=_str(data, "deviceMac"),
            oem_id=_str(data, "oemId"),
            hw_id=_str(data, "hwId"),
            fw_id=_str(data, "fwId"),
            is_same_region=same_region if isinstance(same_region, bool) else None,
            cloud_type=cloud_type,
        )

    @property
    def id(self) -> str:
        return self.device_id or ""

    @property
    def alias_or_name(self) -> str:
        return self.alias or self.device_name or "Unknown"

    @property
    def model(self) -> str:
        return self.device_model or "Unknown"

    @property
    def online(self) -> bool:
        return self.status == 1


@dataclass
class ChildInfo:
    """A sub-unit (outlet) of a composite device, from its parent's sysinfo."""

    id: str
    alias: str = ""
    state: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ChildInfo:
        return cls(
            id=_str(data, "id") or "",
            alias=_str(data, "alias") or "",
            state=_int(data, "state"),
        )


# ---------------------------------------------------------------------------
# Device reply views
# ---------------------------------------------------------------------------


class _View:
    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]


@dataclass
class CurrentPower(_View):
    """``emeter.get_realtime``; older firmware omits the unit suffixes."""

    voltage_mv: float | None = None
    current_ma: float | None = None
    power_mw: float | None = None
    total_wh: float | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> CurrentPower:
        return cls(
            voltage_mv=_float(data, "voltage_mv", "voltage"),
            current_ma=_float(data, "current_ma", "current"),
            power_mw=_float(data, "power_mw", "power"),
            total_wh=_float(data, "total_wh", "total"),
        )


@dataclass
class DayPowerSummary(_View):
    year: int | None = None
    month: int | None = None
    day: int | None = None
    energy_wh: float | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> DayPowerSummary:
        return cls(
            year=_int(data, "year"),
            month=_int(data, "month"),
            day=_int(data, "day"),
            energy_wh=_float(data, "energy_wh", "energy"),
        )


@dataclass
class MonthPowerSummary(_View):
    year: int | None = None
    month: int | None = None
    energy_wh: float | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> MonthPowerSummary:
        return cls(
            year=_int(data, "year"),
            month=_int(data, "month"),
            energy_wh=_float(data, "energy_wh", "energy"),
        )


@dataclass
class LightState(_View):
    on_off: int | None = None
    mode: str | None = None
    hue: int | None = None
    saturation: int | None = None
    color_temp: int | None = None
    brightness: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> LightState:
        return cls(
            on_off=_int(data, "on_off"),
            mode=_str(data, "mode"),
            hue=_int(data, "hue"),
            saturation=_int(data, "saturation"),
            color_temp=_int(data, "color_temp"),
            brightness=_int(data, "brightness"),
        )


@dataclass
class NetInfo(_View):
    ssid: str | None = None
    key_type: int | None = None
    rssi: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> NetInfo:
        return cls(
            ssid=_str(data, "ssid"),
            key_type=_int(data, "key_type"),
            rssi=_int(data, "rssi"),
        )


@dataclass
class DeviceTime(_View):
    year: int | None = None
    month: int | None = None
    mday: int | None = None
    hour: int | None = None
    min: int | None = None
    sec: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> DeviceTime:
        return cls(
            year=_int(data, "year"),
            month=_int(data, "month"),
            mday=_int(data, "mday"),
            hour=_int(data, "hour"),
            min=_int(data, "min"),
            sec=_int(data, "sec"),
        )


@dataclass
class DeviceTimezone(_View):
    index: int | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> DeviceTimezone:
        return cls(index=_int(data, "index"))
