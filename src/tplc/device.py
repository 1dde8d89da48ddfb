"""A resolved, controllable device (or sub-unit of a composite device)."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from tplc.device_client import DeviceClient
from tplc.errors import ApiError, TokenExpiredError, UnsupportedOperationError
from tplc.models import ChildInfo, DeviceInfo, DeviceType

logger = logging.getLogger(__name__)

LIGHTING_SERVICE = "smartlife.iot.smartbulb.lightingservice"

TokenRefresher = Callable[[], Awaitable[str]]
"""Refreshes the owning cloud session and returns the new access token."""


class Device:
    """A specific device, bound to one passthrough client.

    Obtained from :func:`tplc.resolve.resolve_device`.  When *child_id* is
    set, every command is addressed to that sub-unit of the parent device.

    Example::

        device = await resolve_device("Living Room Lamp", store)
        await device.power_on()
        print(await device.is_on())
    """

    def __init__(
        self,
        client: DeviceClient,
        device_id: str,
        info: DeviceInfo,
        device_type: DeviceType,
        child_id: str | None = None,
        *,
        alias: str | None = None,
        refresh_token: TokenRefresher | None = None,
    ) -> None:
        self._client = client
        self.device_id = device_id
        self.info = info
        self.device_type = device_type
        self.child_id = child_id
        self._alias = alias
        self._refresh_token = refresh_token

    @property
    def alias(self) -> str:
        """Sub-unit alias when bound to one, else the parent's alias or name."""
        return self._alias or self.info.alias_or_name

    @property
    def is_child(self) -> bool:
        return self.child_id is not None

    # ------------------------------------------------------------------
    # Passthrough
    # ------------------------------------------------------------------

    async def _send(self, request_data: dict[str, Any]) -> dict[str, Any] | None:
        try:
            return await self._client.passthrough(self.device_id, request_data)
        except TokenExpiredError:
            if self._refresh_token is None:
                raise
            logger.debug("Token expired during passthrough; refreshing once")
            self._client.token = await self._refresh_token()
            return await self._client.passthrough(self.device_id, request_data)

    async def passthrough(
        self, request_type: str, sub_request_type: str, request: Any
    ) -> dict[str, Any] | None:
        """Send ``{request_type: {sub_request_type: request}}`` to the device.

        Returns the reply at ``request_type.sub_request_type``; for a
        sub-unit, the matching entry of that reply's ``children`` list.
        """
        request_data: dict[str, Any] = {request_type: {sub_request_type: request}}
        if self.child_id is not None:
            request_data["context"] = {"child_ids": [self.child_id]}

        response = await self._send(request_data)
        if response is None:
            return None
        service = response.get(request_type)
        if not isinstance(service, dict):
            return None
        sub_response = service.get(sub_request_type)
        if not isinstance(sub_response, dict):
            return None

        if self.child_id is not None:
            children = sub_response.get("children")
            if isinstance(children, list):
                for child in children:
                    if isinstance(child, dict) and child.get("id") == self.child_id:
                        return child
        return sub_response

    def _require_emeter(self) -> None:
        if not self.device_type.has_emeter:
            raise UnsupportedOperationError(
                f"{self.device_type.display_name} does not support energy monitoring"
            )

    def _require_light(self) -> None:
        if not self.device_type.is_light:
            raise UnsupportedOperationError(
                f"{self.device_type.display_name} is not a light device"
            )

    # ------------------------------------------------------------------
    # Power
    # ------------------------------------------------------------------

    async def _set_power(self, on: bool) -> dict[str, Any] | None:
        state = 1 if on else 0
        if self.device_type.is_light:
            return await self.passthrough(
                LIGHTING_SERVICE, "transition_light_state", {"on_off": state}
            )
        return await self.passthrough("system", "set_relay_state", {"state": state})

    async def power_on(self) -> dict[str, Any] | None:
        return await self._set_power(True)

    async def power_off(self) -> dict[str, Any] | None:
        return await self._set_power(False)

    async def is_on(self) -> bool | None:
        """Current power state, or ``None`` if the reply does not say."""
        info = await self.get_sys_info()
        if info is None:
            return None
        if self.device_type.is_light:
            light_state = info.get("light_state")
            if isinstance(light_state, dict):
                on_off = light_state.get("on_off")
                return on_off == 1 if isinstance(on_off, int) else None
        key = "state" if self.child_id is not None else "relay_state"
        value = info.get(key)
        return value == 1 if isinstance(value, int) else None

    async def toggle(self) -> bool:
        """Flip the power state and return the new state.

        Raises :class:`ApiError` if the current state cannot be determined.
        """
        current = await self.is_on()
        if current is None:
            raise ApiError("Could not determine device power state")
        await self._set_power(not current)
        return not current

    # ------------------------------------------------------------------
    # System
    # ------------------------------------------------------------------

    async def get_sys_info(self) -> dict[str, Any] | None:
        return await self.passthrough("system", "get_sysinfo", None)

    async def set_led_state(self, on: bool) -> dict[str, Any] | None:
        # ``off: 0`` turns the LED on
        return await self.passthrough("system", "set_led_off", {"off": 0 if on else 1})

    async def get_children(self) -> list[ChildInfo]:
        """Sub-units of a composite device; empty for anything else."""
        if not self.device_type.has_children:
            return []
        info = await self.get_sys_info()
        children = (info or {}).get("children")
        if not isinstance(children, list):
            return []
        return [ChildInfo.from_json(c) for c in children if isinstance(c, dict)]

    # ------------------------------------------------------------------
    # Energy
    # ------------------------------------------------------------------

    async def get_power_usage_realtime(self) -> dict[str, Any] | None:
        self._require_emeter()
        return await self.passthrough("emeter", "get_realtime", None)

    async def get_power_usage_day(self, year: int, month: int) -> dict[str, Any] | None:
        self._require_emeter()
        return await self.passthrough("emeter", "get_daystat", {"year": year, "month": month})

    async def get_power_usage_month(self, year: int) -> dict[str, Any] | None:
        self._require_emeter()
        return await self.passthrough("emeter", "get_monthstat", {"year": year})

    # ------------------------------------------------------------------
    # Light
    # ------------------------------------------------------------------

    async def get_light_state(self) -> dict[str, Any] | None:
        self._require_light()
        return await self.passthrough(LIGHTING_SERVICE, "get_light_state", {})

    async def set_light_state(
        self,
        *,
        on_off: int | None = None,
        brightness: int | None = None,
        hue: int | None = None,
        saturation: int | None = None,
        color_temp: int | None = None,
        transition_period: int | None = None,
    ) -> dict[str, Any] | None:
        """Send ``transition_light_state`` with only the fields given."""
        self._require_light()
        fields = {
            "on_off": on_off,
            "brightness": brightness,
            "hue": hue,
            "saturation": saturation,
            "color_temp": color_temp,
            "transition_period": transition_period,
        }
        state = {k: v for k, v in fields.items() if v is not None}
        return await self.passthrough(LIGHTING_SERVICE, "transition_light_state", state)

    async def set_brightness(self, brightness: int) -> dict[str, Any] | None:
        return await self.set_light_state(on_off=1, brightness=brightness)

    async def set_color(
        self, hue: int, saturation: int, brightness: int | None = None
    ) -> dict[str, Any] | None:
        # color_temp 0 switches the bulb from white to colour mode
        return await self.set_light_state(
            on_off=1, brightness=brightness, hue=hue, saturation=saturation, color_temp=0
        )

    async def set_color_temp(
        self, color_temp: int, brightness: int | None = None
    ) -> dict[str, Any] | None:
        return await self.set_light_state(on_off=1, brightness=brightness, color_temp=color_temp)

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def get_schedule_rules(self) -> dict[str, Any] | None:
        return await self.passthrough("schedule", "get_rules", {})

    async def add_schedule_rule(self, rule: dict[str, Any]) -> dict[str, Any] | None:
        return await self.passthrough("schedule", "add_rule", rule)

    async def edit_schedule_rule(self, rule: dict[str, Any]) -> dict[str, Any] | None:
        return await self.passthrough("schedule", "edit_rule", rule)

    async def delete_schedule_rule(self, rule_id: str) -> dict[str, Any] | None:
        return await self.passthrough("schedule", "delete_rule", {"id": rule_id})

    async def delete_all_schedule_rules(self) -> dict[str, Any] | None:
        return await self.passthrough("schedule", "delete_all_rules", None)

    # ------------------------------------------------------------------
    # Network / time
    # ------------------------------------------------------------------

    async def get_net_info(self) -> dict[str, Any] | None:
        return await self.passthrough("netif", "get_stainfo", None)

    async def get_time(self) -> dict[str, Any] | None:
        return await self.passthrough("time", "get_time", {})

    async def get_timezone(self) -> dict[str, Any] | None:
        return await self.passthrough("time", "get_timezone", {})
