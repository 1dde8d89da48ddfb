"""Thin CLI wrapper over :mod:`tplc.resolve` and :class:`tplc.device.Device`."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Coroutine
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from tplc.auth import clear_auth, load_auth, login as login_clouds, store_auth
from tplc.cloud import CloudType
from tplc.config import (
    OutputMode,
    RuntimeConfig,
    configure_logging,
    credentials_from_env,
    credentials_path,
)
from tplc.credentials import FileCredentialStore
from tplc.device import Device
from tplc.errors import (
    DeviceNotFoundError,
    InvalidInputError,
    NotAuthenticatedError,
    TplcError,
)
from tplc.models import (
    CurrentPower,
    DayPowerSummary,
    DeviceTime,
    DeviceTimezone,
    LightState,
    MonthPowerSummary,
    NetInfo,
)
from tplc.resolve import (
    CatalogEntry,
    build_device,
    fetch_all_devices,
    resolve_device,
    search_devices,
)
from tplc.schedule import ScheduleRuleBuilder, apply_edits, find_rule, parse_days, parse_time

T = TypeVar("T")

app = typer.Typer(
    help="TP-Link Cloud CLI - control Kasa and Tapo smart home devices.",
    invoke_without_command=True,
)
devices_app = typer.Typer(help="Manage devices.", no_args_is_help=True)
power_app = typer.Typer(help="Control device power.", no_args_is_help=True)
energy_app = typer.Typer(help="Energy monitoring.", no_args_is_help=True)
light_app = typer.Typer(help="Light strip controls.", no_args_is_help=True)
schedule_app = typer.Typer(help="Device schedules.", no_args_is_help=True)
info_app = typer.Typer(help="Device information.", no_args_is_help=True)

app.add_typer(devices_app, name="devices")
app.add_typer(power_app, name="power")
app.add_typer(energy_app, name="energy")
app.add_typer(light_app, name="light")
app.add_typer(schedule_app, name="schedule")
app.add_typer(info_app, name="info")

_DEVICE_HELP = "Device name or ID"

_TABLE_COLUMNS = (
    ("NAME", "alias"),
    ("MODEL", "model"),
    ("TYPE", "category"),
    ("STATUS", "status"),
    ("EMETER", "has_emeter"),
    ("CLOUD", "cloud"),
    ("DEVICE ID", "device_id"),
)


class Switch(str, Enum):
    ON = "on"
    OFF = "off"


@app.callback()
def main(
    ctx: typer.Context,
    table: bool = typer.Option(
        False, "--table", "-t", help="Output as human-readable table instead of JSON"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Verbose output (show HTTP requests/responses)"
    ),
) -> None:
    """Control Kasa and Tapo smart home devices through the TP-Link cloud."""
    ctx.obj = RuntimeConfig(
        output_mode=OutputMode.TABLE if table else OutputMode.JSON,
        verbose=verbose,
    )
    configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


# ---------------------------------------------------------------------------
# Output and error plumbing
# ---------------------------------------------------------------------------


def _config(ctx: typer.Context) -> RuntimeConfig:
    obj = ctx.find_object(RuntimeConfig)
    return obj if obj is not None else RuntimeConfig()


def _store() -> FileCredentialStore:
    return FileCredentialStore(credentials_path())


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro*; turn any :class:`TplcError` into an error record and exit code."""
    try:
        return asyncio.run(coro)
    except TplcError as e:
        typer.echo(json.dumps(e.to_dict(), indent=2), err=True)
        raise typer.Exit(e.exit_code) from None


def _print_json(obj: object) -> None:
    """Print JSON, syntax-highlighted when stdout is a TTY, compact otherwise."""
    if sys.stdout.isatty():
        Console().print(Syntax(json.dumps(obj, indent=2), "json"))
    else:
        typer.echo(json.dumps(obj))


def _cell(value: object) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return "" if value is None else str(value)


def _print_device_table(rows: list[dict[str, Any]]) -> None:
    if not rows:
        typer.echo("No results.")
        return
    table = Table()
    for title, _ in _TABLE_COLUMNS:
        table.add_column(title)
    for row in rows:
        table.add_row(*(_cell(row.get(key)) for _, key in _TABLE_COLUMNS))
    Console().print(table)


def _print_record_table(record: dict[str, Any]) -> None:
    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in record.items():
        table.add_row(key, _cell(value))
    Console().print(table)


def _emit(ctx: typer.Context, obj: object) -> None:
    if _config(ctx).output_mode is not OutputMode.TABLE:
        _print_json(obj)
    elif isinstance(obj, list):
        _print_device_table(obj)
    elif isinstance(obj, dict):
        _print_record_table(obj)
    else:
        _print_json(obj)


def _no_data(device: Device) -> dict[str, Any]:
    return {"device": device.alias, "error": "no data"}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def _prompt_mfa(cloud_type: CloudType, email: str | None) -> str:
    suffix = f" for {email}" if email else ""
    typer.echo(f"{cloud_type.display_name} MFA verification required{suffix}", err=True)
    return typer.prompt(f"Enter {cloud_type.display_name} MFA code")


@app.command()
def login(ctx: typer.Context) -> None:
    """Authenticate with TP-Link Cloud (Kasa, plus Tapo when available)."""
    creds = credentials_from_env()
    if creds is None:
        username = typer.prompt("TP-Link email")
        password = typer.prompt("Password", hide_input=True)
    else:
        username, password = creds

    auth = _run(login_clouds(username, password, _prompt_mfa))
    try:
        store_auth(_store(), auth)
    except TplcError as e:
        typer.echo(json.dumps(e.to_dict(), indent=2), err=True)
        raise typer.Exit(e.exit_code) from None

    status: dict[str, Any] = {
        "status": "authenticated",
        "username": username,
        "kasa_regional_url": auth.kasa.regional_url,
    }
    if auth.tapo is not None:
        status["tapo_regional_url"] = auth.tapo.regional_url
    else:
        status["tapo"] = "unavailable"
    _emit(ctx, status)


@app.command()
def logout(ctx: typer.Context) -> None:
    """Clear stored authentication tokens."""
    try:
        clear_auth(_store())
    except TplcError as e:
        typer.echo(json.dumps(e.to_dict(), indent=2), err=True)
        raise typer.Exit(e.exit_code) from None
    _emit(ctx, {"status": "logged_out"})


@app.command()
def status(ctx: typer.Context) -> None:
    """Show authentication status."""
    try:
        auth = load_auth(_store())
    except NotAuthenticatedError:
        _emit(ctx, {"status": "not_authenticated"})
        return
    except TplcError as e:
        typer.echo(json.dumps(e.to_dict(), indent=2), err=True)
        raise typer.Exit(e.exit_code) from None

    _emit(
        ctx,
        {
            "status": "authenticated",
            "username": auth.username,
            "kasa_regional_url": auth.kasa.regional_url,
            "has_kasa_refresh_token": auth.kasa.refresh_token is not None,
            "tapo_authenticated": auth.has_tapo,
            "tapo_regional_url": auth.tapo.regional_url if auth.tapo else None,
            "has_tapo_refresh_token": bool(auth.tapo and auth.tapo.refresh_token),
        },
    )


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


async def _catalog_async() -> list[CatalogEntry]:
    discovery = await fetch_all_devices(load_auth(_store()))
    return discovery.entries


@devices_app.command("list")
def devices_list(ctx: typer.Context) -> None:
    """List all devices, including individual outlets of power strips."""
    entries = _run(_catalog_async())
    _emit(ctx, [e.to_dict() for e in entries])


@devices_app.command("get")
def devices_get(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """Get device details and live system info."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        sys_info = await dev.get_sys_info()
        result: dict[str, Any] = {
            "alias": dev.alias,
            "model": dev.info.model,
            "device_type": dev.device_type.display_name,
            "category": dev.device_type.category,
            "cloud": dev.info.cloud_type.value,
            "device_id": dev.device_id,
            "is_child": dev.is_child,
        }
        if dev.child_id is not None:
            result["child_id"] = dev.child_id
        if sys_info is not None:
            result["sys_info"] = sys_info
        return result

    _emit(ctx, _run(run()))


@devices_app.command("search")
def devices_search(
    ctx: typer.Context, query: str = typer.Argument(..., help="Partial device name")
) -> None:
    """Search devices by partial name (case-insensitive)."""
    entries = _run(_catalog_async())
    _emit(ctx, [e.to_dict() for e in search_devices(entries, query)])


# ---------------------------------------------------------------------------
# Power
# ---------------------------------------------------------------------------


async def _power_async(device: str, on: bool) -> dict[str, Any]:
    dev = await resolve_device(device, _store())
    if on:
        await dev.power_on()
    else:
        await dev.power_off()
    return {"device": dev.alias, "power": "on" if on else "off"}


@power_app.command("on")
def power_on(ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)) -> None:
    """Turn device on."""
    _emit(ctx, _run(_power_async(device, True)))


@power_app.command("off")
def power_off(ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)) -> None:
    """Turn device off."""
    _emit(ctx, _run(_power_async(device, False)))


@power_app.command("toggle")
def power_toggle(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """Toggle device power state."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        now_on = await dev.toggle()
        return {"device": dev.alias, "power": "on" if now_on else "off"}

    _emit(ctx, _run(run()))


@power_app.command("status")
def power_status(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """Check device power status."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        is_on = await dev.is_on()
        state = "unknown" if is_on is None else ("on" if is_on else "off")
        return {"device": dev.alias, "power": state}

    _emit(ctx, _run(run()))


@app.command()
def led(
    ctx: typer.Context,
    state: Switch = typer.Argument(..., help="LED state"),
    device: str = typer.Argument(..., help=_DEVICE_HELP),
) -> None:
    """Turn the indicator LED on or off."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        await dev.set_led_state(state is Switch.ON)
        return {"device": dev.alias, "led": state.value}

    _emit(ctx, _run(run()))


# ---------------------------------------------------------------------------
# Energy
# ---------------------------------------------------------------------------


@energy_app.command("realtime")
def energy_realtime(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """Current power usage."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        data = await dev.get_power_usage_realtime()
        if data is None:
            return _no_data(dev)
        return {"device": dev.alias, **CurrentPower.from_json(data).to_dict()}

    _emit(ctx, _run(run()))


@energy_app.command("daily")
def energy_daily(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    year: int | None = typer.Option(None, help="Year (default: current)"),
    month: int | None = typer.Option(None, min=1, max=12, help="Month (default: current)"),
) -> None:
    """Daily power usage statistics for one month."""
    now = datetime.now()
    y = year if year is not None else now.year
    m = month if month is not None else now.month

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        data = await dev.get_power_usage_day(y, m)
        if data is None:
            return _no_data(dev)
        days = data.get("day_list")
        return {
            "device": dev.alias,
            "year": y,
            "month": m,
            "days": [
                DayPowerSummary.from_json(d).to_dict()
                for d in (days if isinstance(days, list) else [])
                if isinstance(d, dict)
            ],
        }

    _emit(ctx, _run(run()))


@energy_app.command("monthly")
def energy_monthly(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    year: int | None = typer.Option(None, help="Year (default: current)"),
) -> None:
    """Monthly power usage statistics for one year."""
    y = year if year is not None else datetime.now().year

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        data = await dev.get_power_usage_month(y)
        if data is None:
            return _no_data(dev)
        months = data.get("month_list")
        return {
            "device": dev.alias,
            "year": y,
            "months": [
                MonthPowerSummary.from_json(m).to_dict()
                for m in (months if isinstance(months, list) else [])
                if isinstance(m, dict)
            ],
        }

    _emit(ctx, _run(run()))


async def _energy_summary_async() -> list[dict[str, Any]]:
    discovery = await fetch_all_devices(load_auth(_store()))
    rows: list[dict[str, Any]] = []
    for entry in discovery.entries:
        if not entry.device_type.has_emeter:
            continue
        row: dict[str, Any] = {
            "alias": entry.display_name,
            "model": entry.info.model,
            "device_id": entry.info.id,
        }
        try:
            data = await build_device(entry, discovery.auth).get_power_usage_realtime()
        except TplcError as e:
            row["error"] = e.to_dict()
        else:
            row.update(CurrentPower.from_json(data or {}).to_dict())
        rows.append(row)
    return rows


@energy_app.command("summary")
def energy_summary(ctx: typer.Context) -> None:
    """Current power usage of every energy-monitoring device."""
    rows = _run(_energy_summary_async())
    if not rows:
        _emit(ctx, {"devices": [], "message": "No energy monitoring devices found"})
        return
    _emit(ctx, {"devices": rows})


# ---------------------------------------------------------------------------
# Light
# ---------------------------------------------------------------------------


@light_app.command("brightness")
def light_brightness(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    level: int = typer.Argument(..., min=0, max=100, help="Brightness level (0-100)"),
) -> None:
    """Set brightness."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        await dev.set_brightness(level)
        return {"device": dev.alias, "brightness": level}

    _emit(ctx, _run(run()))


@light_app.command("color")
def light_color(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    hue: int = typer.Option(..., min=0, max=360, help="Hue (0-360)"),
    saturation: int = typer.Option(..., min=0, max=100, help="Saturation (0-100)"),
    brightness: int | None = typer.Option(None, min=0, max=100, help="Brightness (0-100)"),
) -> None:
    """Set color by hue, saturation and brightness."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        await dev.set_color(hue, saturation, brightness)
        return {
            "device": dev.alias,
            "hue": hue,
            "saturation": saturation,
            "brightness": brightness,
        }

    _emit(ctx, _run(run()))


@light_app.command("temp")
def light_temp(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    kelvin: int = typer.Argument(..., min=2500, max=9000, help="Color temperature in Kelvin"),
    brightness: int | None = typer.Option(None, min=0, max=100, help="Brightness (0-100)"),
) -> None:
    """Set color temperature (2500-9000K)."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        await dev.set_color_temp(kelvin, brightness)
        return {"device": dev.alias, "color_temp": kelvin, "brightness": brightness}

    _emit(ctx, _run(run()))


@light_app.command("state")
def light_state(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """Get current light state."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        state = await dev.get_light_state()
        if state is None:
            return _no_data(dev)
        return {"device": dev.alias, "light_state": LightState.from_json(state).to_dict()}

    _emit(ctx, _run(run()))


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------


def _split_days(days: str | None) -> list[int] | None:
    if days is None:
        return None
    return parse_days([d for d in days.split(",") if d.strip()])


@schedule_app.command("list")
def schedule_list(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """List schedule rules."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        rules = await dev.get_schedule_rules()
        return {"device": dev.alias, "rules": rules if rules is not None else []}

    _emit(ctx, _run(run()))


@schedule_app.command("get")
def schedule_get(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    rule_id: str = typer.Argument(..., help="Rule ID"),
) -> None:
    """Get a specific schedule rule."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        rule = find_rule(await dev.get_schedule_rules(), rule_id)
        if rule is None:
            raise DeviceNotFoundError(f"Schedule rule '{rule_id}' not found")
        return {"device": dev.alias, "rule": rule}

    _emit(ctx, _run(run()))


@schedule_app.command("add")
def schedule_add(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    action: Switch = typer.Option(..., help="Action: on or off"),
    time: str | None = typer.Option(None, help="Time in HH:MM format"),
    sunrise: bool = typer.Option(False, "--sunrise", help="Trigger at sunrise"),
    sunset: bool = typer.Option(False, "--sunset", help="Trigger at sunset"),
    days: str | None = typer.Option(
        None, help="Days of week (comma-separated: mon,tue,wed,thu,fri,sat,sun)"
    ),
    name: str | None = typer.Option(None, help="Rule name"),
) -> None:
    """Add a new schedule rule."""

    async def run() -> dict[str, Any]:
        if sum((time is not None, sunrise, sunset)) > 1:
            raise InvalidInputError("Use only one of --time, --sunrise or --sunset")

        builder = ScheduleRuleBuilder().with_action(action is Switch.ON)
        if name is not None:
            builder.with_name(name)
        if sunrise:
            builder.with_sunrise()
        elif sunset:
            builder.with_sunset()
        elif time is not None:
            builder.with_time(*parse_time(time))
        else:
            raise InvalidInputError("Specify --time HH:MM, --sunrise, or --sunset")
        wday = _split_days(days)
        if wday is not None:
            builder.with_days(wday)
        rule = builder.build()

        dev = await resolve_device(device, _store())
        result = await dev.add_schedule_rule(rule)
        return {"device": dev.alias, "result": result}

    _emit(ctx, _run(run()))


@schedule_app.command("edit")
def schedule_edit(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    rule_id: str = typer.Argument(..., help="Rule ID"),
    action: Switch | None = typer.Option(None, help="Action: on or off"),
    time: str | None = typer.Option(None, help="Time in HH:MM format"),
    days: str | None = typer.Option(None, help="Days of week (comma-separated)"),
    enable: bool = typer.Option(False, "--enable", help="Enable the rule"),
    disable: bool = typer.Option(False, "--disable", help="Disable the rule"),
) -> None:
    """Edit an existing schedule rule."""

    async def run() -> dict[str, Any]:
        if enable and disable:
            raise InvalidInputError("Use only one of --enable or --disable")
        parsed_time = parse_time(time) if time is not None else None
        wday = _split_days(days)

        dev = await resolve_device(device, _store())
        existing = find_rule(await dev.get_schedule_rules(), rule_id)
        if existing is None:
            raise DeviceNotFoundError(f"Rule '{rule_id}' not found")
        updated = apply_edits(
            existing,
            action=None if action is None else action is Switch.ON,
            time=parsed_time,
            wday=wday,
            enabled=True if enable else (False if disable else None),
        )
        result = await dev.edit_schedule_rule(updated)
        return {"device": dev.alias, "result": result}

    _emit(ctx, _run(run()))


@schedule_app.command("delete")
def schedule_delete(
    ctx: typer.Context,
    device: str = typer.Argument(..., help=_DEVICE_HELP),
    rule_id: str = typer.Argument(..., help="Rule ID"),
) -> None:
    """Delete a schedule rule."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        result = await dev.delete_schedule_rule(rule_id)
        return {"device": dev.alias, "deleted": rule_id, "result": result}

    _emit(ctx, _run(run()))


@schedule_app.command("clear")
def schedule_clear(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """Delete all schedule rules."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        result = await dev.delete_all_schedule_rules()
        return {"device": dev.alias, "cleared": True, "result": result}

    _emit(ctx, _run(run()))


# ---------------------------------------------------------------------------
# Info
# ---------------------------------------------------------------------------


@info_app.command("sysinfo")
def info_sysinfo(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """System information."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        info = await dev.get_sys_info()
        return _no_data(dev) if info is None else {"device": dev.alias, "sys_info": info}

    _emit(ctx, _run(run()))


@info_app.command("network")
def info_network(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """WiFi network information."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        info = await dev.get_net_info()
        if info is None:
            return _no_data(dev)
        return {"device": dev.alias, "net_info": {**info, **NetInfo.from_json(info).to_dict()}}

    _emit(ctx, _run(run()))


@info_app.command("time")
def info_time(ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)) -> None:
    """Device time."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        data = await dev.get_time()
        if data is None:
            return _no_data(dev)
        return {"device": dev.alias, "time": DeviceTime.from_json(data).to_dict()}

    _emit(ctx, _run(run()))


@info_app.command("timezone")
def info_timezone(
    ctx: typer.Context, device: str = typer.Argument(..., help=_DEVICE_HELP)
) -> None:
    """Device timezone index."""

    async def run() -> dict[str, Any]:
        dev = await resolve_device(device, _store())
        data = await dev.get_timezone()
        if data is None:
            return _no_data(dev)
        return {"device": dev.alias, "timezone": DeviceTimezone.from_json(data).to_dict()}

    _emit(ctx, _run(run()))
