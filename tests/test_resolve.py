"""Tests for tplc.resolve."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from conftest import KASA_REGIONAL, TAPO_REGIONAL, MemoryStore
from tplc.auth import AuthContext, load_auth
from tplc.client import CloudClient
from tplc.cloud import CloudType
from tplc.device import Device
from tplc.errors import (
    ApiError,
    DeviceNotFoundError,
    DeviceOfflineError,
    NotAuthenticatedError,
    TokenExpiredError,
)
from tplc.models import ChildInfo, DeviceInfo, DeviceType
from tplc.resolve import (
    CatalogEntry,
    build_device,
    device_endpoint,
    fetch_all_devices,
    match_device,
    resolve_device,
    search_devices,
)


def _entry(
    alias: str,
    device_id: str,
    device_type: DeviceType = DeviceType.HS100,
    *,
    child_alias: str | None = None,
    child_id: str | None = None,
) -> CatalogEntry:
    info = DeviceInfo(device_id=device_id, alias=alias, device_model="HS100(US)", status=1)
    return CatalogEntry(info, device_type, child_alias, child_id)


def _raw(device_id: str, alias: str, model: str = "HS100(US)", **extra: Any) -> dict[str, Any]:
    return {"deviceId": device_id, "alias": alias, "deviceModel": model, "status": 1, **extra}


def _lists(kasa: Any, tapo: Any = ()) -> Any:
    """``get_device_list`` stand-in answering per cloud; exceptions are raised."""
    per_cloud = {CloudType.KASA: kasa, CloudType.TAPO: tapo}

    async def fake(self: CloudClient, token: str) -> list[dict[str, Any]]:
        answer = per_cloud[self.cloud_type]
        if isinstance(answer, BaseException):
            raise answer
        return list(answer)

    return fake


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestMatchDevice:
    def test_exact_alias(self):
        entries = [_entry("Lamp", "A"), _entry("Lamp Two", "B")]
        assert match_device(entries, "Lamp").info.id == "A"

    def test_alias_beats_id(self):
        # B's alias is A's raw id
        entries = [_entry("Desk", "A"), _entry("A", "B")]
        assert match_device(entries, "A").info.id == "B"

    def test_id_matches_parent_not_outlet(self):
        entries = [
            _entry("Strip", "S", DeviceType.HS300),
            _entry("Strip", "S", DeviceType.HS300_CHILD, child_alias="Kettle", child_id="S01"),
        ]
        entry = match_device(entries, "S")
        assert entry.child_id is None

    def test_outlet_by_alias(self):
        entries = [
            _entry("Strip", "S", DeviceType.HS300),
            _entry("Strip", "S", DeviceType.HS300_CHILD, child_alias="Kettle", child_id="S01"),
        ]
        assert match_device(entries, "Kettle").child_id == "S01"

    def test_case_insensitive_exact(self):
        entries = [_entry("Kitchen Light", "A"), _entry("kitchen light strip", "B")]
        assert match_device(entries, "KITCHEN LIGHT").info.id == "A"

    def test_exact_beats_unique_substring(self):
        entries = [_entry("fan", "A"), _entry("Ceiling Fan", "B")]
        assert match_device(entries, "Fan").info.id == "A"

    def test_unique_substring(self):
        entries = [_entry("Bedroom Lamp", "A"), _entry("Porch", "B")]
        assert match_device(entries, "bedroom").info.id == "A"

    def test_ambiguous_lists_every_alias(self):
        entries = [_entry("Living Room Lamp", "A"), _entry("Living Room Fan", "B")]
        with pytest.raises(DeviceNotFoundError) as exc_info:
            match_device(entries, "living")
        message = str(exc_info.value)
        assert "Living Room Lamp" in message
        assert "Living Room Fan" in message
        assert exc_info.value.candidates == ["Living Room Lamp", "Living Room Fan"]
        assert exc_info.value.exit_code == 3

    def test_not_found(self):
        with pytest.raises(DeviceNotFoundError, match="garage"):
            match_device([_entry("Lamp", "A")], "garage")

    def test_outlet_without_alias_uses_parent_alias(self):
        entry = _entry("Strip", "S", DeviceType.HS300_CHILD, child_id="S02")
        assert entry.alias == "Strip"
        assert entry.display_name == "Strip (outlet 02)"


class TestSearchDevices:
    def test_returns_all_matches(self):
        entries = [
            _entry("Living Room Lamp", "A"),
            _entry("Living Room Fan", "B"),
            _entry("Porch", "C"),
        ]
        assert [e.info.id for e in search_devices(entries, "LIVING")] == ["A", "B"]


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestFetchAllDevices:
    async def test_kasa_then_tapo(self, store: MemoryStore):
        fake = _lists([_raw("A", "Lamp")], [_raw("B", "Tapo Plug")])
        with patch.object(CloudClient, "get_device_list", autospec=True, side_effect=fake):
            discovery = await fetch_all_devices(load_auth(store))

        assert [(e.info.id, e.info.cloud_type) for e in discovery.entries] == [
            ("A", CloudType.KASA),
            ("B", CloudType.TAPO),
        ]
        assert discovery.secondary is not None
        assert discovery.secondary.ok

    async def test_duplicate_keeps_kasa_copy(self, store: MemoryStore):
        fake = _lists([_raw("A", "Kasa Name")], [_raw("A", "Tapo Name"), _raw("B", "Other")])
        with patch.object(CloudClient, "get_device_list", autospec=True, side_effect=fake):
            discovery = await fetch_all_devices(load_auth(store))

        matching = [e for e in discovery.entries if e.info.id == "A"]
        assert len(matching) == 1
        assert matching[0].info.cloud_type is CloudType.KASA
        assert matching[0].alias == "Kasa Name"

    async def test_tapo_failure_is_captured(
        self, store: MemoryStore, caplog: pytest.LogCaptureFixture
    ):
        fake = _lists([_raw("A", "Lamp")], ApiError("tapo down"))
        with (
            caplog.at_level(logging.WARNING, logger="tplc"),
            patch.object(CloudClient, "get_device_list", autospec=True, side_effect=fake),
        ):
            discovery = await fetch_all_devices(load_auth(store))

        assert [e.info.id for e in discovery.entries] == ["A"]
        assert discovery.secondary is not None
        assert isinstance(discovery.secondary.error, ApiError)
        assert "Tapo device fetch failed" in caplog.text

    async def test_kasa_failure_propagates(self, store: MemoryStore):
        fake = _lists(ApiError("kasa down"), [_raw("B", "Tapo Plug")])
        with patch.object(CloudClient, "get_device_list", autospec=True, side_effect=fake):
            with pytest.raises(ApiError):
                await fetch_all_devices(load_auth(store))

    async def test_no_tapo_session(self):
        auth = load_auth(MemoryStore({"token": "kasa-tok"}))
        mock = AsyncMock(return_value=[_raw("A", "Lamp")])
        with patch.object(CloudClient, "get_device_list", mock):
            discovery = await fetch_all_devices(auth)

        mock.assert_awaited_once_with("kasa-tok")
        assert discovery.secondary is None

    async def test_token_expired_refreshes_once(self, store: MemoryStore):
        auth = load_auth(store)
        calls: list[str] = []

        async def fake(self: CloudClient, token: str) -> list[dict[str, Any]]:
            calls.append(token)
            if self.cloud_type is CloudType.KASA and token == "kasa-tok":
                raise TokenExpiredError("expired")
            return [_raw("A", "Lamp")] if self.cloud_type is CloudType.KASA else []

        async def fake_refresh(auth: AuthContext, cloud_type: CloudType) -> None:
            auth.kasa.token = "kasa-tok-2"

        refresh = AsyncMock(side_effect=fake_refresh)
        with (
            patch.object(CloudClient, "get_device_list", autospec=True, side_effect=fake),
            patch("tplc.resolve.refresh_auth", refresh),
        ):
            discovery = await fetch_all_devices(auth)

        refresh.assert_awaited_once_with(auth, CloudType.KASA)
        assert calls == ["kasa-tok", "kasa-tok-2", "tapo-tok"]
        assert [e.info.id for e in discovery.entries] == ["A"]

    async def test_token_expired_twice_propagates(self):
        auth = load_auth(MemoryStore({"token": "kasa-tok", "refresh_token": "rt"}))
        mock = AsyncMock(side_effect=TokenExpiredError("expired"))
        with (
            patch.object(CloudClient, "get_device_list", mock),
            patch("tplc.resolve.refresh_auth", AsyncMock()) as refresh,
        ):
            with pytest.raises(TokenExpiredError):
                await fetch_all_devices(auth)
        refresh.assert_awaited_once()
        assert mock.await_count == 2

    async def test_composite_expanded(self):
        auth = load_auth(MemoryStore({"token": "kasa-tok"}))
        children = [ChildInfo("S01", "Kettle", 1), ChildInfo("S02", "", 0)]
        listing = AsyncMock(return_value=[_raw("S", "Strip", "HS300(US)")])
        with (
            patch.object(CloudClient, "get_device_list", listing),
            patch.object(Device, "get_children", AsyncMock(return_value=children)),
        ):
            discovery = await fetch_all_devices(auth)

        rows = [(e.alias, e.device_type, e.child_id) for e in discovery.entries]
        assert rows == [
            ("Strip", DeviceType.HS300, None),
            ("Kettle", DeviceType.HS300_CHILD, "S01"),
            ("Strip", DeviceType.HS300_CHILD, "S02"),
        ]
        assert discovery.entries[2].child_alias is None

    async def test_child_enumeration_failure_keeps_parent(self):
        auth = load_auth(MemoryStore({"token": "kasa-tok"}))
        listing = AsyncMock(return_value=[_raw("S", "Strip", "KP303")])
        with (
            patch.object(CloudClient, "get_device_list", listing),
            patch.object(Device, "get_children", AsyncMock(side_effect=DeviceOfflineError("S"))),
        ):
            discovery = await fetch_all_devices(auth)

        assert [(e.info.id, e.child_id) for e in discovery.entries] == [("S", None)]


# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------


class TestDeviceEndpoint:
    def test_app_server_url_wins(self, store: MemoryStore):
        info = DeviceInfo(device_id="A", app_server_url="https://device.example")
        assert device_endpoint(info, load_auth(store)) == "https://device.example"

    def test_falls_back_to_session_regional_url(self, store: MemoryStore):
        info = DeviceInfo(device_id="A", cloud_type=CloudType.TAPO)
        assert device_endpoint(info, load_auth(store)) == TAPO_REGIONAL

    def test_falls_back_to_cloud_host(self):
        auth = load_auth(MemoryStore({"token": "kasa-tok"}))
        assert device_endpoint(DeviceInfo(device_id="A"), auth) == CloudType.KASA.host


class TestBuildDevice:
    def test_binds_cloud_session(self, store: MemoryStore):
        entry = CatalogEntry(DeviceInfo(device_id="B", cloud_type=CloudType.TAPO), DeviceType.HS100)
        device = build_device(entry, load_auth(store))
        assert device._client.token == "tapo-tok"
        assert device._client.host == TAPO_REGIONAL
        assert device._client.cloud_type is CloudType.TAPO
        assert device._client.term_id == "term-1"

    def test_missing_session(self):
        auth = load_auth(MemoryStore({"token": "kasa-tok"}))
        entry = CatalogEntry(DeviceInfo(device_id="B", cloud_type=CloudType.TAPO), DeviceType.HS100)
        with pytest.raises(NotAuthenticatedError):
            build_device(entry, auth)

    async def test_refresh_hook_refreshes_own_cloud(self, store: MemoryStore):
        auth = load_auth(store)
        entry = CatalogEntry(DeviceInfo(device_id="B", cloud_type=CloudType.TAPO), DeviceType.HS100)

        async def fake_refresh(auth: AuthContext, cloud_type: CloudType) -> None:
            assert auth.tapo is not None
            auth.tapo.token = "tapo-tok-2"

        with patch("tplc.resolve.refresh_auth", AsyncMock(side_effect=fake_refresh)) as refresh:
            device = build_device(entry, auth)
            assert device._refresh_token is not None
            assert await device._refresh_token() == "tapo-tok-2"
        refresh.assert_awaited_once_with(auth, CloudType.TAPO)


class TestResolveDevice:
    async def test_end_to_end(self, store: MemoryStore):
        fake = _lists(
            [_raw("A", "Lamp", appServerUrl=KASA_REGIONAL)], [_raw("B", "Porch", "KP125")]
        )
        with patch.object(CloudClient, "get_device_list", autospec=True, side_effect=fake):
            device = await resolve_device("porch", store)

        assert device.device_id == "B"
        assert device.device_type is DeviceType.KP125
        assert device.info.cloud_type is CloudType.TAPO
        assert device.alias == "Porch"

    async def test_not_authenticated(self):
        with pytest.raises(NotAuthenticatedError):
            await resolve_device("Lamp", MemoryStore())
