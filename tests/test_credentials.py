"""Tests for tplc.credentials."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from tplc.credentials import FileCredentialStore
from tplc.errors import CredentialStoreError


class TestFileCredentialStore:
    def test_missing_file_reads_empty(self, tmp_path: Path):
        store = FileCredentialStore(tmp_path / "credentials.json")
        assert store.get("token") is None

    def test_set_and_get(self, tmp_path: Path):
        store = FileCredentialStore(tmp_path / "nested" / "credentials.json")
        store.set("token", "abc")
        assert store.get("token") == "abc"
        assert FileCredentialStore(store.path).get("token") == "abc"

    def test_file_permissions(self, tmp_path: Path):
        path = tmp_path / "credentials.json"
        FileCredentialStore(path).set("token", "abc")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_delete_absent_key(self, tmp_path: Path):
        store = FileCredentialStore(tmp_path / "credentials.json")
        store.delete("token")
        assert store.get("token") is None

    def test_update_sets_and_removes(self, tmp_path: Path):
        path = tmp_path / "credentials.json"
        store = FileCredentialStore(path)
        store.update({"token": "a", "refresh_token": "r", "username": "u"})
        store.update({"token": "b"}, remove=["refresh_token"])

        assert json.loads(path.read_text()) == {"token": "b", "username": "u"}

    def test_no_temp_files_left(self, tmp_path: Path):
        store = FileCredentialStore(tmp_path / "credentials.json")
        store.update({"token": "a"})
        store.update({"token": "b"})
        assert [p.name for p in tmp_path.iterdir()] == ["credentials.json"]

    def test_corrupt_file(self, tmp_path: Path):
        path = tmp_path / "credentials.json"
        path.write_text("{not json")
        with pytest.raises(CredentialStoreError, match="Cannot read"):
            FileCredentialStore(path).get("token")

    def test_non_object_file(self, tmp_path: Path):
        path = tmp_path / "credentials.json"
        path.write_text("[]")
        with pytest.raises(CredentialStoreError, match="JSON object"):
            FileCredentialStore(path).get("token")
