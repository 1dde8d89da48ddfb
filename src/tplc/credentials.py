"""Durable key/value storage for session credentials."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

from tplc.errors import CredentialStoreError


class CredentialStore(Protocol):
    """Key/value persistence for tokens and regional URLs.

    ``delete`` of an absent key is not an error.  ``update`` applies a
    batch of writes and deletes as one unit: a reader never observes
    half of it.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def update(self, values: Mapping[str, str], remove: Iterable[str] = ()) -> None: ...


class FileCredentialStore:
    """JSON file store, written atomically with ``0600`` permissions.

    A missing file reads as an empty store.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialStoreError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CredentialStoreError(f"{self.path} does not contain a JSON object")
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".credentials-")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CredentialStoreError(f"Cannot write {self.path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def delete(self, key: str) -> None:
        self.update({}, remove=(key,))

    def update(self, values: Mapping[str, str], remove: Iterable[str] = ()) -> None:
        data = self._load()
        data.update(values)
        for key in remove:
            data.pop(key, None)
        self._write(data)

