"""Shared fixtures."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import pytest


class MemoryStore:
    """In-memory credential store that counts batch writes."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})
        self.updates = 0

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def delete(self, key: str) -> None:
        self.update({}, remove=(key,))

    def update(self, values: Mapping[str, str], remove: Iterable[str] = ()) -> None:
        self.updates += 1
        self.data.update(values)
        for key in remove:
            self.data.pop(key, None)


KASA_REGIONAL = "https://use1-wap.tplinkcloud.com"
TAPO_REGIONAL = "https://n-euw1-wap.i.tplinkcloud.com"

LOGGED_IN: dict[str, str] = {
    "username": "me@example.com",
    "term_id": "term-1",
    "token": "kasa-tok",
    "refresh_token": "kasa-rt",
    "regional_url": KASA_REGIONAL,
    "tapo_token": "tapo-tok",
    "tapo_refresh_token": "tapo-rt",
    "tapo_regional_url": TAPO_REGIONAL,
}


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(LOGGED_IN)
