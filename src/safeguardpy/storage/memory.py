"""In-memory credential storage, the default for every connect call."""

from __future__ import annotations

from safeguardpy.models import StorageKey
from safeguardpy.storage.base import CredentialStorage


class MemoryStorage(CredentialStorage):
    """Keep session credentials in a plain dict for the life of the object.

    Example::

        storage = MemoryStorage()
        storage.set_user_token("tok123")
        assert storage.get_user_token() == "tok123"
    """

    def __init__(self) -> None:
        self._values: dict[StorageKey, str] = {}

    def get(self, key: StorageKey) -> str:
        return self._values.get(key, "")

    def set(self, key: StorageKey, value: str) -> None:
        self._values[key] = value or ""
