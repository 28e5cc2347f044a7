"""Persistent credential storage scoped per named session.

Stores credentials in ``~/.local/share/safeguardpy/sessions/<name>.json``
(XDG) or the platform-equivalent directory, so a session survives process
restarts the way a browser-session store survives page reloads. Files are
written atomically with ``0o600`` permissions so that tokens are never
world-readable, even momentarily.

See Also:
    :class:`~safeguardpy.storage.base.CredentialStorage` -- the interface.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from safeguardpy.config import _atomic_write, get_data_dir
from safeguardpy.models import StorageKey, StoredCredentials
from safeguardpy.storage.base import CredentialStorage

logger = logging.getLogger(__name__)


def _sessions_dir() -> Path:
    """Return the sessions directory, creating it if needed."""
    path = get_data_dir() / "sessions"
    path.mkdir(parents=True, exist_ok=True)
    return path


class FileStorage(CredentialStorage):
    """Read/write session credentials for a single named session.

    Every :meth:`set` rewrites the whole file; the data is tiny and this
    keeps the file consistent with the in-memory view at all times.
    :meth:`clear_storage` deletes the file outright.

    Args:
        name: Session identifier used to derive the file name.

    Example::

        storage = FileStorage("prod-appliance")
        storage.set_host_name("sg.example.com")
        assert FileStorage("prod-appliance").get_host_name() == "sg.example.com"
    """

    def __init__(self, name: str = "default") -> None:
        self._name = name
        self._path = _sessions_dir() / f"{name}.json"

    @property
    def path(self) -> Path:
        """The filesystem path of this session's file."""
        return self._path

    def get(self, key: StorageKey) -> str:
        return self._load().values.get(key.value, "")

    def set(self, key: StorageKey, value: str) -> None:
        stored = self._load()
        stored.values[key.value] = value or ""
        self._save(stored)

    def clear_storage(self) -> None:
        if self._path.is_file():
            self._path.unlink()

    def _load(self) -> StoredCredentials:
        if not self._path.is_file():
            return StoredCredentials()
        try:
            text = self._path.read_text(encoding="utf-8")
            return StoredCredentials.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError, OSError) as exc:
            # A corrupt session file is equivalent to no session.
            logger.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return StoredCredentials()

    def _save(self, stored: StoredCredentials) -> None:
        text = json.dumps(stored.model_dump(mode="json"), indent=2) + "\n"
        _atomic_write(self._path, text)
