"""Pluggable credential storage for safeguardpy.

- :class:`CredentialStorage` -- abstract base class; subclass it to keep
  tokens somewhere else (a database, a secrets manager, ...).
- :class:`MemoryStorage` -- in-process storage, used when a caller does not
  supply one.
- :class:`FileStorage` -- persistent, per-session JSON file storage.
"""

from safeguardpy.storage.base import CredentialStorage
from safeguardpy.storage.file import FileStorage
from safeguardpy.storage.memory import MemoryStorage

__all__ = ["CredentialStorage", "FileStorage", "MemoryStorage"]
