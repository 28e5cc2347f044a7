"""Abstract base class for credential storage.

A :class:`CredentialStorage` holds the state of one logical session with an
appliance: the host name, the access token (only while it waits to be
traded), the user token, and the redirect-flow fields used to correlate an
outbound authorization request with its callback.

To implement a new backend, subclass :class:`CredentialStorage` and provide
:meth:`~CredentialStorage.get` and :meth:`~CredentialStorage.set`. Every
named accessor and both clear operations are built on those two primitives,
so a backend only needs to know how to read and write a string by key.

See Also:
    :class:`~safeguardpy.storage.memory.MemoryStorage` -- in-process default.
    :class:`~safeguardpy.storage.file.FileStorage` -- persistent JSON file.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from safeguardpy.models import TRANSIENT_KEYS, StorageKey


class CredentialStorage(ABC):
    """Key/value persistence for one session's credentials.

    Implementations must:

    1. Return ``""`` from :meth:`get` for a field that was never set or has
       been cleared. Absence is never an error.
    2. Accept :meth:`set` on an already populated field.
    3. Never perform network I/O.

    Sessions that must run concurrently need distinct storage instances;
    no locking is performed.
    """

    @abstractmethod
    def get(self, key: StorageKey) -> str:
        """Return the stored value for *key*, or ``""`` when absent."""
        ...

    @abstractmethod
    def set(self, key: StorageKey, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...

    def clear_storage(self) -> None:
        """Reset every field, including the redirect-flow fields, to empty."""
        for key in StorageKey:
            self.set(key, "")

    def clear_transient(self) -> None:
        """Reset only the redirect-flow fields, which are consumed together."""
        for key in TRANSIENT_KEYS:
            self.set(key, "")

    # Named accessors

    def get_host_name(self) -> str:
        return self.get(StorageKey.HOST_NAME)

    def set_host_name(self, host_name: str) -> None:
        self.set(StorageKey.HOST_NAME, host_name)

    def get_access_token(self) -> str:
        return self.get(StorageKey.ACCESS_TOKEN)

    def set_access_token(self, access_token: str) -> None:
        self.set(StorageKey.ACCESS_TOKEN, access_token)

    def get_user_token(self) -> str:
        return self.get(StorageKey.USER_TOKEN)

    def set_user_token(self, user_token: str) -> None:
        self.set(StorageKey.USER_TOKEN, user_token)

    def get_code(self) -> str:
        return self.get(StorageKey.CODE)

    def set_code(self, code: str) -> None:
        self.set(StorageKey.CODE, code)

    def get_state(self) -> str:
        return self.get(StorageKey.STATE)

    def set_state(self, state: str) -> None:
        self.set(StorageKey.STATE, state)

    def get_code_verifier(self) -> str:
        return self.get(StorageKey.CODE_VERIFIER)

    def set_code_verifier(self, code_verifier: str) -> None:
        self.set(StorageKey.CODE_VERIFIER, code_verifier)

    def get_random_state(self) -> str:
        return self.get(StorageKey.RANDOM_STATE)

    def set_random_state(self, random_state: str) -> None:
        self.set(StorageKey.RANDOM_STATE, random_state)

    def get_new_login(self) -> bool:
        return self.get(StorageKey.NEW_LOGIN) == "true"

    def set_new_login(self, new_login: bool) -> None:
        self.set(StorageKey.NEW_LOGIN, "true" if new_login else "")
