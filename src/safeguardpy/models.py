"""Canonical enums and Pydantic models shared across safeguardpy.

The models fall into three groups:

**Request vocabulary** -- :class:`Service`, :class:`HttpMethod`,
:class:`A2AType`, :class:`SshKeyFormat`.

**Appliance payloads** -- the JSON shapes returned by the rSTS and core
service endpoints: :class:`Provider`, :class:`ProviderList`,
:class:`TokenResponse`, :class:`LoginResponse`.

**Local state** -- :class:`StorageKey`, :class:`StoredCredentials` and
:class:`RequestConfig`.

Appliance payloads use the appliance's PascalCase field names as aliases and
``extra="allow"`` so that fields added by newer appliance versions are kept.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Request vocabulary ---


class Service(str, enum.Enum):
    """Services exposed under ``https://<host>/service/``."""

    CORE = "core"
    APPLIANCE = "appliance"
    NOTIFICATION = "notification"
    A2A = "a2a"


class HttpMethod(str, enum.Enum):
    """HTTP methods accepted by :meth:`SafeguardConnection.invoke`."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class A2AType(str, enum.Enum):
    """Kinds of secret an A2A registration can release."""

    PASSWORD = "Password"
    PRIVATE_KEY = "PrivateKey"


class SshKeyFormat(str, enum.Enum):
    """Output formats for A2A private-key retrieval."""

    OPENSSH = "OpenSsh"
    SSH2 = "Ssh2"
    PUTTY = "Putty"


# --- Appliance payloads ---


class Provider(BaseModel):
    """One identity provider entry from the login-discovery endpoint."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    display_name: str = Field(default="", alias="DisplayName")
    id: str = Field(default="", alias="Id")

    @field_validator("display_name", "id", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str:
        # Some appliance versions return numeric ids.
        return "" if value is None else str(value)


class ProviderList(BaseModel):
    """The ``Providers`` section of a login-discovery response."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    providers: list[Provider] = Field(alias="Providers")


class TokenResponse(BaseModel):
    """Response of ``/RSTS/oauth2/token``."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None


class LoginResponse(BaseModel):
    """Response of ``/service/core/v3/Token/LoginResponse``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    status: str = Field(default="", alias="Status")
    user_token: Optional[str] = Field(default=None, alias="UserToken")


# --- Local state ---


class StorageKey(str, enum.Enum):
    """Field names held by a :class:`~safeguardpy.storage.CredentialStorage`."""

    HOST_NAME = "HostName"
    ACCESS_TOKEN = "AccessToken"
    USER_TOKEN = "UserToken"
    CODE = "Code"
    STATE = "State"
    CODE_VERIFIER = "CodeVerifier"
    RANDOM_STATE = "RandomState"
    NEW_LOGIN = "NewLogin"


TRANSIENT_KEYS: tuple[StorageKey, ...] = (
    StorageKey.CODE,
    StorageKey.STATE,
    StorageKey.CODE_VERIFIER,
    StorageKey.RANDOM_STATE,
    StorageKey.NEW_LOGIN,
)
"""Redirect-flow fields that are written and cleared together."""


class StoredCredentials(BaseModel):
    """On-disk shape of :class:`~safeguardpy.storage.FileStorage`.

    Keys are :class:`StorageKey` values; absent keys read back as ``""``.
    """

    values: dict[str, str] = Field(default_factory=dict)


class RequestConfig(BaseModel):
    """Transport settings applied to every outbound request.

    Example::

        RequestConfig(timeout=10.0, verify_ssl=True)
    """

    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    verify_ssl: bool = Field(
        default=True, description="Verify the appliance's TLS certificate"
    )
