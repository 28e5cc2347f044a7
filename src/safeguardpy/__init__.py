"""safeguardpy -- async Python SDK for the Safeguard appliance.

This package authenticates to a Safeguard privileged-access-management
appliance and then calls its REST services and listens to its event hub.
Every flow ends in a :class:`SafeguardConnection` whose tokens live in a
pluggable :class:`~safeguardpy.storage.CredentialStorage`.

Typical workflow::

    import safeguardpy
    from safeguardpy.models import HttpMethod, Service

    safeguardpy.add_ca_from_file("appliance-ca.pem")
    connection = await safeguardpy.connect_password("sg.example.com", "admin", "secret")
    me = await connection.invoke(Service.CORE, HttpMethod.GET, "v4/Me")
    await connection.logout()

Modules:
    auth: Connect flows, provider discovery, redirect checker, A2A retrieval.
    client: HTTP transport and the process-wide CA trust set.
    connection: The per-session connection handle.
    events: SignalR event-stream subscription.
    storage: Credential storage backends.
    models: Enums and Pydantic models shared across the package.
    config: XDG paths and environment-driven transport settings.
    exceptions: Exception hierarchy.
"""

__version__ = "0.1.0"

from safeguardpy.auth import (
    a2a_get_credential,
    a2a_get_credential_from_files,
    check_redirect,
    connect_anonymous,
    connect_certificate,
    connect_certificate_from_files,
    connect_password,
    connect_rsts,
)
from safeguardpy.client import add_ca, add_ca_from_file, clear_cas, get_cas
from safeguardpy.connection import SafeguardConnection

__all__ = [
    "SafeguardConnection",
    "a2a_get_credential",
    "a2a_get_credential_from_files",
    "add_ca",
    "add_ca_from_file",
    "check_redirect",
    "clear_cas",
    "connect_anonymous",
    "connect_certificate",
    "connect_certificate_from_files",
    "connect_password",
    "connect_rsts",
    "get_cas",
]
