"""Authentication flows for safeguardpy.

The main entry points are the connect coroutines, each of which ends in a
:class:`~safeguardpy.connection.SafeguardConnection`:

- :func:`connect_anonymous`
- :func:`connect_rsts` together with :func:`check_redirect`
- :func:`connect_password`
- :func:`connect_certificate` / :func:`connect_certificate_from_files`

plus the one-shot secret fetches :func:`a2a_get_credential` and
:func:`a2a_get_credential_from_files`, and :func:`resolve_provider_id`.

Typical usage::

    from safeguardpy.auth import connect_password

    connection = await connect_password("sg.example.com", "admin", "secret")
"""

from safeguardpy.auth.a2a import a2a_get_credential, a2a_get_credential_from_files
from safeguardpy.auth.lifecycle import (
    connect_anonymous,
    connect_certificate,
    connect_certificate_from_files,
    connect_password,
    connect_rsts,
)
from safeguardpy.auth.providers import resolve_provider_id
from safeguardpy.auth.redirect import check_redirect

__all__ = [
    "a2a_get_credential",
    "a2a_get_credential_from_files",
    "check_redirect",
    "connect_anonymous",
    "connect_certificate",
    "connect_certificate_from_files",
    "connect_password",
    "connect_rsts",
    "resolve_provider_id",
]
