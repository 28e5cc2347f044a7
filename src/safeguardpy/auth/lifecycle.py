"""Connection lifecycle -- from no credentials to a usable connection.

Every connect flow drives the same small state machine over the storage's
(access token, user token) pair:

=============  ==========  ==================================================
access token   user token  action
=============  ==========  ==================================================
absent         absent      run the flow's *acquire* step
present        absent      trade the access token for a user token
any            present     return the connection (already authenticated)
=============  ==========  ==================================================

Before the table is consulted the requested host is compared with the one
already recorded in storage; a different, non-empty stored host clears the
storage so credentials never leak from one appliance to another.

Flows:

- :func:`connect_anonymous` -- no tokens at all.
- :func:`connect_rsts` -- browser redirect to the hosted rSTS login page
  (implicit or PKCE); completes over two calls with
  :func:`~safeguardpy.auth.redirect.check_redirect` in between.
- :func:`connect_password` -- OAuth2 password grant.
- :func:`connect_certificate` / :func:`connect_certificate_from_files` --
  OAuth2 client-credentials grant over a client-certificate TLS context.

Input validation happens before any I/O. When the trade fails after an
access token was obtained, the access token stays in storage; the next
password or certificate connect clears it.
"""

from __future__ import annotations

import logging
import webbrowser
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from safeguardpy.auth.providers import resolve_provider_id
from safeguardpy.auth.redirect import begin_pkce_login, login_url, redeem_authorization_code
from safeguardpy.auth.tokens import provider_scope, request_access_token, trade_for_user_token
from safeguardpy.client.invoker import Invoker
from safeguardpy.client.tls import PemData, build_client_tls_context
from safeguardpy.connection import SafeguardConnection
from safeguardpy.exceptions import MissingArgumentError
from safeguardpy.storage.base import CredentialStorage
from safeguardpy.storage.memory import MemoryStorage

logger = logging.getLogger(__name__)

# Returns a fresh access token, or None when the flow left the process
# (a browser redirect) and will complete on a later call.
AcquireAccessToken = Callable[[], Awaitable[Optional[str]]]


def _guard_host(host_name: str, storage: CredentialStorage) -> None:
    """Clear *storage* if it belongs to a different appliance, then record the host."""
    stored_host = storage.get_host_name()
    if stored_host and stored_host != host_name:
        logger.info("Host changed from %s to %s; clearing stored credentials", stored_host, host_name)
        storage.clear_storage()
    storage.set_host_name(host_name)


async def _connect_internal(
    host_name: str,
    storage: CredentialStorage,
    invoker: Invoker,
    acquire: AcquireAccessToken,
) -> Optional[SafeguardConnection]:
    if not host_name:
        raise MissingArgumentError("host_name")

    _guard_host(host_name, storage)

    if storage.get_user_token():
        logger.debug("Reusing stored user token for %s", host_name)
        return SafeguardConnection(host_name, storage, invoker)

    access_token = storage.get_access_token()
    if not access_token:
        access_token = await acquire()
        if not access_token:
            return None
        storage.set_access_token(access_token)

    await trade_for_user_token(host_name, access_token, storage, invoker)
    return SafeguardConnection(host_name, storage, invoker)


async def connect_anonymous(
    host_name: str,
    storage: Optional[CredentialStorage] = None,
    invoker: Optional[Invoker] = None,
) -> SafeguardConnection:
    """Open an unauthenticated connection.

    The storage is cleared and only the host is recorded, so calls on the
    returned connection never carry an authorization header.

    Raises:
        MissingArgumentError: If *host_name* is empty.
    """
    if not host_name:
        raise MissingArgumentError("host_name")
    storage = storage if storage is not None else MemoryStorage()

    logger.info("Connecting anonymously to %s", host_name)
    storage.clear_storage()
    storage.set_host_name(host_name)
    return SafeguardConnection(host_name, storage, invoker)


async def connect_rsts(
    host_name: str,
    redirect_uri: str,
    storage: Optional[CredentialStorage] = None,
    invoker: Optional[Invoker] = None,
    *,
    pkce: bool = False,
    open_url: Callable[[str], object] = webbrowser.open,
) -> Optional[SafeguardConnection]:
    """Connect through the appliance-hosted rSTS login page.

    Call once to start the login: with nothing stored, the user is sent to
    the login page via *open_url* and ``None`` is returned. After the
    appliance navigates back to *redirect_uri*, feed that URL to
    :func:`~safeguardpy.auth.redirect.check_redirect` and call this again
    with the same storage to finish.

    Args:
        host_name: Appliance host name or address.
        redirect_uri: Where the appliance sends the browser after login.
        storage: Session storage; must persist across the redirect.
        invoker: Transport; a default :class:`Invoker` otherwise.
        pkce: Use the authorization-code flow with PKCE instead of the
            implicit flow.
        open_url: Performs the redirect; defaults to the system browser.

    Returns:
        The connection, or ``None`` while the redirect is outstanding.

    Raises:
        MissingArgumentError: If *host_name* or *redirect_uri* is empty.
        ProtocolError: If a PKCE callback's state does not match.
        TransportError: If a token request fails.
    """
    if not host_name:
        raise MissingArgumentError("host_name")
    if not redirect_uri:
        raise MissingArgumentError("redirect_uri")
    storage = storage if storage is not None else MemoryStorage()
    invoker = invoker or Invoker()

    _guard_host(host_name, storage)

    if storage.get_new_login():
        logger.info("New login requested for %s; discarding stored user token", host_name)
        storage.set_user_token("")
        storage.set_new_login(False)

    if storage.get_code() and storage.get_state():
        if storage.get_user_token():
            logger.debug("Already authenticated to %s; discarding authorization code", host_name)
            storage.clear_transient()
        else:
            access_token = await redeem_authorization_code(host_name, redirect_uri, storage, invoker)
            storage.set_access_token(access_token)

    async def acquire() -> Optional[str]:
        if pkce:
            url = begin_pkce_login(host_name, redirect_uri, storage)
        else:
            url = login_url(host_name, redirect_uri)
        logger.info("Redirecting to the rSTS login page of %s", host_name)
        open_url(url)
        return None

    return await _connect_internal(host_name, storage, invoker, acquire)


async def connect_password(
    host_name: str,
    username: str,
    password: str,
    provider: Optional[str] = None,
    storage: Optional[CredentialStorage] = None,
    invoker: Optional[Invoker] = None,
) -> SafeguardConnection:
    """Log in with a user name and password.

    Args:
        host_name: Appliance host name or address.
        username: Account name.
        password: Account password.
        provider: Identity provider name or id; the built-in ``local``
            provider when omitted.
        storage: Session storage; a fresh :class:`MemoryStorage` otherwise.
        invoker: Transport; a default :class:`Invoker` otherwise.

    Raises:
        MissingArgumentError: If *host_name*, *username* or *password* is empty.
        ProviderResolutionError: If *provider* cannot be resolved.
        TransportError: If the token request or the trade fails.
        ProtocolError: If the appliance refuses the trade.
    """
    if not host_name:
        raise MissingArgumentError("host_name")
    if not username:
        raise MissingArgumentError("username")
    if not password:
        raise MissingArgumentError("password")
    storage = storage if storage is not None else MemoryStorage()
    invoker = invoker or Invoker()

    provider_id = await resolve_provider_id(host_name, "local", provider, invoker=invoker)
    storage.clear_storage()

    async def acquire() -> Optional[str]:
        logger.info("Requesting password token for %s from %s", username, host_name)
        return await request_access_token(
            host_name,
            {
                "grant_type": "password",
                "username": username,
                "password": password,
                "scope": provider_scope(provider_id),
            },
            invoker,
        )

    connection = await _connect_internal(host_name, storage, invoker, acquire)
    assert connection is not None  # acquire always yields a token or raises
    return connection


async def connect_certificate(
    host_name: str,
    cert: Optional[PemData] = None,
    key: Optional[PemData] = None,
    pfx: Optional[bytes] = None,
    passphrase: Optional[str] = None,
    provider: Optional[str] = None,
    storage: Optional[CredentialStorage] = None,
    invoker: Optional[Invoker] = None,
) -> SafeguardConnection:
    """Log in with a client certificate.

    Supply either *cert* and *key* (PEM) or *pfx* (PKCS#12 bytes), plus the
    *passphrase* protecting them.

    Args:
        host_name: Appliance host name or address.
        cert: PEM certificate.
        key: PEM private key.
        pfx: PKCS#12 container.
        passphrase: Passphrase of the key or container.
        provider: Identity provider name or id; the built-in
            ``certificate`` provider when omitted.
        storage: Session storage; a fresh :class:`MemoryStorage` otherwise.
        invoker: Transport; a default :class:`Invoker` otherwise.

    Raises:
        MissingArgumentError: If *host_name* or *passphrase* is empty, or no
            complete certificate material (``certificate``) is given.
        ProviderResolutionError: If *provider* cannot be resolved.
        TransportError: If the certificate cannot be loaded or a request fails.
        ProtocolError: If the appliance refuses the trade.
    """
    if not host_name:
        raise MissingArgumentError("host_name")
    if not ((cert and key) or pfx):
        raise MissingArgumentError("certificate")
    if not passphrase:
        raise MissingArgumentError("passphrase")
    storage = storage if storage is not None else MemoryStorage()
    invoker = invoker or Invoker()

    provider_id = await resolve_provider_id(host_name, "certificate", provider, invoker=invoker)
    storage.clear_storage()

    async def acquire() -> Optional[str]:
        context = build_client_tls_context(
            cert=cert,
            key=key,
            pfx=pfx,
            passphrase=passphrase,
            verify_ssl=invoker.config.verify_ssl,
        )
        logger.info("Requesting certificate token from %s", host_name)
        return await request_access_token(
            host_name,
            {"grant_type": "client_credentials", "scope": provider_scope(provider_id)},
            invoker,
            tls_context=context,
        )

    connection = await _connect_internal(host_name, storage, invoker, acquire)
    assert connection is not None  # acquire always yields a token or raises
    return connection


def _read_optional(path: Optional[Union[str, Path]], binary: bool = False) -> Optional[PemData]:
    if not path:
        return None
    file_path = Path(path).expanduser()
    return file_path.read_bytes() if binary else file_path.read_text(encoding="utf-8")


async def connect_certificate_from_files(
    host_name: str,
    cert_file: Optional[Union[str, Path]] = None,
    key_file: Optional[Union[str, Path]] = None,
    pfx_file: Optional[Union[str, Path]] = None,
    passphrase: Optional[str] = None,
    provider: Optional[str] = None,
    storage: Optional[CredentialStorage] = None,
    invoker: Optional[Invoker] = None,
) -> SafeguardConnection:
    """Like :func:`connect_certificate`, reading the material from disk.

    Arguments are validated before any file is read.

    Raises:
        OSError: If a named file cannot be read.
    """
    if not host_name:
        raise MissingArgumentError("host_name")
    if not ((cert_file and key_file) or pfx_file):
        raise MissingArgumentError("certificate")
    if not passphrase:
        raise MissingArgumentError("passphrase")

    pfx = _read_optional(pfx_file, binary=True)
    return await connect_certificate(
        host_name,
        cert=None if pfx else _read_optional(cert_file),
        key=None if pfx else _read_optional(key_file),
        pfx=pfx,  # type: ignore[arg-type]
        passphrase=passphrase,
        provider=provider,
        storage=storage,
        invoker=invoker,
    )
