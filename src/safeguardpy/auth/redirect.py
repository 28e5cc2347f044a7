"""Redirect (federation) login through the appliance-hosted rSTS page.

The redirect flow cannot finish inside a single call. The *acquire* step
sends the user to the rSTS login page; the appliance later navigates back to
the caller's redirect URL with either an access token (implicit flow) or a
PKCE authorization code and state appended. :func:`check_redirect` is the
companion checker run on that callback URL: it persists what it finds and
tells the caller where to navigate to drop the secrets from the address.

Also exports :func:`generate_pkce_pair` for the ``code_verifier`` /
``code_challenge`` pair (:rfc:`7636`, S256).
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from typing import Optional
from urllib.parse import quote, unquote, urlencode, urlsplit, urlunsplit

from safeguardpy.auth.tokens import request_access_token
from safeguardpy.client.invoker import Invoker
from safeguardpy.exceptions import ProtocolError
from safeguardpy.storage.base import CredentialStorage

logger = logging.getLogger(__name__)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def login_url(host_name: str, redirect_uri: str) -> str:
    """Return the implicit-flow rSTS login URL."""
    return (
        f"https://{host_name}/RSTS/Login?response_type=token"
        f"&redirect_uri={quote(redirect_uri, safe='')}"
    )


def pkce_login_url(host_name: str, redirect_uri: str, code_challenge: str, state: str) -> str:
    """Return the authorization-code (PKCE) rSTS login URL."""
    query = urlencode(
        {
            "response_type": "code",
            "code_challenge_method": "S256",
            "code_challenge": code_challenge,
            "state": state,
            "redirect_uri": redirect_uri,
        }
    )
    return f"https://{host_name}/RSTS/Login?{query}"


def begin_pkce_login(host_name: str, redirect_uri: str, storage: CredentialStorage) -> str:
    """Record a fresh verifier and state in *storage* and return the login URL."""
    code_verifier, code_challenge = generate_pkce_pair()
    random_state = secrets.token_urlsafe(32)
    storage.set_code_verifier(code_verifier)
    storage.set_random_state(random_state)
    return pkce_login_url(host_name, redirect_uri, code_challenge, random_state)


def check_redirect(url: str, storage: CredentialStorage) -> Optional[str]:
    """Pick up tokens delivered on an rSTS callback URL.

    Scans both the query string and the fragment for ``access_token``, or
    for a ``code`` and ``state`` pair, and writes them to *storage*. A URL
    containing ``?newlogin`` raises the new-login flag.

    Args:
        url: The full callback URL the browser landed on.
        storage: Session storage to write into.

    Returns:
        The bare ``scheme://host/path`` URL to navigate to when something
        was consumed, so the secrets leave the address bar; ``None``
        otherwise.
    """
    parts = urlsplit(url)
    fields: dict[str, str] = {}
    for section in (parts.query, parts.fragment):
        for pair in section.split("&"):
            name, sep, value = pair.partition("=")
            if sep and value:
                # Tokens are base64; "+" is literal, not a form-encoded space.
                fields.setdefault(name, unquote(value))

    if "?newlogin" in url.lower():
        storage.set_new_login(True)

    consumed = False
    access_token = fields.get("access_token")
    if access_token:
        storage.set_access_token(access_token)
        consumed = True

    code, state = fields.get("code"), fields.get("state")
    if code and state:
        storage.set_code(code)
        storage.set_state(state)
        consumed = True

    if not consumed:
        return None
    logger.debug("Consumed rSTS callback parameters from %s", parts.path or "/")
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


async def redeem_authorization_code(
    host_name: str,
    redirect_uri: str,
    storage: CredentialStorage,
    invoker: Invoker,
) -> str:
    """Exchange a stored PKCE code for an access token.

    The returned state must match the one generated when the login started.
    The redirect-flow fields are cleared whether or not the exchange
    succeeds, since a code can only be redeemed once.

    Raises:
        ProtocolError: If the state does not match.
        TransportError: If the token endpoint rejects the code.
    """
    code = storage.get_code()
    state = storage.get_state()
    code_verifier = storage.get_code_verifier()
    expected_state = storage.get_random_state()
    storage.clear_transient()

    if not expected_state or state != expected_state:
        raise ProtocolError("rSTS callback state does not match the login request")

    return await request_access_token(
        host_name,
        {
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
            "code": code,
            "code_verifier": code_verifier,
        },
        invoker,
    )
