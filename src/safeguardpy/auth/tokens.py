"""rSTS token requests and the access-token -> user-token trade.

Every interactive or credential-based login ends the same way: the rSTS
issues a short-lived access token, and the appliance's core service trades
it for the user token that authorises all further API calls.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any, Optional

from pydantic import ValidationError

from safeguardpy.client.invoker import Invoker
from safeguardpy.client.response import parse_json_body
from safeguardpy.exceptions import ProtocolError
from safeguardpy.models import HttpMethod, LoginResponse, TokenResponse
from safeguardpy.storage.base import CredentialStorage

logger = logging.getLogger(__name__)


def token_url(host_name: str) -> str:
    return f"https://{host_name}/RSTS/oauth2/token"


def login_response_url(host_name: str) -> str:
    return f"https://{host_name}/service/core/v3/Token/LoginResponse"


def provider_scope(provider_id: str) -> str:
    """Return the rSTS scope selecting *provider_id* as primary provider."""
    return f"rsts:sts:primaryproviderid:{provider_id}"


async def request_access_token(
    host_name: str,
    grant: dict[str, Any],
    invoker: Invoker,
    tls_context: Optional[ssl.SSLContext] = None,
) -> str:
    """POST *grant* to the rSTS token endpoint and return the access token.

    Raises:
        TransportError: If the token endpoint rejects the grant.
        ProtocolError: If the response carries no ``access_token``.
    """
    response = await invoker.request(
        HttpMethod.POST,
        token_url(host_name),
        json_body=grant,
        tls_context=tls_context,
    )
    data = parse_json_body(response, "token")
    try:
        token = TokenResponse.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Token response missing 'access_token': {exc}") from exc
    logger.debug("Obtained %s access token from %s", grant.get("grant_type"), host_name)
    return token.access_token


async def trade_for_user_token(
    host_name: str,
    access_token: str,
    storage: CredentialStorage,
    invoker: Invoker,
) -> str:
    """Exchange *access_token* for a user token and persist it in *storage*.

    Raises:
        TransportError: If the login-response endpoint fails.
        ProtocolError: If the appliance does not answer ``Status: Success``.
    """
    response = await invoker.request(
        HttpMethod.POST,
        login_response_url(host_name),
        json_body={"StsAccessToken": access_token},
    )
    data = parse_json_body(response, "login")
    try:
        login = LoginResponse.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Failed to retrieve user token: {exc}") from exc

    if login.status != "Success" or not login.user_token:
        raise ProtocolError(f"Failed to retrieve user token (status: {login.status or 'unknown'})")

    storage.set_user_token(login.user_token)
    logger.info("Obtained user token for %s", host_name)
    return login.user_token
