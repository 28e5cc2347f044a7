"""Identity-provider discovery for password and certificate logins.

Callers name a provider the way a human would ("Active Directory",
``"ad.example.com"``, ...). The rSTS token endpoint needs the appliance's
actual provider id in its scope, so :func:`resolve_provider_id` asks the
login-discovery endpoint for the provider list and matches against it.

Built-in providers (``local`` and ``certificate``) never need discovery.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from pydantic import ValidationError

from safeguardpy.client.invoker import Invoker
from safeguardpy.client.response import parse_json_body
from safeguardpy.exceptions import ProtocolError, ProviderResolutionError, TransportError
from safeguardpy.models import HttpMethod, Provider, ProviderList

logger = logging.getLogger(__name__)

BUILTIN_PROVIDERS = frozenset({"local", "certificate"})

DISCOVERY_PATH = (
    "/RSTS/UserLogin/LoginController"
    "?response_type=token&redirect_uri=urn:InstalledApplication&loginRequestStep=1"
)

# Checked in this order for each provider entry; the first hit wins.
ProviderMatcher = Callable[[Provider, str], bool]
MATCHERS: tuple[ProviderMatcher, ...] = (
    lambda provider, wanted: provider.display_name.lower() == wanted,
    lambda provider, wanted: provider.id.lower() == wanted,
    lambda provider, wanted: wanted in provider.id.lower(),
)


def discovery_url(host_name: str) -> str:
    """Return the login-discovery URL for *host_name*."""
    return f"https://{host_name}{DISCOVERY_PATH}"


def match_provider(providers: list[Provider], requested: str) -> Optional[Provider]:
    """Find the provider matching *requested*, case-insensitively.

    Entries are scanned in the order the appliance returned them; within an
    entry the exact display name, exact id and id substring checks are
    tried in that order.
    """
    wanted = requested.lower()
    for provider in providers:
        for matcher in MATCHERS:
            if matcher(provider, wanted):
                return provider
    return None


async def _discover(host_name: str, requested: str, invoker: Invoker) -> list[Provider]:
    url = discovery_url(host_name)
    try:
        response = await invoker.request(HttpMethod.POST, url, json_body={"RelayState": ""})
    except TransportError as exc:
        logger.debug("Provider discovery POST failed (%s); retrying with GET", exc)
        try:
            response = await invoker.request(HttpMethod.GET, url)
        except TransportError as retry_exc:
            raise ProviderResolutionError(
                requested,
                f"Unable to discover providers while resolving '{requested}': {retry_exc}",
            ) from retry_exc

    data = parse_json_body(response, "provider discovery")
    try:
        return ProviderList.model_validate(data).providers
    except ValidationError as exc:
        raise ProtocolError(f"Malformed provider list from {host_name}: {exc}") from exc


async def resolve_provider_id(
    host_name: str,
    default_provider_id: str,
    requested_provider: Optional[str],
    *,
    invoker: Optional[Invoker] = None,
) -> str:
    """Resolve a human-supplied provider name or id to the appliance's id.

    Args:
        host_name: Appliance host name or address.
        default_provider_id: Returned as-is when no discovery is needed.
        requested_provider: Display name, id, or id fragment. Empty,
            ``"local"`` and ``"certificate"`` short-circuit to
            *default_provider_id* without any network call.
        invoker: Transport to use; a default :class:`Invoker` otherwise.

    Returns:
        The provider id to put in the rSTS scope.

    Raises:
        ProviderResolutionError: If discovery fails twice or nothing matches.
        ProtocolError: If the discovery response is not a provider list.
    """
    if not requested_provider or requested_provider.lower() in BUILTIN_PROVIDERS:
        return default_provider_id

    invoker = invoker or Invoker()
    providers = await _discover(host_name, requested_provider, invoker)

    provider = match_provider(providers, requested_provider)
    if provider is None:
        raise ProviderResolutionError(requested_provider)

    logger.debug("Resolved provider '%s' to id '%s'", requested_provider, provider.id)
    return provider.id
