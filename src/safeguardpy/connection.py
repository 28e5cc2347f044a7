"""The per-session connection handle.

A :class:`SafeguardConnection` is what every connect flow in
:mod:`safeguardpy.auth.lifecycle` returns. It is bound to one appliance
host and borrows its tokens from a
:class:`~safeguardpy.storage.CredentialStorage` on every call; it holds no
credential state of its own. After :meth:`~SafeguardConnection.logout`
clears the storage, the handle stays usable only for anonymous calls.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union
from urllib.parse import quote, urlencode

from safeguardpy.client.invoker import Invoker
from safeguardpy.events import EventCallback, EventSubscription
from safeguardpy.exceptions import (
    MissingArgumentError,
    MissingCredentialError,
    ProtocolError,
    UnsupportedServiceError,
)
from safeguardpy.models import HttpMethod, Service
from safeguardpy.storage.base import CredentialStorage

logger = logging.getLogger(__name__)

LIFETIME_HEADER = "X-TokenLifetimeRemaining"


def _coerce_service(service: Union[Service, str]) -> Service:
    if isinstance(service, Service):
        return service
    try:
        return Service(str(service).lower())
    except ValueError:
        raise UnsupportedServiceError(service) from None


class SafeguardConnection:
    """Authenticated (or anonymous) access to one appliance.

    Args:
        host_name: Appliance host name or address. Must be non-empty.
        storage: Session storage the tokens are read from.
        invoker: Transport; a default :class:`~safeguardpy.client.Invoker`
            otherwise.

    Example::

        connection = await connect_password("sg.example.com", "admin", "secret")
        me = await connection.invoke(Service.CORE, HttpMethod.GET, "v4/Me")
    """

    def __init__(
        self,
        host_name: str,
        storage: CredentialStorage,
        invoker: Optional[Invoker] = None,
    ) -> None:
        if not host_name:
            raise MissingArgumentError("host_name")
        self._host_name = host_name
        self._storage = storage
        self._invoker = invoker or Invoker()
        self._subscription: Optional[EventSubscription] = None

    @property
    def host_name(self) -> str:
        return self._host_name

    @property
    def storage(self) -> CredentialStorage:
        return self._storage

    @property
    def subscription(self) -> Optional[EventSubscription]:
        """The active event-stream subscription, if any."""
        return self._subscription

    # ------------------------------------------------------------------ #
    # URL and header helpers
    # ------------------------------------------------------------------ #

    def build_url(
        self,
        service: Union[Service, str],
        relative_path: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Return ``https://<host>/service/<service>/<relative_path>[?query]``.

        Raises:
            UnsupportedServiceError: If *service* is not one of
                :class:`~safeguardpy.models.Service`.
        """
        resolved = _coerce_service(service)
        url = f"https://{self._host_name}/service/{resolved.value}/{relative_path}"
        if params:
            url = f"{url}?{urlencode(params, quote_via=quote)}"
        return url

    def _bearer_token(self) -> str:
        user_token = self._storage.get_user_token()
        if not user_token:
            raise MissingCredentialError("Access token is missing. Please log in again.")
        return f"Bearer {user_token}"

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    async def invoke(
        self,
        service: Union[Service, str],
        method: Union[HttpMethod, str],
        relative_path: str,
        body: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Call an appliance endpoint and return the raw response body.

        When a user token is stored it is sent as ``authorization: Bearer``,
        replacing any authorization header in *headers*. Without one the
        header is omitted and the appliance decides whether the endpoint
        allows anonymous access.

        Args:
            service: Target service.
            method: HTTP method.
            relative_path: Path below the service, e.g. ``"v4/Me"``.
            body: JSON-serialisable body, or a string sent verbatim.
            params: Query parameters, URL-encoded into the request URL.
            headers: Extra request headers.

        Returns:
            The response body as text (``""`` for empty bodies).

        Raises:
            MissingArgumentError: If *service*, *method* or *relative_path*
                is empty.
            UnsupportedServiceError: For an unknown service.
            TransportError: If the appliance answers with an error status.
        """
        if not service:
            raise MissingArgumentError("service")
        if not method:
            raise MissingArgumentError("method")
        if not relative_path:
            raise MissingArgumentError("relative_path")

        url = self.build_url(service, relative_path, params)

        request_headers = dict(headers or {})
        if self._storage.get_user_token():
            request_headers = {
                name: value
                for name, value in request_headers.items()
                if name.lower() != "authorization"
            }
            request_headers["authorization"] = self._bearer_token()

        logger.debug("Invoking %s", url)
        if isinstance(body, str):
            response = await self._invoker.request(method, url, body=body, headers=request_headers)
        else:
            response = await self._invoker.request(
                method, url, json_body=body, headers=request_headers
            )
        return response.text

    async def get_access_token_lifetime_remaining(self) -> int:
        """Return the seconds left before the user token expires.

        Raises:
            MissingCredentialError: If no user token is stored.
            ProtocolError: If the appliance omits or garbles the header.
        """
        headers = {"authorization": self._bearer_token(), LIFETIME_HEADER: ""}
        response = await self._invoker.request(
            HttpMethod.GET, self.build_url(Service.CORE, "v3/LoginMessage"), headers=headers
        )
        value = response.headers.get(LIFETIME_HEADER.lower())
        if value is None:
            raise ProtocolError(f"Response carries no {LIFETIME_HEADER} header")
        try:
            return int(value)
        except ValueError as exc:
            raise ProtocolError(f"Invalid {LIFETIME_HEADER} value: {value!r}") from exc

    async def logout(self) -> str:
        """Invalidate the user token on the appliance and clear the storage.

        The storage is cleared (and any event stream closed) before the
        logout request is sent, so local state is consistent even when the
        request fails.

        Raises:
            MissingCredentialError: If no user token is stored.
            TransportError: If the logout request fails.
        """
        bearer = self._bearer_token()
        self._storage.clear_storage()
        await self.unregister_signalr()

        logger.info("Logging out of %s", self._host_name)
        response = await self._invoker.request(
            HttpMethod.POST,
            self.build_url(Service.CORE, "v3/Token/Logout"),
            headers={"authorization": bearer},
        )
        return response.text

    async def register_signalr(self, callback: EventCallback) -> EventSubscription:
        """Subscribe *callback* to the appliance's event stream.

        Returns as soon as the background stream is started; connection
        failures are logged, not raised. Registering again replaces the
        active subscription.

        Raises:
            MissingArgumentError: If *callback* is missing or not callable.
            MissingCredentialError: If no user token is stored.
        """
        if not callback or not callable(callback):
            raise MissingArgumentError("callback")
        self._bearer_token()

        await self.unregister_signalr()
        subscription = EventSubscription(
            self._host_name,
            self._storage.get_user_token,
            callback,
            self._invoker,
        )
        subscription.start()
        self._subscription = subscription
        return subscription

    async def unregister_signalr(self) -> None:
        """Close the active event stream, if there is one."""
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.close()

    def __repr__(self) -> str:
        return f"SafeguardConnection(host_name={self._host_name!r})"
