"""Asynchronous transport invoker -- one appliance HTTP exchange per call.

:class:`Invoker` wraps :class:`httpx.AsyncClient` with the headers the
appliance expects, the process-wide CA trust set (or a call-scoped TLS
context for certificate-authenticated calls), and uniform error mapping:
every call either returns a successful :class:`httpx.Response` or raises
:class:`~safeguardpy.exceptions.TransportError`.

No retries are performed here; the single documented fallback (POST then
GET during provider discovery) lives with its caller.

See Also:
    :mod:`safeguardpy.client.tls` for trust-store and client-certificate
    context construction.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any, Mapping, Optional, Union

import httpx

from safeguardpy.client import tls
from safeguardpy.client.response import extract_error_detail
from safeguardpy.config import load_request_config
from safeguardpy.exceptions import TransportError
from safeguardpy.models import HttpMethod, RequestConfig

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: dict[str, str] = {
    "accept": "application/json",
    "accept-language": "en-US,en;q=0.9",
    "content-type": "application/json",
}


class Invoker:
    """Execute single HTTP requests against an appliance.

    A fresh :class:`httpx.AsyncClient` is opened per call so that each
    call can carry its own TLS context; certificate flows pin a client
    certificate for exactly one request.

    Args:
        config: Transport settings. Defaults to
            :func:`~safeguardpy.config.load_request_config`.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests. When given, TLS settings are not used by httpx.

    Example::

        invoker = Invoker()
        response = await invoker.request("GET", "https://sg.example.com/service/notification/v3/Status")
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config if config is not None else load_request_config()
        self._transport = transport

    @property
    def config(self) -> RequestConfig:
        """The transport settings applied to every call."""
        return self._config

    async def request(
        self,
        method: Union[HttpMethod, str],
        url: str,
        *,
        json_body: Optional[Any] = None,
        body: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        tls_context: Optional[ssl.SSLContext] = None,
    ) -> httpx.Response:
        """Send one request and return the successful response.

        Args:
            method: HTTP method.
            url: Absolute request URL.
            json_body: JSON-serialisable body.
            body: Raw string body, sent as-is (used when the caller already
                holds serialised JSON).
            headers: Extra headers; they override the defaults, compared
                case-insensitively.
            params: Query parameters.
            tls_context: Call-scoped TLS context (client certificate flows).
                Defaults to the process-wide CA set.

        Returns:
            The :class:`httpx.Response` for a 2xx/3xx status.

        Raises:
            TransportError: On a network or TLS setup failure, or a 4xx/5xx response
                (carrying the status code and body).
        """
        verb = method.value if isinstance(method, HttpMethod) else str(method).upper()

        merged_headers = httpx.Headers(DEFAULT_HEADERS)
        if headers:
            merged_headers.update(headers)

        kwargs: dict[str, Any] = {"headers": merged_headers}
        if params:
            kwargs["params"] = dict(params)
        if json_body is not None:
            kwargs["json"] = json_body
        elif body is not None:
            kwargs["content"] = body

        logger.debug("%s %s", verb, url)
        try:
            verify = tls_context if tls_context is not None else tls.default_context(
                self._config.verify_ssl
            )
            async with httpx.AsyncClient(
                verify=verify,
                timeout=self._config.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(verb, url, **kwargs)
        except (httpx.HTTPError, ssl.SSLError) as exc:
            raise TransportError(f"{verb} {url} failed: {exc}") from exc

        if response.is_error:
            detail = extract_error_detail(response)
            logger.debug("%s %s -> HTTP %d", verb, url, response.status_code)
            raise TransportError(
                f"HTTP {response.status_code}: {detail}" if detail else f"HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text or None,
            )
        return response
