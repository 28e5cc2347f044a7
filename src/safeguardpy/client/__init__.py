"""HTTP transport for safeguardpy.

Provides :class:`Invoker`, a thin asynchronous adapter over
:class:`httpx.AsyncClient` that adds appliance headers, the process-wide
CA trust set, optional client-certificate TLS contexts, and uniform error
mapping to :class:`~safeguardpy.exceptions.TransportError`.

Example::

    from safeguardpy.client import Invoker

    response = await Invoker().request("GET", url)
"""

from safeguardpy.client.invoker import Invoker
from safeguardpy.client.tls import (
    add_ca,
    add_ca_from_file,
    build_client_tls_context,
    clear_cas,
    get_cas,
)

__all__ = [
    "Invoker",
    "add_ca",
    "add_ca_from_file",
    "build_client_tls_context",
    "clear_cas",
    "get_cas",
]
