"""Application-to-application (A2A) credential retrieval.

A2A is not a login: a registered application presents its client
certificate plus an API key and receives one secret (a password or a
private key) in return. Nothing is written to a credential storage.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from safeguardpy.client.invoker import Invoker
from safeguardpy.client.tls import PemData, build_client_tls_context
from safeguardpy.exceptions import InvalidArgumentError, MissingArgumentError
from safeguardpy.models import A2AType, HttpMethod, SshKeyFormat

logger = logging.getLogger(__name__)


def credentials_url(host_name: str) -> str:
    return f"https://{host_name}/service/a2a/v2/Credentials"


def unwrap_secret(body: str) -> str:
    """Strip one leading and one trailing double quote from *body*.

    The appliance returns scalar secrets as JSON strings.
    """
    if body.startswith('"'):
        body = body[1:]
    if body.endswith('"'):
        body = body[:-1]
    return body


async def a2a_get_credential(
    host_name: str,
    api_key: str,
    credential_type: Union[A2AType, str] = A2AType.PASSWORD,
    key_format: Optional[Union[SshKeyFormat, str]] = None,
    cert: Optional[PemData] = None,
    key: Optional[PemData] = None,
    passphrase: Optional[str] = None,
    invoker: Optional[Invoker] = None,
) -> str:
    """Retrieve a secret through an A2A registration.

    Args:
        host_name: Appliance host name or address.
        api_key: API key of the A2A credential retrieval registration.
        credential_type: Kind of secret to retrieve.
        key_format: Private-key format; only sent when given.
        cert: PEM client certificate of the registered application.
        key: PEM private key of that certificate.
        passphrase: Passphrase of *key*.
        invoker: Transport; a default :class:`Invoker` otherwise.

    Returns:
        The secret, with the appliance's surrounding quotes removed.

    Raises:
        MissingArgumentError: If any of *host_name*, *api_key*, *cert*,
            *key* or *passphrase* is empty.
        InvalidArgumentError: If *credential_type* is not a known type.
        TransportError: If the certificate cannot be loaded or the appliance
            refuses the request.
    """
    if not host_name:
        raise MissingArgumentError("host_name")
    if not api_key:
        raise MissingArgumentError("api_key")
    if not cert:
        raise MissingArgumentError("cert")
    if not key:
        raise MissingArgumentError("key")
    if not passphrase:
        raise MissingArgumentError("passphrase")
    invoker = invoker or Invoker()

    try:
        params = {"type": A2AType(credential_type).value}
    except ValueError:
        raise InvalidArgumentError("credential_type", credential_type) from None
    if key_format:
        params["keyFormat"] = (
            key_format.value if isinstance(key_format, SshKeyFormat) else str(key_format)
        )

    context = build_client_tls_context(
        cert=cert, key=key, passphrase=passphrase, verify_ssl=invoker.config.verify_ssl
    )
    logger.info("Retrieving A2A %s from %s", params["type"], host_name)
    response = await invoker.request(
        HttpMethod.GET,
        credentials_url(host_name),
        headers={"authorization": f"A2A {api_key}"},
        params=params,
        tls_context=context,
    )
    return unwrap_secret(response.text)


async def a2a_get_credential_from_files(
    host_name: str,
    api_key: str,
    credential_type: Union[A2AType, str] = A2AType.PASSWORD,
    key_format: Optional[Union[SshKeyFormat, str]] = None,
    cert_file: Optional[Union[str, Path]] = None,
    key_file: Optional[Union[str, Path]] = None,
    passphrase: Optional[str] = None,
    invoker: Optional[Invoker] = None,
) -> str:
    """Like :func:`a2a_get_credential`, reading the certificate and key from disk.

    Arguments are validated before any file is read.
    """
    if not host_name:
        raise MissingArgumentError("host_name")
    if not api_key:
        raise MissingArgumentError("api_key")
    if not cert_file:
        raise MissingArgumentError("cert_file")
    if not key_file:
        raise MissingArgumentError("key_file")
    if not passphrase:
        raise MissingArgumentError("passphrase")
    return await a2a_get_credential(
        host_name,
        api_key,
        credential_type,
        key_format,
        cert=Path(cert_file).expanduser().read_text(encoding="utf-8"),
        key=Path(key_file).expanduser().read_text(encoding="utf-8"),
        passphrase=passphrase,
        invoker=invoker,
    )
