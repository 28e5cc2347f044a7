"""Trust store and client-certificate TLS contexts.

The appliance is usually deployed with a private CA, so the SDK keeps a
process-wide, ordered set of trusted CA certificates. It grows through
:func:`add_ca` / :func:`add_ca_from_file` and is reset by :func:`clear_cas`.
Every request verifies the appliance against this set; when the set is
empty the system trust store is used instead.

Certificate and A2A flows need a call-scoped context that pins the CA set
*and* presents a client certificate. :func:`build_client_tls_context`
builds one from PEM certificate/key material or from a PKCS#12 container.
The certificate material itself is handed to :mod:`ssl` untouched; PKCS#12
containers are unpacked with :mod:`cryptography`.
"""

from __future__ import annotations

import logging
import os
import ssl
import tempfile
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)

from safeguardpy.exceptions import ConfigError, TransportError

logger = logging.getLogger(__name__)

PemData = Union[str, bytes]

_cas: list[str] = []


def _as_text(data: PemData) -> str:
    return data.decode("utf-8") if isinstance(data, bytes) else data


def _as_bytes(data: PemData) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


# --- Certificate authority set ---


def add_ca(pem: PemData) -> None:
    """Append a PEM-encoded CA certificate to the process-wide trust set.

    Raises:
        ConfigError: If *pem* holds no parseable certificate. The trust set
            is left unchanged.
    """
    text = _as_text(pem)
    try:
        x509.load_pem_x509_certificates(text.encode("utf-8"))
    except ValueError as exc:
        raise ConfigError(f"Invalid CA certificate: {exc}") from exc
    _cas.append(text)


def add_ca_from_file(path: Union[str, Path]) -> None:
    """Read a PEM CA certificate from *path* and append it to the trust set."""
    add_ca(Path(path).read_text(encoding="utf-8"))


def clear_cas() -> None:
    """Remove every CA certificate from the trust set."""
    _cas.clear()


def get_cas() -> list[str]:
    """Return a copy of the trust set, in the order the CAs were added."""
    return list(_cas)


# --- SSL contexts ---


def _base_context(verify_ssl: bool) -> ssl.SSLContext:
    if _cas:
        context = ssl.create_default_context(cadata="\n".join(_cas))
    else:
        context = ssl.create_default_context()
    if not verify_ssl:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def default_context(verify_ssl: bool = True) -> ssl.SSLContext:
    """Return the context used by calls that carry no client certificate."""
    return _base_context(verify_ssl)


def _unpack_pfx(pfx: bytes, passphrase: str) -> tuple[bytes, bytes]:
    """Convert a PKCS#12 container into ``(cert_chain_pem, key_pem)``.

    The key is re-encrypted with the same passphrase so the unpacked
    material is never written to disk in the clear.
    """
    password = passphrase.encode("utf-8") if passphrase else None
    private_key, certificate, additional = pkcs12.load_key_and_certificates(pfx, password)
    if private_key is None or certificate is None:
        raise ValueError("PKCS#12 container holds no certificate/key pair")

    chain = certificate.public_bytes(Encoding.PEM)
    for extra in additional:
        chain += extra.public_bytes(Encoding.PEM)

    encryption = BestAvailableEncryption(password) if password else NoEncryption()
    key = private_key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, encryption)
    return chain, key


def build_client_tls_context(
    cert: Optional[PemData] = None,
    key: Optional[PemData] = None,
    pfx: Optional[bytes] = None,
    passphrase: Optional[str] = None,
    verify_ssl: bool = True,
) -> ssl.SSLContext:
    """Build a call-scoped context presenting a client certificate.

    Either *cert* and *key* (PEM) or *pfx* (PKCS#12 bytes) must be given.
    The resulting context trusts the accumulated CA set.

    Args:
        cert: PEM certificate (chain).
        key: PEM private key, optionally encrypted with *passphrase*.
        pfx: PKCS#12 container; takes precedence over *cert*/*key*.
        passphrase: Passphrase protecting the key or container.
        verify_ssl: Verify the appliance's certificate.

    Returns:
        A configured :class:`ssl.SSLContext`.

    Raises:
        TransportError: If the certificate material cannot be loaded.
    """
    try:
        context = _base_context(verify_ssl)
        if pfx:
            cert_bytes, key_bytes = _unpack_pfx(pfx, passphrase or "")
        elif cert and key:
            cert_bytes, key_bytes = _as_bytes(cert), _as_bytes(key)
        else:
            raise ValueError("a certificate and key, or a PKCS#12 container, is required")

        # ssl only loads certificate chains from files.
        with tempfile.TemporaryDirectory(prefix="safeguardpy-") as tmp:
            cert_path = os.path.join(tmp, "client.crt")
            key_path = os.path.join(tmp, "client.key")
            for path, data in ((cert_path, cert_bytes), (key_path, key_bytes)):
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
            context.load_cert_chain(cert_path, key_path, password=passphrase or None)
    except (ValueError, ssl.SSLError, OSError) as exc:
        raise TransportError(f"Unable to load client certificate: {exc}") from exc

    logger.debug("Built client certificate TLS context (%d trusted CAs)", len(_cas))
    return context
