"""Shared test fixtures for safeguardpy.

Provides a fake appliance served through :class:`httpx.MockTransport`,
an :class:`Invoker` wired to it, throwaway client-certificate material,
and isolation of the process-wide CA set and ``SAFEGUARD_*`` environment.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    PrivateFormat,
    pkcs12,
)
from cryptography.x509.oid import NameOID

from safeguardpy.client.invoker import Invoker
from safeguardpy.client.tls import clear_cas
from safeguardpy.models import RequestConfig
from safeguardpy.storage.memory import MemoryStorage

Handler = Callable[[httpx.Request], httpx.Response]


# ---------------------------------------------------------------------------
# Global state isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch: pytest.MonkeyPatch) -> None:
    """Empty the CA trust set and drop SAFEGUARD_* variables around each test."""
    for var in ("SAFEGUARD_TIMEOUT", "SAFEGUARD_VERIFY_SSL"):
        monkeypatch.delenv(var, raising=False)
    clear_cas()
    yield
    clear_cas()


# ---------------------------------------------------------------------------
# Fake appliance
# ---------------------------------------------------------------------------


class FakeAppliance:
    """Route table standing in for an appliance.

    Routes are keyed by ``(method, path)``; unknown routes answer 404 with
    an appliance-style ``Message`` body. Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def on(
        self,
        method: str,
        path: str,
        handler: Optional[Handler] = None,
        *,
        status: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        if handler is None:
            kwargs: dict[str, Any] = {"headers": headers}
            if json is not None:
                kwargs["json"] = json
            elif text is not None:
                kwargs["text"] = text

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, **kwargs)

        self.routes[(method.upper(), path)] = handler

    def accept_logins(self, access_token: str = "access-1", user_token: str = "user-1") -> None:
        """Answer the rSTS token endpoint and the user-token trade."""
        self.on("POST", "/RSTS/oauth2/token", json={"access_token": access_token, "token_type": "Bearer"})
        self.on(
            "POST",
            "/service/core/v3/Token/LoginResponse",
            json={"Status": "Success", "UserToken": user_token},
        )

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(
                404, json={"Message": f"No route for {request.method} {request.url.path}"}
            )
        return handler(request)


@pytest.fixture
def appliance() -> FakeAppliance:
    return FakeAppliance()


@pytest.fixture
def invoker(appliance: FakeAppliance) -> Invoker:
    """An Invoker whose requests are answered by the fake appliance."""
    return Invoker(RequestConfig(timeout=5.0), transport=httpx.MockTransport(appliance))


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


# ---------------------------------------------------------------------------
# Certificate material
# ---------------------------------------------------------------------------


@dataclass
class CertMaterial:
    """A self-signed certificate with its encrypted key and PKCS#12 bundle."""

    cert_pem: str
    key_pem: str
    pfx: bytes
    passphrase: str
    cert_file: Path
    key_file: Path
    pfx_file: Path


def _self_signed(common_name: str) -> tuple[ec.EllipticCurvePrivateKey, x509.Certificate]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return key, cert


@pytest.fixture(scope="session")
def _cert_bytes() -> tuple[str, str, bytes]:
    passphrase = b"secret"
    key, cert = _self_signed("safeguardpy-test")
    cert_pem = cert.public_bytes(Encoding.PEM).decode("ascii")
    key_pem = key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, BestAvailableEncryption(passphrase)
    ).decode("ascii")
    pfx = pkcs12.serialize_key_and_certificates(
        b"client", key, cert, None, BestAvailableEncryption(passphrase)
    )
    return cert_pem, key_pem, pfx


@pytest.fixture
def client_cert(_cert_bytes: tuple[str, str, bytes], tmp_path: Path) -> CertMaterial:
    """Client-certificate material in memory and on disk (passphrase ``secret``)."""
    cert_pem, key_pem, pfx = _cert_bytes
    cert_file = tmp_path / "client.pem"
    key_file = tmp_path / "client.key"
    pfx_file = tmp_path / "client.pfx"
    cert_file.write_text(cert_pem)
    key_file.write_text(key_pem)
    pfx_file.write_bytes(pfx)
    return CertMaterial(
        cert_pem=cert_pem,
        key_pem=key_pem,
        pfx=pfx,
        passphrase="secret",
        cert_file=cert_file,
        key_file=key_file,
        pfx_file=pfx_file,
    )


@pytest.fixture(scope="session")
def other_ca_pem() -> str:
    """A second self-signed CA certificate (common name ``safeguardpy-other``)."""
    _, cert = _self_signed("safeguardpy-other")
    return cert.public_bytes(Encoding.PEM).decode("ascii")
