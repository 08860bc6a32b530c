"""certscope test configuration: shared fixtures for unit and integration tests."""

from __future__ import annotations

import socket
import ssl
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from certscope.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------


@dataclass
class IssuedCertificate:
    certificate: x509.Certificate
    key: ec.EllipticCurvePrivateKey

    @property
    def der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def key_pem(self) -> bytes:
        return self.key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )


def issue_certificate(
    common_name: str | list[str] = "example.test",
    san: list[str] | None = None,
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    issuer: IssuedCertificate | None = None,
    ca: bool = False,
    organization: str | None = None,
) -> IssuedCertificate:
    """Build a certificate signed by *issuer*, or self-signed when omitted."""
    now = datetime.now(timezone.utc)
    key = ec.generate_private_key(ec.SECP256R1())

    common_names = [common_name] if isinstance(common_name, str) else common_name
    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, name) for name in common_names]
    if organization:
        attributes.insert(0, x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
    subject = x509.Name(attributes)

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.certificate.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=90))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if san is not None:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in san]),
            critical=False,
        )
    if not ca:
        builder = builder.add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)

    signing_key = issuer.key if issuer else key
    return IssuedCertificate(certificate=builder.sign(signing_key, hashes.SHA256()), key=key)


@pytest.fixture()
def cert_factory():
    """Return the ``issue_certificate`` helper."""
    return issue_certificate


@pytest.fixture()
def raw_fields():
    """An ``x509_parse``-style field mapping for a typical leaf certificate."""
    return {
        "name": "/CN=example.com",
        "subject": {"CN": "example.com"},
        "issuer": {"C": "US", "O": "Let's Encrypt", "CN": "R3"},
        "version": 2,
        "serialNumber": "1234",
        "serialNumberHex": "04D2",
        "validFrom": "240101000000Z",
        "validTo": "240331000000Z",
        "validFrom_time_t": int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()),
        "validTo_time_t": int(datetime(2024, 3, 31, tzinfo=timezone.utc).timestamp()),
        "signatureTypeSN": "RSA-SHA256",
        "signatureTypeLN": "sha256WithRSAEncryption",
        "extensions": {
            "subjectAltName": "DNS:example.com, DNS:www.example.com, DNS:*.api.example.com",
            "basicConstraints": "CA:FALSE",
        },
    }


# ---------------------------------------------------------------------------
# Loopback servers
# ---------------------------------------------------------------------------


class LoopbackServer:
    """Accept loop on 127.0.0.1 running *handler* for each connection."""

    def __init__(self, handler) -> None:
        self.listener = socket.create_server(("127.0.0.1", 0))
        self.listener.settimeout(0.1)
        self.port = self.listener.getsockname()[1]
        self.server_names: list[str | None] = []
        self._handler = handler
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def start(self) -> "LoopbackServer":
        self._thread.start()
        return self

    def close(self) -> None:
        self._stop.set()
        self._thread.join(timeout=2)
        self.listener.close()

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self.listener.accept()
            except TimeoutError:
                continue
            except OSError:
                return
            conn.settimeout(2)
            with conn:
                try:
                    self._handler(self, conn)
                except (OSError, ssl.SSLError):
                    pass


@pytest.fixture()
def tls_server(tmp_path: Path):
    """Start a TLS server presenting a CA-issued leaf plus its CA certificate.

    Yields ``(server, leaf, ca)``; ``server.server_names`` records the SNI of
    each handshake.
    """
    ca = issue_certificate(common_name="certscope test CA", ca=True)
    leaf = issue_certificate(common_name="example.test", san=["example.test", "*.example.test"], issuer=ca)

    chain_path = tmp_path / "chain.pem"
    key_path = tmp_path / "leaf.key"
    chain_path.write_bytes(leaf.pem + ca.pem)
    key_path.write_bytes(leaf.key_pem)

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(chain_path, key_path)

    def record_sni(ssl_socket, server_name, _context):
        server.server_names.append(server_name)

    context.sni_callback = record_sni

    def handle(_server, conn):
        with context.wrap_socket(conn, server_side=True) as tls:
            tls.recv(1)

    server = LoopbackServer(handle).start()
    yield server, leaf, ca
    server.close()


@pytest.fixture()
def plaintext_server():
    """Start a server that reads the ClientHello and answers with plain HTTP."""

    def handle(_server, conn):
        conn.recv(4096)
        conn.sendall(b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n")

    server = LoopbackServer(handle).start()
    yield server
    server.close()


@pytest.fixture()
def silent_close_server():
    """Start a server that reads the ClientHello and hangs up."""

    def handle(_server, conn):
        conn.recv(4096)

    server = LoopbackServer(handle).start()
    yield server
    server.close()


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require external services or real I/O")
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
