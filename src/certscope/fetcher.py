"""Retrieve the certificate chain a TLS endpoint presents.

Connections are made in one of two explicit modes:

* ``inspect``: peer verification is switched off so that expired,
  self-signed or otherwise untrusted certificates can still be examined.
* ``verify``: OpenSSL verifies the peer against the system trust store, and
  the leaf must name the requested host among its subject alternative names
  (DNS entries, or IP entries for an IP literal). Either failure fails the
  download.

Whatever the mode, the host name is sent as SNI so that an IP override still
selects the right virtual host.
"""

from __future__ import annotations

import concurrent.futures
import hashlib
import ipaddress
import logging
import select
import socket
import time
from contextlib import closing
from enum import Enum
from typing import Any

import idna
from OpenSSL import SSL, crypto
from pydantic import BaseModel, ConfigDict

from certscope import matching
from certscope.exceptions import (
    HostDoesNotExist,
    InvalidHostInput,
    NoCertificateInstalled,
    UnknownError,
)
from certscope.hosts import is_ip_address, parse_host
from certscope.models.certificate import SslCertificate
from certscope.parser import parse_der

logger = logging.getLogger(__name__)

_NO_SUCH_HOST_ERRNOS = frozenset(
    code
    for code in (
        getattr(socket, "EAI_NONAME", None),
        getattr(socket, "EAI_NODATA", None),
        getattr(socket, "EAI_FAIL", None),
    )
    if code is not None
)

# OpenSSL reasons reported when the peer answers with something other than TLS
_NOT_TLS_REASONS = (
    "wrong version number",
    "unknown protocol",
    "packet length too long",
    "http request",
    "record layer failure",
    "unexpected eof",
)


class ConnectionMode(str, Enum):
    """How the TLS handshake treats the peer certificate."""

    INSPECT = "inspect"
    VERIFY = "verify"


class FetchResult(BaseModel):
    """Raw outcome of a handshake: the DER chain, leaf first."""

    model_config = ConfigDict(frozen=True)

    hostname: str
    port: int
    remote_address: str
    chain: tuple[bytes, ...]


class DownloadResult(BaseModel):
    """Parsed chain plus the address that served it."""

    model_config = ConfigDict(frozen=True)

    hostname: str
    port: int
    remote_address: str
    certificates: tuple[SslCertificate, ...]

    @property
    def leaf(self) -> SslCertificate:
        return self.certificates[0]


class Downloader:
    """Downloads certificates from TLS endpoints.

    Unset options fall back to the ``fetch`` settings section. The
    ``using_port``/``with_*`` helpers return ``self`` for chaining::

        certificate = Downloader().using_port(8443).with_timeout(5).for_host("example.com")
    """

    def __init__(
        self,
        port: int | None = None,
        timeout: float | None = None,
        ip_address: str | None = None,
        full_chain: bool | None = None,
        mode: ConnectionMode | str | None = None,
        fingerprint_algorithm: str | None = None,
    ) -> None:
        from certscope.settings import get_settings

        fetch_settings = get_settings().fetch
        self.port = port or fetch_settings.default_port
        self.timeout = timeout or fetch_settings.timeout_sec
        self.ip_address = ip_address
        self.full_chain = fetch_settings.full_chain if full_chain is None else full_chain
        self.mode = ConnectionMode(mode or fetch_settings.mode)
        self.fingerprint_algorithm = fingerprint_algorithm or fetch_settings.fingerprint_algorithm

    # ------------------------------------------------------------------
    # Fluent configuration
    # ------------------------------------------------------------------

    def using_port(self, port: int) -> "Downloader":
        self.port = port
        return self

    def with_timeout(self, timeout: float) -> "Downloader":
        self.timeout = timeout
        return self

    def from_ip_address(self, ip_address: str | None) -> "Downloader":
        self.ip_address = ip_address
        return self

    def with_full_chain(self, full_chain: bool = True) -> "Downloader":
        self.full_chain = full_chain
        return self

    def with_mode(self, mode: ConnectionMode | str) -> "Downloader":
        self.mode = ConnectionMode(mode)
        return self

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    @classmethod
    def download_certificate_from_url(cls, url: str, timeout: float = 30) -> SslCertificate:
        """Return the leaf certificate served for *url*."""
        return cls(timeout=timeout).for_host(url)

    def for_host(self, url: str) -> SslCertificate:
        """Return the leaf certificate served for *url*."""
        return self.download(url).leaf

    def get_certificates(self, url: str) -> list[SslCertificate]:
        """Return every certificate served for *url*, leaf first."""
        return list(self.download(url).certificates)

    def download(self, url: str) -> DownloadResult:
        """Fetch and parse the chain for the host named in *url*.

        A port in *url* wins over the downloader's configured port.

        Raises:
            InvalidHostInput: If no host can be extracted from *url*.
            CouldNotDownloadCertificate: On any connection failure.
            CertificateParseError: If a presented certificate is malformed.
        """
        location = parse_host(url, default_port=self.port)
        result = self.fetch(location.host, location.port, self.ip_address, self.timeout)

        chain = result.chain if self.full_chain else result.chain[:1]
        certificates = []
        for der in chain:
            certificate = parse_der(der)
            certificate.attach_fingerprint(self.fingerprint(der))
            certificates.append(certificate)

        return DownloadResult(
            hostname=result.hostname,
            port=result.port,
            remote_address=result.remote_address,
            certificates=tuple(certificates),
        )

    def fingerprint(self, der: bytes) -> str:
        return hashlib.new(self.fingerprint_algorithm, der).hexdigest()

    def fetch(
        self,
        hostname: str,
        port: int | None = None,
        ip_address: str | None = None,
        timeout: float | None = None,
    ) -> FetchResult:
        """Connect to *hostname* (or *ip_address*) and capture the presented chain.

        *timeout* bounds name resolution and, separately, connect plus
        handshake. The socket is closed before returning or raising.

        Raises:
            HostDoesNotExist: If the name does not resolve.
            NoCertificateInstalled: If the peer offers no certificate or does
                not speak TLS.
            UnknownError: For any other failure, timeouts and (in verify mode)
                host name mismatches included.
            CertificateParseError: If the leaf cannot be decoded for the host
                name check.
        """
        port = port or self.port
        timeout = timeout or self.timeout
        target = ip_address or self.ip_address or hostname
        ascii_hostname = to_ascii_host(hostname)
        server_name = None if is_ip_address(hostname) else ascii_hostname.encode("ascii")

        logger.info(
            "Fetching certificate for %s:%d via %s (mode=%s, timeout=%.1fs)",
            hostname,
            port,
            target,
            self.mode.value,
            timeout,
        )
        if self.mode is ConnectionMode.INSPECT:
            logger.debug("Peer verification disabled for %s", hostname)

        addresses = _resolve(hostname, ascii_hostname if target == hostname else target, port, timeout)
        deadline = time.monotonic() + timeout
        sock = _connect(hostname, addresses, deadline)
        with closing(sock):
            remote_address = format_address(sock.getpeername())
            chain = _handshake(hostname, sock, server_name, self.mode, deadline)

        if self.mode is ConnectionMode.VERIFY:
            _check_host_name(hostname, ascii_hostname, chain[0])

        logger.info("Received %d certificate(s) for %s from %s", len(chain), hostname, remote_address)
        return FetchResult(hostname=hostname, port=port, remote_address=remote_address, chain=chain)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_ascii_host(hostname: str) -> str:
    """Return the A-label form of *hostname* for DNS and SNI."""
    if hostname.isascii():
        return hostname
    try:
        return idna.encode(hostname, uts46=True).decode("ascii")
    except idna.IDNAError as exc:
        raise InvalidHostInput(hostname, str(exc)) from exc


def format_address(sockaddr: tuple[Any, ...]) -> str:
    host, port = sockaddr[0], sockaddr[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _resolve(hostname: str, target: str, port: int, timeout: float) -> list[tuple[Any, ...]]:
    # getaddrinfo cannot be interrupted; each lookup gets its own thread so an
    # abandoned one never delays another fetch
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="certscope-resolve")
    future = executor.submit(socket.getaddrinfo, target, port, type=socket.SOCK_STREAM)
    executor.shutdown(wait=False)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        logger.warning("Resolving %s timed out after %.1fs", target, timeout)
        raise UnknownError(hostname, f"resolving `{target}` timed out") from None
    except socket.gaierror as exc:
        if exc.errno in _NO_SUCH_HOST_ERRNOS:
            logger.warning("Host %s does not resolve: %s", target, exc)
            raise HostDoesNotExist(hostname) from exc
        logger.warning("Resolving %s failed: %s", target, exc)
        raise UnknownError(hostname, str(exc)) from exc
    except UnicodeError as exc:
        raise InvalidHostInput(hostname, str(exc)) from exc


def _connect(hostname: str, addresses: list[tuple[Any, ...]], deadline: float) -> socket.socket:
    last_error: OSError | None = None
    for family, socktype, proto, _, sockaddr in addresses:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        sock = socket.socket(family, socktype, proto)
        sock.settimeout(remaining)
        try:
            sock.connect(sockaddr)
        except OSError as exc:
            sock.close()
            logger.debug("Connecting to %s failed: %s", sockaddr[0], exc)
            last_error = exc
            continue
        return sock

    detail = str(last_error) if last_error else "connection timed out"
    logger.warning("Could not connect to %s: %s", hostname, detail)
    raise UnknownError(hostname, detail)


def _build_context(mode: ConnectionMode) -> SSL.Context:
    context = SSL.Context(SSL.TLS_CLIENT_METHOD)
    if mode is ConnectionMode.VERIFY:
        context.set_verify(SSL.VERIFY_PEER)
        context.set_default_verify_paths()
    else:
        context.set_verify(SSL.VERIFY_NONE)
    return context


def _handshake(
    hostname: str,
    sock: socket.socket,
    server_name: bytes | None,
    mode: ConnectionMode,
    deadline: float,
) -> tuple[bytes, ...]:
    connection = SSL.Connection(_build_context(mode), sock)
    if server_name:
        connection.set_tlsext_host_name(server_name)
    connection.set_connect_state()

    handshake_error: SSL.Error | None = None
    try:
        _complete_handshake(hostname, connection, sock, deadline)
    except SSL.Error as exc:
        handshake_error = exc

    # A failed handshake may still have delivered the server's chain,
    # e.g. when the server demands a client certificate.
    peer_chain = connection.get_peer_cert_chain() or []

    if handshake_error is not None:
        detail = describe_ssl_error(handshake_error)
        if not peer_chain:
            if _is_not_tls(handshake_error):
                logger.warning("%s does not speak TLS: %s", hostname, detail)
                raise NoCertificateInstalled(hostname) from handshake_error
            logger.warning("TLS handshake with %s failed: %s", hostname, detail)
            raise UnknownError(hostname, detail) from handshake_error
        if mode is ConnectionMode.VERIFY:
            logger.warning("Certificate verification for %s failed: %s", hostname, detail)
            raise UnknownError(hostname, detail) from handshake_error
        logger.warning("Handshake with %s failed after the chain was received: %s", hostname, detail)

    if not peer_chain:
        raise NoCertificateInstalled(hostname)

    return tuple(crypto.dump_certificate(crypto.FILETYPE_ASN1, cert) for cert in peer_chain)


def _check_host_name(hostname: str, ascii_hostname: str, leaf_der: bytes) -> None:
    """Require the leaf's subject alternative names to cover *hostname*."""
    names = parse_der(leaf_der).domains()
    if is_ip_address(hostname):
        covered = f"IP Address:{ipaddress.ip_address(hostname)}" in names
    else:
        covered = matching.applies(names, ascii_hostname.lower())
    if not covered:
        logger.warning("Certificate for %s does not name the host: %s", hostname, ", ".join(names))
        raise UnknownError(hostname, f"the certificate does not match host `{hostname}`")


def _complete_handshake(hostname: str, connection: SSL.Connection, sock: socket.socket, deadline: float) -> None:
    while True:
        try:
            connection.do_handshake()
            return
        except (SSL.WantReadError, SSL.WantWriteError) as exc:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise UnknownError(hostname, "TLS handshake timed out") from None
            if isinstance(exc, SSL.WantReadError):
                ready = select.select([sock], [], [], remaining)[0]
            else:
                ready = select.select([], [sock], [], remaining)[1]
            if not ready:
                raise UnknownError(hostname, "TLS handshake timed out") from None


def describe_ssl_error(error: SSL.Error) -> str:
    """Flatten pyOpenSSL's error tuple list into one line."""
    if isinstance(error, SSL.SysCallError):
        return str(error.args[1]) if len(error.args) > 1 else str(error)
    reasons = error.args[0] if error.args else None
    if isinstance(reasons, list) and reasons:
        return "; ".join(str(entry[-1]) for entry in reasons)
    return str(error) or type(error).__name__


def _is_not_tls(error: SSL.Error) -> bool:
    if isinstance(error, SSL.SysCallError):
        # (-1, 'Unexpected EOF'): the peer closed instead of answering the ClientHello
        return bool(error.args) and error.args[0] == -1
    detail = describe_ssl_error(error).lower()
    return any(reason in detail for reason in _NOT_TLS_REASONS)
