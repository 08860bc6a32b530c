"""certscope: retrieve and evaluate the TLS certificates served by remote hosts."""

from __future__ import annotations

from certscope.exceptions import (
    CertificateParseError,
    CertScopeError,
    CouldNotDownloadCertificate,
    HostDoesNotExist,
    InvalidHostInput,
    NoCertificateInstalled,
    UnknownError,
)
from certscope.fetcher import ConnectionMode, Downloader, DownloadResult, FetchResult
from certscope.hosts import HostLocation, parse_host
from certscope.models.certificate import SslCertificate

try:
    from importlib.metadata import version

    __version__ = version("certscope")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "CertScopeError",
    "CertificateParseError",
    "ConnectionMode",
    "CouldNotDownloadCertificate",
    "DownloadResult",
    "Downloader",
    "FetchResult",
    "HostDoesNotExist",
    "HostLocation",
    "InvalidHostInput",
    "NoCertificateInstalled",
    "SslCertificate",
    "UnknownError",
    "parse_host",
]
