"""certscope exception hierarchy."""

from __future__ import annotations


class CertScopeError(Exception):
    """Base exception for all certscope errors."""


class InvalidHostInput(CertScopeError):
    """Raised when a host or URL string yields no usable host name.

    Attributes:
        value: The rejected input.
    """

    def __init__(self, value: str, reason: str = "") -> None:
        self.value = value
        message = f"String `{value}` is not a valid host or url."
        if reason:
            message = f"Could not determine host from `{value}`: {reason}"
        super().__init__(message)


class CouldNotDownloadCertificate(CertScopeError):
    """Base for failures while retrieving a certificate from a remote host.

    Attributes:
        hostname: The host that was being contacted.
    """

    def __init__(self, hostname: str, message: str) -> None:
        self.hostname = hostname
        super().__init__(message)


class HostDoesNotExist(CouldNotDownloadCertificate):
    """Raised when the host name cannot be resolved."""

    def __init__(self, hostname: str) -> None:
        super().__init__(hostname, f"The host named `{hostname}` does not exist.")


class NoCertificateInstalled(CouldNotDownloadCertificate):
    """Raised when the endpoint answers but presents no certificate."""

    def __init__(self, hostname: str) -> None:
        super().__init__(hostname, f"Could not find a certificate on host named `{hostname}`.")


class UnknownError(CouldNotDownloadCertificate):
    """Raised for any other connection or handshake failure, timeouts included.

    Attributes:
        detail: The underlying error message.
    """

    def __init__(self, hostname: str, detail: str) -> None:
        self.detail = detail
        super().__init__(
            hostname,
            f"Could not download certificate for host `{hostname}` because {detail}",
        )


class CertificateParseError(CertScopeError):
    """Raised when retrieved certificate bytes cannot be decoded."""
