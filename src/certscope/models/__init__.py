"""certscope domain models."""

from certscope.models.certificate import SslCertificate

__all__ = ["SslCertificate"]
