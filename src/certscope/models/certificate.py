"""Read-only model of a parsed X.509 certificate."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from certscope import matching, validity
from certscope.exceptions import CertificateParseError
from certscope.hosts import parse_host

if TYPE_CHECKING:
    from certscope.fetcher import Downloader

WEAK_SIGNATURE_SHORT_NAMES = frozenset({"RSA-SHA1"})
WEAK_SIGNATURE_LONG_NAMES = frozenset({"sha1WithRSAEncryption"})


class SslCertificate(BaseModel):
    """Structured view over one certificate.

    ``raw_fields`` keeps the full decoded field set in the layout produced by
    OpenSSL's ``x509_parse`` (``subject``, ``issuer``, ``validFrom_time_t``,
    ``extensions`` ...). The typed fields are derived from it once, at
    construction, by :meth:`from_raw_fields`.
    """

    model_config = ConfigDict(frozen=True)

    subject_common_name: str | None = None
    issuer_common_name: str | None = None
    issuer_organization: str | None = None
    serial_number: str = ""
    subject_alt_names: tuple[str, ...] = ()
    not_before: datetime
    not_after: datetime
    signature_algorithm_short: str = ""
    signature_algorithm_long: str = ""
    raw_fields: dict[str, Any] = Field(default_factory=dict)

    _fingerprint: str = PrivateAttr(default="")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_raw_fields(cls, raw_fields: dict[str, Any]) -> "SslCertificate":
        """Build a certificate from an ``x509_parse``-style field mapping.

        Raises:
            CertificateParseError: If the validity timestamps are missing or
                not numeric.
        """
        subject = raw_fields.get("subject") or {}
        issuer = raw_fields.get("issuer") or {}
        extensions = raw_fields.get("extensions") or {}

        try:
            not_before = datetime.fromtimestamp(int(raw_fields["validFrom_time_t"]), tz=timezone.utc)
            not_after = datetime.fromtimestamp(int(raw_fields["validTo_time_t"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise CertificateParseError(f"Certificate fields lack a usable validity window: {exc}") from exc

        san_text = extensions.get("subjectAltName") or ""
        return cls(
            subject_common_name=_first_value(subject.get("CN")),
            issuer_common_name=_first_value(issuer.get("CN")),
            issuer_organization=_first_value(issuer.get("O")),
            serial_number=str(raw_fields.get("serialNumberHex") or raw_fields.get("serialNumber") or ""),
            subject_alt_names=tuple(entry.replace("DNS:", "") for entry in san_text.split(", ")),
            not_before=not_before,
            not_after=not_after,
            signature_algorithm_short=raw_fields.get("signatureTypeSN") or "",
            signature_algorithm_long=raw_fields.get("signatureTypeLN") or "",
            raw_fields=raw_fields,
        )

    @staticmethod
    def download() -> "Downloader":
        """Return a fresh ``Downloader`` for fluent configuration."""
        from certscope.fetcher import Downloader

        return Downloader()

    @classmethod
    def create_for_host_name(cls, url: str, timeout: float = 30) -> "SslCertificate":
        """Download and return the leaf certificate served for *url*."""
        from certscope.fetcher import Downloader

        return Downloader(timeout=timeout).for_host(url)

    # ------------------------------------------------------------------
    # Fingerprint
    # ------------------------------------------------------------------

    @property
    def fingerprint(self) -> str:
        """Hash of the DER bytes, attached by the downloader (``""`` if unset)."""
        return self._fingerprint

    def attach_fingerprint(self, fingerprint: str) -> None:
        """Set the fingerprint. Allowed exactly once."""
        if self._fingerprint:
            raise ValueError("Fingerprint has already been attached to this certificate")
        self._fingerprint = fingerprint

    # ------------------------------------------------------------------
    # Names and domains
    # ------------------------------------------------------------------

    def domain(self) -> str:
        return self.subject_common_name or ""

    def issuer(self) -> str:
        return self.issuer_common_name or ""

    def organization(self) -> str:
        return self.issuer_organization or ""

    def signature_algorithm(self) -> str:
        return self.signature_algorithm_short

    def additional_domains(self) -> list[str]:
        """SAN entries in certificate order, duplicates and blanks included."""
        return list(self.subject_alt_names)

    def domains(self) -> list[str]:
        """SAN entries deduplicated in first-seen order, blanks removed."""
        return [domain for domain in dict.fromkeys(self.subject_alt_names) if domain]

    def applies_to_url(self, url: str) -> bool:
        """Return True if the certificate covers the host named in *url*."""
        return matching.applies(self.domains(), parse_host(url).host)

    def contains_domain(self, domain: str) -> bool:
        return matching.contains_domain(self.domains(), domain)

    def is_self_signed(self) -> bool:
        return self.issuer() == self.domain()

    def uses_weak_hash(self) -> bool:
        """True for SHA-1 RSA signatures."""
        return (
            self.signature_algorithm_short in WEAK_SIGNATURE_SHORT_NAMES
            or self.signature_algorithm_long in WEAK_SIGNATURE_LONG_NAMES
        )

    # ------------------------------------------------------------------
    # Validity
    # ------------------------------------------------------------------

    def valid_from_date(self) -> datetime:
        return self.not_before

    def expiration_date(self) -> datetime:
        return self.not_after

    def is_expired(self, now: datetime | None = None) -> bool:
        return validity.is_expired(self.not_after, now or validity.utcnow())

    def is_valid(self, url: str | None = None, now: datetime | None = None) -> bool:
        """Return True if *now* is inside the validity window.

        When *url* is given the certificate must also apply to its host.
        """
        if not validity.is_within_window(self.not_before, self.not_after, now or validity.utcnow()):
            return False
        if url:
            return self.applies_to_url(url)
        return True

    def is_valid_until(self, deadline: datetime, url: str | None = None, now: datetime | None = None) -> bool:
        """Return True if still valid at *deadline* and valid right now."""
        if validity.as_utc(self.not_after) <= validity.as_utc(deadline):
            return False
        return self.is_valid(url, now=now)

    def days_until_expiration(self, now: datetime | None = None) -> int:
        return validity.days_until(self.not_after, now or validity.utcnow())

    def lifespan_in_days(self) -> int:
        return validity.lifespan_days(self.not_before, self.not_after)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def raw_fields_json(self) -> str:
        return json.dumps(self.raw_fields, default=str, ensure_ascii=False)

    def content_hash(self) -> str:
        """MD5 of :meth:`raw_fields_json`, for change detection.

        Unlike ``fingerprint`` this depends on the decoded fields, not on the
        certificate bytes.
        """
        return hashlib.md5(self.raw_fields_json().encode("utf-8"), usedforsecurity=False).hexdigest()

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        """Flat summary used by the CLI and JSON output."""
        now = now or validity.utcnow()
        return {
            "domain": self.domain(),
            "domains": self.domains(),
            "issuer": self.issuer(),
            "organization": self.organization(),
            "serial_number": self.serial_number,
            "signature_algorithm": self.signature_algorithm(),
            "valid_from": self.not_before.isoformat(),
            "valid_to": self.not_after.isoformat(),
            "days_until_expiration": self.days_until_expiration(now),
            "is_valid": self.is_valid(now=now),
            "is_self_signed": self.is_self_signed(),
            "uses_weak_hash": self.uses_weak_hash(),
            "fingerprint": self.fingerprint,
            "content_hash": self.content_hash(),
        }

    def __str__(self) -> str:
        return self.raw_fields_json()


def _first_value(value: Any) -> str | None:
    """Collapse a possibly multi-valued name attribute to its first entry."""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)) and value:
        return str(value[0])
    return None
