"""Decode DER certificates into ``SslCertificate`` records.

The raw field mapping mirrors what OpenSSL's ``x509_parse`` reports so that
content hashes stay comparable across tools: short attribute names in
``subject``/``issuer``, repeated attributes collapsed into lists, UTCTime
strings plus ``*_time_t`` epoch values, and textual extension values.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID, ExtensionOID, NameOID, SignatureAlgorithmOID

from certscope.exceptions import CertificateParseError
from certscope.models.certificate import SslCertificate

logger = logging.getLogger(__name__)

_NAME_ATTRIBUTES = {
    NameOID.COMMON_NAME: "CN",
    NameOID.COUNTRY_NAME: "C",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
    NameOID.LOCALITY_NAME: "L",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.EMAIL_ADDRESS: "emailAddress",
    NameOID.SERIAL_NUMBER: "serialNumber",
    NameOID.DOMAIN_COMPONENT: "DC",
    NameOID.BUSINESS_CATEGORY: "businessCategory",
    NameOID.JURISDICTION_COUNTRY_NAME: "jurisdictionC",
    NameOID.JURISDICTION_STATE_OR_PROVINCE_NAME: "jurisdictionST",
    NameOID.JURISDICTION_LOCALITY_NAME: "jurisdictionL",
    NameOID.STREET_ADDRESS: "street",
    NameOID.POSTAL_CODE: "postalCode",
    NameOID.USER_ID: "UID",
    NameOID.GIVEN_NAME: "GN",
    NameOID.SURNAME: "SN",
    NameOID.TITLE: "title",
}

# (OpenSSL short name, OpenSSL long name)
_SIGNATURE_NAMES = {
    SignatureAlgorithmOID.RSA_WITH_MD5: ("RSA-MD5", "md5WithRSAEncryption"),
    SignatureAlgorithmOID.RSA_WITH_SHA1: ("RSA-SHA1", "sha1WithRSAEncryption"),
    SignatureAlgorithmOID.RSA_WITH_SHA224: ("RSA-SHA224", "sha224WithRSAEncryption"),
    SignatureAlgorithmOID.RSA_WITH_SHA256: ("RSA-SHA256", "sha256WithRSAEncryption"),
    SignatureAlgorithmOID.RSA_WITH_SHA384: ("RSA-SHA384", "sha384WithRSAEncryption"),
    SignatureAlgorithmOID.RSA_WITH_SHA512: ("RSA-SHA512", "sha512WithRSAEncryption"),
    SignatureAlgorithmOID.RSASSA_PSS: ("RSASSA-PSS", "rsassaPss"),
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: ("ecdsa-with-SHA1", "ecdsa-with-SHA1"),
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: ("ecdsa-with-SHA224", "ecdsa-with-SHA224"),
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: ("ecdsa-with-SHA256", "ecdsa-with-SHA256"),
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: ("ecdsa-with-SHA384", "ecdsa-with-SHA384"),
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: ("ecdsa-with-SHA512", "ecdsa-with-SHA512"),
    SignatureAlgorithmOID.DSA_WITH_SHA1: ("DSA-SHA1", "dsaWithSHA1"),
    SignatureAlgorithmOID.DSA_WITH_SHA256: ("dsa_with_SHA256", "dsa_with_SHA256"),
    SignatureAlgorithmOID.ED25519: ("ED25519", "ED25519"),
    SignatureAlgorithmOID.ED448: ("ED448", "ED448"),
}

_EXTENDED_KEY_USAGES = {
    ExtendedKeyUsageOID.SERVER_AUTH: "TLS Web Server Authentication",
    ExtendedKeyUsageOID.CLIENT_AUTH: "TLS Web Client Authentication",
    ExtendedKeyUsageOID.CODE_SIGNING: "Code Signing",
    ExtendedKeyUsageOID.EMAIL_PROTECTION: "E-mail Protection",
    ExtendedKeyUsageOID.TIME_STAMPING: "Time Stamping",
    ExtendedKeyUsageOID.OCSP_SIGNING: "OCSP Signing",
}

_KEY_USAGES = (
    ("digital_signature", "Digital Signature"),
    ("content_commitment", "Non Repudiation"),
    ("key_encipherment", "Key Encipherment"),
    ("data_encipherment", "Data Encipherment"),
    ("key_agreement", "Key Agreement"),
    ("key_cert_sign", "Certificate Sign"),
    ("crl_sign", "CRL Sign"),
)

_UTCTIME_FORMAT = "%y%m%d%H%M%SZ"


def parse_der(der: bytes) -> SslCertificate:
    """Decode a DER-encoded certificate.

    Raises:
        CertificateParseError: If *der* is not a well-formed certificate.
    """
    try:
        certificate = x509.load_der_x509_certificate(der)
        raw_fields = certificate_fields(certificate)
    except (ValueError, x509.DuplicateExtension, x509.InvalidVersion) as exc:
        raise CertificateParseError(f"Could not decode certificate: {exc}") from exc
    return SslCertificate.from_raw_fields(raw_fields)


def parse_chain(chain: Iterable[bytes]) -> list[SslCertificate]:
    return [parse_der(der) for der in chain]


def certificate_fields(certificate: x509.Certificate) -> dict[str, Any]:
    """Return the ``x509_parse``-style raw field mapping for *certificate*."""
    not_before = certificate.not_valid_before_utc
    not_after = certificate.not_valid_after_utc
    short_name, long_name = signature_names(certificate.signature_algorithm_oid)

    return {
        "name": _oneline(certificate.subject),
        "subject": _name_fields(certificate.subject),
        "issuer": _name_fields(certificate.issuer),
        "version": certificate.version.value,
        "serialNumber": str(certificate.serial_number),
        "serialNumberHex": format(certificate.serial_number, "X"),
        "validFrom": not_before.strftime(_UTCTIME_FORMAT),
        "validTo": not_after.strftime(_UTCTIME_FORMAT),
        "validFrom_time_t": int(not_before.timestamp()),
        "validTo_time_t": int(not_after.timestamp()),
        "signatureTypeSN": short_name,
        "signatureTypeLN": long_name,
        "extensions": _extension_fields(certificate.extensions),
    }


def signature_names(oid: x509.ObjectIdentifier) -> tuple[str, str]:
    """Map a signature algorithm OID to OpenSSL's (short, long) names."""
    if oid in _SIGNATURE_NAMES:
        return _SIGNATURE_NAMES[oid]
    name = _oid_name(oid)
    return name, name


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


def _oid_name(oid: x509.ObjectIdentifier) -> str:
    name = oid._name
    if not name or name == "Unknown OID":
        return oid.dotted_string
    return name


def _attribute_value(attribute: x509.NameAttribute) -> str:
    value = attribute.value
    if isinstance(value, bytes):
        return value.hex()
    return value


def _name_fields(name: x509.Name) -> dict[str, str | list[str]]:
    fields: dict[str, str | list[str]] = {}
    for attribute in name:
        key = _NAME_ATTRIBUTES.get(attribute.oid) or _oid_name(attribute.oid)
        value = _attribute_value(attribute)
        existing = fields.get(key)
        if existing is None:
            fields[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            fields[key] = [existing, value]
    return fields


def _oneline(name: x509.Name) -> str:
    parts = []
    for attribute in name:
        key = _NAME_ATTRIBUTES.get(attribute.oid) or _oid_name(attribute.oid)
        parts.append(f"/{key}={_attribute_value(attribute)}")
    return "".join(parts)


# ---------------------------------------------------------------------------
# Extensions
# ---------------------------------------------------------------------------


def _extension_fields(extensions: x509.Extensions) -> dict[str, str]:
    fields: dict[str, str] = {}
    for extension in extensions:
        formatter = _EXTENSION_FORMATTERS.get(extension.oid, _format_generic)
        fields[_oid_name(extension.oid)] = formatter(extension.value)
    return fields


def _format_general_name(name: x509.GeneralName) -> str:
    if isinstance(name, x509.DNSName):
        return f"DNS:{name.value}"
    if isinstance(name, x509.IPAddress):
        return f"IP Address:{name.value}"
    if isinstance(name, x509.RFC822Name):
        return f"email:{name.value}"
    if isinstance(name, x509.UniformResourceIdentifier):
        return f"URI:{name.value}"
    if isinstance(name, x509.DirectoryName):
        return f"DirName:{_oneline(name.value)}"
    return f"othername:{name.value!r}"


def _format_subject_alt_name(value: x509.SubjectAlternativeName) -> str:
    return ", ".join(_format_general_name(name) for name in value)


def _format_basic_constraints(value: x509.BasicConstraints) -> str:
    text = "CA:TRUE" if value.ca else "CA:FALSE"
    if value.path_length is not None:
        text += f", pathlen:{value.path_length}"
    return text


def _format_key_usage(value: x509.KeyUsage) -> str:
    usages = [label for attribute, label in _KEY_USAGES if getattr(value, attribute)]
    if value.key_agreement:
        if value.encipher_only:
            usages.append("Encipher Only")
        if value.decipher_only:
            usages.append("Decipher Only")
    return ", ".join(usages)


def _format_extended_key_usage(value: x509.ExtendedKeyUsage) -> str:
    return ", ".join(_EXTENDED_KEY_USAGES.get(oid) or _oid_name(oid) for oid in value)


def _colon_hex(data: bytes | None) -> str:
    if not data:
        return ""
    return ":".join(f"{byte:02X}" for byte in data)


def _format_subject_key_identifier(value: x509.SubjectKeyIdentifier) -> str:
    return _colon_hex(value.digest)


def _format_authority_key_identifier(value: x509.AuthorityKeyIdentifier) -> str:
    return _colon_hex(value.key_identifier)


def _format_generic(value: x509.ExtensionType) -> str:
    if isinstance(value, x509.UnrecognizedExtension):
        return value.value.hex()
    try:
        return value.public_bytes().hex()
    except NotImplementedError:
        return str(value)


_EXTENSION_FORMATTERS = {
    ExtensionOID.SUBJECT_ALTERNATIVE_NAME: _format_subject_alt_name,
    ExtensionOID.BASIC_CONSTRAINTS: _format_basic_constraints,
    ExtensionOID.KEY_USAGE: _format_key_usage,
    ExtensionOID.EXTENDED_KEY_USAGE: _format_extended_key_usage,
    ExtensionOID.SUBJECT_KEY_IDENTIFIER: _format_subject_key_identifier,
    ExtensionOID.AUTHORITY_KEY_IDENTIFIER: _format_authority_key_identifier,
}
