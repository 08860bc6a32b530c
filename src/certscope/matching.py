"""Host name coverage rules for certificate domain lists.

Two relations are provided and they point in opposite directions:

* ``applies`` asks whether a certificate *covers* a target host, honouring
  ``*.`` wildcard entries.
* ``contains_domain`` asks whether a domain *is or sits beneath* one of the
  certificate's entries.

A wildcard entry only covers
a host that has no more dots than the entry itself, so ``*.example.com``
covers ``a.example.com`` but never ``a.b.example.com``.
"""

from __future__ import annotations

from collections.abc import Iterable

WILDCARD_PREFIX = "*."


def wildcard_covers(candidate: str, host: str) -> bool:
    """Return True if *candidate* equals *host* or is a wildcard covering it."""
    if candidate == host:
        return True
    if not candidate.startswith(WILDCARD_PREFIX):
        return False

    suffix = candidate[len(WILDCARD_PREFIX) :]
    return candidate.count(".") >= host.count(".") and host.endswith(suffix)


def applies(certificate_domains: Iterable[str], target_host: str) -> bool:
    """Return True if any entry in *certificate_domains* covers *target_host*."""
    return any(wildcard_covers(candidate, target_host) for candidate in certificate_domains)


def contains_domain(certificate_domains: Iterable[str], domain: str) -> bool:
    """Return True if *domain* equals an entry or is a subdomain of one."""
    for candidate in certificate_domains:
        if candidate == domain:
            return True
        if domain.endswith(f".{candidate}"):
            return True
    return False
