"""Host/port extraction from user-supplied host names and URLs."""

from __future__ import annotations

import ipaddress
import re

from pydantic import BaseModel, ConfigDict

from certscope.exceptions import InvalidHostInput

DEFAULT_PORT = 443

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_SUFFIX_RE = re.compile(r"[/?#]")


class HostLocation(BaseModel):
    """A normalized host name and the port to contact it on."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = DEFAULT_PORT

    @property
    def is_ip(self) -> bool:
        """True when ``host`` is an IPv4 or IPv6 literal."""
        return is_ip_address(self.host)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def parse_host(value: str, default_port: int = DEFAULT_PORT) -> HostLocation:
    """Extract the host and port from a bare host name or a URL.

    The scheme, userinfo, path, query and fragment are discarded. A trailing
    ``:port`` is honoured when it is a valid port number; otherwise
    *default_port* is used. Host labels are returned verbatim, so
    internationalized names pass through untouched.

    Args:
        value: Host name (``example.com``, ``example.com:8443``) or URL
            (``https://example.com/some/path?q=1``).
        default_port: Port used when *value* does not name one.

    Returns:
        The extracted ``HostLocation``.

    Raises:
        InvalidHostInput: If *value* is empty or contains no host segment.
    """
    if value is None or not value.strip():
        raise InvalidHostInput(value or "")

    remainder = _SCHEME_RE.sub("", value.strip(), count=1)
    if remainder.startswith("//"):
        remainder = remainder[2:]

    authority = _SUFFIX_RE.split(remainder, maxsplit=1)[0]
    authority = authority.rpartition("@")[2]

    host, port_text = _split_authority(value, authority)
    if not host:
        raise InvalidHostInput(value, "no host segment found")

    return HostLocation(host=host, port=_parse_port(port_text, default_port))


def _split_authority(value: str, authority: str) -> tuple[str, str]:
    if authority.startswith("["):
        end = authority.find("]")
        if end == -1:
            raise InvalidHostInput(value, "unterminated IPv6 literal")
        rest = authority[end + 1 :]
        return authority[1:end], rest[1:] if rest.startswith(":") else ""

    host, sep, port_text = authority.rpartition(":")
    if not sep:
        return authority, ""
    if ":" in host:
        # Unbracketed IPv6 literal
        return authority, ""
    return host, port_text


def _parse_port(port_text: str, default_port: int) -> int:
    if port_text.isdigit() and port_text.isascii():
        port = int(port_text)
        if 0 < port < 65536:
            return port
    return default_port
