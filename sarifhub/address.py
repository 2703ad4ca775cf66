"""Parsing of user-supplied hub addresses."""

from typing import Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict

from .core.exceptions import InvalidAddressError

HTTP_SCHEME = "http"
HTTPS_SCHEME = "https"

HubScheme = Literal["http", "https"]

_URL_PREFIXES = ("http://", "https://")
_PORT_SEP = ":"


class HubAddress(BaseModel):
    """A parsed hub address.

    Like a simplified URL, but the scheme is optional: `None` means the
    scheme is unknown and must be probed when connecting.
    """

    model_config = ConfigDict(frozen=True)

    scheme: HubScheme | None = None
    hostname: str
    port: int | None = None

    @property
    def host_and_port(self) -> str:
        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        if self.port is None:
            return host
        return f"{host}{_PORT_SEP}{self.port}"

    def __str__(self) -> str:
        if self.scheme is None:
            return self.host_and_port
        return f"{self.scheme}://{self.host_and_port}"


def _parse_port(port_string: str, address: str) -> int:
    try:
        return int(port_string)
    except ValueError:
        raise InvalidAddressError(
            f"Hub address '{address}' has an invalid port number '{port_string}'"
        ) from None


def parse_hub_address(address: str) -> HubAddress:
    """Parse `http[s]://host[:port]` or a bare `host[:port]` string.

    Raises:
        InvalidAddressError: if the host name is empty or the port is not an integer
    """
    text = address.strip()
    if text.lower().startswith(_URL_PREFIXES):
        parts = urlsplit(text)
        scheme = parts.scheme.lower()
        hostname = parts.hostname or ""
        try:
            port = parts.port
        except ValueError:
            # Out-of-range ports surface later as a connection failure.
            port = _parse_port(parts.netloc.rpartition(_PORT_SEP)[2], address)
        if not hostname:
            raise InvalidAddressError(f"Hub address '{address}' has no host name")
        return HubAddress(scheme=scheme, hostname=hostname, port=port)

    if text.startswith("["):
        # Bracketed IPv6 literal: [::1]:7340
        hostname, bracket, rest = text[1:].partition("]")
        if not bracket or (rest and not rest.startswith(_PORT_SEP)):
            raise InvalidAddressError(f"Hub address '{address}' has a malformed IPv6 host")
        sep, port_string = rest[:1], rest[1:]
    else:
        hostname, sep, port_string = text.partition(_PORT_SEP)
    if not hostname:
        raise InvalidAddressError(f"Hub address '{address}' has no host name")
    port = _parse_port(port_string, address) if sep else None
    return HubAddress(hostname=hostname, port=port)


def format_user_credential_key(address: HubAddress | str, user_name: str) -> str:
    """Format the lookup key a secret store uses for a hub user's password."""
    if isinstance(address, str):
        address = parse_hub_address(address)
    return f"{user_name}@{address}"
