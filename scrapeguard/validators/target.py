"""Target identity normalization.

Turns a caller-supplied URL into the canonical key used for caching and
logging. No DNS lookups are made; literal private addresses and
``localhost`` are rejected outright.
"""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlsplit, urlunsplit

from scrapeguard.errors import ValidationError

# Private/reserved IP networks
_PRIVATE_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]

_ALLOWED_SCHEMES = {"http", "https"}

# Company sub-pages that resolve to the same LinkedIn entity
_LINKEDIN_SECTIONS = re.compile(r"/(mycompany|about|overview)/?$")


def is_private_ip(host: str) -> bool:
    """True if *host* is a literal IP in a private/reserved range."""
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(addr in network for network in _PRIVATE_NETWORKS)


def normalize_target(raw: str) -> str:
    """Return the canonical form of *raw* or raise ``ValidationError``."""
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("Target URL is required")

    candidate = raw.strip()
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", candidate):
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        raise ValidationError(f"Malformed target URL: {exc}", target=raw) from None

    scheme = parts.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        raise ValidationError(f"Unsupported scheme '{scheme}'", target=raw)

    host = (parts.hostname or "").lower()
    if not host or " " in host:
        raise ValidationError("Target URL has no host", target=raw)
    if host == "localhost" or is_private_ip(host):
        raise ValidationError("Target resolves to a private address", target=raw)

    netloc = f"[{host}]" if ":" in host else host
    if port is not None and (scheme, port) not in (("http", 80), ("https", 443)):
        netloc = f"{netloc}:{port}"

    path = parts.path
    if host == "linkedin.com" or host.endswith(".linkedin.com"):
        path = _LINKEDIN_SECTIONS.sub("", path)
    path = path.rstrip("/")

    return urlunsplit((scheme, netloc, path, parts.query, ""))
