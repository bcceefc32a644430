import re
from collections.abc import Iterator, Mapping
from ipaddress import IPv4Address, IPv6Address, ip_address

from signup_guard.settings import Config

# Single-valued headers, most trusted first.
_PRIORITY_HEADERS = ("cf-connecting-ip", "true-client-ip", "x-real-ip")
_TRAILING_HEADERS = ("x-client-ip",)
_FORWARDED_FOR_RE = re.compile(r"for\s*=\s*\"?(?P<value>[^;,\"]+)\"?", re.IGNORECASE)


def normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    return {str(k).lower(): str(v) for k, v in headers.items()}


def parse_ip(value: str | None) -> IPv4Address | IPv6Address | None:
    if not value:
        return None

    candidate = value.strip().strip('"')
    if candidate.startswith("["):
        candidate = candidate[1:].split("]", 1)[0]
    elif candidate.count(":") == 1:
        # IPv4 with a port
        candidate = candidate.split(":", 1)[0]
    try:
        return ip_address(candidate)
    except ValueError:
        return None


def normalize_ip(value: str | None) -> str | None:
    if not value:
        return None
    parsed = parse_ip(value.split(",", 1)[0])
    return str(parsed) if parsed else None


def is_public_ip(value: IPv4Address | IPv6Address) -> bool:
    return not (
        value.is_private
        or value.is_loopback
        or value.is_link_local
        or value.is_reserved
        or value.is_multicast
        or value.is_unspecified
    )


def _forwarded_candidates(headers: Mapping[str, str]) -> Iterator[str]:
    for header in _PRIORITY_HEADERS:
        value = headers.get(header)
        if value:
            yield value

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        yield from (item for item in forwarded_for.split(",") if item.strip())

    for header in _TRAILING_HEADERS:
        value = headers.get(header)
        if value:
            yield value

    forwarded = headers.get("forwarded")
    if forwarded:
        yield from (m.group("value") for m in _FORWARDED_FOR_RE.finditer(forwarded))


class RequestIpResolver:
    def __init__(self, config: Config):
        self._trust_forwarded_ip = config.fraud.trust_forwarded_ip

    def resolve(
        self,
        headers: Mapping[str, str] | None,
        connection_ip: str | None,
    ) -> str | None:
        """First public address from the forwarding headers, else the peer."""
        if self._trust_forwarded_ip:
            normalized = normalize_headers(headers)
            for candidate in _forwarded_candidates(normalized):
                parsed = parse_ip(candidate)
                if parsed and is_public_ip(parsed):
                    return str(parsed)

        return normalize_ip(connection_ip)


__all__ = (
    "RequestIpResolver",
    "is_public_ip",
    "normalize_headers",
    "normalize_ip",
    "parse_ip",
)
