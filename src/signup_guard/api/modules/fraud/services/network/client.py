import logging
from dataclasses import dataclass
from time import monotonic

import httpx

from signup_guard.settings import Config

logger = logging.getLogger(__name__)

HOSTING_MARKERS = (
    "hosting",
    "data center",
    "datacenter",
    "cloud",
    "colo",
    "server",
    "amazon",
    "google llc",
    "microsoft",
    "digitalocean",
    "ovh",
    "hetzner",
    "linode",
)
VPN_MARKERS = ("vpn", "private internet access", "nordvpn", "expressvpn", "mullvad")
PROXY_MARKERS = ("proxy",)


def looks_like_hosting_provider(org: str | None) -> bool:
    if not org:
        return False
    marker = org.lower()
    return any(item in marker for item in HOSTING_MARKERS)


def _parse_float(value: object) -> float | None:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _parse_str(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass(slots=True)
class IpGeoResult:
    country_iso: str | None
    city: str | None
    organisation: str | None
    is_hosting: bool
    timezone: str | None
    latitude: float | None
    longitude: float | None


_GEO_CACHE_MAX_SIZE = 4096


class IpGeoClient:
    def __init__(self, client: httpx.AsyncClient, config: Config):
        self._enabled = config.fraud.ip_geolocation_enabled
        self._client = client
        self._base_url = config.fraud.ip_geolocation_base_url.rstrip("/")
        self._timeout = config.fraud.ip_geolocation_timeout_seconds
        self._cache_ttl_seconds = config.fraud.ip_geolocation_cache_ttl_seconds
        self._cache: dict[str, tuple[float, IpGeoResult]] = {}

    async def resolve(self, ip: str) -> IpGeoResult | None:
        if not self._enabled:
            return None

        now = monotonic()
        if self._cache_ttl_seconds > 0:
            cached = self._cache.get(ip)
            if cached and cached[0] > now:
                return cached[1]

        url = f"{self._base_url}/{ip}/json/"
        try:
            response = await self._client.get(
                url,
                timeout=self._timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to resolve IP geolocation", extra={"ip": ip})
            logger.debug("IP geolocation lookup failed: %s", exc)
            return None

        if not isinstance(data, dict) or data.get("error"):
            return None

        country_iso = _parse_str(data.get("country_code"))
        org = _parse_str(data.get("org"))

        result = IpGeoResult(
            country_iso=country_iso.upper() if country_iso else None,
            city=_parse_str(data.get("city")),
            organisation=org,
            is_hosting=looks_like_hosting_provider(org),
            timezone=_parse_str(data.get("timezone")),
            latitude=_parse_float(data.get("latitude")),
            longitude=_parse_float(data.get("longitude")),
        )

        if self._cache_ttl_seconds > 0:
            self._store(ip, result, now)

        return result

    def _store(self, ip: str, result: IpGeoResult, now: float) -> None:
        if len(self._cache) >= _GEO_CACHE_MAX_SIZE:
            stale = [k for k, (exp, _) in self._cache.items() if exp <= now]
            for k in stale:
                del self._cache[k]
            if len(self._cache) >= _GEO_CACHE_MAX_SIZE:
                oldest = min(self._cache, key=lambda k: self._cache[k][0])
                del self._cache[oldest]
        self._cache[ip] = (now + self._cache_ttl_seconds, result)


__all__ = (
    "HOSTING_MARKERS",
    "PROXY_MARKERS",
    "VPN_MARKERS",
    "IpGeoClient",
    "IpGeoResult",
    "looks_like_hosting_provider",
)
