import asyncio
import logging
from dataclasses import dataclass, field
from ipaddress import ip_network

from signup_guard.api.modules.fraud.services.core.utils import clamp_score
from signup_guard.api.modules.fraud.services.network.client import (
    PROXY_MARKERS,
    VPN_MARKERS,
    IpGeoClient,
    IpGeoResult,
    looks_like_hosting_provider,
)
from signup_guard.api.modules.fraud.services.network.common import (
    is_public_ip,
    parse_ip,
)
from signup_guard.api.modules.fraud.services.network.threat_intel import (
    ReverseDnsResolver,
    ThreatIntelClient,
    ThreatIntelResult,
)
from signup_guard.settings import Config

logger = logging.getLogger(__name__)

TOR_HOSTNAME_MARKERS = ("tor-exit", "torexit", "tor.exit", ".tor.")

THREAT_WEIGHTS = {
    "vpn": 30,
    "proxy": 25,
    "tor": 50,
    "hosting": 15,
}


@dataclass(slots=True)
class NetworkClassification:
    ip_address: str | None
    ip_version: int = 4
    is_vpn: bool = False
    is_proxy: bool = False
    is_tor: bool = False
    is_hosting: bool = False
    is_malicious: bool = False
    threat_score: int = 0
    threat_sources: list[str] = field(default_factory=list)
    country_iso: str | None = None
    city: str | None = None
    timezone: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    organisation: str | None = None
    hostname: str | None = None

    def as_record_values(self) -> dict[str, object]:
        return {
            "ip_version": self.ip_version,
            "is_vpn": self.is_vpn,
            "is_proxy": self.is_proxy,
            "is_tor": self.is_tor,
            "is_hosting": self.is_hosting,
            "is_malicious": self.is_malicious,
            "threat_score": self.threat_score,
            "threat_sources": list(self.threat_sources),
            "country_iso": self.country_iso,
            "city": self.city,
            "timezone": self.timezone,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "organisation": self.organisation,
            "hostname": self.hostname,
        }


class NetworkClassifier:
    """Combines geolocation, threat intelligence and reverse DNS.

    Every outbound lookup is optional. A failed or disabled lookup leaves
    the local heuristic (configured Tor exits and VPN ranges, organisation
    and hostname markers) as the only source.
    """

    def __init__(
        self,
        config: Config,
        geo_client: IpGeoClient,
        threat_intel: ThreatIntelClient,
        reverse_dns: ReverseDnsResolver,
    ):
        self._geo_client = geo_client
        self._threat_intel = threat_intel
        self._reverse_dns = reverse_dns
        self._tor_exits = {
            str(parsed)
            for parsed in map(parse_ip, config.fraud.tor_exit_addresses)
            if parsed
        }
        self._vpn_networks = []
        for value in config.fraud.vpn_networks:
            try:
                self._vpn_networks.append(ip_network(value, strict=False))
            except ValueError:
                logger.warning("Ignoring invalid VPN network %r", value)

    async def classify(self, ip: str | None) -> NetworkClassification:
        parsed = parse_ip(ip)
        if parsed is None:
            return NetworkClassification(ip_address=ip)

        result = NetworkClassification(
            ip_address=str(parsed),
            ip_version=parsed.version,
        )

        intel = None
        if is_public_ip(parsed):
            geo, intel, hostname = await asyncio.gather(
                self._safe(self._geo_client.resolve(result.ip_address)),
                self._safe(self._threat_intel.lookup(result.ip_address)),
                self._safe(self._reverse_dns.resolve(result.ip_address)),
            )
            self._apply_geo(result, geo)
            self._apply_threat_intel(result, intel)
            result.hostname = hostname

        self._apply_heuristics(result, parsed)
        if intel is None or intel.risk is None:
            result.threat_score = clamp_score(
                sum(
                    weight
                    for name, weight in THREAT_WEIGHTS.items()
                    if getattr(result, f"is_{name}")
                )
            )
        return result

    @staticmethod
    async def _safe(awaitable):  # noqa: ANN001, ANN205
        try:
            return await awaitable
        except Exception:  # noqa: BLE001
            logger.exception("Network lookup failed")
            return None

    @staticmethod
    def _apply_geo(result: NetworkClassification, geo: IpGeoResult | None) -> None:
        if geo is None:
            return
        result.country_iso = geo.country_iso
        result.city = geo.city
        result.timezone = geo.timezone
        result.latitude = geo.latitude
        result.longitude = geo.longitude
        result.organisation = geo.organisation
        if geo.is_hosting:
            result.is_hosting = True
        result.threat_sources.append("geolocation")

    @staticmethod
    def _apply_threat_intel(
        result: NetworkClassification,
        intel: ThreatIntelResult | None,
    ) -> None:
        if intel is None:
            return
        result.is_vpn = result.is_vpn or intel.is_vpn
        result.is_proxy = result.is_proxy or intel.is_proxy
        result.is_tor = result.is_tor or intel.is_tor
        result.is_hosting = result.is_hosting or intel.is_hosting
        result.is_malicious = result.is_malicious or intel.is_malicious
        if intel.risk is not None:
            result.threat_score = clamp_score(intel.risk)
        result.threat_sources.append(intel.source)

    def _apply_heuristics(self, result: NetworkClassification, parsed) -> None:  # noqa: ANN001
        if result.ip_address in self._tor_exits:
            result.is_tor = True
            result.threat_sources.append("tor_exit_list")

        if any(
            parsed in network
            for network in self._vpn_networks
            if network.version == parsed.version
        ):
            result.is_vpn = True
            result.threat_sources.append("vpn_ranges")

        org = (result.organisation or "").lower()
        hostname = (result.hostname or "").lower()
        markers = f"{org} {hostname}"
        if any(item in markers for item in VPN_MARKERS):
            result.is_vpn = True
        if any(item in markers for item in PROXY_MARKERS):
            result.is_proxy = True
        if any(item in hostname for item in TOR_HOSTNAME_MARKERS):
            result.is_tor = True
        if looks_like_hosting_provider(org) or looks_like_hosting_provider(hostname):
            result.is_hosting = True


__all__ = ("NetworkClassification", "NetworkClassifier", "THREAT_WEIGHTS")
