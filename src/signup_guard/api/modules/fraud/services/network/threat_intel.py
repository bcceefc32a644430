import asyncio
import logging
import socket
from dataclasses import dataclass

import httpx

from signup_guard.settings import Config

logger = logging.getLogger(__name__)

MALICIOUS_RISK_THRESHOLD = 67


@dataclass(slots=True)
class ThreatIntelResult:
    is_vpn: bool = False
    is_proxy: bool = False
    is_tor: bool = False
    is_hosting: bool = False
    is_malicious: bool = False
    risk: int | None = None
    source: str = "proxycheck"


class ThreatIntelClient:
    """proxycheck.io style lookup: ``{"<ip>": {"proxy": "yes", "type": "VPN", "risk": 66}}``."""

    def __init__(self, client: httpx.AsyncClient, config: Config):
        self._enabled = config.fraud.threat_intel_enabled
        self._client = client
        self._base_url = config.fraud.threat_intel_base_url.rstrip("/")
        self._api_key = config.fraud.threat_intel_api_key
        self._timeout = config.fraud.threat_intel_timeout_seconds

    async def lookup(self, ip: str) -> ThreatIntelResult | None:
        if not self._enabled:
            return None

        params = {"vpn": "1", "risk": "1"}
        if self._api_key:
            params["key"] = self._api_key

        try:
            response = await self._client.get(
                f"{self._base_url}/{ip}",
                params=params,
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Threat intelligence lookup failed", extra={"ip": ip})
            logger.debug("Threat intelligence error: %s", exc)
            return None

        if not isinstance(data, dict) or data.get("status") == "error":
            return None

        entry = data.get(ip)
        if not isinstance(entry, dict):
            return None

        kind = str(entry.get("type") or "").lower()
        is_proxy = str(entry.get("proxy") or "").lower() == "yes"
        try:
            risk = int(entry["risk"]) if "risk" in entry else None
        except (TypeError, ValueError):
            risk = None

        return ThreatIntelResult(
            is_vpn=kind == "vpn",
            is_proxy=is_proxy and kind not in {"vpn", "tor"},
            is_tor=kind == "tor",
            is_hosting=kind in {"hosting", "business"} or "hosting" in kind,
            is_malicious=risk is not None and risk >= MALICIOUS_RISK_THRESHOLD,
            risk=risk,
        )


class ReverseDnsResolver:
    def __init__(self, config: Config):
        self._enabled = config.fraud.reverse_dns_enabled
        self._timeout = config.fraud.reverse_dns_timeout_seconds

    async def resolve(self, ip: str) -> str | None:
        if not self._enabled:
            return None

        loop = asyncio.get_running_loop()
        try:
            host, _ = await asyncio.wait_for(
                loop.getnameinfo((ip, 0), socket.NI_NAMEREQD),
                timeout=self._timeout,
            )
        except (TimeoutError, OSError) as exc:
            logger.debug("Reverse DNS lookup failed for %s: %s", ip, exc)
            return None
        return host.lower() if host else None


__all__ = (
    "MALICIOUS_RISK_THRESHOLD",
    "ReverseDnsResolver",
    "ThreatIntelClient",
    "ThreatIntelResult",
)
