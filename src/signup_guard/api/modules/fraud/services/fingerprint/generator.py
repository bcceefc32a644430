import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from signup_guard.api.modules.fraud.schema import DeviceAttributes, Severity
from signup_guard.api.modules.fraud.services.core import (
    FingerprintUnavailableError,
    clamp_score,
    hash_signals,
    severity_for_score,
)
from signup_guard.api.modules.fraud.services.network.classifier import (
    NetworkClassification,
    NetworkClassifier,
)
from signup_guard.api.modules.fraud.services.network.common import (
    RequestIpResolver,
    normalize_headers,
)
from signup_guard.api.modules.fraud.services.network.headers_utils import (
    accepts_gzip,
    extract_primary_language,
    missing_standard_headers,
    parse_structured_flag,
    unquote_header,
)
from signup_guard.api.modules.fraud.services.network.user_agent import (
    has_mobile_ua,
    is_bot_like_ua,
    platform_family_from_client_hints,
    platform_family_from_navigator,
    platform_family_from_user_agent,
)
from signup_guard.services.logging import mask_fingerprint
from signup_guard.settings import Config

logger = logging.getLogger(__name__)

ADVANCED_HEADERS = {
    "connection": "connection",
    "arch": "sec-ch-ua-arch",
    "bitness": "sec-ch-ua-bitness",
    "model": "sec-ch-ua-model",
    "dnt": "dnt",
}

NETWORK_FLAG_WEIGHTS = (
    ("is_vpn", "VPN_CONNECTION", 30),
    ("is_proxy", "PROXY_CONNECTION", 25),
    ("is_tor", "TOR_CONNECTION", 50),
    ("is_hosting", "HOSTING_PROVIDER", 15),
)
HIGH_RISK_COUNTRY_WEIGHT = 20
BOT_AGENT_WEIGHT = 30
MISSING_HEADER_WEIGHT = 10
MISSING_HEADER_CAP = 30
PLATFORM_MISMATCH_WEIGHT = 20


@dataclass(slots=True)
class DeviceSignature:
    fingerprint: str
    basic_hash: str
    advanced_hash: str
    ip_address: str | None
    user_agent: str
    platform: str
    language: str | None
    is_mobile: bool
    headers: dict[str, str]
    network: NetworkClassification
    device: DeviceAttributes | None = None
    preliminary_score: int = 0
    preliminary_severity: Severity = "LOW"
    preliminary_flags: list[str] = field(default_factory=list)
    missing_headers: list[str] = field(default_factory=list)


def platform_hint(headers: Mapping[str, str], user_agent: str) -> str:
    hinted = unquote_header(headers.get("sec-ch-ua-platform")).lower()
    if hinted:
        return hinted
    return platform_family_from_user_agent(user_agent) or ""


def mobile_hint(headers: Mapping[str, str], user_agent: str) -> bool:
    hinted = parse_structured_flag(headers.get("sec-ch-ua-mobile"))
    if hinted is not None:
        return hinted
    return has_mobile_ua(user_agent)


def basic_signals(headers: Mapping[str, str], ip: str | None) -> dict[str, object]:
    """Signals that stay the same whichever channel the attempt came through."""
    user_agent = headers.get("user-agent", "").strip()
    return {
        "ip": ip or "",
        "ua": user_agent,
        "language": extract_primary_language(headers.get("accept-language")) or "",
        "gzip": accepts_gzip(headers.get("accept-encoding")),
        "platform": platform_hint(headers, user_agent),
        "mobile": mobile_hint(headers, user_agent),
    }


def advanced_signals(basic: Mapping[str, object], headers: Mapping[str, str]) -> dict[str, object]:
    signals = dict(basic)
    for key, header in ADVANCED_HEADERS.items():
        signals[key] = unquote_header(headers.get(header)).lower()
    return signals


def has_platform_mismatch(
    user_agent: str,
    headers: Mapping[str, str],
    device: DeviceAttributes | None,
) -> bool:
    ua_family = platform_family_from_user_agent(user_agent)
    if not ua_family:
        return False

    ch_platform = unquote_header(headers.get("sec-ch-ua-platform"))
    ch_family = platform_family_from_client_hints(ch_platform) if ch_platform else None
    if ch_family and ch_family != ua_family:
        return True

    if device and device.platform:
        nav_family = platform_family_from_navigator(device.platform)
        # Android browsers report a Linux navigator platform
        if ua_family == "android" and nav_family == "linux":
            return False
        if nav_family and nav_family != ua_family:
            return True

    return False


class FingerprintGenerator:
    def __init__(
        self,
        config: Config,
        ip_resolver: RequestIpResolver,
        classifier: NetworkClassifier,
    ):
        self._high_risk_countries = {
            item.upper() for item in config.fraud.high_risk_countries
        }
        self._ip_resolver = ip_resolver
        self._classifier = classifier

    def key_for(
        self,
        headers: Mapping[str, str] | None,
        connection_ip: str | None,
    ) -> str:
        """Fingerprint key without the network lookups."""
        normalized = normalize_headers(headers)
        ip = self._ip_resolver.resolve(normalized, connection_ip)
        return hash_signals(basic_signals(normalized, ip))

    async def generate(
        self,
        headers: Mapping[str, str] | None,
        connection_ip: str | None,
        device: DeviceAttributes | None = None,
    ) -> DeviceSignature:
        normalized = normalize_headers(headers)
        ip = self._ip_resolver.resolve(normalized, connection_ip)
        user_agent = normalized.get("user-agent", "").strip()
        if not ip and not user_agent:
            raise FingerprintUnavailableError()

        basic = basic_signals(normalized, ip)
        basic_hash = hash_signals(basic)
        advanced_hash = hash_signals(advanced_signals(basic, normalized))

        network = await self._classifier.classify(ip)
        signature = DeviceSignature(
            fingerprint=basic_hash,
            basic_hash=basic_hash,
            advanced_hash=advanced_hash,
            ip_address=ip,
            user_agent=user_agent,
            platform=str(basic["platform"]),
            language=str(basic["language"]) or None,
            is_mobile=bool(basic["mobile"]),
            headers=normalized,
            network=network,
            device=device,
            missing_headers=missing_standard_headers(normalized),
        )
        self._score(signature)

        logger.debug(
            "Fingerprint generated",
            extra={
                "fingerprint": mask_fingerprint(signature.fingerprint),
                "ip": ip,
                "preliminary_score": signature.preliminary_score,
            },
        )
        return signature

    def _score(self, signature: DeviceSignature) -> None:
        score = 0
        flags: list[str] = []
        network = signature.network

        for attribute, flag, weight in NETWORK_FLAG_WEIGHTS:
            if getattr(network, attribute):
                score += weight
                flags.append(flag)

        if network.country_iso and network.country_iso in self._high_risk_countries:
            score += HIGH_RISK_COUNTRY_WEIGHT
            flags.append("HIGH_RISK_COUNTRY")

        if is_bot_like_ua(signature.user_agent):
            score += BOT_AGENT_WEIGHT
            flags.append("BOT_LIKE_AGENT")

        if signature.missing_headers:
            score += min(
                MISSING_HEADER_WEIGHT * len(signature.missing_headers),
                MISSING_HEADER_CAP,
            )
            flags.extend(
                f"MISSING_HEADER_{name.upper().replace('-', '_')}"
                for name in signature.missing_headers
            )

        if has_platform_mismatch(signature.user_agent, signature.headers, signature.device):
            score += PLATFORM_MISMATCH_WEIGHT
            flags.append("AGENT_PLATFORM_MISMATCH")

        signature.preliminary_score = clamp_score(score)
        signature.preliminary_severity = severity_for_score(signature.preliminary_score)
        signature.preliminary_flags = flags


__all__ = (
    "DeviceSignature",
    "FingerprintGenerator",
    "advanced_signals",
    "basic_signals",
    "has_platform_mismatch",
)
