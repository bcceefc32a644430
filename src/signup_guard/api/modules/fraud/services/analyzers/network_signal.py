from signup_guard.api.modules.fraud.services.analyzers.base import (
    AnalysisContext,
    CategoryResult,
    RiskAnalyzer,
)
from signup_guard.settings import Config

SIGNAL_RULES = (
    ("is_vpn", 25, "VPN_USAGE", "VPN detected - require identity verification"),
    ("is_proxy", 30, "PROXY_USAGE", "Proxy detected - high fraud risk"),
    (
        "is_tor",
        50,
        "TOR_USAGE",
        "Tor network detected - block or require extensive verification",
    ),
    ("is_hosting", 20, "HOSTING_IP", "Hosting provider address - possible automation"),
)
HIGH_RISK_COUNTRY_WEIGHT = 15


class NetworkSignalAnalyzer(RiskAnalyzer):
    category = "network_signal"

    def __init__(self, config: Config):
        self._high_risk_countries = {
            item.upper() for item in config.fraud.high_risk_countries
        }

    async def analyze(self, ctx: AnalysisContext) -> CategoryResult:
        result = CategoryResult()
        network = ctx.signature.network

        for attribute, weight, flag, recommendation in SIGNAL_RULES:
            if getattr(network, attribute):
                result.add(weight, flag, recommendation)

        country = network.country_iso
        if country and country.upper() in self._high_risk_countries:
            result.add(
                HIGH_RISK_COUNTRY_WEIGHT,
                f"HIGH_RISK_COUNTRY_{country.upper()}",
                "Registration from high-risk country",
            )

        return result


__all__ = ("NetworkSignalAnalyzer",)
