from signup_guard.api.modules.fraud.services.analyzers.base import (
    AnalysisContext,
    CategoryResult,
    RiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.registry import (
    NetworkReputationTracker,
    SignupLedger,
)
from signup_guard.settings import Config

IP_REUSE_WEIGHT = 50
THREAT_SCORE_WEIGHT = 0.6
MALICIOUS_WEIGHT = 40
RAPID_CREATION_WEIGHT = 40


class NetworkRiskAnalyzer(RiskAnalyzer):
    """Address history: account reuse, blacklist state, threat score, signup velocity."""

    category = "network"

    def __init__(
        self,
        config: Config,
        tracker: NetworkReputationTracker,
        ledger: SignupLedger,
    ):
        self._config = config
        self._tracker = tracker
        self._ledger = ledger

    async def analyze(self, ctx: AnalysisContext) -> CategoryResult:
        result = CategoryResult()
        ip = ctx.signature.ip_address
        if not ip:
            return result

        fraud = self._config.fraud
        record = await self._tracker.get(ip)

        if record is not None and record.is_blacklisted:
            result.score = 100
            result.flags.append("IP_BLACKLISTED")
            result.recommendations.append("Address is blacklisted - block immediately")
            return result

        if record is not None and record.unique_accounts > fraud.max_accounts_per_address:
            result.add(
                IP_REUSE_WEIGHT,
                f"IP_REUSE_{record.unique_accounts}_ACCOUNTS",
                "Address used by many accounts - monitor closely",
            )

        network = ctx.signature.network
        result.score = min(100, round(result.score + network.threat_score * THREAT_SCORE_WEIGHT))

        if network.is_vpn:
            result.flags.append("VPN_DETECTED")
            result.recommendations.append(
                "VPN usage detected - require additional verification"
            )
        if network.is_proxy:
            result.flags.append("PROXY_DETECTED")
            result.recommendations.append("Proxy usage detected - high risk")
        if network.is_malicious:
            result.add(
                MALICIOUS_WEIGHT,
                "MALICIOUS_IP",
                "Address flagged as malicious - block immediately",
            )

        recent = await self._ledger.count_from_address(
            ip, fraud.rapid_creation_window_seconds
        )
        if recent > fraud.rapid_creation_max_accounts:
            result.add(
                RAPID_CREATION_WEIGHT,
                f"RAPID_CREATION_{recent}_ACCOUNTS",
                "Multiple accounts created rapidly from this address",
            )

        return result


__all__ = ("NetworkRiskAnalyzer",)
