from signup_guard.api.modules.fraud.services.analyzers.base import (
    AnalysisContext,
    CategoryResult,
    RiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.network.user_agent import matches_bot_pattern
from signup_guard.settings import Config

BOT_AGENT_WEIGHT = 40
MISSING_HEADER_WEIGHT = 10
MISSING_HEADER_CAP = 30
COOKIES_DISABLED_WEIGHT = 15
NO_MOUSE_INTERACTION_WEIGHT = 25
RAPID_TYPING_WEIGHT = 20


class BehavioralRiskAnalyzer(RiskAnalyzer):
    category = "behavioral"

    def __init__(self, config: Config):
        self._typing_speed_ceiling = config.fraud.typing_speed_ceiling

    async def analyze(self, ctx: AnalysisContext) -> CategoryResult:
        result = CategoryResult()
        signature = ctx.signature

        if matches_bot_pattern(signature.user_agent):
            result.add(BOT_AGENT_WEIGHT, "BOT_USER_AGENT", "Bot-like user agent detected")

        missing = signature.missing_headers
        if missing:
            flag = "MISSING_HEADERS_" + "_".join(
                name.upper().replace("-", "_") for name in missing
            )
            result.add(
                min(MISSING_HEADER_WEIGHT * len(missing), MISSING_HEADER_CAP),
                flag,
                "Missing standard browser headers",
            )

        device = ctx.device
        if device is None:
            return result

        if device.cookies_enabled is False:
            result.add(
                COOKIES_DISABLED_WEIGHT,
                "COOKIES_DISABLED",
                "Cookies disabled - unusual for normal users",
            )

        if device.mouse_movements == 0:
            result.add(
                NO_MOUSE_INTERACTION_WEIGHT,
                "NO_MOUSE_INTERACTION",
                "No mouse interaction detected",
            )

        if device.typing_speed is not None and device.typing_speed > self._typing_speed_ceiling:
            result.add(
                RAPID_TYPING_WEIGHT,
                "RAPID_TYPING",
                "Unusually fast typing speed detected",
            )

        return result


__all__ = ("BehavioralRiskAnalyzer",)
