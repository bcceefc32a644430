from dataclasses import dataclass, field
from typing import ClassVar, Literal

from signup_guard.api.modules.fraud.schema import AttemptContext, DeviceAttributes
from signup_guard.api.modules.fraud.services.core import clamp_score
from signup_guard.api.modules.fraud.services.fingerprint import DeviceSignature

Category = Literal["device", "network", "network_signal", "behavioral", "account"]


@dataclass(slots=True)
class AnalysisContext:
    signature: DeviceSignature
    attempt: AttemptContext

    @property
    def device(self) -> DeviceAttributes | None:
        return self.signature.device

    @property
    def signing_in_account(self) -> str | None:
        if self.attempt.attempt_type == "login":
            return self.attempt.account_id
        return None


@dataclass(slots=True)
class CategoryResult:
    score: int = 0
    flags: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    failed: bool = False

    def add(self, weight: float, flag: str, recommendation: str | None = None) -> None:
        self.score = clamp_score(self.score + weight)
        self.flags.append(flag)
        if recommendation:
            self.recommendations.append(recommendation)


class RiskAnalyzer:
    category: ClassVar[Category]

    async def analyze(self, ctx: AnalysisContext) -> CategoryResult:
        raise NotImplementedError


__all__ = ("AnalysisContext", "Category", "CategoryResult", "RiskAnalyzer")
