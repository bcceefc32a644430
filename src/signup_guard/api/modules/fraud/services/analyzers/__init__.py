from signup_guard.api.modules.fraud.services.analyzers.account import (
    AccountContextAnalyzer,
)
from signup_guard.api.modules.fraud.services.analyzers.base import (
    AnalysisContext,
    CategoryResult,
    RiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.analyzers.behavioral import (
    BehavioralRiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.analyzers.device import DeviceRiskAnalyzer
from signup_guard.api.modules.fraud.services.analyzers.engine import (
    ANALYSIS_ERROR_FLAG,
    RiskScoringEngine,
    ScoringOutcome,
)
from signup_guard.api.modules.fraud.services.analyzers.network import (
    NetworkRiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.analyzers.network_signal import (
    NetworkSignalAnalyzer,
)

__all__ = (
    "ANALYSIS_ERROR_FLAG",
    "AccountContextAnalyzer",
    "AnalysisContext",
    "BehavioralRiskAnalyzer",
    "CategoryResult",
    "DeviceRiskAnalyzer",
    "NetworkRiskAnalyzer",
    "NetworkSignalAnalyzer",
    "RiskAnalyzer",
    "RiskScoringEngine",
    "ScoringOutcome",
)
