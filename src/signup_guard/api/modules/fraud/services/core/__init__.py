from signup_guard.api.modules.fraud.services.core.errors import (
    ConcurrencyConflict,
    FingerprintUnavailableError,
    FraudEngineError,
    RecordNotFoundError,
)
from signup_guard.api.modules.fraud.services.core.utils import (
    aggregate_category_scores,
    clamp_score,
    decision_for_score,
    dedupe,
    hash_signals,
    max_severity,
    severity_for_score,
)

__all__ = (
    "ConcurrencyConflict",
    "FingerprintUnavailableError",
    "FraudEngineError",
    "RecordNotFoundError",
    "aggregate_category_scores",
    "clamp_score",
    "decision_for_score",
    "dedupe",
    "hash_signals",
    "max_severity",
    "severity_for_score",
)
