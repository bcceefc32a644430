import json
from collections.abc import Iterable, Mapping
from hashlib import sha256

from signup_guard.api.modules.fraud.schema import DecisionState, Severity

FINGERPRINT_LENGTH = 32


def clamp_score(value: float) -> int:
    return max(0, min(100, round(value)))


def severity_for_score(score: int) -> Severity:
    if score >= 75:
        return "CRITICAL"
    if score >= 50:
        return "HIGH"
    if score >= 25:
        return "MEDIUM"
    return "LOW"


_SEVERITY_ORDER: tuple[Severity, ...] = ("LOW", "MEDIUM", "HIGH", "CRITICAL")


def max_severity(left: Severity, right: Severity) -> Severity:
    return max(left, right, key=_SEVERITY_ORDER.index)


def decision_for_score(
    score: int,
    block_score_threshold: int,
    flag_score_threshold: int,
    verify_score_threshold: int,
) -> DecisionState:
    if score >= block_score_threshold:
        return "BLOCKED"
    if score >= flag_score_threshold:
        return "FLAGGED"
    if score >= verify_score_threshold:
        return "VERIFY_REQUIRED"
    return "ALLOWED"


def aggregate_category_scores(
    scores: Iterable[int],
    critical_category_score: int = 90,
) -> int:
    """Max of the categories when any is critical, otherwise their rounded mean."""
    values = list(scores)
    if not values:
        return 0
    highest = max(values)
    if highest >= critical_category_score:
        return clamp_score(highest)
    return clamp_score(sum(values) / len(values))


def hash_signals(signals: Mapping[str, object]) -> str:
    body = json.dumps(signals, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return sha256(body).hexdigest()[:FINGERPRINT_LENGTH]


def dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


__all__ = (
    "FINGERPRINT_LENGTH",
    "aggregate_category_scores",
    "clamp_score",
    "decision_for_score",
    "dedupe",
    "hash_signals",
    "max_severity",
    "severity_for_score",
)
