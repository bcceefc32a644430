import pytest

from signup_guard.api.modules.fraud.services.core import (
    aggregate_category_scores,
    clamp_score,
    decision_for_score,
    dedupe,
    hash_signals,
    max_severity,
    severity_for_score,
)
from signup_guard.api.modules.fraud.services.core.utils import FINGERPRINT_LENGTH

SEVERITY_RANK = {"LOW": 0, "MEDIUM": 1, "HIGH": 2, "CRITICAL": 3}


class TestAggregation:
    def test_critical_category_dominates_mean(self):
        assert aggregate_category_scores([100, 0, 0, 0, 0]) == 100

    def test_mean_below_critical(self):
        assert aggregate_category_scores([40, 20, 0, 0, 0]) == 12

    def test_mean_is_rounded(self):
        assert aggregate_category_scores([50, 0, 0, 0, 1]) == 10
        assert aggregate_category_scores([89, 89, 0, 0, 0]) == 36

    def test_exactly_critical_uses_max(self):
        assert aggregate_category_scores([90, 0, 0, 0, 0]) == 90

    def test_custom_critical_threshold(self):
        assert aggregate_category_scores([80, 0, 0, 0, 0], critical_category_score=80) == 80
        assert aggregate_category_scores([80, 0, 0, 0, 0]) == 16

    def test_empty_is_zero(self):
        assert aggregate_category_scores([]) == 0

    @pytest.mark.parametrize("category", range(5))
    def test_severity_is_monotonic_in_each_category(self, category):
        previous = -1
        for value in range(0, 101):
            scores = [10, 20, 5, 0, 30]
            scores[category] = value
            rank = SEVERITY_RANK[severity_for_score(aggregate_category_scores(scores))]
            assert rank >= previous
            previous = rank


class TestSeverity:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (0, "LOW"),
            (24, "LOW"),
            (25, "MEDIUM"),
            (49, "MEDIUM"),
            (50, "HIGH"),
            (74, "HIGH"),
            (75, "CRITICAL"),
            (100, "CRITICAL"),
        ],
    )
    def test_bands(self, score, expected):
        assert severity_for_score(score) == expected

    def test_max_severity(self):
        assert max_severity("LOW", "MEDIUM") == "MEDIUM"
        assert max_severity("CRITICAL", "MEDIUM") == "CRITICAL"


class TestDecision:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            (0, "ALLOWED"),
            (49, "ALLOWED"),
            (50, "VERIFY_REQUIRED"),
            (74, "VERIFY_REQUIRED"),
            (75, "FLAGGED"),
            (89, "FLAGGED"),
            (90, "BLOCKED"),
            (100, "BLOCKED"),
        ],
    )
    def test_default_thresholds(self, score, expected):
        assert decision_for_score(score, 90, 75, 50) == expected


def test_clamp_score():
    assert clamp_score(-5) == 0
    assert clamp_score(130) == 100
    assert clamp_score(42.6) == 43


def test_hash_signals_ignores_key_order():
    left = hash_signals({"ip": "8.8.8.8", "ua": "x", "mobile": False})
    right = hash_signals({"mobile": False, "ua": "x", "ip": "8.8.8.8"})
    assert left == right
    assert len(left) == FINGERPRINT_LENGTH


def test_hash_signals_changes_with_values():
    assert hash_signals({"ip": "8.8.8.8"}) != hash_signals({"ip": "1.1.1.1"})


def test_dedupe_keeps_order():
    assert dedupe(["B", "A", "B", "C", "A"]) == ["B", "A", "C"]
