import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from signup_guard.api.modules.fraud.schema import CategoryBreakdown, Severity
from signup_guard.api.modules.fraud.services.analyzers.base import (
    AnalysisContext,
    CategoryResult,
    RiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.core import (
    aggregate_category_scores,
    dedupe,
    max_severity,
    severity_for_score,
)
from signup_guard.services.logging import mask_fingerprint
from signup_guard.settings import Config

logger = logging.getLogger(__name__)

ANALYSIS_ERROR_FLAG = "ANALYSIS_ERROR"


@dataclass(slots=True)
class ScoringOutcome:
    score: int
    severity: Severity
    flags: list[str]
    recommendations: list[str]
    breakdown: CategoryBreakdown
    should_block: bool
    should_flag: bool
    should_require_verification: bool
    failed_categories: list[str] = field(default_factory=list)


class RiskScoringEngine:
    """Runs every analyzer concurrently and folds their scores into one assessment."""

    def __init__(self, config: Config, analyzers: Sequence[RiskAnalyzer]):
        self._config = config
        self._analyzers = tuple(analyzers)

    async def _run(self, analyzer: RiskAnalyzer, ctx: AnalysisContext) -> CategoryResult:
        timeout = self._config.fraud.analyzer_timeout_seconds
        try:
            return await asyncio.wait_for(analyzer.analyze(ctx), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Risk analyzer timed out",
                extra={"category": analyzer.category, "timeout": timeout},
            )
        except Exception:
            logger.exception(
                "Risk analyzer failed",
                extra={"category": analyzer.category},
            )
        return CategoryResult(
            flags=[f"{analyzer.category.upper()}_ANALYSIS_ERROR"],
            recommendations=["Manual review recommended due to analysis error"],
            failed=True,
        )

    async def score(self, ctx: AnalysisContext) -> ScoringOutcome:
        results = await asyncio.gather(
            *(self._run(analyzer, ctx) for analyzer in self._analyzers)
        )

        breakdown = CategoryBreakdown()
        flags: list[str] = []
        recommendations: list[str] = []
        failed: list[str] = []
        for analyzer, result in zip(self._analyzers, results, strict=True):
            setattr(breakdown, analyzer.category, result.score)
            flags.extend(result.flags)
            recommendations.extend(result.recommendations)
            if result.failed:
                failed.append(analyzer.category)

        fraud = self._config.fraud
        score = aggregate_category_scores(
            (result.score for result in results),
            critical_category_score=fraud.critical_category_score,
        )
        severity = severity_for_score(score)
        if failed:
            flags.append(ANALYSIS_ERROR_FLAG)
            severity = max_severity(severity, "MEDIUM")

        outcome = ScoringOutcome(
            score=score,
            severity=severity,
            flags=dedupe(flags),
            recommendations=dedupe(recommendations),
            breakdown=breakdown,
            should_block=score >= fraud.block_score_threshold,
            should_flag=score >= fraud.flag_score_threshold,
            should_require_verification=(
                bool(failed) or score >= fraud.verify_score_threshold
            ),
            failed_categories=failed,
        )
        logger.debug(
            "Risk scored",
            extra={
                "fingerprint": mask_fingerprint(ctx.signature.fingerprint),
                "score": score,
                "severity": severity,
                "failed": failed,
            },
        )
        return outcome


__all__ = ("ANALYSIS_ERROR_FLAG", "RiskScoringEngine", "ScoringOutcome")
