import logging
from collections.abc import Mapping

from fastapi import Request

from signup_guard.api.modules.fraud.models import DeviceFingerprint, NetworkRecord
from signup_guard.api.modules.fraud.schema import (
    AttemptType,
    CategoryBreakdown,
    DecisionState,
    EligibilityResult,
    EvaluateRequest,
    LinkAccountRequest,
    LinkResult,
    RiskAssessment,
    Severity,
    VerificationPrompt,
)
from signup_guard.api.modules.fraud.services.analyzers import (
    AnalysisContext,
    RiskScoringEngine,
)
from signup_guard.api.modules.fraud.services.core import (
    decision_for_score,
    dedupe,
)
from signup_guard.api.modules.fraud.services.fingerprint import (
    DeviceSignature,
    FingerprintGenerator,
)
from signup_guard.api.modules.fraud.services.network import (
    RedisAttemptRateLimiter,
    RequestIpResolver,
)
from signup_guard.api.modules.fraud.services.registry import (
    DeviceRegistry,
    FraudAuditTrail,
    NetworkReputationTracker,
)
from signup_guard.database.base import utcnow
from signup_guard.services.logging import mask_fingerprint
from signup_guard.settings import Config

logger = logging.getLogger(__name__)

DEVICE_REUSE_CODE = "DEVICE_ALREADY_REGISTERED"
GENERIC_BLOCK_CODE = "REGISTRATION_BLOCKED"
RATE_LIMIT_CODE = "RATE_LIMIT_EXCEEDED"

DEVICE_REUSE_MESSAGE = (
    "This device already has a registered account. Only one account per device "
    "is allowed. Please use your existing account or contact support."
)
GENERIC_BLOCK_MESSAGE = (
    "This request cannot be completed due to security concerns. "
    "Please contact support if you believe this is an error."
)
RATE_LIMIT_MESSAGE = "Too many attempts from this network. Please try again later."
VERIFY_MESSAGE = "Additional verification is required to continue."

_REUSE_FLAGS = frozenset({"DEVICE_ALREADY_REGISTERED", "SIMILAR_DEVICE_WITH_ACCOUNTS"})


class FraudFacadeService:
    """Runs one attempt through fingerprinting, eligibility, scoring and action."""

    def __init__(
        self,
        config: Config,
        rate_limiter: RedisAttemptRateLimiter,
        ip_resolver: RequestIpResolver,
        generator: FingerprintGenerator,
        engine: RiskScoringEngine,
        registry: DeviceRegistry,
        network_tracker: NetworkReputationTracker,
        audit: FraudAuditTrail,
    ):
        self._config = config
        self._rate_limiter = rate_limiter
        self._ip_resolver = ip_resolver
        self._generator = generator
        self._engine = engine
        self._registry = registry
        self._network_tracker = network_tracker
        self._audit = audit

    async def evaluate_request(
        self,
        request: Request,
        payload: EvaluateRequest,
    ) -> RiskAssessment:
        client_host = request.client.host if request.client else None
        return await self.evaluate(
            headers=request.headers,
            connection_ip=client_host,
            payload=payload,
        )

    async def evaluate(
        self,
        headers: Mapping[str, str] | None,
        connection_ip: str | None,
        payload: EvaluateRequest,
    ) -> RiskAssessment:
        ip = self._ip_resolver.resolve(headers, connection_ip)
        if not await self._rate_limiter.allow(ip):
            logger.warning("Attempt rate limit exceeded", extra={"ip": ip})
            return self._assessment(
                state="BLOCKED",
                score=100,
                severity="CRITICAL",
                flags=[RATE_LIMIT_CODE],
                fingerprint=self._generator.key_for(headers, connection_ip),
                ip_address=ip,
                error_code=RATE_LIMIT_CODE,
                message=RATE_LIMIT_MESSAGE,
            )

        signature = await self._generator.generate(headers, connection_ip, payload.device)
        ctx = AnalysisContext(signature=signature, attempt=payload.context)
        try:
            return await self._decide(ctx)
        except Exception:
            logger.exception(
                "Fraud evaluation failed",
                extra={"fingerprint": mask_fingerprint(signature.fingerprint)},
            )
            return self._assessment(
                state="VERIFY_REQUIRED",
                score=50,
                severity="MEDIUM",
                flags=["FRAUD_DETECTION_ERROR"],
                recommendations=["Manual review recommended due to analysis error"],
                fingerprint=signature.fingerprint,
                ip_address=signature.ip_address,
                should_flag=True,
                should_require_verification=True,
                message=VERIFY_MESSAGE,
                verification=VerificationPrompt(flags=["FRAUD_DETECTION_ERROR"]),
            )

    async def _decide(self, ctx: AnalysisContext) -> RiskAssessment:
        signature = ctx.signature
        fraud = self._config.fraud

        network_record = None
        if signature.ip_address:
            network_record = await self._network_tracker.get(signature.ip_address)

        if network_record is not None and network_record.is_blacklisted:
            return await self._block(
                ctx,
                attempt_type="IP_BLOCKED",
                reason="Address is blacklisted",
                flags=["IP_BLACKLISTED"],
                network_record=network_record,
            )

        eligibility_flags: list[str] = []
        try:
            eligibility = await self._registry.check_eligibility(
                signature.fingerprint, account_id=ctx.signing_in_account
            )
        except Exception:
            logger.exception(
                "Eligibility check failed",
                extra={"fingerprint": mask_fingerprint(signature.fingerprint)},
            )
            eligibility = None
            eligibility_flags.append("ELIGIBILITY_CHECK_ERROR")

        if eligibility is not None and not eligibility.is_eligible:
            return await self._block_ineligible(ctx, eligibility, network_record)

        if (
            network_record is not None
            and network_record.is_whitelisted
            and fraud.skip_whitelisted_addresses
            and not eligibility_flags
        ):
            await self._record_activity(signature, 0, "LOW", ["WHITELISTED_IP"])
            return self._assessment(
                state="ALLOWED",
                score=0,
                severity="LOW",
                flags=["WHITELISTED_IP"],
                fingerprint=signature.fingerprint,
                ip_address=signature.ip_address,
            )

        outcome = await self._engine.score(ctx)
        flags = dedupe([*outcome.flags, *eligibility_flags])
        severity = outcome.severity
        if eligibility_flags and severity == "LOW":
            severity = "MEDIUM"
        require_verification = outcome.should_require_verification or bool(
            eligibility_flags
        )

        state = decision_for_score(
            outcome.score,
            block_score_threshold=fraud.block_score_threshold,
            flag_score_threshold=fraud.flag_score_threshold,
            verify_score_threshold=fraud.verify_score_threshold,
        )
        if state == "ALLOWED" and require_verification:
            state = "VERIFY_REQUIRED"

        if state == "BLOCKED":
            return await self._block(
                ctx,
                attempt_type=self._blocked_type(ctx),
                reason=f"Risk score {outcome.score} at or above block threshold",
                flags=flags,
                score=outcome.score,
                severity=severity,
                recommendations=outcome.recommendations,
                breakdown=outcome.breakdown,
                network_record=network_record,
            )

        await self._record_activity(signature, outcome.score, severity, flags)

        monitoring_reason = None
        if state == "FLAGGED":
            monitoring_reason = ", ".join(flags)
            await self._audit.record(
                attempt_type="HIGH_RISK_FLAGGED",
                reason=f"High risk score {outcome.score}: {monitoring_reason}",
                risk_score=outcome.score,
                flags=flags,
                signature=signature,
                context=ctx.attempt,
                existing_network=network_record,
            )

        verification = None
        if state in ("VERIFY_REQUIRED", "FLAGGED"):
            verification = VerificationPrompt(flags=flags)

        logger.info(
            "Attempt evaluated",
            extra={
                "fingerprint": mask_fingerprint(signature.fingerprint),
                "state": state,
                "score": outcome.score,
            },
        )
        return self._assessment(
            state=state,
            score=outcome.score,
            severity=severity,
            flags=flags,
            recommendations=outcome.recommendations,
            breakdown=outcome.breakdown,
            fingerprint=signature.fingerprint,
            ip_address=signature.ip_address,
            should_flag=outcome.should_flag,
            should_require_verification=require_verification,
            message=VERIFY_MESSAGE if verification else None,
            verification=verification,
            monitoring_reason=monitoring_reason,
        )

    @staticmethod
    def _blocked_type(ctx: AnalysisContext) -> AttemptType:
        if ctx.attempt.attempt_type == "login":
            return "LOGIN_BLOCKED"
        return "REGISTRATION_BLOCKED"

    async def _block_ineligible(
        self,
        ctx: AnalysisContext,
        eligibility: EligibilityResult,
        network_record: NetworkRecord | None,
    ) -> RiskAssessment:
        signature = ctx.signature
        device = await self._registry.get(signature.fingerprint)
        signer = ctx.signing_in_account
        others = [
            item for item in (device.account_ids if device else []) if item != signer
        ]
        if others:
            attempt_type = self._blocked_type(ctx)
            flags = [
                "DEVICE_ALREADY_REGISTERED",
                f"EXISTING_ACCOUNTS_{eligibility.existing_account_count}",
            ]
        else:
            attempt_type = "DEVICE_BLOCKED"
            flags = ["DEVICE_BLOCKED"]

        return await self._block(
            ctx,
            attempt_type=attempt_type,
            reason=eligibility.reason or "Device is not eligible",
            flags=flags,
            score=eligibility.risk_score,
            existing_device=device,
            network_record=network_record,
        )

    async def _block(
        self,
        ctx: AnalysisContext,
        attempt_type: AttemptType,
        reason: str,
        flags: list[str],
        score: int = 100,
        severity: Severity = "CRITICAL",
        recommendations: list[str] | None = None,
        breakdown: CategoryBreakdown | None = None,
        existing_device: DeviceFingerprint | None = None,
        network_record: NetworkRecord | None = None,
    ) -> RiskAssessment:
        signature = ctx.signature
        if existing_device is None:
            existing_device = await self._registry.get(signature.fingerprint)

        await self._audit.record(
            attempt_type=attempt_type,
            reason=reason,
            risk_score=score,
            flags=flags,
            signature=signature,
            context=ctx.attempt,
            existing_device=existing_device,
            existing_network=network_record,
        )

        device_reuse = bool(_REUSE_FLAGS.intersection(flags))
        logger.warning(
            "Attempt blocked",
            extra={
                "fingerprint": mask_fingerprint(signature.fingerprint),
                "attempt_type": attempt_type,
                "score": score,
            },
        )
        return self._assessment(
            state="BLOCKED",
            score=score,
            severity=severity,
            flags=flags,
            recommendations=recommendations or [],
            breakdown=breakdown,
            fingerprint=signature.fingerprint,
            ip_address=signature.ip_address,
            should_flag=True,
            should_require_verification=True,
            error_code=DEVICE_REUSE_CODE if device_reuse else GENERIC_BLOCK_CODE,
            message=DEVICE_REUSE_MESSAGE if device_reuse else GENERIC_BLOCK_MESSAGE,
        )

    async def _record_activity(
        self,
        signature: DeviceSignature,
        score: int,
        severity: Severity,
        flags: list[str],
    ) -> None:
        try:
            await self._registry.record_observation(signature, score, severity, flags)
            await self._network_tracker.record_request(signature.network)
        except Exception:
            logger.exception(
                "Failed to record device activity",
                extra={"fingerprint": mask_fingerprint(signature.fingerprint)},
            )

    @staticmethod
    def _assessment(
        state: DecisionState,
        score: int,
        severity: Severity,
        flags: list[str],
        fingerprint: str,
        ip_address: str | None,
        recommendations: list[str] | None = None,
        breakdown: CategoryBreakdown | None = None,
        should_flag: bool | None = None,
        should_require_verification: bool | None = None,
        error_code: str | None = None,
        message: str | None = None,
        verification: VerificationPrompt | None = None,
        monitoring_reason: str | None = None,
    ) -> RiskAssessment:
        blocked = state == "BLOCKED"
        return RiskAssessment(
            state=state,
            risk_score=score,
            severity=severity,
            flags=flags,
            recommendations=recommendations or [],
            breakdown=breakdown or CategoryBreakdown(),
            should_block=blocked,
            should_flag=blocked if should_flag is None else should_flag,
            should_require_verification=(
                blocked if should_require_verification is None else should_require_verification
            ),
            fingerprint=fingerprint,
            ip_address=ip_address,
            error_code=error_code,
            message=message,
            verification=verification,
            monitoring_reason=monitoring_reason,
            evaluated_at=utcnow(),
        )

    async def check_eligibility(
        self,
        fingerprint: str,
        account_id: str | None = None,
    ) -> EligibilityResult:
        try:
            return await self._registry.check_eligibility(fingerprint, account_id=account_id)
        except Exception:
            logger.exception(
                "Error checking device eligibility",
                extra={"fingerprint": mask_fingerprint(fingerprint)},
            )
            return EligibilityResult(
                is_eligible=False,
                reason="Error checking device eligibility",
                risk_score=50,
                existing_account_count=0,
            )

    async def link_account(self, payload: LinkAccountRequest) -> LinkResult:
        return await self._registry.link_account(
            fingerprint=payload.fingerprint,
            account_id=payload.account_id,
            email=payload.email,
            referral_code=payload.referral_code,
        )


__all__ = ("FraudFacadeService",)
