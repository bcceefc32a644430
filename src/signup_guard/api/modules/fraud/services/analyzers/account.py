import re

from signup_guard.api.modules.fraud.services.analyzers.base import (
    AnalysisContext,
    CategoryResult,
    RiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.analyzers.disposable import (
    email_domain,
    is_disposable_domain,
)
from signup_guard.api.modules.fraud.services.registry import SignupLedger
from signup_guard.settings import Config

DISPOSABLE_EMAIL_WEIGHT = 30
NUMERIC_EMAIL_WEIGHT = 15
REFERRAL_ABUSE_WEIGHT = 75
SIMILAR_ACCOUNTS_WEIGHT = 20

_NUMERIC_RUN_RE = re.compile(r"\d{6,}")


class AccountContextAnalyzer(RiskAnalyzer):
    """Identity-level signals: throwaway mailboxes, referral bursts, email clusters."""

    category = "account"

    def __init__(self, config: Config, ledger: SignupLedger):
        self._config = config
        self._ledger = ledger
        self._extra_domains = frozenset(
            item.strip().lower() for item in config.fraud.extra_disposable_email_domains
        )

    async def analyze(self, ctx: AnalysisContext) -> CategoryResult:
        result = CategoryResult()
        attempt = ctx.attempt
        if not attempt.has_identity:
            return result

        fraud = self._config.fraud
        email = (attempt.email or "").strip().lower()

        if email and is_disposable_domain(email_domain(email), self._extra_domains):
            result.add(
                DISPOSABLE_EMAIL_WEIGHT,
                "TEMP_EMAIL_DOMAIN",
                "Temporary email service detected",
            )

        if email and _NUMERIC_RUN_RE.search(email):
            result.add(
                NUMERIC_EMAIL_WEIGHT,
                "NUMERIC_EMAIL_PATTERN",
                "Email contains long numeric sequence",
            )

        if attempt.referral_code:
            recent = await self._ledger.count_with_referral(
                attempt.referral_code, fraud.referral_window_seconds
            )
            if recent > fraud.referral_max_signups:
                result.add(
                    REFERRAL_ABUSE_WEIGHT,
                    f"REFERRAL_ABUSE_{recent}_RECENT",
                    "Excessive referrals from same code in short time",
                )

        if email:
            similar = await self._ledger.count_similar_emails(
                email, fraud.similar_email_prefix_length
            )
            if similar > fraud.similar_email_max_accounts:
                result.add(
                    SIMILAR_ACCOUNTS_WEIGHT,
                    f"SIMILAR_ACCOUNTS_{similar}",
                    "Multiple accounts with similar email patterns",
                )

        return result


__all__ = ("AccountContextAnalyzer",)
