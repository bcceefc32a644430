import datetime
import logging

from sqlalchemy import ColumnElement

from signup_guard.api.modules.fraud.models import (
    DeviceFingerprint,
    FraudAttempt,
    NetworkRecord,
)
from signup_guard.api.modules.fraud.schema import (
    AttemptContext,
    AttemptType,
    ReviewRequest,
)
from signup_guard.api.modules.fraud.services.core import RecordNotFoundError
from signup_guard.api.modules.fraud.services.fingerprint import DeviceSignature
from signup_guard.database.base import utcnow
from signup_guard.database.uow import UnitOfWorkFactory
from signup_guard.services.logging import mask_fingerprint
from signup_guard.settings import Config

logger = logging.getLogger(__name__)


class FraudAuditTrail:
    def __init__(self, config: Config, uow_factory: UnitOfWorkFactory):
        self._config = config
        self._uow_factory = uow_factory

    def active_since(self, now: datetime.datetime | None = None) -> datetime.datetime:
        now = now or utcnow()
        return now - datetime.timedelta(days=self._config.fraud.attempt_retention_days)

    async def record(
        self,
        attempt_type: AttemptType,
        reason: str,
        risk_score: int,
        flags: list[str],
        signature: DeviceSignature,
        context: AttemptContext,
        existing_device: DeviceFingerprint | None = None,
        existing_network: NetworkRecord | None = None,
    ) -> FraudAttempt | None:
        """Write one audit row. A failed write is logged and never reaches the caller."""
        attempt = FraudAttempt(
            attempt_type=attempt_type,
            reason=reason,
            risk_score=risk_score,
            flags=list(flags),
            fingerprint=signature.fingerprint,
            ip_address=signature.ip_address or "unknown",
            user_agent=signature.user_agent,
            attempted_email=context.email,
            attempted_username=context.username,
            attempted_full_name=context.full_name,
            channel=context.channel,
            referral_code=context.referral_code,
            existing_accounts=len(existing_device.account_ids) if existing_device else 0,
            existing_device_id=existing_device.id if existing_device else None,
            existing_network_id=existing_network.id if existing_network else None,
            country_iso=signature.network.country_iso,
            city=signature.network.city,
            is_vpn=signature.network.is_vpn,
            is_proxy=signature.network.is_proxy,
            occurred_at=utcnow(),
            status="PENDING",
        )
        async with self._uow_factory() as uow:
            try:
                await uow.attempts.create(attempt)
                await uow.commit()
            except Exception:
                logger.exception(
                    "Failed to save fraud attempt",
                    extra={"fingerprint": mask_fingerprint(signature.fingerprint)},
                )
                await uow.rollback()
                return None

        logger.info(
            "Fraud attempt recorded",
            extra={
                "attempt_type": attempt_type,
                "fingerprint": mask_fingerprint(signature.fingerprint),
                "risk_score": risk_score,
            },
        )
        return attempt

    async def review(self, attempt_id: int, payload: ReviewRequest) -> FraudAttempt:
        async with self._uow_factory() as uow:
            updated = await uow.attempts.set_review(
                attempt_id,
                {
                    "status": payload.status,
                    "reviewed": True,
                    "reviewed_by": payload.actor,
                    "reviewed_at": utcnow(),
                    "admin_notes": payload.notes,
                },
            )
            if not updated:
                raise RecordNotFoundError("attempt", attempt_id)
            await uow.commit()
            attempt = await uow.attempts.get_by_id(attempt_id)
        return attempt

    async def list_records(
        self,
        limit: int,
        offset: int,
        filters: list[ColumnElement[bool]],
    ) -> tuple[list[FraudAttempt], int]:
        filters = [*filters, FraudAttempt.occurred_at >= self.active_since()]
        async with self._uow_factory() as uow:
            items = await uow.attempts.get_all(limit=limit, offset=offset, filters=filters)
            total = await uow.attempts.get_total_count(filters)
        return list(items), total

    async def purge_expired(self) -> int:
        async with self._uow_factory() as uow:
            deleted = await uow.attempts.delete_stale(self.active_since())
            await uow.commit()
        return deleted


__all__ = ("FraudAuditTrail",)
