import datetime
import logging

from sqlalchemy import ColumnElement

from signup_guard.api.modules.fraud.models import DeviceFingerprint, SignupEvent
from signup_guard.api.modules.fraud.schema import EligibilityResult, LinkResult, Severity
from signup_guard.api.modules.fraud.services.core import (
    ConcurrencyConflict,
    RecordNotFoundError,
)
from signup_guard.api.modules.fraud.services.fingerprint import DeviceSignature
from signup_guard.api.modules.fraud.services.registry.networks import (
    SYSTEM_ACTOR,
    NetworkReputationTracker,
)
from signup_guard.database.base import utcnow
from signup_guard.database.uow import UnitOfWorkFactory
from signup_guard.services.logging import mask_fingerprint
from signup_guard.settings import Config

logger = logging.getLogger(__name__)


def multiple_accounts_reason(count: int) -> str:
    return f"Multiple accounts detected: {count} accounts"


def admin_note(action: str, actor: str, reason: str, at: datetime.datetime) -> str:
    return f"{at:%Y-%m-%d %H:%M:%S} UTC {action} by {actor}: {reason}"


class DeviceRegistry:
    """Device records and the account links that hang off them."""

    def __init__(
        self,
        config: Config,
        uow_factory: UnitOfWorkFactory,
        network_tracker: NetworkReputationTracker,
    ):
        self._config = config
        self._uow_factory = uow_factory
        self._network_tracker = network_tracker

    @property
    def strict(self) -> bool:
        return self._config.fraud.enforce_single_account_per_device

    def active_since(self, now: datetime.datetime | None = None) -> datetime.datetime:
        now = now or utcnow()
        return now - datetime.timedelta(days=self._config.fraud.device_retention_days)

    async def get(self, fingerprint: str) -> DeviceFingerprint | None:
        async with self._uow_factory() as uow:
            return await uow.devices.get(fingerprint, self.active_since())

    async def find_similar_with_accounts(
        self,
        signature: DeviceSignature,
    ) -> list[DeviceFingerprint]:
        if not signature.ip_address:
            return []
        async with self._uow_factory() as uow:
            devices = await uow.devices.find_similar_with_accounts(
                fingerprint=signature.fingerprint,
                ip_address=signature.ip_address,
                user_agent=signature.user_agent,
                platform=signature.platform,
                active_since=self.active_since(),
            )
        return list(devices)

    async def check_eligibility(
        self,
        fingerprint: str,
        account_id: str | None = None,
    ) -> EligibilityResult:
        """Whether a new account (or ``account_id`` signing in) may use this device.

        A device found holding more than one account is blocked on the spot.
        """
        device = await self.get(fingerprint)
        if device is None:
            return EligibilityResult(is_eligible=True, risk_score=0, existing_account_count=0)

        accounts = device.account_ids
        existing = len(accounts)

        if existing > 1 and not device.is_blocked:
            await self._auto_block(device, existing)
            device.is_blocked = True
            device.blocked_reason = multiple_accounts_reason(existing)

        others = [item for item in accounts if item != account_id]
        if others:
            return EligibilityResult(
                is_eligible=False,
                reason=(
                    f"Device already has {existing} registered account(s). "
                    "Only one account per device is allowed."
                ),
                risk_score=100,
                existing_account_count=existing,
            )

        if device.is_blocked:
            return EligibilityResult(
                is_eligible=False,
                reason=device.blocked_reason or "Device is permanently blocked",
                risk_score=100,
                existing_account_count=existing,
            )

        return EligibilityResult(
            is_eligible=True,
            risk_score=device.risk_score,
            existing_account_count=existing,
        )

    async def _auto_block(self, device: DeviceFingerprint, count: int) -> None:
        now = utcnow()
        reason = multiple_accounts_reason(count)
        async with self._uow_factory() as uow:
            await uow.devices.set_blocked(
                device.fingerprint, True, reason, SYSTEM_ACTOR, now
            )
            await uow.devices.append_note(
                device, admin_note("BLOCK", SYSTEM_ACTOR, reason, now)
            )
            await uow.commit()

        logger.warning(
            "Device auto-blocked",
            extra={"fingerprint": mask_fingerprint(device.fingerprint), "accounts": count},
        )
        await self._network_tracker.evaluate_auto_blacklist(device.ip_address)

    async def record_observation(
        self,
        signature: DeviceSignature,
        risk_score: int,
        risk_severity: Severity,
        risk_flags: list[str],
    ) -> None:
        now = utcnow()
        values = {
            "basic_hash": signature.basic_hash,
            "advanced_hash": signature.advanced_hash,
            "ip_address": signature.ip_address,
            "user_agent": signature.user_agent,
            "platform": signature.platform,
            "language": signature.language,
            "is_mobile": signature.is_mobile,
            "risk_score": risk_score,
            "risk_severity": risk_severity,
            "risk_flags": risk_flags,
        }

        async with self._uow_factory() as uow:
            inserted = await uow.devices.insert_if_absent(
                {
                    **values,
                    "fingerprint": signature.fingerprint,
                    "first_seen": now,
                    "last_seen": now,
                    "seen_count": 1,
                    "notes": [],
                }
            )
            if not inserted:
                existing = await uow.devices.get(signature.fingerprint, self.active_since(now))
                if existing is None:
                    await uow.devices.revive_expired(signature.fingerprint, now, values)
                else:
                    await uow.devices.record_observation(signature.fingerprint, now, values)
            await uow.commit()

    async def link_account(
        self,
        fingerprint: str,
        account_id: str,
        email: str | None = None,
        referral_code: str | None = None,
    ) -> LinkResult:
        now = utcnow()
        slot = 0 if self.strict else None

        async with self._uow_factory() as uow:
            device = await uow.devices.get(fingerprint, self.active_since(now))
            if device is None:
                raise RecordNotFoundError("device", fingerprint)

            try:
                inserted = await uow.devices.add_account(fingerprint, account_id, slot, now)
                await uow.commit()
            except ConcurrencyConflict:
                await uow.rollback()
                return await self._refuse_link(fingerprint, account_id)

            count = await uow.devices.count_accounts(fingerprint)
            await uow.devices.touch(fingerprint, now)
            flagged = device.is_flagged
            reason = None
            if count > 1:
                reason = multiple_accounts_reason(count)
                await uow.devices.set_flagged(fingerprint, True, reason, SYSTEM_ACTOR, now)
                flagged = True

            if inserted:
                if device.ip_address:
                    await self._network_tracker.link_account(
                        uow, device.ip_address, account_id
                    )
                await uow.signups.create(
                    SignupEvent(
                        account_id=account_id,
                        email=email.strip().lower() if email else None,
                        referral_code=referral_code,
                        ip_address=device.ip_address,
                        fingerprint=fingerprint,
                        occurred_at=now,
                    )
                )
            await uow.commit()

        if count > 1:
            logger.warning(
                "Device linked to multiple accounts",
                extra={"fingerprint": mask_fingerprint(fingerprint), "accounts": count},
            )

        return LinkResult(
            linked=True,
            fingerprint=fingerprint,
            account_id=account_id,
            existing_account_count=count,
            flagged=flagged,
            reason=reason,
        )

    async def _refuse_link(self, fingerprint: str, account_id: str) -> LinkResult:
        now = utcnow()
        async with self._uow_factory() as uow:
            count = await uow.devices.count_accounts(fingerprint)
            reason = multiple_accounts_reason(count + 1)
            await uow.devices.set_flagged(fingerprint, True, reason, SYSTEM_ACTOR, now)
            await uow.commit()

        logger.warning(
            "Refused second account on device",
            extra={"fingerprint": mask_fingerprint(fingerprint), "accounts": count},
        )
        return LinkResult(
            linked=False,
            fingerprint=fingerprint,
            account_id=account_id,
            existing_account_count=count,
            flagged=True,
            reason=reason,
        )

    async def _require(self, fingerprint: str) -> DeviceFingerprint:
        device = await self.get(fingerprint)
        if device is None:
            raise RecordNotFoundError("device", fingerprint)
        return device

    async def flag(self, fingerprint: str, reason: str, actor: str) -> DeviceFingerprint:
        device = await self._require(fingerprint)
        now = utcnow()
        async with self._uow_factory() as uow:
            await uow.devices.set_flagged(fingerprint, True, reason, actor, now)
            await uow.devices.append_note(device, admin_note("FLAG", actor, reason, now))
            await uow.commit()
        return await self._require(fingerprint)

    async def unflag(self, fingerprint: str, reason: str, actor: str) -> DeviceFingerprint:
        device = await self._require(fingerprint)
        now = utcnow()
        async with self._uow_factory() as uow:
            await uow.devices.set_flagged(fingerprint, False, None, None, None)
            await uow.devices.append_note(device, admin_note("UNFLAG", actor, reason, now))
            await uow.commit()
        return await self._require(fingerprint)

    async def block(self, fingerprint: str, reason: str, actor: str) -> DeviceFingerprint:
        device = await self._require(fingerprint)
        now = utcnow()
        async with self._uow_factory() as uow:
            await uow.devices.set_blocked(fingerprint, True, reason, actor, now)
            await uow.devices.append_note(device, admin_note("BLOCK", actor, reason, now))
            await uow.commit()
        await self._network_tracker.evaluate_auto_blacklist(device.ip_address)
        return await self._require(fingerprint)

    async def unblock(self, fingerprint: str, reason: str, actor: str) -> DeviceFingerprint:
        device = await self._require(fingerprint)
        now = utcnow()
        async with self._uow_factory() as uow:
            await uow.devices.set_blocked(fingerprint, False, None, None, None)
            await uow.devices.append_note(device, admin_note("UNBLOCK", actor, reason, now))
            await uow.commit()
        return await self._require(fingerprint)

    async def list_records(
        self,
        limit: int,
        offset: int,
        filters: list[ColumnElement[bool]],
    ) -> tuple[list[DeviceFingerprint], int]:
        filters = [*filters, DeviceFingerprint.last_seen >= self.active_since()]
        async with self._uow_factory() as uow:
            items = await uow.devices.get_all(limit=limit, offset=offset, filters=filters)
            total = await uow.devices.get_total_count(filters)
        return list(items), total

    async def purge_expired(self) -> int:
        async with self._uow_factory() as uow:
            deleted = await uow.devices.delete_stale(self.active_since())
            await uow.commit()
        return deleted


__all__ = ("DeviceRegistry", "admin_note", "multiple_accounts_reason")
