import datetime
from collections.abc import Sequence
from typing import Any

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from signup_guard.api.modules.fraud.models import (
    DeviceAccountLink,
    DeviceFingerprint,
    FraudAttempt,
    NetworkAccountLink,
    NetworkAction,
    NetworkRecord,
    SignupEvent,
)
from signup_guard.api.modules.fraud.services.core import ConcurrencyConflict
from signup_guard.database.base import insert_ignoring_conflicts


class DeviceFingerprintGateway:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self,
        fingerprint: str,
        active_since: datetime.datetime,
    ) -> DeviceFingerprint | None:
        stmt = (
            select(DeviceFingerprint)
            .where(
                DeviceFingerprint.fingerprint == fingerprint,
                DeviceFingerprint.last_seen >= active_since,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_similar_with_accounts(
        self,
        fingerprint: str,
        ip_address: str,
        user_agent: str,
        platform: str,
        active_since: datetime.datetime,
        limit: int = 5,
    ) -> Sequence[DeviceFingerprint]:
        stmt = (
            select(DeviceFingerprint)
            .where(
                DeviceFingerprint.fingerprint != fingerprint,
                DeviceFingerprint.ip_address == ip_address,
                DeviceFingerprint.user_agent == user_agent,
                DeviceFingerprint.platform == platform,
                DeviceFingerprint.last_seen >= active_since,
                DeviceFingerprint.accounts.any(),
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def insert_if_absent(self, values: dict[str, Any]) -> bool:
        stmt = insert_ignoring_conflicts(
            self.session,
            DeviceFingerprint,
            values,
            conflict_columns=["fingerprint"],
        ).returning(DeviceFingerprint.id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record_observation(
        self,
        fingerprint: str,
        seen_at: datetime.datetime,
        values: dict[str, Any],
    ) -> None:
        stmt = (
            update(DeviceFingerprint)
            .where(DeviceFingerprint.fingerprint == fingerprint)
            .values(
                seen_count=DeviceFingerprint.seen_count + 1,
                last_seen=seen_at,
                **values,
            )
        )
        await self.session.execute(stmt)

    async def revive_expired(
        self,
        fingerprint: str,
        seen_at: datetime.datetime,
        values: dict[str, Any],
    ) -> None:
        """Reset a row that aged out of the retention window to a fresh device."""
        await self.session.execute(
            delete(DeviceAccountLink).where(
                DeviceAccountLink.fingerprint == fingerprint
            )
        )
        stmt = (
            update(DeviceFingerprint)
            .where(DeviceFingerprint.fingerprint == fingerprint)
            .values(
                first_seen=seen_at,
                last_seen=seen_at,
                seen_count=1,
                is_flagged=False,
                flag_reason=None,
                flagged_at=None,
                flagged_by=None,
                is_blocked=False,
                blocked_reason=None,
                blocked_at=None,
                blocked_by=None,
                notes=[],
                **values,
            )
        )
        await self.session.execute(stmt)

    async def touch(self, fingerprint: str, seen_at: datetime.datetime) -> None:
        stmt = (
            update(DeviceFingerprint)
            .where(DeviceFingerprint.fingerprint == fingerprint)
            .values(
                seen_count=DeviceFingerprint.seen_count + 1,
                last_seen=seen_at,
            )
        )
        await self.session.execute(stmt)

    async def add_account(
        self,
        fingerprint: str,
        account_id: str,
        slot: int | None,
        linked_at: datetime.datetime,
    ) -> bool:
        stmt = insert_ignoring_conflicts(
            self.session,
            DeviceAccountLink,
            {
                "fingerprint": fingerprint,
                "account_id": account_id,
                "slot": slot,
                "linked_at": linked_at,
            },
            conflict_columns=["account_id", "fingerprint"],
        ).returning(DeviceAccountLink.id)
        try:
            result = await self.session.execute(stmt)
        except IntegrityError as exc:
            raise ConcurrencyConflict(f"Device {fingerprint} already holds an account") from exc
        return result.scalar_one_or_none() is not None

    async def count_accounts(self, fingerprint: str) -> int:
        stmt = (
            select(func.count())
            .select_from(DeviceAccountLink)
            .where(DeviceAccountLink.fingerprint == fingerprint)
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def set_flagged(
        self,
        fingerprint: str,
        flagged: bool,
        reason: str | None,
        actor: str | None,
        at: datetime.datetime | None,
    ) -> int:
        stmt = (
            update(DeviceFingerprint)
            .where(DeviceFingerprint.fingerprint == fingerprint)
            .values(
                is_flagged=flagged,
                flag_reason=reason,
                flagged_at=at,
                flagged_by=actor,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def set_blocked(
        self,
        fingerprint: str,
        blocked: bool,
        reason: str | None,
        actor: str | None,
        at: datetime.datetime | None,
    ) -> int:
        values: dict[str, Any] = {
            "is_blocked": blocked,
            "blocked_reason": reason,
            "blocked_at": at,
            "blocked_by": actor,
        }
        if blocked:
            values.update(
                is_flagged=True,
                flag_reason=reason,
                flagged_at=at,
                flagged_by=actor,
            )
        stmt = (
            update(DeviceFingerprint)
            .where(DeviceFingerprint.fingerprint == fingerprint)
            .values(**values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def append_note(self, device: DeviceFingerprint, note: str) -> None:
        stmt = (
            update(DeviceFingerprint)
            .where(DeviceFingerprint.id == device.id)
            .values(notes=[*(device.notes or []), note])
        )
        await self.session.execute(stmt)

    async def count_by_ip(
        self,
        ip_address: str,
        active_since: datetime.datetime,
        blocked_only: bool = False,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(DeviceFingerprint)
            .where(
                DeviceFingerprint.ip_address == ip_address,
                DeviceFingerprint.last_seen >= active_since,
            )
        )
        if blocked_only:
            stmt = stmt.where(DeviceFingerprint.is_blocked.is_(True))
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_total_count(self, filters: list[ColumnElement[bool]]) -> int:
        stmt = select(func.count()).select_from(DeviceFingerprint).where(*filters)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_all(
        self,
        limit: int,
        offset: int,
        filters: list[ColumnElement[bool]],
    ) -> Sequence[DeviceFingerprint]:
        stmt = (
            select(DeviceFingerprint)
            .filter(*filters)
            .order_by(
                DeviceFingerprint.risk_score.desc(),
                DeviceFingerprint.last_seen.desc(),
            )
            .offset(offset=offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete_stale(self, cutoff: datetime.datetime) -> int:
        """Delete aged-out devices that carry no accounts, flags or blocks."""
        stmt = delete(DeviceFingerprint).where(
            DeviceFingerprint.last_seen < cutoff,
            DeviceFingerprint.is_flagged.is_(False),
            DeviceFingerprint.is_blocked.is_(False),
            ~DeviceFingerprint.accounts.any(),
        ).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount


class NetworkRecordGateway:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self,
        ip_address: str,
        active_since: datetime.datetime,
    ) -> NetworkRecord | None:
        stmt = (
            select(NetworkRecord)
            .where(
                NetworkRecord.ip_address == ip_address,
                NetworkRecord.last_seen >= active_since,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_if_absent(self, values: dict[str, Any]) -> bool:
        stmt = insert_ignoring_conflicts(
            self.session,
            NetworkRecord,
            values,
            conflict_columns=["ip_address"],
        ).returning(NetworkRecord.id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record_request(
        self,
        ip_address: str,
        seen_at: datetime.datetime,
        values: dict[str, Any],
    ) -> None:
        stmt = (
            update(NetworkRecord)
            .where(NetworkRecord.ip_address == ip_address)
            .values(
                total_requests=NetworkRecord.total_requests + 1,
                last_seen=seen_at,
                **values,
            )
        )
        await self.session.execute(stmt)

    async def revive_expired(
        self,
        ip_address: str,
        seen_at: datetime.datetime,
        values: dict[str, Any],
    ) -> None:
        await self.session.execute(
            delete(NetworkAccountLink).where(
                NetworkAccountLink.ip_address == ip_address
            )
        )
        stmt = (
            update(NetworkRecord)
            .where(NetworkRecord.ip_address == ip_address)
            .values(
                first_seen=seen_at,
                last_seen=seen_at,
                total_requests=1,
                unique_accounts=0,
                **values,
            )
        )
        await self.session.execute(stmt)

    async def add_account(self, ip_address: str, account_id: str) -> bool:
        stmt = insert_ignoring_conflicts(
            self.session,
            NetworkAccountLink,
            {"ip_address": ip_address, "account_id": account_id},
            conflict_columns=["account_id", "ip_address"],
        ).returning(NetworkAccountLink.id)
        result = await self.session.execute(stmt)
        inserted = result.scalar_one_or_none() is not None
        if inserted:
            await self.session.execute(
                update(NetworkRecord)
                .where(NetworkRecord.ip_address == ip_address)
                .values(unique_accounts=NetworkRecord.unique_accounts + 1)
            )
        return inserted

    async def update_fields(self, ip_address: str, values: dict[str, Any]) -> int:
        stmt = (
            update(NetworkRecord)
            .where(NetworkRecord.ip_address == ip_address)
            .values(**values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def append_action(
        self,
        ip_address: str,
        action_type: str,
        reason: str,
        performed_by: str,
        performed_at: datetime.datetime,
    ) -> NetworkAction:
        action = NetworkAction(
            ip_address=ip_address,
            action_type=action_type,
            reason=reason,
            performed_by=performed_by,
            performed_at=performed_at,
        )
        self.session.add(action)
        await self.session.flush()
        return action

    async def get_total_count(self, filters: list[ColumnElement[bool]]) -> int:
        stmt = select(func.count()).select_from(NetworkRecord).where(*filters)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_all(
        self,
        limit: int,
        offset: int,
        filters: list[ColumnElement[bool]],
    ) -> Sequence[NetworkRecord]:
        stmt = (
            select(NetworkRecord)
            .filter(*filters)
            .order_by(
                NetworkRecord.risk_score.desc(),
                NetworkRecord.last_seen.desc(),
            )
            .offset(offset=offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete_stale(self, cutoff: datetime.datetime) -> int:
        """Delete aged-out addresses that are not on a manual list."""
        criteria = (
            NetworkRecord.last_seen < cutoff,
            NetworkRecord.is_whitelisted.is_(False),
            NetworkRecord.is_blacklisted.is_(False),
        )
        stale = select(NetworkRecord.ip_address).where(*criteria)
        for model in (NetworkAccountLink, NetworkAction):
            await self.session.execute(
                delete(model)
                .where(model.ip_address.in_(stale))
                .execution_options(synchronize_session=False)
            )
        result = await self.session.execute(
            delete(NetworkRecord)
            .where(*criteria)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class FraudAttemptGateway:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_total_count(self, filters: list[ColumnElement[bool]]) -> int:
        stmt = select(func.count()).select_from(FraudAttempt).where(*filters)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_all(
        self,
        limit: int,
        offset: int,
        filters: list[ColumnElement[bool]],
    ) -> Sequence[FraudAttempt]:
        stmt = (
            select(FraudAttempt)
            .filter(*filters)
            .order_by(FraudAttempt.occurred_at.desc(), FraudAttempt.id.desc())
            .offset(offset=offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_by_id(self, attempt_id: int) -> FraudAttempt | None:
        stmt = (
            select(FraudAttempt)
            .where(FraudAttempt.id == attempt_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, attempt: FraudAttempt) -> FraudAttempt:
        self.session.add(attempt)
        await self.session.flush()
        return attempt

    async def set_review(self, attempt_id: int, values: dict[str, Any]) -> int:
        stmt = (
            update(FraudAttempt)
            .where(FraudAttempt.id == attempt_id)
            .values(**values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def count_by_type(
        self, filters: list[ColumnElement[bool]]
    ) -> dict[str, int]:
        stmt = (
            select(FraudAttempt.attempt_type, func.count())
            .where(*filters)
            .group_by(FraudAttempt.attempt_type)
        )
        result = await self.session.execute(stmt)
        return {attempt_type: count for attempt_type, count in result.all()}

    async def delete_stale(self, cutoff: datetime.datetime) -> int:
        result = await self.session.execute(
            delete(FraudAttempt).where(FraudAttempt.occurred_at < cutoff)
        )
        return result.rowcount


class SignupEventGateway:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, event: SignupEvent) -> SignupEvent:
        self.session.add(event)
        await self.session.flush()
        return event

    async def _count(self, *filters: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(SignupEvent).where(*filters)
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def count_by_ip_since(
        self, ip_address: str, since: datetime.datetime
    ) -> int:
        return await self._count(
            SignupEvent.ip_address == ip_address,
            SignupEvent.occurred_at >= since,
        )

    async def count_by_referral_since(
        self, referral_code: str, since: datetime.datetime
    ) -> int:
        return await self._count(
            SignupEvent.referral_code == referral_code,
            SignupEvent.occurred_at >= since,
        )

    async def count_by_email_fragment(
        self, fragment: str, exclude_email: str | None = None
    ) -> int:
        filters = [SignupEvent.email.contains(fragment, autoescape=True)]
        if exclude_email:
            filters.append(SignupEvent.email != exclude_email)
        return await self._count(*filters)


__all__ = (
    "DeviceFingerprintGateway",
    "FraudAttemptGateway",
    "NetworkRecordGateway",
    "SignupEventGateway",
)
