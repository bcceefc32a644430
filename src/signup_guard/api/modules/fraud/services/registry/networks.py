import datetime
import logging
from typing import Any

from sqlalchemy import ColumnElement

from signup_guard.api.modules.fraud.models import NetworkRecord
from signup_guard.api.modules.fraud.schema import NetworkActionType
from signup_guard.api.modules.fraud.services.core import (
    RecordNotFoundError,
    severity_for_score,
)
from signup_guard.api.modules.fraud.services.network.classifier import (
    NetworkClassification,
)
from signup_guard.database.base import utcnow
from signup_guard.database.uow import UnitOfWork, UnitOfWorkFactory
from signup_guard.settings import Config

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"


class NetworkReputationTracker:
    def __init__(self, config: Config, uow_factory: UnitOfWorkFactory):
        self._config = config
        self._uow_factory = uow_factory

    def active_since(self, now: datetime.datetime | None = None) -> datetime.datetime:
        now = now or utcnow()
        return now - datetime.timedelta(days=self._config.fraud.network_retention_days)

    async def get(self, ip_address: str) -> NetworkRecord | None:
        async with self._uow_factory() as uow:
            return await uow.networks.get(ip_address, self.active_since())

    async def record_request(self, classification: NetworkClassification) -> None:
        """Insert the address on first sight, otherwise bump its counters."""
        if not classification.ip_address:
            return

        now = utcnow()
        values = classification.as_record_values()
        values["risk_score"] = classification.threat_score
        values["risk_severity"] = severity_for_score(classification.threat_score)

        async with self._uow_factory() as uow:
            inserted = await uow.networks.insert_if_absent(
                {
                    **values,
                    "ip_address": classification.ip_address,
                    "first_seen": now,
                    "last_seen": now,
                    "total_requests": 1,
                }
            )
            if not inserted:
                existing = await uow.networks.get(
                    classification.ip_address, self.active_since(now)
                )
                if existing is None:
                    await uow.networks.revive_expired(
                        classification.ip_address, now, values
                    )
                else:
                    await uow.networks.record_request(
                        classification.ip_address, now, values
                    )
            await uow.commit()

    async def ensure_exists(self, uow: UnitOfWork, ip_address: str) -> None:
        now = utcnow()
        await uow.networks.insert_if_absent(
            {
                "ip_address": ip_address,
                "first_seen": now,
                "last_seen": now,
                "total_requests": 0,
            }
        )

    async def link_account(
        self,
        uow: UnitOfWork,
        ip_address: str,
        account_id: str,
    ) -> bool:
        await self.ensure_exists(uow, ip_address)
        return await uow.networks.add_account(ip_address, account_id)

    async def _apply_action(
        self,
        ip_address: str,
        action_type: NetworkActionType,
        values: dict[str, Any],
        reason: str,
        actor: str,
        create_missing: bool = False,
    ) -> NetworkRecord:
        now = utcnow()
        async with self._uow_factory() as uow:
            if create_missing:
                await self.ensure_exists(uow, ip_address)
            record = await uow.networks.get(ip_address, self.active_since(now))
            if record is None:
                raise RecordNotFoundError("network", ip_address)

            await uow.networks.update_fields(ip_address, values)
            await uow.networks.append_action(
                ip_address=ip_address,
                action_type=action_type,
                reason=reason,
                performed_by=actor,
                performed_at=now,
            )
            await uow.commit()
            record = await uow.networks.get(ip_address, self.active_since(now))

        logger.info(
            "Network list updated",
            extra={"ip": ip_address, "action": action_type, "actor": actor},
        )
        return record

    async def whitelist(self, ip_address: str, reason: str, actor: str) -> NetworkRecord:
        return await self._apply_action(
            ip_address,
            "WHITELIST",
            {"is_whitelisted": True, "is_blacklisted": False, "reputation_score": 100},
            reason,
            actor,
        )

    async def blacklist(
        self,
        ip_address: str,
        reason: str,
        actor: str,
        create_missing: bool = False,
    ) -> NetworkRecord:
        return await self._apply_action(
            ip_address,
            "BLACKLIST",
            {"is_blacklisted": True, "is_whitelisted": False, "reputation_score": 0},
            reason,
            actor,
            create_missing=create_missing,
        )

    async def monitor(self, ip_address: str, reason: str, actor: str) -> NetworkRecord:
        return await self._apply_action(
            ip_address,
            "MONITOR",
            {"is_monitored": True},
            reason,
            actor,
        )

    async def evaluate_auto_blacklist(self, ip_address: str | None) -> bool:
        """Blacklist an address when most of the devices seen behind it are blocked."""
        if not ip_address:
            return False

        fraud = self._config.fraud
        async with self._uow_factory() as uow:
            device_since = utcnow() - datetime.timedelta(days=fraud.device_retention_days)
            total = await uow.devices.count_by_ip(ip_address, device_since)
            if total < fraud.auto_blacklist_min_devices:
                return False
            blocked = await uow.devices.count_by_ip(
                ip_address, device_since, blocked_only=True
            )
            if blocked / total <= fraud.auto_blacklist_blocked_ratio:
                return False

            record = await uow.networks.get(ip_address, self.active_since())
            if record is not None and record.is_blacklisted:
                return False

        await self.blacklist(
            ip_address,
            reason=f"Automatic: {blocked} of {total} devices from this address are blocked",
            actor=SYSTEM_ACTOR,
            create_missing=True,
        )
        logger.warning(
            "Address auto-blacklisted",
            extra={"ip": ip_address, "devices": total, "blocked": blocked},
        )
        return True

    async def list_records(
        self,
        limit: int,
        offset: int,
        filters: list[ColumnElement[bool]],
    ) -> tuple[list[NetworkRecord], int]:
        filters = [*filters, NetworkRecord.last_seen >= self.active_since()]
        async with self._uow_factory() as uow:
            items = await uow.networks.get_all(limit=limit, offset=offset, filters=filters)
            total = await uow.networks.get_total_count(filters)
        return list(items), total

    async def purge_expired(self) -> int:
        async with self._uow_factory() as uow:
            deleted = await uow.networks.delete_stale(self.active_since())
            await uow.commit()
        return deleted


__all__ = ("SYSTEM_ACTOR", "NetworkReputationTracker")
