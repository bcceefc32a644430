import datetime
import logging

from signup_guard.api.common.schema import Pagination, PaginationParams
from signup_guard.api.common.utils import build_filters
from signup_guard.api.modules.fraud.models import (
    DeviceFingerprint,
    FraudAttempt,
    NetworkRecord,
)
from signup_guard.api.modules.fraud.schema import (
    AdminActionRequest,
    AttemptPaginationParams,
    AttemptStats,
    DevicePaginationParams,
    DeviceResponse,
    DeviceStats,
    FraudAttemptResponse,
    FraudStatsResponse,
    NetworkPaginationParams,
    NetworkRecordResponse,
    NetworkStats,
    PurgeResponse,
    ReviewRequest,
)
from signup_guard.api.modules.fraud.services.core import RecordNotFoundError
from signup_guard.api.modules.fraud.services.registry import (
    DeviceRegistry,
    FraudAuditTrail,
    NetworkReputationTracker,
)
from signup_guard.database.base import utcnow
from signup_guard.database.uow import UnitOfWorkFactory
from signup_guard.services.logging import mask_fingerprint

logger = logging.getLogger(__name__)

HIGH_RISK_SCORE = 75


def _filter_data(params: PaginationParams) -> dict:
    return params.model_dump(exclude={"page", "page_size"}, exclude_none=True)


class FraudAdminService:
    """Review and list management for devices, addresses and logged attempts."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        registry: DeviceRegistry,
        network_tracker: NetworkReputationTracker,
        audit: FraudAuditTrail,
    ):
        self._uow_factory = uow_factory
        self._registry = registry
        self._network_tracker = network_tracker
        self._audit = audit

    async def stats(self) -> FraudStatsResponse:
        now = utcnow()
        device_since = self._registry.active_since(now)
        network_since = self._network_tracker.active_since(now)
        attempt_since = self._audit.active_since(now)

        live_devices = [DeviceFingerprint.last_seen >= device_since]
        live_networks = [NetworkRecord.last_seen >= network_since]
        live_attempts = [FraudAttempt.occurred_at >= attempt_since]

        async with self._uow_factory() as uow:
            devices = uow.devices
            device_stats = DeviceStats(
                total=await devices.get_total_count(live_devices),
                flagged=await devices.get_total_count(
                    [*live_devices, DeviceFingerprint.is_flagged.is_(True)]
                ),
                blocked=await devices.get_total_count(
                    [*live_devices, DeviceFingerprint.is_blocked.is_(True)]
                ),
                with_accounts=await devices.get_total_count(
                    [*live_devices, DeviceFingerprint.accounts.any()]
                ),
                high_risk=await devices.get_total_count(
                    [*live_devices, DeviceFingerprint.risk_score >= HIGH_RISK_SCORE]
                ),
            )

            networks = uow.networks
            network_stats = NetworkStats(
                total=await networks.get_total_count(live_networks),
                whitelisted=await networks.get_total_count(
                    [*live_networks, NetworkRecord.is_whitelisted.is_(True)]
                ),
                blacklisted=await networks.get_total_count(
                    [*live_networks, NetworkRecord.is_blacklisted.is_(True)]
                ),
                monitored=await networks.get_total_count(
                    [*live_networks, NetworkRecord.is_monitored.is_(True)]
                ),
                vpn_or_proxy=await networks.get_total_count(
                    [
                        *live_networks,
                        NetworkRecord.is_vpn.is_(True) | NetworkRecord.is_proxy.is_(True),
                    ]
                ),
            )

            attempts = uow.attempts
            attempt_stats = AttemptStats(
                total=await attempts.get_total_count(live_attempts),
                pending=await attempts.get_total_count(
                    [*live_attempts, FraudAttempt.status == "PENDING"]
                ),
                last_24h=await attempts.get_total_count(
                    [FraudAttempt.occurred_at >= now - datetime.timedelta(hours=24)]
                ),
                by_type=await attempts.count_by_type(live_attempts),
            )

        return FraudStatsResponse(
            devices=device_stats,
            networks=network_stats,
            attempts=attempt_stats,
            generated_at=now,
        )

    async def list_devices(
        self, params: DevicePaginationParams
    ) -> Pagination[DeviceResponse]:
        filters = build_filters(DeviceFingerprint, _filter_data(params))
        items, total = await self._registry.list_records(
            limit=params.page_size, offset=params.offset, filters=filters
        )
        return Pagination[DeviceResponse](
            items=[DeviceResponse.model_validate(item) for item in items],
            total=total,
            page=params.page,
            page_size=params.page_size,
        )

    async def get_device(self, fingerprint: str) -> DeviceResponse:
        device = await self._registry.get(fingerprint)
        if device is None:
            raise RecordNotFoundError("device", fingerprint)
        return DeviceResponse.model_validate(device)

    async def flag_device(
        self, fingerprint: str, payload: AdminActionRequest
    ) -> DeviceResponse:
        device = await self._registry.flag(fingerprint, payload.reason, payload.actor)
        self._log_device_action("FLAG", fingerprint, payload)
        return DeviceResponse.model_validate(device)

    async def unflag_device(
        self, fingerprint: str, payload: AdminActionRequest
    ) -> DeviceResponse:
        device = await self._registry.unflag(fingerprint, payload.reason, payload.actor)
        self._log_device_action("UNFLAG", fingerprint, payload)
        return DeviceResponse.model_validate(device)

    async def block_device(
        self, fingerprint: str, payload: AdminActionRequest
    ) -> DeviceResponse:
        device = await self._registry.block(fingerprint, payload.reason, payload.actor)
        self._log_device_action("BLOCK", fingerprint, payload)
        return DeviceResponse.model_validate(device)

    async def unblock_device(
        self, fingerprint: str, payload: AdminActionRequest
    ) -> DeviceResponse:
        device = await self._registry.unblock(fingerprint, payload.reason, payload.actor)
        self._log_device_action("UNBLOCK", fingerprint, payload)
        return DeviceResponse.model_validate(device)

    @staticmethod
    def _log_device_action(
        action: str, fingerprint: str, payload: AdminActionRequest
    ) -> None:
        logger.info(
            "Device review action applied",
            extra={
                "action": action,
                "fingerprint": mask_fingerprint(fingerprint),
                "actor": payload.actor,
            },
        )

    async def list_networks(
        self, params: NetworkPaginationParams
    ) -> Pagination[NetworkRecordResponse]:
        filters = build_filters(NetworkRecord, _filter_data(params))
        items, total = await self._network_tracker.list_records(
            limit=params.page_size, offset=params.offset, filters=filters
        )
        return Pagination[NetworkRecordResponse](
            items=[NetworkRecordResponse.model_validate(item) for item in items],
            total=total,
            page=params.page,
            page_size=params.page_size,
        )

    async def get_network(self, ip_address: str) -> NetworkRecordResponse:
        record = await self._network_tracker.get(ip_address)
        if record is None:
            raise RecordNotFoundError("network", ip_address)
        return NetworkRecordResponse.model_validate(record)

    async def whitelist_network(
        self, ip_address: str, payload: AdminActionRequest
    ) -> NetworkRecordResponse:
        record = await self._network_tracker.whitelist(
            ip_address, payload.reason, payload.actor
        )
        return NetworkRecordResponse.model_validate(record)

    async def blacklist_network(
        self, ip_address: str, payload: AdminActionRequest
    ) -> NetworkRecordResponse:
        record = await self._network_tracker.blacklist(
            ip_address, payload.reason, payload.actor
        )
        return NetworkRecordResponse.model_validate(record)

    async def monitor_network(
        self, ip_address: str, payload: AdminActionRequest
    ) -> NetworkRecordResponse:
        record = await self._network_tracker.monitor(
            ip_address, payload.reason, payload.actor
        )
        return NetworkRecordResponse.model_validate(record)

    async def list_attempts(
        self, params: AttemptPaginationParams
    ) -> Pagination[FraudAttemptResponse]:
        filters = build_filters(FraudAttempt, _filter_data(params))
        items, total = await self._audit.list_records(
            limit=params.page_size, offset=params.offset, filters=filters
        )
        return Pagination[FraudAttemptResponse](
            items=[FraudAttemptResponse.model_validate(item) for item in items],
            total=total,
            page=params.page,
            page_size=params.page_size,
        )

    async def review_attempt(
        self, attempt_id: int, payload: ReviewRequest
    ) -> FraudAttemptResponse:
        attempt = await self._audit.review(attempt_id, payload)
        logger.info(
            "Fraud attempt reviewed",
            extra={"attempt_id": attempt_id, "status": payload.status, "actor": payload.actor},
        )
        return FraudAttemptResponse.model_validate(attempt)

    async def purge_expired(self) -> PurgeResponse:
        result = PurgeResponse(
            devices=await self._registry.purge_expired(),
            networks=await self._network_tracker.purge_expired(),
            attempts=await self._audit.purge_expired(),
        )
        logger.info("Expired records purged", extra=result.model_dump())
        return result


__all__ = ("FraudAdminService",)
