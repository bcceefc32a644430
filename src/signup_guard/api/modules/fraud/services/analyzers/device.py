import logging

from signup_guard.api.modules.fraud.services.analyzers.base import (
    AnalysisContext,
    CategoryResult,
    RiskAnalyzer,
)
from signup_guard.api.modules.fraud.services.registry import DeviceRegistry
from signup_guard.services.logging import mask_fingerprint

logger = logging.getLogger(__name__)

PRELIMINARY_WEIGHT = 0.8
SPOOFING_WEIGHT = 80
HARDWARE_INCONSISTENCY_WEIGHT = 15
NO_MOUSE_MOVEMENT_WEIGHT = 20


class DeviceRiskAnalyzer(RiskAnalyzer):
    category = "device"

    def __init__(self, registry: DeviceRegistry):
        self._registry = registry

    async def analyze(self, ctx: AnalysisContext) -> CategoryResult:
        result = CategoryResult()
        signature = ctx.signature
        signer = ctx.signing_in_account

        record = await self._registry.get(signature.fingerprint)
        if record is not None and record.account_ids:
            others = [item for item in record.account_ids if item != signer]
            if others:
                result.score = 100
                result.flags.extend(
                    [
                        "DEVICE_ALREADY_REGISTERED",
                        f"EXISTING_ACCOUNTS_{len(record.account_ids)}",
                    ]
                )
                result.recommendations.append(
                    "BLOCK: Device already has a registered account. "
                    "Only one account per device is allowed."
                )
                logger.warning(
                    "Device reuse attempt",
                    extra={
                        "fingerprint": mask_fingerprint(signature.fingerprint),
                        "existing_accounts": len(record.account_ids),
                    },
                )
                return result
            result.flags.append("KNOWN_DEVICE")

        similar = [
            device
            for device in await self._registry.find_similar_with_accounts(signature)
            if any(item != signer for item in device.account_ids)
        ]
        if similar:
            total_accounts = sum(len(device.account_ids) for device in similar)
            result.score = 100
            result.flags.extend(
                [
                    "SIMILAR_DEVICE_WITH_ACCOUNTS",
                    f"SIMILAR_DEVICES_{len(similar)}",
                    f"TOTAL_EXISTING_ACCOUNTS_{total_accounts}",
                ]
            )
            result.recommendations.append(
                "BLOCK: Highly similar device (same address, user agent and platform) "
                "already has registered accounts."
            )
            logger.warning(
                "Similar device with accounts detected",
                extra={
                    "fingerprint": mask_fingerprint(signature.fingerprint),
                    "similar_devices": len(similar),
                    "ip": signature.ip_address,
                },
            )
            return result

        # Hint drift on a bound device is only judged through ownership above.
        if (
            record is not None
            and not record.account_ids
            and record.advanced_hash != signature.advanced_hash
        ):
            result.add(
                SPOOFING_WEIGHT,
                "DEVICE_SPOOFING_SUSPECTED",
                "Similar device fingerprint detected - possible device spoofing",
            )

        result.score = min(
            100, round(result.score + signature.preliminary_score * PRELIMINARY_WEIGHT)
        )
        result.flags.extend(signature.preliminary_flags)

        device = ctx.device
        if device is not None and signature.is_mobile and device.touch_support is False:
            result.add(
                HARDWARE_INCONSISTENCY_WEIGHT,
                "HARDWARE_INCONSISTENCY",
                "Hardware/platform inconsistency detected",
            )

        if device is not None and device.mouse_movements == 0:
            result.add(
                NO_MOUSE_MOVEMENT_WEIGHT,
                "NO_MOUSE_MOVEMENT",
                "No mouse movement detected - possible automation",
            )

        return result


__all__ = ("DeviceRiskAnalyzer",)
