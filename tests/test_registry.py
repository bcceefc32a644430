import datetime

import pytest
from sqlalchemy import update

from signup_guard.api.modules.fraud.models import DeviceFingerprint, NetworkRecord
from signup_guard.api.modules.fraud.schema import AttemptContext, ReviewRequest
from signup_guard.api.modules.fraud.services.core import RecordNotFoundError
from signup_guard.api.modules.fraud.services.fingerprint import (
    DeviceSignature,
    FingerprintGenerator,
)
from signup_guard.api.modules.fraud.services.registry import (
    SYSTEM_ACTOR,
    DeviceRegistry,
    FraudAuditTrail,
    NetworkReputationTracker,
    SignupLedger,
)
from signup_guard.database.base import utcnow
from signup_guard.database.uow import UnitOfWorkFactory
from tests.conftest import PUBLIC_IP, browser_headers


async def observe(
    generator: FingerprintGenerator,
    registry: DeviceRegistry,
    ip: str = PUBLIC_IP,
    **headers: str,
) -> DeviceSignature:
    signature = await generator.generate(browser_headers(ip, **headers), None)
    await registry.record_observation(signature, 10, "LOW", ["TEST"])
    return signature


async def age_devices(uow_factory: UnitOfWorkFactory, days: int, *fingerprints: str) -> None:
    async with uow_factory() as uow:
        await uow.session.execute(
            update(DeviceFingerprint)
            .where(DeviceFingerprint.fingerprint.in_(fingerprints))
            .values(last_seen=utcnow() - datetime.timedelta(days=days))
        )
        await uow.commit()


async def age_network(uow_factory: UnitOfWorkFactory, days: int, ip: str) -> None:
    async with uow_factory() as uow:
        await uow.session.execute(
            update(NetworkRecord)
            .where(NetworkRecord.ip_address == ip)
            .values(last_seen=utcnow() - datetime.timedelta(days=days))
        )
        await uow.commit()


class TestObservation:
    async def test_first_sight_creates_device(self, generator, registry):
        signature = await observe(generator, registry)

        device = await registry.get(signature.fingerprint)
        assert device is not None
        assert device.seen_count == 1
        assert device.ip_address == PUBLIC_IP
        assert device.risk_flags == ["TEST"]
        assert device.account_ids == []

    async def test_repeat_sight_bumps_counter(self, generator, registry):
        signature = await observe(generator, registry)
        await registry.record_observation(signature, 40, "MEDIUM", ["AGAIN"])

        device = await registry.get(signature.fingerprint)
        assert device.seen_count == 2
        assert device.risk_score == 40
        assert device.risk_flags == ["AGAIN"]

    async def test_unknown_device_is_eligible(self, registry):
        result = await registry.check_eligibility("0" * 32)
        assert result.is_eligible is True
        assert result.existing_account_count == 0


class TestStrictLinkage:
    async def test_link_then_second_account_ineligible(self, generator, registry):
        signature = await observe(generator, registry)

        linked = await registry.link_account(signature.fingerprint, "acct-a", "A@Example.com")
        assert linked.linked is True
        assert linked.existing_account_count == 1
        assert linked.flagged is False

        result = await registry.check_eligibility(signature.fingerprint)
        assert result.is_eligible is False
        assert result.existing_account_count == 1
        assert result.risk_score == 100

    async def test_signing_in_owner_stays_eligible(self, generator, registry):
        signature = await observe(generator, registry)
        await registry.link_account(signature.fingerprint, "acct-a")

        result = await registry.check_eligibility(signature.fingerprint, account_id="acct-a")
        assert result.is_eligible is True
        assert result.existing_account_count == 1

    async def test_second_link_refused_and_flagged(self, generator, registry):
        signature = await observe(generator, registry)
        await registry.link_account(signature.fingerprint, "acct-a")

        refused = await registry.link_account(signature.fingerprint, "acct-b")

        assert refused.linked is False
        assert refused.flagged is True
        assert refused.existing_account_count == 1
        assert refused.reason == "Multiple accounts detected: 2 accounts"

        device = await registry.get(signature.fingerprint)
        assert device.account_ids == ["acct-a"]
        assert device.is_flagged is True
        assert device.flagged_by == SYSTEM_ACTOR

    async def test_relinking_same_account_is_idempotent(self, generator, registry, ledger):
        signature = await observe(generator, registry)
        await registry.link_account(signature.fingerprint, "acct-a")
        again = await registry.link_account(signature.fingerprint, "acct-a")

        assert again.linked is True
        assert again.existing_account_count == 1
        assert await ledger.count_from_address(PUBLIC_IP, 3600) == 1

    async def test_link_unknown_device(self, registry):
        with pytest.raises(RecordNotFoundError):
            await registry.link_account("f" * 32, "acct-a")

    async def test_link_records_network_and_ledger(
        self, generator, registry, tracker, ledger
    ):
        signature = await observe(generator, registry)
        await registry.link_account(
            signature.fingerprint, "acct-a", "Someone@Example.com", "REF1"
        )

        network = await tracker.get(PUBLIC_IP)
        assert network is not None
        assert network.unique_accounts == 1
        assert await ledger.count_from_address(PUBLIC_IP, 3600) == 1
        assert await ledger.count_with_referral("REF1", 3600) == 1


@pytest.mark.parametrize(
    "fraud_overrides", [{"enforce_single_account_per_device": False}]
)
class TestLaxLinkage:
    async def test_double_linkage_flags_device(self, generator, registry):
        signature = await observe(generator, registry)
        await registry.link_account(signature.fingerprint, "acct-a")

        second = await registry.link_account(signature.fingerprint, "acct-b")

        assert second.linked is True
        assert second.flagged is True
        assert second.existing_account_count == 2
        assert second.reason == "Multiple accounts detected: 2 accounts"

    async def test_eligibility_auto_blocks_shared_device(self, generator, registry):
        signature = await observe(generator, registry)
        await registry.link_account(signature.fingerprint, "acct-a")
        await registry.link_account(signature.fingerprint, "acct-b")

        result = await registry.check_eligibility(signature.fingerprint)

        assert result.is_eligible is False
        assert result.existing_account_count == 2
        device = await registry.get(signature.fingerprint)
        assert device.is_blocked is True
        assert device.blocked_by == SYSTEM_ACTOR
        assert device.blocked_reason == "Multiple accounts detected: 2 accounts"
        assert any("BLOCK by SYSTEM" in note for note in device.notes)


class TestRetention:
    @pytest.mark.parametrize("fraud_overrides", [{"device_retention_days": 30}])
    async def test_expired_device_is_invisible(self, generator, registry, uow_factory):
        signature = await observe(generator, registry)
        await registry.link_account(signature.fingerprint, "acct-a")
        await age_devices(uow_factory, 31, signature.fingerprint)

        assert await registry.get(signature.fingerprint) is None
        result = await registry.check_eligibility(signature.fingerprint)
        assert result.is_eligible is True

    @pytest.mark.parametrize("fraud_overrides", [{"device_retention_days": 30}])
    async def test_expired_device_comes_back_fresh(self, generator, registry, uow_factory):
        signature = await observe(generator, registry)
        await registry.link_account(signature.fingerprint, "acct-a")
        await registry.flag(signature.fingerprint, "suspicious", "analyst")
        await age_devices(uow_factory, 31, signature.fingerprint)

        await registry.record_observation(signature, 0, "LOW", [])

        device = await registry.get(signature.fingerprint)
        assert device.seen_count == 1
        assert device.is_flagged is False
        assert device.account_ids == []
        assert device.notes == []

        linked = await registry.link_account(signature.fingerprint, "acct-b")
        assert linked.linked is True
        assert linked.existing_account_count == 1

    @pytest.mark.parametrize("fraud_overrides", [{"device_retention_days": 30}])
    async def test_purge_keeps_devices_with_history(self, generator, registry, uow_factory):
        idle = await observe(generator, registry, **{"accept-language": "de-DE"})
        owned = await observe(generator, registry, **{"accept-language": "fr-FR"})
        await registry.link_account(owned.fingerprint, "acct-a")
        await age_devices(uow_factory, 31, idle.fingerprint, owned.fingerprint)

        assert await registry.purge_expired() == 1

        async with uow_factory() as uow:
            remaining = await uow.devices.get(owned.fingerprint, utcnow() - datetime.timedelta(days=3650))
            gone = await uow.devices.get(idle.fingerprint, utcnow() - datetime.timedelta(days=3650))
        assert remaining is not None
        assert gone is None

    @pytest.mark.parametrize("fraud_overrides", [{"network_retention_days": 30}])
    async def test_purge_networks_keeps_listed(self, tracker, generator, uow_factory):
        await tracker.record_request((await generator.generate(browser_headers("8.8.8.8"), None)).network)
        await tracker.record_request((await generator.generate(browser_headers("1.1.1.1"), None)).network)
        await tracker.whitelist("1.1.1.1", "office", "analyst")
        await age_network(uow_factory, 31, "8.8.8.8")
        await age_network(uow_factory, 31, "1.1.1.1")

        assert await tracker.get("8.8.8.8") is None
        assert await tracker.purge_expired() == 1


class TestAdminActions:
    async def test_flag_and_unflag(self, generator, registry):
        signature = await observe(generator, registry)

        flagged = await registry.flag(signature.fingerprint, "looks scripted", "analyst")
        assert flagged.is_flagged is True
        assert flagged.flag_reason == "looks scripted"
        assert flagged.flagged_by == "analyst"

        cleared = await registry.unflag(signature.fingerprint, "false positive", "analyst")
        assert cleared.is_flagged is False
        assert cleared.flag_reason is None
        assert len(cleared.notes) == 2

    async def test_block_and_unblock(self, generator, registry):
        signature = await observe(generator, registry)

        blocked = await registry.block(signature.fingerprint, "chargeback", "analyst")
        assert blocked.is_blocked is True
        result = await registry.check_eligibility(signature.fingerprint)
        assert result.is_eligible is False
        assert result.reason == "chargeback"

        unblocked = await registry.unblock(signature.fingerprint, "resolved", "analyst")
        assert unblocked.is_blocked is False
        assert (await registry.check_eligibility(signature.fingerprint)).is_eligible is True

    async def test_missing_device(self, registry):
        with pytest.raises(RecordNotFoundError):
            await registry.flag("a" * 32, "reason", "analyst")

    async def test_missing_network(self, tracker):
        with pytest.raises(RecordNotFoundError):
            await tracker.whitelist("8.8.4.4", "reason", "analyst")

    async def test_network_list_actions(self, tracker, generator):
        signature = await generator.generate(browser_headers(), None)
        await tracker.record_request(signature.network)

        record = await tracker.whitelist(PUBLIC_IP, "partner office", "analyst")
        assert record.is_whitelisted is True
        assert record.reputation_score == 100

        record = await tracker.blacklist(PUBLIC_IP, "abuse", "analyst")
        assert record.is_blacklisted is True
        assert record.is_whitelisted is False
        assert record.reputation_score == 0

        record = await tracker.monitor(PUBLIC_IP, "watch", "analyst")
        assert record.is_monitored is True
        assert [action.action_type for action in record.actions] == [
            "WHITELIST",
            "BLACKLIST",
            "MONITOR",
        ]

    async def test_auto_blacklist_when_most_devices_blocked(self, generator, registry, tracker):
        devices = [
            await observe(generator, registry, **{"accept-language": language})
            for language in ("en-US", "de-DE", "fr-FR")
        ]
        await registry.block(devices[0].fingerprint, "fraud", "analyst")
        assert (await tracker.get(PUBLIC_IP)) is None or not (
            await tracker.get(PUBLIC_IP)
        ).is_blacklisted

        await registry.block(devices[1].fingerprint, "fraud", "analyst")

        record = await tracker.get(PUBLIC_IP)
        assert record.is_blacklisted is True
        assert record.actions[-1].performed_by == SYSTEM_ACTOR


class TestAuditTrail:
    async def test_record_and_review(self, generator, audit: FraudAuditTrail):
        signature = await generator.generate(browser_headers(), None)
        attempt = await audit.record(
            attempt_type="REGISTRATION_BLOCKED",
            reason="test",
            risk_score=95,
            flags=["X"],
            signature=signature,
            context=AttemptContext(email="someone@example.com"),
        )
        assert attempt.id is not None
        assert attempt.status == "PENDING"

        reviewed = await audit.review(
            attempt.id, ReviewRequest(status="DISMISSED", actor="analyst", notes="ok")
        )
        assert reviewed.status == "DISMISSED"
        assert reviewed.reviewed is True
        assert reviewed.reviewed_by == "analyst"

    async def test_review_missing(self, audit: FraudAuditTrail):
        with pytest.raises(RecordNotFoundError):
            await audit.review(999, ReviewRequest(status="REVIEWED", actor="analyst"))


class TestSignupLedger:
    async def test_similar_emails(self, generator, registry, ledger: SignupLedger):
        for index, language in enumerate(("en-US", "de-DE", "fr-FR")):
            signature = await observe(generator, registry, **{"accept-language": language})
            await registry.link_account(
                signature.fingerprint, f"acct-{index}", f"johnsmith{index}@example.com"
            )

        assert await ledger.count_similar_emails("johnsmith9@example.com", 5) == 3
        assert await ledger.count_similar_emails("johnsmith0@example.com", 5) == 2
        assert await ledger.count_similar_emails("zed@example.com", 5) == 0


async def test_similar_devices_found(generator, registry: DeviceRegistry):
    owned = await observe(generator, registry, **{"accept-language": "de-DE"})
    await registry.link_account(owned.fingerprint, "acct-a")
    fresh = await generator.generate(browser_headers(), None)

    similar = await registry.find_similar_with_accounts(fresh)

    assert [device.fingerprint for device in similar] == [owned.fingerprint]


async def test_network_request_counter(generator, tracker: NetworkReputationTracker):
    signature = await generator.generate(browser_headers(), None)
    await tracker.record_request(signature.network)
    await tracker.record_request(signature.network)

    record = await tracker.get(PUBLIC_IP)
    assert record.total_requests == 2
    assert record.reputation_score == 50
