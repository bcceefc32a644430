from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from signup_guard.application import create_app
from signup_guard.settings import APIConfig
from tests.conftest import PUBLIC_IP, browser_headers

ANALYST = {"reason": "manual review", "actor": "analyst@example.com"}


async def evaluate(client: AsyncClient, ip: str = PUBLIC_IP, **context: Any):
    return await client.post(
        "/fraud/evaluate",
        json={"context": context},
        headers=browser_headers(ip),
    )


async def registered_fingerprint(client: AsyncClient, account_id: str = "acct-a") -> str:
    response = await evaluate(client, email=f"{account_id}@example.com")
    fingerprint = response.json()["fingerprint"]
    linked = await client.post(
        "/fraud/link",
        json={"fingerprint": fingerprint, "account_id": account_id},
    )
    assert linked.status_code == 200
    return fingerprint


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestEvaluate:
    async def test_clean_attempt(self, client):
        response = await evaluate(client, email="alice@example.com")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "ALLOWED"
        assert body["severity"] == "LOW"
        assert body["ip_address"] == PUBLIC_IP
        assert body["verification"] is None
        assert set(body["breakdown"]) == {
            "device",
            "network",
            "network_signal",
            "behavioral",
            "account",
        }

    async def test_reused_device_is_forbidden_on_email_channel(self, client):
        await registered_fingerprint(client)

        response = await evaluate(client, email="second@example.com")

        assert response.status_code == 403
        body = response.json()
        assert body["state"] == "BLOCKED"
        assert body["should_block"] is True
        assert body["error_code"] == "DEVICE_ALREADY_REGISTERED"

    async def test_interactive_channel_gets_decision_in_body(self, client):
        await registered_fingerprint(client)

        response = await evaluate(client, email="second@example.com", channel="google")

        assert response.status_code == 200
        assert response.json()["should_block"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"context": {"channel": "fax"}},
            {"context": {"attempt_type": "signup"}},
            {"context": {}, "unexpected": True},
            {"device": {"color_depth": 0}},
        ],
    )
    async def test_invalid_body(self, client, payload):
        response = await client.post(
            "/fraud/evaluate", json=payload, headers=browser_headers()
        )

        assert response.status_code == 422


class TestLinkAndEligibility:
    async def test_second_account_is_refused(self, client):
        fingerprint = await registered_fingerprint(client)

        response = await client.post(
            "/fraud/link",
            json={"fingerprint": fingerprint, "account_id": "acct-b"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["linked"] is False
        assert body["flagged"] is True
        assert body["reason"] == "Multiple accounts detected: 2 accounts"

    async def test_link_unknown_device(self, client):
        response = await client.post(
            "/fraud/link",
            json={"fingerprint": "f" * 32, "account_id": "acct-a"},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_eligibility(self, client):
        fingerprint = await registered_fingerprint(client)

        stranger = await client.get(f"/fraud/eligibility/{fingerprint}")
        owner = await client.get(
            f"/fraud/eligibility/{fingerprint}", params={"account_id": "acct-a"}
        )
        unknown = await client.get(f"/fraud/eligibility/{'0' * 32}")

        assert stranger.json()["is_eligible"] is False
        assert stranger.json()["existing_account_count"] == 1
        assert owner.json()["is_eligible"] is True
        assert unknown.json() == {
            "is_eligible": True,
            "reason": None,
            "risk_score": 0,
            "existing_account_count": 0,
        }


class TestDeviceAdmin:
    async def test_flag_and_filter(self, client):
        fingerprint = (await evaluate(client)).json()["fingerprint"]

        flagged = await client.post(f"/fraud/devices/{fingerprint}/flag", json=ANALYST)
        listing = await client.get("/fraud/devices", params={"is_flagged": True})

        assert flagged.status_code == 200
        assert flagged.json()["is_flagged"] is True
        assert flagged.json()["flagged_by"] == ANALYST["actor"]
        assert listing.json()["total"] == 1
        assert listing.json()["items"][0]["fingerprint"] == fingerprint

    async def test_block_then_unblock(self, client):
        fingerprint = (await evaluate(client)).json()["fingerprint"]

        blocked = await client.post(f"/fraud/devices/{fingerprint}/block", json=ANALYST)
        refused = await evaluate(client)
        unblocked = await client.post(
            f"/fraud/devices/{fingerprint}/unblock", json=ANALYST
        )

        assert blocked.json()["is_blocked"] is True
        assert refused.status_code == 403
        assert refused.json()["flags"] == ["DEVICE_BLOCKED"]
        assert unblocked.json()["is_blocked"] is False

    async def test_unknown_device(self, client):
        response = await client.get(f"/fraud/devices/{'a' * 32}")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_action_requires_reason_and_actor(self, client):
        fingerprint = (await evaluate(client)).json()["fingerprint"]

        response = await client.post(
            f"/fraud/devices/{fingerprint}/flag", json={"reason": ""}
        )

        assert response.status_code == 422


class TestNetworkAdmin:
    async def test_whitelist_records_action(self, client):
        await evaluate(client)

        response = await client.post(f"/fraud/ips/{PUBLIC_IP}/whitelist", json=ANALYST)
        record = await client.get(f"/fraud/ips/{PUBLIC_IP}")

        assert response.status_code == 200
        body = record.json()
        assert body["is_whitelisted"] is True
        assert body["reputation_score"] == 100
        assert [item["action_type"] for item in body["actions"]] == ["WHITELIST"]

    async def test_blacklisted_address_is_forbidden(self, client):
        await evaluate(client)
        await client.post(f"/fraud/ips/{PUBLIC_IP}/blacklist", json=ANALYST)

        response = await evaluate(client)
        listing = await client.get("/fraud/ips", params={"is_blacklisted": True})

        assert response.status_code == 403
        assert response.json()["flags"] == ["IP_BLACKLISTED"]
        assert listing.json()["total"] == 1

    async def test_unknown_address(self, client):
        missing = await client.get("/fraud/ips/9.9.9.9")
        action = await client.post("/fraud/ips/9.9.9.9/monitor", json=ANALYST)

        assert missing.status_code == 404
        assert action.status_code == 404


class TestAttempts:
    async def test_review_blocked_attempt(self, client):
        await registered_fingerprint(client)
        await evaluate(client, email="second@example.com")

        listing = await client.get("/fraud/attempts")
        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        attempt = listing.json()["items"][0]
        assert attempt["attempt_type"] == "REGISTRATION_BLOCKED"
        assert attempt["status"] == "PENDING"
        assert attempt["attempted_email"] == "second@example.com"

        reviewed = await client.patch(
            f"/fraud/attempts/{attempt['id']}/review",
            json={"status": "ESCALATED", "actor": "analyst", "notes": "same person"},
        )

        assert reviewed.status_code == 200
        assert reviewed.json()["status"] == "ESCALATED"
        assert reviewed.json()["reviewed"] is True
        assert reviewed.json()["admin_notes"] == "same person"

        pending = await client.get("/fraud/attempts", params={"status": "PENDING"})
        assert pending.json()["total"] == 0

    async def test_review_unknown_attempt(self, client):
        response = await client.patch(
            "/fraud/attempts/999/review",
            json={"status": "DISMISSED", "actor": "analyst"},
        )

        assert response.status_code == 404

    async def test_review_rejects_pending_status(self, client):
        response = await client.patch(
            "/fraud/attempts/1/review",
            json={"status": "PENDING", "actor": "analyst"},
        )

        assert response.status_code == 422


async def test_stats(client):
    await registered_fingerprint(client)
    await evaluate(client, email="second@example.com")

    response = await client.get("/fraud/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["devices"]["total"] == 1
    assert body["devices"]["with_accounts"] == 1
    assert body["networks"]["total"] == 1
    assert body["attempts"]["total"] == 1
    assert body["attempts"]["pending"] == 1
    assert body["attempts"]["last_24h"] == 1
    assert body["attempts"]["by_type"] == {"REGISTRATION_BLOCKED": 1}


async def test_purge_with_nothing_expired(client):
    await evaluate(client)

    response = await client.post("/fraud/maintenance/purge")

    assert response.status_code == 200
    assert response.json() == {"devices": 0, "networks": 0, "attempts": 0}


async def test_api_key_guards_everything_but_health(config, container):
    secured = config.model_copy(
        update={"api": APIConfig(allowed_hosts=["*"], api_key="s3cret")}
    )
    app = create_app(secured, container=container)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        health = await ac.get("/health")
        missing = await ac.get("/fraud/stats")
        allowed = await ac.get("/fraud/stats", headers={"X-API-Key": "s3cret"})

    assert health.status_code == 200
    assert missing.status_code == 401
    assert allowed.status_code == 200
