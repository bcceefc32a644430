from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from signup_guard.api.modules.fraud.services.network import (
    IpGeoClient,
    NetworkClassifier,
    RedisAttemptRateLimiter,
    ReverseDnsResolver,
    ThreatIntelClient,
)
from signup_guard.settings import Config
from tests.conftest import make_config


def _http_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def lookup_config(tmp_path) -> Config:
    return make_config(
        tmp_path,
        ip_geolocation_enabled=True,
        threat_intel_enabled=True,
        threat_intel_api_key="secret",
        vpn_networks=["81.2.69.0/24", "not-a-network"],
    )


class TestIpGeoClient:
    async def test_parses_and_caches(self, lookup_config):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            return httpx.Response(
                200,
                json={
                    "country_code": "de",
                    "city": "Frankfurt",
                    "org": "Hetzner Online GmbH",
                    "timezone": "Europe/Berlin",
                    "latitude": "50.11",
                    "longitude": 8.68,
                },
            )

        async with _http_client(handler) as client:
            geo = IpGeoClient(client, lookup_config)
            first = await geo.resolve("8.8.8.8")
            second = await geo.resolve("8.8.8.8")

        assert calls == ["/8.8.8.8/json/"]
        assert first is second
        assert first.country_iso == "DE"
        assert first.is_hosting is True
        assert first.latitude == pytest.approx(50.11)

    async def test_failure_returns_none(self, lookup_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with _http_client(handler) as client:
            geo = IpGeoClient(client, lookup_config)
            assert await geo.resolve("8.8.8.8") is None

    async def test_disabled(self, config):
        async with _http_client(lambda request: httpx.Response(500)) as client:
            assert await IpGeoClient(client, config).resolve("8.8.8.8") is None


class TestThreatIntelClient:
    async def test_vpn_with_risk(self, lookup_config):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(
                200,
                json={"status": "ok", "1.1.1.1": {"proxy": "yes", "type": "VPN", "risk": 70}},
            )

        async with _http_client(handler) as client:
            result = await ThreatIntelClient(client, lookup_config).lookup("1.1.1.1")

        assert seen["key"] == "secret"
        assert result.is_vpn is True
        assert result.is_proxy is False
        assert result.is_malicious is True
        assert result.risk == 70

    async def test_error_status(self, lookup_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "error", "message": "denied"})

        async with _http_client(handler) as client:
            assert await ThreatIntelClient(client, lookup_config).lookup("1.1.1.1") is None

    async def test_transport_error(self, lookup_config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out")

        async with _http_client(handler) as client:
            assert await ThreatIntelClient(client, lookup_config).lookup("1.1.1.1") is None


class TestNetworkClassifier:
    async def test_private_address_skips_lookups(self, lookup_config):
        geo = MagicMock()
        geo.resolve = AsyncMock()
        intel = MagicMock()
        intel.lookup = AsyncMock()
        classifier = NetworkClassifier(
            lookup_config, geo, intel, ReverseDnsResolver(lookup_config)
        )

        result = await classifier.classify("10.1.2.3")

        assert result.ip_address == "10.1.2.3"
        assert result.threat_score == 0
        geo.resolve.assert_not_awaited()
        intel.lookup.assert_not_awaited()

    async def test_unparseable_address(self, lookup_config):
        classifier = NetworkClassifier(
            lookup_config, MagicMock(), MagicMock(), ReverseDnsResolver(lookup_config)
        )
        result = await classifier.classify("garbage")
        assert result.ip_address == "garbage"
        assert result.is_vpn is False

    async def test_heuristics_without_intel(self, tmp_path):
        config = make_config(tmp_path, vpn_networks=["81.2.69.0/24"])
        async with _http_client(lambda request: httpx.Response(500)) as client:
            classifier = NetworkClassifier(
                config,
                IpGeoClient(client, config),
                ThreatIntelClient(client, config),
                ReverseDnsResolver(config),
            )
            result = await classifier.classify("81.2.69.142")

        assert result.is_vpn is True
        assert "vpn_ranges" in result.threat_sources
        assert result.threat_score == 30

    async def test_failing_lookup_degrades_to_local_ranges(self, lookup_config):
        geo = MagicMock()
        geo.resolve = AsyncMock(return_value=None)
        intel = MagicMock()
        intel.lookup = AsyncMock(side_effect=RuntimeError("boom"))
        classifier = NetworkClassifier(
            lookup_config, geo, intel, ReverseDnsResolver(lookup_config)
        )

        result = await classifier.classify("81.2.69.142")

        assert result.is_vpn is True
        assert result.threat_score == 30


class TestRateLimiter:
    @pytest.mark.parametrize("fraud_overrides", [{"rate_limit_enabled": True}])
    async def test_first_hit_sets_expiry(self, config, mock_redis):
        limiter = RedisAttemptRateLimiter(mock_redis, config)
        assert await limiter.allow("8.8.8.8") is True
        mock_redis.incr.assert_awaited_once_with("signup_guard:attempts:8.8.8.8")
        mock_redis.expire.assert_awaited_once_with(
            "signup_guard:attempts:8.8.8.8", config.fraud.rate_limit_window_seconds
        )

    @pytest.mark.parametrize(
        "fraud_overrides",
        [{"rate_limit_enabled": True, "rate_limit_max_requests_per_ip": 5}],
    )
    async def test_over_limit(self, config, mock_redis):
        mock_redis.incr = AsyncMock(return_value=6)
        limiter = RedisAttemptRateLimiter(mock_redis, config)
        assert await limiter.allow("8.8.8.8") is False
        mock_redis.expire.assert_not_awaited()

    @pytest.mark.parametrize("fraud_overrides", [{"rate_limit_enabled": True}])
    async def test_fails_open(self, config, mock_redis):
        mock_redis.incr = AsyncMock(side_effect=RedisConnectionError("down"))
        limiter = RedisAttemptRateLimiter(mock_redis, config)
        assert await limiter.allow("8.8.8.8") is True

    async def test_disabled_never_touches_redis(self, config, mock_redis):
        limiter = RedisAttemptRateLimiter(mock_redis, config)
        assert await limiter.allow("8.8.8.8") is True
        mock_redis.incr.assert_not_awaited()

    @pytest.mark.parametrize("fraud_overrides", [{"rate_limit_enabled": True}])
    async def test_unknown_address_allowed(self, config, mock_redis):
        limiter = RedisAttemptRateLimiter(mock_redis, config)
        assert await limiter.allow(None) is True
        mock_redis.incr.assert_not_awaited()
