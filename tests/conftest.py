"""
Pytest fixtures for the signup guard tests.
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from dishka import AsyncContainer
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from signup_guard.api.modules.fraud.schema import AttemptContext, EvaluateRequest
from signup_guard.api.modules.fraud.service import FraudFacadeService
from signup_guard.api.modules.fraud.services.analyzers import RiskScoringEngine
from signup_guard.api.modules.fraud.services.fingerprint import FingerprintGenerator
from signup_guard.api.modules.fraud.services.network import (
    RedisAttemptRateLimiter,
    RequestIpResolver,
)
from signup_guard.api.modules.fraud.services.registry import (
    DeviceRegistry,
    FraudAuditTrail,
    NetworkReputationTracker,
    SignupLedger,
)
from signup_guard.application import create_app, create_tables
from signup_guard.database.uow import UnitOfWorkFactory
from signup_guard.ioc import get_async_container
from signup_guard.settings import (
    APIConfig,
    Config,
    FraudConfig,
    PostgresConfig,
    RedisConfig,
)

CHROME_WINDOWS_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "user-agent": CHROME_WINDOWS_UA,
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.9",
    "accept-encoding": "gzip, deflate, br",
}

PUBLIC_IP = "8.8.8.8"
OTHER_PUBLIC_IP = "1.1.1.1"


def browser_headers(ip: str = PUBLIC_IP, **overrides: str) -> dict[str, str]:
    return {**BROWSER_HEADERS, "x-forwarded-for": ip, **overrides}


def evaluate_request(**context: Any) -> EvaluateRequest:
    return EvaluateRequest(context=AttemptContext(**context))


def make_config(tmp_path: Path, **fraud: Any) -> Config:
    fraud_defaults: dict[str, Any] = {
        "ip_geolocation_enabled": False,
        "threat_intel_enabled": False,
        "reverse_dns_enabled": False,
        "rate_limit_enabled": False,
    }
    return Config(
        _env_file=None,
        api=APIConfig(allowed_hosts=["*"]),
        postgres=PostgresConfig(user="test", password="test", host="localhost", db="test"),
        redis=RedisConfig(host="localhost"),
        fraud=FraudConfig(**{**fraud_defaults, **fraud}),
        database_dsn=f"sqlite+aiosqlite:///{tmp_path / 'signup_guard.db'}",
    )


@pytest.fixture
def fraud_overrides() -> dict[str, Any]:
    """Per-module hook for fraud settings, overridden where a test needs it."""
    return {}


@pytest.fixture
def config(tmp_path: Path, fraud_overrides: dict[str, Any]) -> Config:
    return make_config(tmp_path, **fraud_overrides)


@pytest.fixture
async def container(config: Config) -> AsyncGenerator[AsyncContainer, None]:
    container = get_async_container(config)
    await create_tables(await container.get(AsyncEngine))
    yield container
    await container.close()


@pytest.fixture
async def uow_factory(container: AsyncContainer) -> UnitOfWorkFactory:
    return await container.get(UnitOfWorkFactory)


@pytest.fixture
async def registry(container: AsyncContainer) -> DeviceRegistry:
    return await container.get(DeviceRegistry)


@pytest.fixture
async def tracker(container: AsyncContainer) -> NetworkReputationTracker:
    return await container.get(NetworkReputationTracker)


@pytest.fixture
async def audit(container: AsyncContainer) -> FraudAuditTrail:
    return await container.get(FraudAuditTrail)


@pytest.fixture
async def ledger(container: AsyncContainer) -> SignupLedger:
    return await container.get(SignupLedger)


@pytest.fixture
async def generator(container: AsyncContainer) -> FingerprintGenerator:
    return await container.get(FingerprintGenerator)


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create mock Redis client."""
    redis = MagicMock()
    redis.incr = AsyncMock(return_value=1)
    redis.expire = AsyncMock(return_value=True)
    return redis


@pytest.fixture
async def build_facade(
    container: AsyncContainer,
    config: Config,
    mock_redis: MagicMock,
) -> Callable[..., FraudFacadeService]:
    ip_resolver = await container.get(RequestIpResolver)
    generator = await container.get(FingerprintGenerator)
    engine = await container.get(RiskScoringEngine)
    registry = await container.get(DeviceRegistry)
    tracker = await container.get(NetworkReputationTracker)
    audit = await container.get(FraudAuditTrail)

    def build(
        engine_override: RiskScoringEngine | None = None,
        rate_limiter: RedisAttemptRateLimiter | None = None,
    ) -> FraudFacadeService:
        return FraudFacadeService(
            config=config,
            rate_limiter=rate_limiter or RedisAttemptRateLimiter(mock_redis, config),
            ip_resolver=ip_resolver,
            generator=generator,
            engine=engine_override or engine,
            registry=registry,
            network_tracker=tracker,
            audit=audit,
        )

    return build


@pytest.fixture
def facade(build_facade: Callable[..., FraudFacadeService]) -> FraudFacadeService:
    return build_facade()


@pytest.fixture
def app(config: Config, container: AsyncContainer) -> FastAPI:
    return create_app(config, container=container)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"accept-language": "en-US,en;q=0.9"},
    ) as ac:
        yield ac
