from collections.abc import AsyncIterator

from dishka import AsyncContainer, Provider, Scope, make_async_container, provide
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from signup_guard.api.modules.fraud.admin_service import FraudAdminService
from signup_guard.api.modules.fraud.service import FraudFacadeService
from signup_guard.api.modules.fraud.services.analyzers import (
    AccountContextAnalyzer,
    BehavioralRiskAnalyzer,
    DeviceRiskAnalyzer,
    NetworkRiskAnalyzer,
    NetworkSignalAnalyzer,
    RiskScoringEngine,
)
from signup_guard.api.modules.fraud.services.fingerprint import FingerprintGenerator
from signup_guard.api.modules.fraud.services.network import (
    IpGeoClient,
    NetworkClassifier,
    RedisAttemptRateLimiter,
    RequestIpResolver,
    ReverseDnsResolver,
    ThreatIntelClient,
)
from signup_guard.api.modules.fraud.services.registry import (
    DeviceRegistry,
    FraudAuditTrail,
    NetworkReputationTracker,
    SignupLedger,
)
from signup_guard.clients.providers import HttpClientsProvider
from signup_guard.database.engine import build_engine, build_session_factory
from signup_guard.database.uow import UnitOfWorkFactory
from signup_guard.settings import Config, get_config


class AppProvider(Provider):
    """Application provider for dependency injection."""

    def __init__(self, config: Config | None = None):
        super().__init__()
        self._config = config

    @provide(scope=Scope.APP)
    def get_config(self) -> Config:
        return self._config or get_config()


class DatabaseProvider(Provider):
    @provide(scope=Scope.APP)
    async def get_engine(self, config: Config) -> AsyncIterator[AsyncEngine]:
        engine = build_engine(config)
        try:
            yield engine
        finally:
            await engine.dispose()

    @provide(scope=Scope.APP)
    def get_session_factory(
        self, engine: AsyncEngine
    ) -> async_sessionmaker[AsyncSession]:
        return build_session_factory(engine)

    @provide(scope=Scope.APP)
    def get_uow_factory(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> UnitOfWorkFactory:
        return UnitOfWorkFactory(session_factory)


class ServicesProvider(Provider):
    """Services provider for dependency injection."""

    @provide(scope=Scope.APP)
    def get_request_ip_resolver(self, config: Config) -> RequestIpResolver:
        return RequestIpResolver(config)

    @provide(scope=Scope.APP)
    def get_attempt_rate_limiter(
        self, redis: Redis, config: Config
    ) -> RedisAttemptRateLimiter:
        return RedisAttemptRateLimiter(redis, config)

    @provide(scope=Scope.APP)
    def get_network_classifier(
        self,
        config: Config,
        geo_client: IpGeoClient,
        threat_intel: ThreatIntelClient,
        reverse_dns: ReverseDnsResolver,
    ) -> NetworkClassifier:
        return NetworkClassifier(
            config=config,
            geo_client=geo_client,
            threat_intel=threat_intel,
            reverse_dns=reverse_dns,
        )

    @provide(scope=Scope.APP)
    def get_fingerprint_generator(
        self,
        config: Config,
        ip_resolver: RequestIpResolver,
        classifier: NetworkClassifier,
    ) -> FingerprintGenerator:
        return FingerprintGenerator(config, ip_resolver, classifier)

    @provide(scope=Scope.APP)
    def get_network_tracker(
        self, config: Config, uow_factory: UnitOfWorkFactory
    ) -> NetworkReputationTracker:
        return NetworkReputationTracker(config, uow_factory)

    @provide(scope=Scope.APP)
    def get_device_registry(
        self,
        config: Config,
        uow_factory: UnitOfWorkFactory,
        network_tracker: NetworkReputationTracker,
    ) -> DeviceRegistry:
        return DeviceRegistry(config, uow_factory, network_tracker)

    @provide(scope=Scope.APP)
    def get_signup_ledger(self, uow_factory: UnitOfWorkFactory) -> SignupLedger:
        return SignupLedger(uow_factory)

    @provide(scope=Scope.APP)
    def get_audit_trail(
        self, config: Config, uow_factory: UnitOfWorkFactory
    ) -> FraudAuditTrail:
        return FraudAuditTrail(config, uow_factory)

    @provide(scope=Scope.APP)
    def get_scoring_engine(
        self,
        config: Config,
        registry: DeviceRegistry,
        network_tracker: NetworkReputationTracker,
        ledger: SignupLedger,
    ) -> RiskScoringEngine:
        return RiskScoringEngine(
            config,
            analyzers=(
                DeviceRiskAnalyzer(registry),
                NetworkRiskAnalyzer(config, network_tracker, ledger),
                NetworkSignalAnalyzer(config),
                BehavioralRiskAnalyzer(config),
                AccountContextAnalyzer(config, ledger),
            ),
        )

    @provide(scope=Scope.REQUEST)
    def get_fraud_facade_service(
        self,
        config: Config,
        rate_limiter: RedisAttemptRateLimiter,
        ip_resolver: RequestIpResolver,
        generator: FingerprintGenerator,
        engine: RiskScoringEngine,
        registry: DeviceRegistry,
        network_tracker: NetworkReputationTracker,
        audit: FraudAuditTrail,
    ) -> FraudFacadeService:
        return FraudFacadeService(
            config=config,
            rate_limiter=rate_limiter,
            ip_resolver=ip_resolver,
            generator=generator,
            engine=engine,
            registry=registry,
            network_tracker=network_tracker,
            audit=audit,
        )

    @provide(scope=Scope.REQUEST)
    def get_fraud_admin_service(
        self,
        uow_factory: UnitOfWorkFactory,
        registry: DeviceRegistry,
        network_tracker: NetworkReputationTracker,
        audit: FraudAuditTrail,
    ) -> FraudAdminService:
        return FraudAdminService(
            uow_factory=uow_factory,
            registry=registry,
            network_tracker=network_tracker,
            audit=audit,
        )


def get_async_container(config: Config | None = None) -> AsyncContainer:
    return make_async_container(
        AppProvider(config),
        DatabaseProvider(),
        ServicesProvider(),
        HttpClientsProvider(),
    )
