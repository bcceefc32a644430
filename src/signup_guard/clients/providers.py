"""HTTP and cache clients provider for dependency injection."""

from collections.abc import AsyncIterator

import httpx
from dishka import Provider, Scope, provide
from redis.asyncio import Redis

from signup_guard.api.modules.fraud.services.network import (
    IpGeoClient,
    ReverseDnsResolver,
    ThreatIntelClient,
)
from signup_guard.settings import Config


class HttpClientsProvider(Provider):
    """Outbound clients shared for the whole application lifetime.

    One ``httpx.AsyncClient`` backs both the geolocation and the threat
    intelligence lookups so they share a connection pool. The Redis client
    holds the attempt rate limiter counters.
    """

    @provide(scope=Scope.APP)
    async def get_httpx_client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(5.0),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            follow_redirects=True,
        ) as client:
            yield client

    @provide(scope=Scope.APP)
    async def get_redis_client(self, config: Config) -> AsyncIterator[Redis]:
        client = Redis.from_url(config.redis_url, decode_responses=True)
        try:
            yield client
        finally:
            await client.aclose()

    @provide(scope=Scope.APP)
    def get_ip_geo_client(
        self,
        client: httpx.AsyncClient,
        config: Config,
    ) -> IpGeoClient:
        return IpGeoClient(client, config)

    @provide(scope=Scope.APP)
    def get_threat_intel_client(
        self,
        client: httpx.AsyncClient,
        config: Config,
    ) -> ThreatIntelClient:
        return ThreatIntelClient(client, config)

    @provide(scope=Scope.APP)
    def get_reverse_dns_resolver(self, config: Config) -> ReverseDnsResolver:
        return ReverseDnsResolver(config)
