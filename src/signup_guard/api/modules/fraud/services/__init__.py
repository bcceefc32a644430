from signup_guard.api.modules.fraud.services.network import (
    IpGeoClient,
    IpGeoResult,
    RedisAttemptRateLimiter,
    RequestIpResolver,
    normalize_ip,
)

__all__ = (
    "IpGeoClient",
    "IpGeoResult",
    "RedisAttemptRateLimiter",
    "RequestIpResolver",
    "normalize_ip",
)
