from signup_guard.api.modules.fraud.services.network.classifier import (
    NetworkClassification,
    NetworkClassifier,
)
from signup_guard.api.modules.fraud.services.network.client import IpGeoClient, IpGeoResult
from signup_guard.api.modules.fraud.services.network.common import (
    RequestIpResolver,
    normalize_headers,
    normalize_ip,
)
from signup_guard.api.modules.fraud.services.network.rate_limit import (
    RedisAttemptRateLimiter,
)
from signup_guard.api.modules.fraud.services.network.threat_intel import (
    ReverseDnsResolver,
    ThreatIntelClient,
    ThreatIntelResult,
)

__all__ = (
    "IpGeoClient",
    "IpGeoResult",
    "NetworkClassification",
    "NetworkClassifier",
    "RedisAttemptRateLimiter",
    "RequestIpResolver",
    "ReverseDnsResolver",
    "ThreatIntelClient",
    "ThreatIntelResult",
    "normalize_headers",
    "normalize_ip",
)
