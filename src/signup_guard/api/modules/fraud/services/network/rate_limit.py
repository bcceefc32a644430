import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from signup_guard.settings import Config

logger = logging.getLogger(__name__)

_KEY_PREFIX = "signup_guard:attempts:"


class RedisAttemptRateLimiter:
    """Fixed-window attempt counter per address, shared by every worker.

    A Redis outage fails open: the engine still scores the attempt.
    """

    def __init__(self, redis: Redis, config: Config):
        self._redis = redis
        self._enabled = config.fraud.rate_limit_enabled
        self._window_seconds = config.fraud.rate_limit_window_seconds
        self._max_requests_per_ip = config.fraud.rate_limit_max_requests_per_ip

    async def allow(self, ip: str | None) -> bool:
        if not self._enabled or not ip:
            return True

        key = f"{_KEY_PREFIX}{ip}"
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, self._window_seconds)
        except RedisError:
            logger.warning("Rate limiter unavailable, allowing attempt", extra={"ip": ip})
            return True

        return count <= self._max_requests_per_ip


__all__ = ("RedisAttemptRateLimiter",)
