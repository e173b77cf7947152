import logging
import uuid
from collections import deque
from time import time
from typing import Deque, Dict, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from utils.errors import RateLimitExceeded
from utils.responses import error_response
from utils.shared_utils import get_client_ip

logger = logging.getLogger(__name__)


def create_redis_client(redis_url: Optional[str]) -> Optional[aioredis.Redis]:
    """Build a Redis client for shared rate-limit state, or None when REDIS_URL is unset"""
    if not redis_url:
        logger.info("ℹ️ REDIS_URL not set. Using in-memory rate limiting.")
        return None
    try:
        # Supports redis:// and redis://:password@host:port
        client = aioredis.from_url(redis_url, decode_responses=True)
    except (RedisError, ValueError) as e:
        logger.warning(f"⚠️ Invalid REDIS_URL: {e}. Falling back to in-memory rate limiting.")
        return None
    logger.info("✅ Redis configured for rate limiting")
    return client


class SlidingWindowLimiter:
    """
    In-process sliding-window log: remembers the timestamps of recent
    requests per key and admits a request while fewer than ``max_requests``
    fall inside the last ``window_seconds``.

    Keys whose window has emptied are dropped, and every ``sweep_every``
    calls the whole map is scanned for keys that have gone quiet.
    """

    def __init__(self, max_requests: int, window_seconds: float, sweep_every: int = 1000):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_every = sweep_every
        self._hits: Dict[str, Deque[float]] = {}
        self._calls = 0

    def allow(self, key: str, now: Optional[float] = None) -> bool:
        now = time() if now is None else now
        cutoff = now - self.window_seconds

        self._calls += 1
        if self._calls >= self.sweep_every:
            self.sweep(now)

        hits = self._hits.get(key)
        if hits is not None:
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[key]
                hits = None

        if (len(hits) if hits else 0) >= self.max_requests:
            return False
        if hits is None:
            hits = self._hits[key] = deque()
        hits.append(now)
        return True

    def sweep(self, now: Optional[float] = None) -> int:
        """Forget keys with no hit inside the window; returns how many were dropped"""
        now = time() if now is None else now
        cutoff = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        self._calls = 0
        if stale:
            logger.debug(f"Dropped {len(stale)} idle rate-limit keys")
        return len(stale)

    def reset(self) -> None:
        self._hits.clear()
        self._calls = 0


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limiter per client address, applied to paths under
    ``path_prefix``. Uses a Redis sorted set when a client is given, with
    fallback to the in-process window if Redis fails.
    Default: 100 requests per 15 minutes per IP.
    """

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        path_prefix: str = "/api/",
        redis_client: Optional[aioredis.Redis] = None,
        trust_proxy: bool = False,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.path_prefix = path_prefix
        self._redis = redis_client
        self.trust_proxy = trust_proxy
        self._memory = SlidingWindowLimiter(max_requests, window_seconds)

    def _get_redis_key(self, ip: str) -> str:
        return f"rate_limit:{ip}"

    async def _check_rate_limit_redis(self, ip: str) -> Optional[bool]:
        """
        Returns True if allowed, False if limited, None if Redis is unusable.
        """
        key = self._get_redis_key(ip)
        now = time()
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now - self.window_seconds)
                pipe.zcard(key)
                pipe.zadd(key, {member: now})
                pipe.expire(key, int(self.window_seconds) + 10)
                _, count, _, _ = await pipe.execute()
            if count >= self.max_requests:
                # Rejected requests do not occupy the window
                await self._redis.zrem(key, member)
                return False
            return True
        except (RedisError, OSError) as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        ip = get_client_ip(request, trust_proxy=self.trust_proxy)

        allowed = None
        if self._redis is not None:
            allowed = await self._check_rate_limit_redis(ip)
        if allowed is None:
            allowed = self._memory.allow(ip)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {ip} on {request.url.path}")
            return error_response(
                RateLimitExceeded.default_message,
                status=RateLimitExceeded.status_code,
                headers={"Retry-After": str(int(self.window_seconds))},
            )

        return await call_next(request)
