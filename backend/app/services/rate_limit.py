"""
rate_limit.py

Redis-based AsyncLimiter protecting the TMDB API key quota and the
per-user recommendation generator budget.
Over-quota calls fail fast with RateLimitExceeded; nothing here retries,
retry policy belongs to the caller.
"""
import time
import logging
from typing import Dict, Any
from app.core.errors import RateLimitExceeded
from app.core.redis_client import get_redis

logger = logging.getLogger(__name__)

# Rate limit configurations
RATE_LIMITS = {
    "tmdb_api": {"limit": 40, "window": 10},      # 40 requests per 10 seconds
    "ai_llm": {"limit": 20, "window": 60},        # 20 generations per minute
}

class AsyncLimiter:
    """Redis-based rate limiter with sliding window."""

    def __init__(self, service: str, user_id: str = "global", redis=None):
        self.service = service
        self.user_id = user_id
        self.redis = redis or get_redis()
        self.config = RATE_LIMITS.get(service, {"limit": 10, "window": 60})

    @property
    def key(self) -> str:
        return f"rate_limit:{self.service}:{self.user_id}"

    async def acquire(self) -> bool:
        """Attempt to acquire a token. Returns True if allowed, False if rate limited."""
        now = time.time()
        window = self.config["window"]
        limit = self.config["limit"]

        # Use sliding window with Redis pipeline
        pipe = self.redis.pipeline()
        # Remove expired entries
        pipe.zremrangebyscore(self.key, 0, now - window)
        # Add current request (member must be unique per call)
        pipe.zadd(self.key, {f"{now:.6f}:{time.perf_counter_ns()}": now})
        # Count current requests
        pipe.zcard(self.key)
        # Set expiry
        pipe.expire(self.key, window)

        results = await pipe.execute()
        current_count = results[2]

        if current_count > limit:
            logger.warning(f"Rate limit exceeded for {self.service} (user: {self.user_id}): {current_count}/{limit}")
            return False

        return True

    async def get_status(self) -> Dict[str, Any]:
        """Get current quota status."""
        now = int(time.time())
        window = self.config["window"]
        limit = self.config["limit"]

        current_count = await self.redis.zcard(self.key)
        remaining = max(0, limit - current_count)
        reset_time = now + window

        return {
            "service": self.service,
            "user_id": self.user_id,
            "limit": limit,
            "remaining": remaining,
            "reset_time": reset_time,
            "current_count": current_count
        }

async def check_rate_limit(user_id: str, service: str, redis=None) -> None:
    """Check rate limit and raise exception if exceeded."""
    limiter = AsyncLimiter(service, user_id, redis=redis)
    if not await limiter.acquire():
        status = await limiter.get_status()
        raise RateLimitExceeded(
            f"Rate limit exceeded for {service}",
            service=service,
            user_id=user_id,
            status=status
        )
