import logging
from typing import Optional

import redis

logger = logging.getLogger(__name__)


class RedisService:
    """
    Short-lived cache for live exchange rates.
    Every operation degrades to a miss/no-op when Redis is absent or failing.
    """

    def __init__(self, redis_url: Optional[str] = None, client=None):
        self.client = client
        if self.client is not None:
            return
        if not redis_url:
            logger.info("REDIS_URL not set. Rate caching disabled.")
            return
        try:
            self.client = redis.from_url(redis_url, decode_responses=True)
            self.client.ping()
            logger.info("Connected to Redis for rate caching.")
        except redis.RedisError as e:
            logger.warning(f"Failed to connect to Redis: {type(e).__name__}. Rate caching disabled.")
            self.client = None

    def get_rate(self, key: str) -> Optional[float]:
        if not self.client:
            return None
        try:
            data = self.client.get(key)
            return float(data) if data is not None else None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis get error for {key}: {e}")
            return None

    def set_rate(self, key: str, value: float, ttl_seconds: int = 300):
        if not self.client:
            return
        try:
            self.client.setex(key, ttl_seconds, repr(float(value)))
        except redis.RedisError as e:
            logger.warning(f"Redis set error for {key}: {e}")
