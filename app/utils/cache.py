"""
Redis cache utility for delegated grading verdicts
"""
import redis
import json
import logging
import hashlib
from typing import Optional, Any
from app.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-based cache; every operation is a no-op when Redis is unreachable"""

    def __init__(self, url: str, default_ttl: int):
        self.default_ttl = default_ttl
        try:
            self.redis_client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(f"Redis connection failed: {str(e)}. Caching disabled.")
            self.redis_client = None

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def grading_key(self, question_text: str, answer: str, rubric: str) -> str:
        """
        Deterministic key for a delegated grading request

        Same question, submitted answer and rubric -> same key
        """
        key_string = f"{question_text}|{answer}|{rubric}"
        return f"grading:{hashlib.sha256(key_string.encode()).hexdigest()}"

    def get(self, key: str) -> Optional[Any]:
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                logger.info(f"Cache hit: {key}")
                return json.loads(value)
            logger.info(f"Cache miss: {key}")
            return None
        except Exception as e:
            logger.error(f"Cache get error: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache

        Args:
            key: Cache key
            value: Value to cache (must be JSON serializable)
            ttl: Time to live in seconds (default from settings)

        Returns:
            Success status
        """
        if not self.redis_client:
            return False

        try:
            ttl = ttl or self.default_ttl
            self.redis_client.setex(key, ttl, json.dumps(value))
            logger.info(f"Cache set: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error: {str(e)}")
            return False


# Global instance
cache_service = CacheService(settings.REDIS_URL, settings.GRADING_CACHE_TTL)
