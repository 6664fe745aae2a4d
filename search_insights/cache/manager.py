"""
Redis Cache Manager for Search Insights
Stores derived analytics reports and generated suggestions; raw events are
never cached
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, List, Dict
import redis
from .config import CacheConfig

logger = logging.getLogger(__name__)


class CacheManager:
    """Redis-backed cache for derived aggregates; every failure reads as a miss"""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client
        self.config = CacheConfig()
        self.enabled = redis_client is not None

        if not self.enabled:
            logger.warning("Cache manager initialized without Redis client - caching disabled")

    def _key(self, key_type: str, identifier: str) -> str:
        return f"{self.config.get_key_prefix(key_type)}{identifier}"

    @staticmethod
    def _encode(data: Any) -> str:
        envelope = {"cached_at": datetime.now(timezone.utc).isoformat(), "data": data}
        return json.dumps(envelope, default=str)

    @staticmethod
    def _decode(raw: str) -> Any:
        """Payload of a cache envelope; entries that are not envelopes are ignored"""
        try:
            envelope = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(envelope, dict) or "data" not in envelope:
            return None
        return envelope["data"]

    def set(self, key_type: str, identifier: str, data: Any, ttl: Optional[int] = None) -> bool:
        """Store data under a typed key; TTL defaults to the key type's TTL"""
        if not self.enabled:
            return False

        cache_key = self._key(key_type, identifier)
        ttl = ttl or self.config.get_ttl_for_key_type(key_type)
        try:
            stored = self.redis_client.setex(cache_key, ttl, self._encode(data))
        except redis.RedisError as e:
            logger.error(f"Cache SET failed for {cache_key}: {e}")
            return False

        logger.debug(f"Cache SET: {cache_key} (TTL: {ttl}s)")
        return bool(stored)

    def get(self, key_type: str, identifier: str) -> Optional[Any]:
        if not self.enabled:
            return None

        cache_key = self._key(key_type, identifier)
        try:
            raw = self.redis_client.get(cache_key)
        except redis.RedisError as e:
            logger.error(f"Cache GET failed for {cache_key}: {e}")
            return None

        if raw is None:
            logger.debug(f"Cache MISS: {cache_key}")
            return None
        logger.debug(f"Cache HIT: {cache_key}")
        return self._decode(raw)

    def delete(self, key_type: str, identifier: str) -> bool:
        if not self.enabled:
            return False

        cache_key = self._key(key_type, identifier)
        try:
            return bool(self.redis_client.delete(cache_key))
        except redis.RedisError as e:
            logger.error(f"Cache DELETE failed for {cache_key}: {e}")
            return False

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern, returns the number deleted"""
        if not self.enabled:
            return 0

        try:
            keys = list(self.redis_client.scan_iter(match=pattern, count=self.config.SCAN_BATCH_SIZE))
            deleted = self.redis_client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.error(f"Cache INVALIDATE failed for '{pattern}': {e}")
            return 0

        if deleted:
            logger.info(f"Cache INVALIDATE: {deleted} keys matching '{pattern}'")
        return deleted

    # Analytics reports
    def cache_analytics_data(self, metric_key: str, data: Any, ttl: Optional[int] = None) -> bool:
        return self.set("analytics", metric_key, data, ttl)

    def get_cached_analytics_data(self, metric_key: str) -> Optional[Any]:
        return self.get("analytics", metric_key)

    def invalidate_analytics_cache(self) -> int:
        """Drop every cached report"""
        return self.invalidate_pattern(f"{self.config.ANALYTICS_PREFIX}*")

    # Query suggestions, keyed by the normalized query
    def cache_suggestions(self, query: str, suggestions: List[Dict], ttl: Optional[int] = None) -> bool:
        return self.set("suggestions", query.lower().strip(), suggestions, ttl)

    def get_cached_suggestions(self, query: str) -> Optional[List[Dict]]:
        return self.get("suggestions", query.lower().strip())

    def health_check(self) -> Dict[str, Any]:
        """Redis reachability and basic server stats"""
        if not self.enabled:
            return {"status": "disabled", "redis_available": False}

        try:
            self.redis_client.ping()
            info = self.redis_client.info()
        except redis.RedisError as e:
            logger.error(f"Cache health check failed: {e}")
            return {"status": "error", "redis_available": False, "error": str(e)}

        return {
            "status": "healthy",
            "redis_available": True,
            "connected_clients": info.get("connected_clients", 0),
            "used_memory_human": info.get("used_memory_human", "unknown")
        }
