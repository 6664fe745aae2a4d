"""
Cache module for Search Insights
Redis-based caching of derived analytics aggregates with TTL and invalidation
"""

from .manager import CacheManager
from .config import CacheConfig

__all__ = [
    'CacheManager',
    'CacheConfig'
]
