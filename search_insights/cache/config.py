"""
Cache configuration settings
"""
import os


def _seconds(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class CacheConfig:
    """TTLs and key layout for cached analytics aggregates"""

    DEFAULT_TTL = _seconds("CACHE_DEFAULT_TTL", 3600)
    ANALYTICS_TTL = _seconds("ANALYTICS_TTL", 1800)
    SUGGESTIONS_TTL = _seconds("SUGGESTIONS_TTL", 6 * 3600)

    # Reports are recomputed from raw events, so they expire quickly
    REPORT_TTLS = {
        "funnel": _seconds("FUNNEL_REPORT_TTL", 600),
        "sessions": _seconds("SESSION_REPORT_TTL", 600),
        "refinements": _seconds("REFINEMENT_REPORT_TTL", 300),
        "zero_results": _seconds("ZERO_RESULTS_REPORT_TTL", 1800),
    }

    ANALYTICS_PREFIX = "analytics:"
    SUGGESTIONS_PREFIX = "suggestions:"
    KEY_TYPES = {
        "analytics": (ANALYTICS_PREFIX, ANALYTICS_TTL),
        "suggestions": (SUGGESTIONS_PREFIX, SUGGESTIONS_TTL),
    }

    SCAN_BATCH_SIZE = 500

    @classmethod
    def get_ttl_for_key_type(cls, key_type: str) -> int:
        return cls.KEY_TYPES.get(key_type, ("", cls.DEFAULT_TTL))[1]

    @classmethod
    def get_key_prefix(cls, key_type: str) -> str:
        return cls.KEY_TYPES.get(key_type, ("", cls.DEFAULT_TTL))[0]

    @classmethod
    def get_report_ttl(cls, report: str) -> int:
        """TTL for a cached analytics report"""
        return cls.REPORT_TTLS.get(report, cls.ANALYTICS_TTL)
