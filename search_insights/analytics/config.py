"""
Analytics engine configuration settings
"""
import os
from typing import Tuple


def _int_list(value: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in value.split(",") if part.strip())


class AnalyticsConfig:
    """Configuration class for the search analytics engine"""

    # Suggestion engine
    MAX_SUGGESTIONS = int(os.getenv("ANALYTICS_MAX_SUGGESTIONS", "5"))
    FUZZY_MIN_SIMILARITY = float(os.getenv("ANALYTICS_FUZZY_MIN", "0.70"))
    FUZZY_MAX_SIMILARITY = float(os.getenv("ANALYTICS_FUZZY_MAX", "0.99"))
    FUZZY_TOP_N = int(os.getenv("ANALYTICS_FUZZY_TOP_N", "3"))
    RULES_PATH = os.getenv("SEARCH_RULES_PATH", "")

    # Session flow and revenue reports
    TOP_PATTERNS = int(os.getenv("ANALYTICS_TOP_PATTERNS", "10"))
    TOP_REVENUE_TERMS = int(os.getenv("ANALYTICS_TOP_REVENUE_TERMS", "15"))
    TOP_PRODUCTS = int(os.getenv("ANALYTICS_TOP_PRODUCTS", "10"))
    MAX_FLOW_LINKS = int(os.getenv("ANALYTICS_MAX_FLOW_LINKS", "50"))

    # Stuck-session thresholds
    EXCESSIVE_REFINEMENTS = int(os.getenv("ANALYTICS_EXCESSIVE_REFINEMENTS", "5"))
    LOOP_THRESHOLD = int(os.getenv("ANALYTICS_LOOP_THRESHOLD", "3"))

    # Session id issuance (30 minutes of inactivity = new session)
    SESSION_TIMEOUT_MINUTES = int(os.getenv("SESSION_TIMEOUT_MINUTES", "30"))

    # Batch reads
    DEFAULT_BATCH_LIMIT = int(os.getenv("ANALYTICS_BATCH_LIMIT", "500"))
    ALLOWED_LOOKBACK_DAYS = _int_list(os.getenv("ANALYTICS_LOOKBACK_DAYS", "1,7,30,90"))

    @classmethod
    def is_allowed_lookback(cls, days: int) -> bool:
        """Check a lookback window against the configured choices"""
        return days in cls.ALLOWED_LOOKBACK_DAYS
