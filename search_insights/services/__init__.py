"""
Services module for Search Insights
Event store access and cached analytics reports
"""

from .event_store import EventStore
from .search_analytics import SearchAnalyticsService

__all__ = [
    "EventStore",
    "SearchAnalyticsService"
]
