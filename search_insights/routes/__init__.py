"""
Routes module for Search Insights
API endpoints for search behavior analytics
"""

from .analytics import router as analytics_router

__all__ = [
    "analytics_router"
]
