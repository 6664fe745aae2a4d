"""
Search Analytics Service for Search Insights
Runs the analytics engine over event store batches and caches the reports
"""

import logging
from collections import Counter
from typing import Dict, List, Any, Callable, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..analytics.funnel import (
    compute_funnel_metrics,
    compute_search_term_revenue,
    get_conversion_trend,
    get_funnel_chart_data,
    get_top_converting_products,
    top_revenue_terms,
)
from ..analytics.refinement import RefinementDetector
from ..analytics.sessions import (
    SessionReconstructor,
    analyze_session_flow,
    behavior_distribution,
    get_session_flow_data,
)
from ..analytics.suggestions import SuggestionEngine
from ..cache.config import CacheConfig
from ..cache.manager import CacheManager
from .event_store import EventStore

logger = logging.getLogger(__name__)


class SearchAnalyticsService:
    """Service for computing and caching search behavior reports"""

    def __init__(
        self,
        db_session: Session,
        cache_manager: CacheManager,
        event_store: Optional[EventStore] = None,
        suggestion_engine: Optional[SuggestionEngine] = None
    ):
        """Initialize analytics service with database and cache"""
        self.db = db_session
        self.cache = cache_manager
        self.store = event_store or EventStore(db_session)
        self.suggestions = suggestion_engine or SuggestionEngine()

    def _fetch(self, fetch: Callable[[int], List], days: int) -> Tuple[List, bool]:
        """Read a batch; a store failure is logged and read as no data"""
        try:
            return fetch(days), True
        except SQLAlchemyError as e:
            logger.error(f"Error reading events from store: {e}")
            self.db.rollback()
            return [], False

    def _cached_report(
        self,
        report: str,
        days: int,
        build: Callable[[], Tuple[Dict[str, Any], bool]],
        variant: str = ""
    ) -> Dict[str, Any]:
        cache_key = f"{report}_report_{days}{variant}"

        cached_data = self.cache.get_cached_analytics_data(cache_key)
        if cached_data:
            logger.debug(f"Cache HIT for {report} report ({days} days)")
            return cached_data

        logger.debug(f"Cache MISS for {report} report ({days} days)")
        data, complete = build()
        data["period_days"] = days
        data["data_available"] = complete

        # Failed reads are not cached so the next request retries the store
        if complete:
            self.cache.cache_analytics_data(cache_key, data, CacheConfig.get_report_ttl(report))
        return data

    def get_funnel_report(self, days: int = 30) -> Dict[str, Any]:
        """Funnel metrics, chart stages, revenue per term, trend and top products"""
        def build():
            searches, searches_ok = self._fetch(self.store.fetch_search_events, days)
            conversions, conversions_ok = self._fetch(self.store.fetch_conversions, days)

            metrics = compute_funnel_metrics(searches, conversions)
            revenue = compute_search_term_revenue(searches, conversions)

            return {
                "metrics": metrics.model_dump(mode="json"),
                "stages": [stage.model_dump(mode="json") for stage in get_funnel_chart_data(metrics)],
                "top_revenue_terms": [row.model_dump(mode="json") for row in top_revenue_terms(revenue)],
                "trend": [point.model_dump(mode="json") for point in get_conversion_trend(searches, days)],
                "top_products": [p.model_dump(mode="json") for p in get_top_converting_products(conversions)]
            }, searches_ok and conversions_ok

        return self._cached_report("funnel", days, build)

    def get_session_report(self, days: int = 30) -> Dict[str, Any]:
        """Session flow analysis, behavior labels and the query flow graph"""
        def build():
            searches, ok = self._fetch(self.store.fetch_search_events, days)

            reconstructor = SessionReconstructor()
            sessions = reconstructor.group(searches)

            return {
                "analysis": analyze_session_flow(sessions).model_dump(mode="json"),
                "behaviors": behavior_distribution(sessions),
                "flow": get_session_flow_data(sessions).model_dump(mode="json"),
                "skipped_events": reconstructor.skipped_records
            }, ok

        return self._cached_report("sessions", days, build)

    def get_refinement_report(self, days: int = 30) -> Dict[str, Any]:
        """Stuck-session analysis over refinement events"""
        def build():
            refinements, ok = self._fetch(self.store.fetch_refinements, days)

            report = RefinementDetector().analyze(refinements)
            transitions = Counter(event.transition for event in refinements)

            return {
                "sessions": [s.model_dump(mode="json") for s in report.sessions],
                "stuck_sessions": sum(1 for s in report.sessions if s.stuck_indicators.is_stuck),
                "top_transitions": [
                    {"transition": transition, "count": count}
                    for transition, count in transitions.most_common(10)
                ],
                "skipped_records": report.skipped_records
            }, ok

        return self._cached_report("refinements", days, build)

    def get_zero_result_suggestions(self, days: int = 30, limit: int = 10) -> Dict[str, Any]:
        """
        Suggestions for the most frequent zero-result queries

        Queries that did return results in the same window are the fuzzy
        matching corpus.
        """
        def build():
            searches, ok = self._fetch(self.store.fetch_search_events, days)

            zero_counts = Counter(s.query for s in searches if s.results_count == 0)
            known_terms = list(dict.fromkeys(s.display_query for s in searches if s.results_count > 0))

            queries = []
            for query, occurrences in zero_counts.most_common(limit):
                suggestions = self.suggestions.generate(query, known_terms=known_terms)
                queries.append({
                    "query": query,
                    "occurrences": occurrences,
                    "suggestions": [s.model_dump(mode="json") for s in suggestions]
                })

            return {
                "total_zero_result_searches": sum(zero_counts.values()),
                "zero_result_rate": round(
                    sum(zero_counts.values()) / len(searches) * 100, 1
                ) if searches else 0.0,
                "queries": queries
            }, ok

        return self._cached_report("zero_results", days, build, variant=f"_top{limit}")

    def invalidate_reports(self) -> int:
        """Drop every cached report, e.g. after a backfill"""
        return self.cache.invalidate_analytics_cache()
