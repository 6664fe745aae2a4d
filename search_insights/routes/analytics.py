from fastapi import APIRouter, Depends, HTTPException, Query, Body
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from ..database.connection import get_db, get_redis
from ..cache.manager import CacheManager
from ..analytics.config import AnalyticsConfig
from ..analytics.intent import classify_intent, intent_label
from ..analytics.models import SearchEvent
from ..analytics.refinement import RefinementDetector
from ..analytics.sessions import (
    SessionReconstructor,
    analyze_session_flow,
    behavior_distribution,
    get_session_flow_data,
)
from ..analytics.suggestions import SuggestionEngine
from ..services.search_analytics import SearchAnalyticsService

router = APIRouter(prefix="/search-analytics", tags=["search-analytics"])


def get_cache_manager(redis_client=Depends(get_redis)) -> CacheManager:
    """Get cache manager with the shared Redis client"""
    return CacheManager(redis_client)


def get_search_analytics_service(
    db: Session = Depends(get_db),
    cache_manager: CacheManager = Depends(get_cache_manager)
) -> SearchAnalyticsService:
    """Get search analytics service with dependencies"""
    return SearchAnalyticsService(db, cache_manager)


def get_suggestion_engine() -> SuggestionEngine:
    """Suggestion engine over the configured rule tables"""
    return SuggestionEngine()


def _check_lookback(days: int) -> None:
    if not AnalyticsConfig.is_allowed_lookback(days):
        allowed = ", ".join(str(d) for d in AnalyticsConfig.ALLOWED_LOOKBACK_DAYS)
        raise HTTPException(status_code=400, detail=f"days must be one of: {allowed}")


@router.get("/intent")
async def get_query_intent(
    q: str = Query(..., description="Search query to classify")
):
    """Classify a search query by intent"""
    try:
        result = classify_intent(q)
        return {
            "query": q,
            "label": intent_label(result.intent),
            **result.model_dump(mode="json")
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error classifying query: {str(e)}")


@router.get("/suggestions")
async def get_query_suggestions(
    q: str = Query(..., min_length=1, description="Search query"),
    category: Optional[str] = Query(None, description="Category context"),
    cache_manager: CacheManager = Depends(get_cache_manager),
    engine: SuggestionEngine = Depends(get_suggestion_engine)
):
    """Smart suggestions for a query (typos, synonyms, alternatives, recommendations)"""
    try:
        cache_key = f"{q}|{category or ''}"
        cached = cache_manager.get_cached_suggestions(cache_key)
        if cached is not None:
            return {"query": q, "suggestions": cached, "cached": True}

        suggestions = [
            {**s.model_dump(mode="json"), "display_text": s.display_text()}
            for s in engine.generate(q, category)
        ]
        cache_manager.cache_suggestions(cache_key, suggestions)
        return {"query": q, "suggestions": suggestions, "cached": False}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error generating suggestions: {str(e)}")


@router.get("/funnel")
async def get_funnel_report(
    days: int = Query(30, description="Lookback window in days"),
    service: SearchAnalyticsService = Depends(get_search_analytics_service)
):
    """Conversion funnel, revenue per search term and conversion trend"""
    _check_lookback(days)
    try:
        return service.get_funnel_report(days)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error calculating funnel report: {str(e)}")


@router.get("/sessions")
async def get_session_report(
    days: int = Query(30, description="Lookback window in days"),
    service: SearchAnalyticsService = Depends(get_search_analytics_service)
):
    """Session flow analysis, behavior distribution and query flow graph"""
    _check_lookback(days)
    try:
        return service.get_session_report(days)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error calculating session report: {str(e)}")


@router.get("/refinements")
async def get_refinement_report(
    days: int = Query(30, description="Lookback window in days"),
    service: SearchAnalyticsService = Depends(get_search_analytics_service)
):
    """Stuck-session detection over query/filter refinements"""
    _check_lookback(days)
    try:
        return service.get_refinement_report(days)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error calculating refinement report: {str(e)}")


@router.get("/zero-results")
async def get_zero_result_suggestions(
    days: int = Query(30, description="Lookback window in days"),
    limit: int = Query(10, description="Maximum number of queries to return", ge=1, le=50),
    service: SearchAnalyticsService = Depends(get_search_analytics_service)
):
    """Most frequent zero-result queries with suggestions"""
    _check_lookback(days)
    try:
        return service.get_zero_result_suggestions(days, limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error calculating zero-result suggestions: {str(e)}")


@router.post("/sessions/analyze")
async def analyze_sessions(events: List[SearchEvent] = Body(...)):
    """Reconstruct and analyze sessions from a batch of search events"""
    try:
        reconstructor = SessionReconstructor()
        sessions = reconstructor.group(events)
        return {
            "sessions": [
                s.model_dump(mode="json", exclude={"searches"}) for s in sessions
            ],
            "analysis": analyze_session_flow(sessions).model_dump(mode="json"),
            "behaviors": behavior_distribution(sessions),
            "flow": get_session_flow_data(sessions).model_dump(mode="json"),
            "skipped_events": reconstructor.skipped_records
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error analyzing sessions: {str(e)}")


@router.post("/refinements/analyze")
async def analyze_refinements(records: List[Dict[str, Any]] = Body(...)):
    """Stuck-session analysis for raw refinement records"""
    try:
        report = RefinementDetector().analyze(records)
        return {
            "sessions": [s.model_dump(mode="json") for s in report.sessions],
            "stuck_sessions": sum(1 for s in report.sessions if s.stuck_indicators.is_stuck),
            "skipped_records": report.skipped_records
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error analyzing refinements: {str(e)}")


@router.post("/invalidate-cache")
async def invalidate_report_cache(
    service: SearchAnalyticsService = Depends(get_search_analytics_service)
):
    """Invalidate cached reports to force recalculation"""
    try:
        deleted = service.invalidate_reports()
        return {"success": True, "deleted_keys": deleted}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error invalidating report cache: {str(e)}")
