"""
Conversion funnel and revenue attribution
Calculates stage-to-stage conversion rates, revenue per search term,
time-to-conversion and day-bucketed conversion trends
"""

import logging
from collections import Counter, OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from .config import AnalyticsConfig
from .models import (
    ConversionEvent,
    ConversionType,
    FunnelMetrics,
    FunnelStage,
    ProductConversion,
    SearchEvent,
    SearchTermRevenue,
    TrendPoint,
    as_utc,
)

logger = logging.getLogger(__name__)

ONE_MILLISECOND = timedelta(milliseconds=1)


def _percentage(part: float, whole: float) -> float:
    """100 * part / whole, or 0 when there is nothing to divide by"""
    return part / whole * 100 if whole > 0 else 0.0


def _average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _time_to_conversion(search: SearchEvent) -> Optional[float]:
    """Milliseconds from the search to its conversion, when known and not negative"""
    if search.converted_at is None or search.converted_at < search.timestamp:
        return None
    return (search.converted_at - search.timestamp) / ONE_MILLISECOND


def compute_funnel_metrics(
    searches: Sequence[SearchEvent],
    conversions: Sequence[ConversionEvent] = ()
) -> FunnelMetrics:
    """
    Calculate overall conversion funnel metrics

    Stage counts come from the flags on each search and are independent:
    source data may have more checkouts than cart adds, and percentages are
    computed as-is in that case.

    Args:
        searches: Search events with their conversion flags
        conversions: Conversion events for the same window; attribution is
            driven by the flags on the searches

    Returns:
        FunnelMetrics with all percentages and averages 0 for empty input
    """
    total_searches = len(searches)
    searches_with_results = sum(1 for s in searches if s.results_count > 0)
    added_to_cart = sum(1 for s in searches if s.added_to_cart)
    completed_checkout = sum(1 for s in searches if s.checkout_completed)

    total_revenue = sum(s.order_total or 0.0 for s in searches if s.checkout_completed)

    cart_times = [
        t for t in (_time_to_conversion(s) for s in searches if s.added_to_cart)
        if t is not None
    ]
    checkout_times = [
        t for t in (_time_to_conversion(s) for s in searches if s.checkout_completed)
        if t is not None
    ]

    logger.debug(
        f"Funnel over {total_searches} searches and {len(conversions)} conversion events: "
        f"{searches_with_results} with results, {added_to_cart} carted, {completed_checkout} checked out"
    )

    return FunnelMetrics(
        total_searches=total_searches,
        searches_with_results=searches_with_results,
        added_to_cart=added_to_cart,
        completed_checkout=completed_checkout,
        search_to_view=_percentage(searches_with_results, total_searches),
        view_to_cart=_percentage(added_to_cart, searches_with_results),
        cart_to_checkout=_percentage(completed_checkout, added_to_cart),
        search_to_checkout=_percentage(completed_checkout, total_searches),
        total_revenue=total_revenue,
        avg_revenue_per_search=total_revenue / total_searches if total_searches > 0 else 0.0,
        avg_revenue_per_conversion=total_revenue / completed_checkout if completed_checkout > 0 else 0.0,
        avg_time_to_cart=_average(cart_times),
        avg_time_to_checkout=_average(checkout_times)
    )


def compute_search_term_revenue(
    searches: Sequence[SearchEvent],
    conversions: Sequence[ConversionEvent] = ()
) -> List[SearchTermRevenue]:
    """
    Revenue attribution per normalized search term

    Returns:
        One row per term in first-seen order; callers choose the ordering
    """
    terms: Dict[str, Dict[str, float]] = OrderedDict()

    for search in searches:
        key = search.query.lower().strip()
        data = terms.setdefault(key, {"search_count": 0, "conversions": 0, "revenue": 0.0})
        data["search_count"] += 1
        if search.checkout_completed:
            data["conversions"] += 1
            data["revenue"] += search.order_total or 0.0

    return [
        SearchTermRevenue(
            query=query,
            search_count=int(data["search_count"]),
            conversions=int(data["conversions"]),
            conversion_rate=_percentage(data["conversions"], data["search_count"]),
            total_revenue=data["revenue"],
            avg_revenue=data["revenue"] / data["conversions"] if data["conversions"] > 0 else 0.0,
            revenue_per_search=data["revenue"] / data["search_count"]
        )
        for query, data in terms.items()
    ]


def top_revenue_terms(rows: List[SearchTermRevenue], limit: Optional[int] = None) -> List[SearchTermRevenue]:
    """Terms that produced revenue, highest total revenue first"""
    if limit is None:
        limit = AnalyticsConfig.TOP_REVENUE_TERMS
    earning = [row for row in rows if row.total_revenue > 0]
    return sorted(earning, key=lambda row: row.total_revenue, reverse=True)[:limit]


def get_conversion_trend(
    searches: Sequence[SearchEvent],
    days: int = 7,
    now: Optional[datetime] = None
) -> List[TrendPoint]:
    """
    Conversion rate per UTC calendar day over the trailing window

    Args:
        searches: Search events
        days: Size of the trailing window in days
        now: End of the window, defaults to the current time

    Returns:
        One point per day with at least one search, oldest first
    """
    if not isinstance(days, int) or isinstance(days, bool):
        raise TypeError(f"days must be an int, got {type(days).__name__}")
    if days <= 0:
        return []

    now = as_utc(now) if now else datetime.now(timezone.utc)
    start_date = now - timedelta(days=days)

    searches_per_day: Counter = Counter()
    conversions_per_day: Counter = Counter()
    for search in searches:
        if search.timestamp < start_date:
            continue
        day = search.timestamp.date().isoformat()
        searches_per_day[day] += 1
        if search.checkout_completed:
            conversions_per_day[day] += 1

    return [
        TrendPoint(
            date=day,
            search_count=count,
            conversion_rate=_percentage(conversions_per_day[day], count)
        )
        for day, count in sorted(searches_per_day.items())
    ]


def get_funnel_chart_data(metrics: FunnelMetrics) -> List[FunnelStage]:
    """Funnel stages with their share of all searches and drop-off from the previous stage"""
    total = metrics.total_searches
    return [
        FunnelStage(stage="Searches", count=total, percentage=100.0 if total > 0 else 0.0, dropoff=0),
        FunnelStage(
            stage="Views",
            count=metrics.searches_with_results,
            percentage=metrics.search_to_view,
            dropoff=total - metrics.searches_with_results
        ),
        FunnelStage(
            stage="Add to Cart",
            count=metrics.added_to_cart,
            percentage=_percentage(metrics.added_to_cart, total),
            dropoff=metrics.searches_with_results - metrics.added_to_cart
        ),
        FunnelStage(
            stage="Checkout",
            count=metrics.completed_checkout,
            percentage=metrics.search_to_checkout,
            dropoff=metrics.added_to_cart - metrics.completed_checkout
        ),
    ]


def get_top_converting_products(
    conversions: Sequence[ConversionEvent],
    limit: Optional[int] = None
) -> List[ProductConversion]:
    """Products bought through search-attributed checkouts, most purchased first"""
    if limit is None:
        limit = AnalyticsConfig.TOP_PRODUCTS
    products: Dict[str, Dict] = OrderedDict()

    for conversion in conversions:
        if conversion.conversion_type != ConversionType.CHECKOUT:
            continue
        for product in conversion.products:
            data = products.setdefault(product.id, {"name": product.name, "count": 0, "revenue": 0.0})
            data["count"] += 1
            data["revenue"] += product.price

    ranked = sorted(products.items(), key=lambda item: item[1]["count"], reverse=True)[:limit]
    return [
        ProductConversion(
            product_id=product_id,
            product_name=data["name"],
            conversion_count=data["count"],
            total_revenue=data["revenue"]
        )
        for product_id, data in ranked
    ]
