"""
Tests for the conversion funnel and revenue attribution
"""
import pytest
from datetime import datetime, timedelta, timezone

from search_insights.analytics.models import (
    ConversionEvent,
    ConversionType,
    FunnelMetrics,
    SearchEvent,
)
from search_insights.analytics.funnel import (
    compute_funnel_metrics,
    compute_search_term_revenue,
    top_revenue_terms,
    get_conversion_trend,
    get_funnel_chart_data,
    get_top_converting_products,
)

BASE_TIME = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def make_search(query="gpu", results_count=10, timestamp=None, **kwargs):
    return SearchEvent(
        query=query,
        session_id=kwargs.pop("session_id", "s1"),
        results_count=results_count,
        timestamp=timestamp or BASE_TIME,
        **kwargs
    )


def hundred_searches():
    """100 searches with results: 10 added to cart, 4 of those checked out at 500"""
    searches = []
    for i in range(100):
        carted = i < 10
        checked_out = i < 4
        searches.append(make_search(
            query=f"query {i % 20}",
            added_to_cart=carted,
            checkout_completed=checked_out,
            order_total=500.0 if checked_out else None
        ))
    return searches


class TestFunnelMetrics:
    """Test funnel stage counts and rates"""

    def test_end_to_end_scenario(self):
        metrics = compute_funnel_metrics(hundred_searches())

        assert metrics.total_searches == 100
        assert metrics.searches_with_results == 100
        assert metrics.added_to_cart == 10
        assert metrics.completed_checkout == 4
        assert metrics.search_to_view == pytest.approx(100.0)
        assert metrics.view_to_cart == pytest.approx(10.0)
        assert metrics.cart_to_checkout == pytest.approx(40.0)
        assert metrics.search_to_checkout == pytest.approx(4.0)
        assert metrics.total_revenue == pytest.approx(2000.0)
        assert metrics.avg_revenue_per_search == pytest.approx(20.0)
        assert metrics.avg_revenue_per_conversion == pytest.approx(500.0)

    def test_repeat_calls_are_identical(self):
        searches = hundred_searches()
        assert compute_funnel_metrics(searches) == compute_funnel_metrics(searches)

    def test_empty_input(self):
        metrics = compute_funnel_metrics([])

        assert metrics == FunnelMetrics()
        assert metrics.view_to_cart == 0
        assert metrics.avg_revenue_per_search == 0

    def test_no_results_means_no_views(self):
        metrics = compute_funnel_metrics([make_search(results_count=0), make_search(results_count=0)])

        assert metrics.searches_with_results == 0
        assert metrics.search_to_view == 0
        assert metrics.view_to_cart == 0

    def test_checkout_without_cart_is_counted_as_is(self):
        searches = [
            make_search(added_to_cart=True),
            make_search(checkout_completed=True, order_total=100.0),
            make_search(checkout_completed=True, order_total=50.0),
        ]

        metrics = compute_funnel_metrics(searches)

        assert metrics.added_to_cart == 1
        assert metrics.completed_checkout == 2
        assert metrics.cart_to_checkout == pytest.approx(200.0)
        assert metrics.total_revenue == pytest.approx(150.0)

    def test_checkout_with_zero_carts(self):
        metrics = compute_funnel_metrics([make_search(checkout_completed=True, order_total=10.0)])

        assert metrics.completed_checkout == 1
        assert metrics.cart_to_checkout == 0

    def test_missing_order_total(self):
        metrics = compute_funnel_metrics([make_search(checkout_completed=True)])
        assert metrics.total_revenue == 0

    def test_time_to_conversion(self):
        searches = [
            make_search(added_to_cart=True, converted_at=BASE_TIME + timedelta(seconds=2)),
            make_search(added_to_cart=True, converted_at=BASE_TIME + timedelta(seconds=4)),
            make_search(
                checkout_completed=True,
                order_total=10.0,
                converted_at=BASE_TIME + timedelta(minutes=1)
            ),
            # conversion recorded before the search is ignored
            make_search(added_to_cart=True, converted_at=BASE_TIME - timedelta(seconds=10)),
        ]

        metrics = compute_funnel_metrics(searches)

        assert metrics.avg_time_to_cart == pytest.approx(3000.0)
        assert metrics.avg_time_to_checkout == pytest.approx(60000.0)

    def test_naive_timestamps_are_treated_as_utc(self):
        search = make_search(
            added_to_cart=True,
            timestamp=datetime(2024, 1, 10, 12, 0),
            converted_at=BASE_TIME + timedelta(seconds=1)
        )

        metrics = compute_funnel_metrics([search])

        assert metrics.avg_time_to_cart == pytest.approx(1000.0)


class TestSearchTermRevenue:
    """Test revenue attribution per search term"""

    def test_rows_in_first_seen_order(self):
        searches = [
            make_search(query="RTX 4070"),
            make_search(query="cpu"),
            make_search(query="rtx 4070 ", checkout_completed=True, order_total=600.0),
        ]

        rows = compute_search_term_revenue(searches)

        assert [row.query for row in rows] == ["rtx 4070", "cpu"]
        gpu = rows[0]
        assert gpu.search_count == 2
        assert gpu.conversions == 1
        assert gpu.conversion_rate == pytest.approx(50.0)
        assert gpu.total_revenue == pytest.approx(600.0)
        assert gpu.avg_revenue == pytest.approx(600.0)
        assert gpu.revenue_per_search == pytest.approx(300.0)
        assert rows[1].avg_revenue == 0

    def test_top_revenue_terms(self):
        searches = [
            make_search(query="cpu", checkout_completed=True, order_total=300.0),
            make_search(query="ram"),
            make_search(query="gpu", checkout_completed=True, order_total=900.0),
        ]

        top = top_revenue_terms(compute_search_term_revenue(searches))

        assert [row.query for row in top] == ["gpu", "cpu"]

    def test_top_revenue_terms_limit(self):
        searches = [
            make_search(query=f"q{i}", checkout_completed=True, order_total=float(i + 1))
            for i in range(20)
        ]

        top = top_revenue_terms(compute_search_term_revenue(searches))

        assert len(top) == 15
        assert top[0].query == "q19"

    def test_zero_limit(self):
        searches = [make_search(query="gpu", checkout_completed=True, order_total=900.0)]
        assert top_revenue_terms(compute_search_term_revenue(searches), limit=0) == []

    def test_repeat_calls_are_identical(self):
        searches = hundred_searches()

        first = [row.model_dump() for row in compute_search_term_revenue(searches)]
        second = [row.model_dump() for row in compute_search_term_revenue(searches)]

        assert first == second

    def test_empty(self):
        assert compute_search_term_revenue([]) == []


class TestConversionTrend:
    """Test day-bucketed conversion trend"""

    def test_trend(self):
        now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)
        searches = [
            make_search(timestamp=datetime(2024, 1, 9, 10, 0, tzinfo=timezone.utc), checkout_completed=True),
            make_search(timestamp=datetime(2024, 1, 9, 11, 0, tzinfo=timezone.utc)),
            make_search(timestamp=datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)),
            make_search(timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)),
        ]

        trend = get_conversion_trend(searches, days=7, now=now)

        assert [point.date for point in trend] == ["2024-01-08", "2024-01-09"]
        assert trend[0].search_count == 1
        assert trend[0].conversion_rate == 0
        assert trend[1].search_count == 2
        assert trend[1].conversion_rate == pytest.approx(50.0)

    def test_non_positive_days(self):
        assert get_conversion_trend([make_search()], days=0, now=BASE_TIME) == []
        assert get_conversion_trend([make_search()], days=-3, now=BASE_TIME) == []

    @pytest.mark.parametrize("days", ["7", 7.0, True])
    def test_days_must_be_int(self, days):
        with pytest.raises(TypeError):
            get_conversion_trend([], days=days)


class TestFunnelChartData:
    """Test funnel stages for charting"""

    def test_stages(self):
        stages = get_funnel_chart_data(compute_funnel_metrics(hundred_searches()))

        assert [s.stage for s in stages] == ["Searches", "Views", "Add to Cart", "Checkout"]
        assert [s.count for s in stages] == [100, 100, 10, 4]
        assert [s.percentage for s in stages] == pytest.approx([100.0, 100.0, 10.0, 4.0])
        assert [s.dropoff for s in stages] == [0, 0, 90, 6]

    def test_empty(self):
        stages = get_funnel_chart_data(FunnelMetrics())
        assert all(s.count == 0 and s.percentage == 0 for s in stages)


class TestTopConvertingProducts:
    """Test product ranking from checkout conversions"""

    def make_checkout(self, products, conversion_type=ConversionType.CHECKOUT):
        return ConversionEvent(
            search_query="gpu",
            session_id="s1",
            conversion_type=conversion_type,
            timestamp=BASE_TIME,
            products=products
        )

    def test_ranking(self):
        conversions = [
            self.make_checkout([{"id": "p1", "name": "RTX 4070", "price": 600.0}]),
            self.make_checkout([
                {"id": "p2", "name": "RX 7800 XT", "price": 500.0},
                {"id": "p1", "name": "RTX 4070", "price": 580.0},
            ]),
            self.make_checkout([{"id": "p3", "name": "Ryzen 5"}], ConversionType.ADD_TO_CART),
        ]

        products = get_top_converting_products(conversions)

        assert [p.product_id for p in products] == ["p1", "p2"]
        assert products[0].conversion_count == 2
        assert products[0].total_revenue == pytest.approx(1180.0)

    def test_limit(self):
        conversions = [self.make_checkout([{"id": f"p{i}"}]) for i in range(5)]
        assert len(get_top_converting_products(conversions, limit=2)) == 2
        assert get_top_converting_products(conversions, limit=0) == []

    def test_conversion_events_are_immutable(self):
        conversion = self.make_checkout([])
        with pytest.raises(Exception):
            conversion.order_total = 10.0
