"""
Tests for session reconstruction and session flow analysis
"""
import pytest
from datetime import datetime, timedelta, timezone

from search_insights.analytics.models import SearchEvent, BehaviorLabel
from search_insights.analytics.sessions import (
    SessionReconstructor,
    group_into_sessions,
    analyze_session_flow,
    classify_session_behavior,
    behavior_distribution,
    get_session_flow_data,
)

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_event(query, session_id="s1", offset_ms=0, **kwargs):
    return SearchEvent(
        query=query,
        session_id=session_id,
        timestamp=BASE_TIME + timedelta(milliseconds=offset_ms),
        results_count=kwargs.pop("results_count", 10),
        **kwargs
    )


def session_for(*queries):
    events = [make_event(q, "s1", i * 1000) for i, q in enumerate(queries)]
    return group_into_sessions(events)[0]


class TestSessionReconstruction:
    """Test grouping of search events into sessions"""

    def test_basic_session(self):
        events = [
            make_event("gpu", "s1", 0),
            make_event("rtx 4070", "s1", 5),
            make_event("rtx 4070", "s1", 10),
        ]

        sessions = group_into_sessions(events)

        assert len(sessions) == 1
        session = sessions[0]
        assert session.session_id == "s1"
        assert session.total_searches == 3
        assert session.duration == 10
        assert session.queries == ["gpu", "rtx 4070"]
        assert session.pattern == "gpu -> rtx 4070"
        assert session.unique_queries == 2

    def test_adjacent_duplicate_queries_collapse_in_pattern(self):
        events = [
            make_event("gpu", "s1", 0),
            make_event("gpu", "s1", 5),
            make_event("rtx 4070", "s1", 10),
        ]

        session = group_into_sessions(events)[0]

        assert session.pattern == "gpu -> rtx 4070"
        assert session.total_searches == 3
        assert session.duration == 10

    def test_events_sorted_by_timestamp(self):
        events = [
            make_event("rtx 4070", "s1", 2000),
            make_event("gpu", "s1", 0),
        ]

        session = group_into_sessions(events)[0]

        assert session.pattern == "gpu -> rtx 4070"
        assert session.start_time == BASE_TIME
        assert session.duration == 2000

    def test_display_query_prefers_original_text(self):
        event = make_event("rtx 4070", "s1", 0, original_query="RTX 4070 ")
        session = group_into_sessions([event])[0]
        assert session.queries == ["RTX 4070"]

    def test_events_without_session_are_skipped(self):
        reconstructor = SessionReconstructor()
        events = [
            make_event("gpu", "s1", 0),
            make_event("cpu", None, 0),
        ]

        sessions = reconstructor.group(events)

        assert len(sessions) == 1
        assert reconstructor.skipped_records == 1

    def test_sessions_ordered_by_start_time(self):
        events = [
            make_event("cpu", "late", 5000),
            make_event("gpu", "early", 0),
        ]

        sessions = group_into_sessions(events)

        assert [s.session_id for s in sessions] == ["early", "late"]

    def test_conversion_flags(self):
        events = [
            make_event("gpu", "s1", 0),
            make_event("rtx 4070", "s1", 100, added_to_cart=True, checkout_completed=True),
        ]

        session = group_into_sessions(events)[0]

        assert session.added_to_cart is True
        assert session.converted is True

    def test_guest_session(self):
        session = group_into_sessions([make_event("gpu")])[0]
        assert session.user_id is None
        assert session.searches[0].is_guest is True

    def test_empty_input(self):
        assert group_into_sessions([]) == []


class TestSessionFlowAnalysis:
    """Test cohort-level flow metrics"""

    def setup_method(self):
        self.events = [
            # converted
            make_event("gpu", "a", 0, added_to_cart=True),
            make_event("rtx 4070", "a", 1000, added_to_cart=True, checkout_completed=True),
            # same pattern, abandoned
            make_event("gpu", "b", 100),
            make_event("rtx 4070", "b", 2000),
            # cart only
            make_event("cpu", "c", 200, added_to_cart=True),
            # abandoned
            make_event("ram", "d", 300),
        ]
        self.sessions = group_into_sessions(self.events)

    def test_rates(self):
        analysis = analyze_session_flow(self.sessions)

        assert analysis.total_sessions == 4
        assert analysis.avg_searches_per_session == pytest.approx(1.5)
        assert analysis.conversion_rate == pytest.approx(25.0)
        assert analysis.add_to_cart_rate == pytest.approx(50.0)
        assert analysis.abandonment_rate == pytest.approx(50.0)
        assert analysis.avg_session_duration == pytest.approx(725.0)

    def test_patterns_and_paths(self):
        analysis = analyze_session_flow(self.sessions)

        top = analysis.common_patterns[0]
        assert top.pattern == "gpu -> rtx 4070"
        assert top.count == 2
        assert top.conversion_rate == pytest.approx(50.0)

        assert len(analysis.top_conversion_paths) == 1
        assert analysis.top_conversion_paths[0].path == "gpu -> rtx 4070"
        assert analysis.top_conversion_paths[0].conversions == 1

    def test_top_n(self):
        analysis = analyze_session_flow(self.sessions, top_n=2)
        assert len(analysis.common_patterns) == 2

    def test_zero_top_n(self):
        analysis = analyze_session_flow(self.sessions, top_n=0)
        assert analysis.common_patterns == []
        assert analysis.top_conversion_paths == []

    def test_empty_sessions(self):
        analysis = analyze_session_flow([])

        assert analysis.total_sessions == 0
        assert analysis.conversion_rate == 0
        assert analysis.abandonment_rate == 0
        assert analysis.common_patterns == []

    def test_independent_of_input_order(self):
        forward = analyze_session_flow(group_into_sessions(self.events))
        backward = analyze_session_flow(group_into_sessions(list(reversed(self.events))))

        assert forward.model_dump() == backward.model_dump()


class TestSessionBehavior:
    """Test behavior labels"""

    def test_narrowing(self):
        session = session_for("gpu", "gpu rtx", "gpu rtx 4070")
        assert classify_session_behavior(session) == BehaviorLabel.NARROWING

    def test_broadening(self):
        session = session_for("gpu rtx 4070", "gpu rtx", "gpu")
        assert classify_session_behavior(session) == BehaviorLabel.BROADENING

    def test_exploring(self):
        session = session_for("gpu", "cpu", "ram")
        assert classify_session_behavior(session) == BehaviorLabel.EXPLORING

    def test_static(self):
        assert classify_session_behavior(session_for("gpu")) == BehaviorLabel.STATIC
        assert classify_session_behavior(session_for("gpu", "cpu")) == BehaviorLabel.STATIC

    def test_distribution_has_every_label(self):
        sessions = [session_for("gpu", "gpu rtx", "gpu rtx 4070"), session_for("gpu")]

        distribution = behavior_distribution(sessions)

        assert distribution == {
            "Narrowing Search": 1,
            "Broadening Search": 0,
            "Exploring Options": 0,
            "Static Search": 1,
        }


class TestSessionFlowGraph:
    """Test Sankey flow data"""

    def test_links_and_outcomes(self):
        events = [
            make_event("gpu", "a", 0),
            make_event("rtx 4070", "a", 10, checkout_completed=True),
            make_event("rtx 4070", "a", 20),
            make_event("gpu", "b", 5),
            make_event("rtx 4070", "b", 15),
        ]

        graph = get_session_flow_data(group_into_sessions(events))
        links = {(link.source, link.target): link.value for link in graph.links}

        assert links == {
            ("gpu", "rtx 4070"): 2,
            ("rtx 4070", "outcome:Checkout"): 1,
            ("rtx 4070", "outcome:Exit"): 1,
        }
        assert graph.links[0].value == 2
        assert [node.name for node in graph.nodes] == ["gpu", "rtx 4070", "Checkout", "Exit"]

    def test_cart_outcome(self):
        graph = get_session_flow_data(group_into_sessions([make_event("cpu", added_to_cart=True)]))
        assert graph.links[0].target == "outcome:Cart"
        assert graph.nodes[-1].name == "Cart"

    def test_max_links(self):
        events = [make_event(f"q{i}", f"s{i}", i) for i in range(5)]
        graph = get_session_flow_data(group_into_sessions(events), max_links=3)
        assert len(graph.links) == 3

    def test_nodes_only_from_kept_links(self):
        events = [make_event(f"q{i}", f"s{i}", i) for i in range(5)]

        graph = get_session_flow_data(group_into_sessions(events), max_links=2)

        linked = {link.source for link in graph.links} | {link.target for link in graph.links}
        assert {node.id for node in graph.nodes} == linked
        assert [node.id for node in graph.nodes] == ["q0", "outcome:Exit", "q1"]

    def test_outcome_nodes_do_not_collide_with_queries(self):
        events = [make_event("gpu", "a", 0), make_event("Exit", "a", 10)]

        graph = get_session_flow_data(group_into_sessions(events))

        assert all(link.source != link.target for link in graph.links)
        assert [(node.id, node.name) for node in graph.nodes] == [
            ("gpu", "gpu"), ("Exit", "Exit"), ("outcome:Exit", "Exit")
        ]

    def test_zero_max_links(self):
        graph = get_session_flow_data(group_into_sessions([make_event("gpu")]), max_links=0)
        assert graph.links == []
        assert graph.nodes == []

    def test_empty(self):
        graph = get_session_flow_data([])
        assert graph.nodes == []
        assert graph.links == []
