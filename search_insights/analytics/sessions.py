"""
Search session reconstruction and session flow analysis
Groups search events by session id and computes cohort-level journey metrics
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .config import AnalyticsConfig
from .models import (
    BehaviorLabel,
    ConversionPath,
    FlowGraph,
    FlowLink,
    FlowNode,
    PatternStat,
    SearchEvent,
    SearchSession,
    SessionFlowAnalysis,
)

logger = logging.getLogger(__name__)

PATTERN_SEPARATOR = " -> "
ONE_MILLISECOND = timedelta(milliseconds=1)


def _percentage(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


class SessionReconstructor:
    """Rebuilds per-session aggregates from a flat batch of search events"""

    def __init__(self):
        self.skipped_records = 0

    def group(self, events: Iterable[SearchEvent]) -> List[SearchSession]:
        """
        Group search events into sessions

        Events without a session id are skipped and counted in
        skipped_records.

        Returns:
            Sessions ordered by start time, then session id
        """
        self.skipped_records = 0
        partitions: Dict[str, List[SearchEvent]] = {}

        for event in events:
            if not event.session_id:
                self.skipped_records += 1
                continue
            partitions.setdefault(event.session_id, []).append(event)

        if self.skipped_records:
            logger.debug(f"Skipped {self.skipped_records} search events without a session id")

        sessions = [
            self._build_session(session_id, session_events)
            for session_id, session_events in partitions.items()
        ]
        sessions.sort(key=lambda s: (s.start_time, s.session_id))

        logger.info(f"Built {len(sessions)} sessions from {sum(len(p) for p in partitions.values())} searches")
        return sessions

    def _build_session(self, session_id: str, events: List[SearchEvent]) -> SearchSession:
        ordered = sorted(events, key=lambda e: e.timestamp)

        queries: List[str] = []
        for event in ordered:
            query = event.display_query
            if not queries or queries[-1] != query:
                queries.append(query)

        start_time = ordered[0].timestamp
        end_time = ordered[-1].timestamp

        return SearchSession(
            session_id=session_id,
            searches=ordered,
            queries=queries,
            pattern=PATTERN_SEPARATOR.join(queries),
            start_time=start_time,
            end_time=end_time,
            duration=(end_time - start_time) // ONE_MILLISECOND,
            total_searches=len(ordered),
            unique_queries=len({e.query.lower() for e in ordered}),
            added_to_cart=any(e.added_to_cart for e in ordered),
            converted=any(e.checkout_completed for e in ordered),
            user_id=ordered[0].user_id
        )


def group_into_sessions(events: Iterable[SearchEvent]) -> List[SearchSession]:
    """Group search events into sessions"""
    return SessionReconstructor().group(events)


def analyze_session_flow(sessions: List[SearchSession], top_n: Optional[int] = None) -> SessionFlowAnalysis:
    """
    Compute cohort-level metrics over reconstructed sessions

    Args:
        sessions: Sessions from group_into_sessions
        top_n: Number of patterns and conversion paths to keep

    Returns:
        SessionFlowAnalysis; every rate and average is 0 for an empty batch
    """
    if top_n is None:
        top_n = AnalyticsConfig.TOP_PATTERNS
    total_sessions = len(sessions)
    if total_sessions == 0:
        return SessionFlowAnalysis()

    total_searches = sum(s.total_searches for s in sessions)
    converted = sum(1 for s in sessions if s.converted)
    carted = sum(1 for s in sessions if s.added_to_cart)
    abandoned = sum(1 for s in sessions if not s.added_to_cart and not s.converted)
    total_duration = sum(s.duration for s in sessions)

    # Counter keeps first-seen order for equal counts
    pattern_counts: Counter = Counter()
    pattern_conversions: Counter = Counter()
    for session in sessions:
        pattern_counts[session.pattern] += 1
        if session.converted:
            pattern_conversions[session.pattern] += 1

    common_patterns = [
        PatternStat(
            pattern=pattern,
            count=count,
            conversion_rate=_percentage(pattern_conversions[pattern], count)
        )
        for pattern, count in sorted(pattern_counts.items(), key=lambda item: item[1], reverse=True)[:top_n]
    ]

    top_conversion_paths = [
        ConversionPath(path=path, conversions=count)
        for path, count in sorted(pattern_conversions.items(), key=lambda item: item[1], reverse=True)[:top_n]
    ]

    return SessionFlowAnalysis(
        total_sessions=total_sessions,
        avg_searches_per_session=total_searches / total_sessions,
        conversion_rate=_percentage(converted, total_sessions),
        add_to_cart_rate=_percentage(carted, total_sessions),
        abandonment_rate=_percentage(abandoned, total_sessions),
        avg_session_duration=total_duration / total_sessions,
        common_patterns=common_patterns,
        top_conversion_paths=top_conversion_paths
    )


def _step_direction(previous: str, current: str) -> Tuple[bool, bool]:
    """(narrows, broadens) for one query-to-query step"""
    narrows = previous in current or len(current) > len(previous)
    broadens = current in previous or len(current) < len(previous)
    return narrows, broadens


def classify_session_behavior(session: SearchSession) -> BehaviorLabel:
    """
    Label a session by how its queries evolve

    Only the ordered query list is used, so timestamp jitter that does not
    reorder queries cannot change the label.
    """
    queries = [q.lower().strip() for q in session.queries]
    steps = len(queries) - 1
    if steps < 1:
        return BehaviorLabel.STATIC

    narrowing = broadening = 0
    for previous, current in zip(queries, queries[1:]):
        narrows, broadens = _step_direction(previous, current)
        narrowing += narrows
        broadening += broadens

    if narrowing * 2 > steps and narrowing > broadening:
        return BehaviorLabel.NARROWING
    if broadening * 2 > steps and broadening > narrowing:
        return BehaviorLabel.BROADENING
    if len(set(queries)) >= 3:
        return BehaviorLabel.EXPLORING
    return BehaviorLabel.STATIC


def behavior_distribution(sessions: List[SearchSession]) -> Dict[str, int]:
    """Number of sessions per behavior label, every label present"""
    distribution = {label.value: 0 for label in BehaviorLabel}
    for session in sessions:
        distribution[classify_session_behavior(session).value] += 1
    return distribution


OUTCOME_PREFIX = "outcome:"


def get_session_flow_data(sessions: List[SearchSession], max_links: Optional[int] = None) -> FlowGraph:
    """
    Sankey-style flow between consecutive queries and the session outcome

    The last query of every session links to "Checkout", "Cart" or "Exit".
    Outcome node ids carry OUTCOME_PREFIX so a query with the same text
    stays a separate node.
    """
    if max_links is None:
        max_links = AnalyticsConfig.MAX_FLOW_LINKS
    link_counts: Counter = Counter()
    outcome_names: Dict[str, str] = {}

    for session in sessions:
        queries = session.queries
        if not queries:
            continue

        for source, target in zip(queries, queries[1:]):
            link_counts[(source, target)] += 1

        if session.converted:
            outcome = "Checkout"
        elif session.added_to_cart:
            outcome = "Cart"
        else:
            outcome = "Exit"
        outcome_id = OUTCOME_PREFIX + outcome
        outcome_names[outcome_id] = outcome
        link_counts[(queries[-1], outcome_id)] += 1

    kept = sorted(link_counts.items(), key=lambda item: item[1], reverse=True)[:max_links]

    nodes: Dict[str, FlowNode] = {}
    for (source, target), _ in kept:
        for node_id in (source, target):
            if node_id not in nodes:
                nodes[node_id] = FlowNode(id=node_id, name=outcome_names.get(node_id, node_id))

    return FlowGraph(
        nodes=list(nodes.values()),
        links=[FlowLink(source=source, target=target, value=value) for (source, target), value in kept]
    )
