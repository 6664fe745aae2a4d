"""
Search refinement analysis
Detects stuck sessions (excessive refinement, query loops, repeated
zero-result searches) from query/filter transition events
"""

import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from .config import AnalyticsConfig
from .models import (
    PathNode,
    RefinementEvent,
    RefinementReport,
    RefinementSessionAnalysis,
    StuckIndicators,
)

logger = logging.getLogger(__name__)

RefinementRecord = Union[RefinementEvent, Mapping[str, Any]]


class RefinementDetector:
    """Per-session refinement paths and stuck indicators"""

    def __init__(self, excessive_threshold: Optional[int] = None, loop_threshold: Optional[int] = None):
        self.excessive_threshold = (
            AnalyticsConfig.EXCESSIVE_REFINEMENTS if excessive_threshold is None else excessive_threshold
        )
        self.loop_threshold = AnalyticsConfig.LOOP_THRESHOLD if loop_threshold is None else loop_threshold

    def analyze(self, records: Iterable[RefinementRecord]) -> RefinementReport:
        """
        Analyze refinement events session by session

        Records may be RefinementEvent instances or raw mappings as stored
        by the event producer. Records without a session id, or that fail
        validation, are skipped and counted.

        Returns:
            RefinementReport with one analysis per session (first-seen order)
            and the number of skipped records
        """
        events, skipped = self._coerce(records)

        sessions: Dict[str, List[RefinementEvent]] = {}
        transitions: Counter = Counter()
        for event in events:
            sessions.setdefault(event.session_id, []).append(event)
            transitions[event.transition] += 1

        # Batch-wide mode, shared by every session
        most_common = transitions.most_common(1)
        most_common_transition = most_common[0][0] if most_common else None

        analyses = [
            self._analyze_session(session_id, session_events, most_common_transition)
            for session_id, session_events in sessions.items()
        ]

        stuck = sum(1 for a in analyses if a.stuck_indicators.is_stuck)
        logger.info(
            f"Analyzed {len(events)} refinements across {len(analyses)} sessions "
            f"({stuck} stuck, {skipped} records skipped)"
        )
        return RefinementReport(sessions=analyses, skipped_records=skipped)

    def _coerce(self, records: Iterable[RefinementRecord]):
        events: List[RefinementEvent] = []
        skipped = 0

        for record in records:
            if isinstance(record, RefinementEvent):
                event = record
            elif isinstance(record, Mapping):
                try:
                    event = RefinementEvent.model_validate(dict(record))
                except ValidationError as e:
                    logger.debug(f"Skipping malformed refinement record: {e.error_count()} errors")
                    skipped += 1
                    continue
            else:
                raise TypeError(f"Refinement records must be mappings or RefinementEvent, got {type(record).__name__}")

            if not event.session_id:
                skipped += 1
                continue
            events.append(event)

        return events, skipped

    def _analyze_session(
        self,
        session_id: str,
        events: List[RefinementEvent],
        most_common_transition: Optional[str]
    ) -> RefinementSessionAnalysis:
        ordered = sorted(events, key=lambda e: e.timestamp)

        path: List[PathNode] = []
        for event in ordered:
            path.append(PathNode(
                query=event.previous_query,
                filters=event.removed_filters,
                results_count=event.previous_results_count
            ))
            path.append(PathNode(
                query=event.new_query,
                filters=event.added_filters,
                results_count=event.new_results_count
            ))

        return RefinementSessionAnalysis(
            session_id=session_id,
            total_refinements=len(ordered),
            path=path,
            stuck_indicators=StuckIndicators(
                excessive_refinements=len(ordered) > self.excessive_threshold,
                loops_detected=self._has_loop(path),
                repeated_zero_results=self._has_zero_streak(path)
            ),
            most_common_transition=most_common_transition
        )

    def _has_loop(self, path: List[PathNode]) -> bool:
        counts = Counter(node.query.lower().strip() for node in path)
        return any(count >= self.loop_threshold for count in counts.values())

    @staticmethod
    def _has_zero_streak(path: List[PathNode]) -> bool:
        # Missing result counts are treated as zero
        zero_flags = [(node.results_count or 0) == 0 for node in path]
        return any(a and b for a, b in zip(zero_flags, zero_flags[1:]))


def analyze_refinement_sessions(records: Iterable[RefinementRecord]) -> List[RefinementSessionAnalysis]:
    """Analyze refinement events with the default thresholds"""
    return RefinementDetector().analyze(records).sessions
