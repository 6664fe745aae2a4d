"""
Event Store for Search Insights
Reads bounded, time-windowed batches of raw search events for the analytics
engine and records new events with write-time enrichment
"""

import logging
from typing import Dict, List, Any, Optional, Callable, TypeVar
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from pydantic import ValidationError

from ..analytics.config import AnalyticsConfig
from ..analytics.intent import classify_intent
from ..analytics.models import (
    ConversionEvent,
    ConversionType,
    RefinementEvent,
    SearchEvent,
    diff_filters,
)
from ..analytics.session_ids import SessionIdIssuer
from ..analytics.suggestions import generate_suggestions
from ..database.models import (
    SearchConversionRecord,
    SearchQueryRecord,
    SearchRefinementRecord,
    ZeroResultSearchRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Process-wide so inactivity spans requests and stores
shared_session_ids = SessionIdIssuer()


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class EventStore:
    """Data access for raw search, conversion and refinement events"""

    def __init__(self, db_session: Session, session_ids: Optional[SessionIdIssuer] = None):
        """Initialize event store with a database session"""
        self.db = db_session
        self.session_ids = session_ids if session_ids is not None else shared_session_ids
        self.last_skipped = 0

    def _window_query(self, record_class, days: int, limit: Optional[int]):
        cutoff = datetime.utcnow() - timedelta(days=days)
        return self.db.query(record_class).filter(
            record_class.created_at >= cutoff
        ).order_by(record_class.created_at.desc()).limit(limit or AnalyticsConfig.DEFAULT_BATCH_LIMIT)

    def _convert_rows(self, rows: List[Any], converter: Callable[[Any], T], kind: str) -> List[T]:
        """Convert rows to engine models, skipping rows that fail validation"""
        converted = []
        skipped = 0
        for row in rows:
            try:
                converted.append(converter(row))
            except ValidationError as e:
                skipped += 1
                logger.debug(f"Skipping malformed {kind} row {row.id}: {e.error_count()} errors")

        if skipped:
            logger.warning(f"Skipped {skipped} malformed {kind} rows out of {len(rows)}")
        self.last_skipped = skipped
        return converted

    # Reads
    def fetch_search_events(self, days: int = 30, limit: Optional[int] = None) -> List[SearchEvent]:
        """
        Fetch search events from the last N days, newest first

        Args:
            days: Lookback window in days
            limit: Maximum number of rows (defaults to the batch limit)

        Raises:
            SQLAlchemyError: the event store could not be read
        """
        rows = self._window_query(SearchQueryRecord, days, limit).all()
        events = self._convert_rows(rows, self._to_search_event, "search")
        logger.info(f"Fetched {len(events)} search events for the last {days} days")
        return events

    def fetch_conversions(self, days: int = 30, limit: Optional[int] = None) -> List[ConversionEvent]:
        """Fetch conversion events from the last N days, newest first"""
        rows = self._window_query(SearchConversionRecord, days, limit).all()
        return self._convert_rows(rows, self._to_conversion_event, "conversion")

    def fetch_refinements(self, days: int = 30, limit: Optional[int] = None) -> List[RefinementEvent]:
        """Fetch refinement events from the last N days, newest first"""
        rows = self._window_query(SearchRefinementRecord, days, limit).all()
        return self._convert_rows(rows, self._to_refinement_event, "refinement")

    @staticmethod
    def _to_search_event(row: SearchQueryRecord) -> SearchEvent:
        return SearchEvent(
            id=str(row.id),
            query=row.query,
            original_query=row.original_query or "",
            category=row.category or "",
            results_count=row.results_count or 0,
            user_id=_optional_str(row.user_id),
            session_id=row.session_id,
            timestamp=row.created_at,
            filters=row.filters or {},
            intent=row.intent,
            intent_confidence=row.intent_confidence,
            intent_keywords=row.intent_keywords or [],
            added_to_cart=bool(row.added_to_cart),
            checkout_completed=bool(row.checkout_completed),
            order_total=row.order_total,
            converted_at=row.converted_at
        )

    @staticmethod
    def _to_conversion_event(row: SearchConversionRecord) -> ConversionEvent:
        return ConversionEvent(
            id=str(row.id),
            search_query=row.search_query,
            original_query=row.original_query,
            session_id=row.session_id,
            user_id=_optional_str(row.user_id),
            conversion_type=row.conversion_type,
            timestamp=row.created_at,
            product_id=row.product_id,
            product_name=row.product_name,
            price=row.price,
            order_id=row.order_id,
            order_total=row.order_total,
            products=row.products or []
        )

    @staticmethod
    def _to_refinement_event(row: SearchRefinementRecord) -> RefinementEvent:
        return RefinementEvent(
            session_id=row.session_id,
            user_id=_optional_str(row.user_id),
            previous_query=row.previous_query or "",
            new_query=row.new_query or "",
            added_filters=row.added_filters or {},
            removed_filters=row.removed_filters or {},
            previous_results_count=row.previous_results_count,
            new_results_count=row.new_results_count,
            timestamp=row.created_at
        )

    # Writes
    def record_search_event(
        self,
        query: str,
        category: str,
        results_count: int,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        user_agent: Optional[str] = None,
        known_terms: Optional[List[str]] = None
    ) -> Optional[int]:
        """
        Record a search with intent enrichment

        Zero-result searches are also recorded with the suggestions
        generated for them.

        Returns:
            ID of the created search row or None if failed
        """
        try:
            intent = classify_intent(query)
            session_id = session_id or self.session_ids.current()

            record = SearchQueryRecord(
                query=query.lower().strip(),
                original_query=query.strip(),
                category=category,
                results_count=results_count,
                filters=filters or {},
                intent=intent.intent.value,
                intent_confidence=intent.confidence.value,
                intent_keywords=intent.keywords,
                user_id=user_id,
                session_id=session_id,
                user_agent=user_agent
            )
            self.db.add(record)

            if results_count == 0:
                suggestions = generate_suggestions(query, category, known_terms)
                self.db.add(ZeroResultSearchRecord(
                    query=query.lower().strip(),
                    original_query=query.strip(),
                    category=category,
                    filters=filters or {},
                    suggestions=[s.model_dump(mode="json") for s in suggestions],
                    session_id=session_id,
                    user_id=user_id
                ))

            self.db.commit()
            logger.debug(f"Recorded search: session={session_id}, query='{query}', results={results_count}")
            return record.id

        except SQLAlchemyError as e:
            logger.error(f"Database error recording search event: {e}")
            self.db.rollback()
            return None

    def record_refinement(
        self,
        previous_query: str,
        new_query: str,
        previous_filters: Optional[Dict[str, Any]] = None,
        new_filters: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        previous_results_count: Optional[int] = None,
        new_results_count: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None
    ) -> Optional[int]:
        """Record a query/filter refinement with the filter diff"""
        try:
            added, removed = diff_filters(previous_filters, new_filters)
            record = SearchRefinementRecord(
                session_id=session_id or self.session_ids.current(),
                user_id=user_id,
                previous_query=previous_query,
                new_query=new_query,
                added_filters=added,
                removed_filters=removed,
                previous_results_count=previous_results_count,
                new_results_count=new_results_count,
                meta=meta or {}
            )
            self.db.add(record)
            self.db.commit()
            return record.id

        except SQLAlchemyError as e:
            logger.error(f"Database error recording refinement: {e}")
            self.db.rollback()
            return None

    def record_conversion(
        self,
        search_query: str,
        conversion_type: ConversionType,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
        product_name: Optional[str] = None,
        price: Optional[float] = None,
        order_id: Optional[str] = None,
        order_total: Optional[float] = None,
        products: Optional[List[Dict[str, Any]]] = None
    ) -> Optional[int]:
        """
        Record an add-to-cart or checkout and flag the session's matching searches

        Returns:
            ID of the created conversion row or None if failed
        """
        conversion_type = ConversionType(conversion_type)
        normalized = search_query.lower().strip()
        session_id = session_id or self.session_ids.current()
        now = datetime.utcnow()

        try:
            record = SearchConversionRecord(
                search_query=normalized,
                original_query=search_query.strip(),
                conversion_type=conversion_type.value,
                product_id=product_id,
                product_name=product_name,
                price=price,
                order_id=order_id,
                order_total=order_total,
                products=products or [],
                session_id=session_id,
                user_id=user_id,
                created_at=now
            )
            self.db.add(record)

            searches = self.db.query(SearchQueryRecord).filter(
                SearchQueryRecord.session_id == session_id,
                SearchQueryRecord.query == normalized
            ).all()
            for search in searches:
                if conversion_type == ConversionType.CHECKOUT:
                    search.checkout_completed = True
                    search.order_total = order_total
                else:
                    search.added_to_cart = True
                search.converted_at = now

            self.db.commit()
            logger.debug(
                f"Recorded {conversion_type.value} for '{normalized}' in session {session_id} "
                f"({len(searches)} searches flagged)"
            )
            return record.id

        except SQLAlchemyError as e:
            logger.error(f"Database error recording conversion: {e}")
            self.db.rollback()
            return None
