"""
Data models for the search analytics engine
Raw event records read from the event store and the aggregates derived from them
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so mixed batches stay comparable"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def diff_filters(
    previous: Optional[Dict[str, Any]],
    new: Optional[Dict[str, Any]]
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Structural diff of two filter maps

    A key is "added" if it was absent before or its value changed, and
    "removed" if it was present before and is absent after.

    Returns:
        Tuple of (added_filters, removed_filters)
    """
    previous = previous or {}
    new = new or {}

    added = {
        key: value for key, value in new.items()
        if key not in previous or previous[key] != value
    }
    removed = {
        key: value for key, value in previous.items()
        if key not in new
    }
    return added, removed


class SearchIntent(str, Enum):
    RESEARCH = "research"
    COMPARISON = "comparison"
    PRICE_CHECKING = "price_checking"
    SPECIFIC_PRODUCT = "specific_product"


class IntentConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConversionType(str, Enum):
    ADD_TO_CART = "add_to_cart"
    CHECKOUT = "checkout"


class SuggestionType(str, Enum):
    TYPO = "typo"
    SYNONYM = "synonym"
    RELATED = "related"
    ALTERNATIVE = "alternative"


class BehaviorLabel(str, Enum):
    NARROWING = "Narrowing Search"
    BROADENING = "Broadening Search"
    EXPLORING = "Exploring Options"
    STATIC = "Static Search"


class EventModel(BaseModel):
    """Base for raw event records; accepts both snake_case and camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("timestamp", "converted_at", check_fields=False)
    @classmethod
    def _normalize_datetime(cls, value):
        if isinstance(value, datetime):
            return as_utc(value)
        return value


class SearchFilters(BaseModel):
    """Filters applied to a search plus the device/locale/geo enrichment"""
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    brands: Optional[List[str]] = None
    price_range: Optional[List[float]] = None
    device_type: Optional[str] = None  # Mobile, Desktop, Tablet, Unknown
    is_mobile: Optional[bool] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        """Plain mapping of the filters that are set, extension keys included"""
        return self.model_dump(exclude_none=True)

    def diff(self, other: "SearchFilters") -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Filters added and removed when moving from self to other"""
        return diff_filters(self.as_dict(), other.as_dict())


class SearchEvent(EventModel):
    """One user query attempt"""
    id: Optional[str] = None
    query: str
    original_query: str = ""
    category: str = ""
    results_count: int = Field(default=0, ge=0)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: datetime
    filters: SearchFilters = Field(default_factory=SearchFilters)
    intent: Optional[SearchIntent] = None
    intent_confidence: Optional[IntentConfidence] = None
    intent_keywords: List[str] = []
    added_to_cart: bool = False
    checkout_completed: bool = False
    order_total: Optional[float] = None
    converted_at: Optional[datetime] = None

    @property
    def is_guest(self) -> bool:
        return not self.user_id

    @property
    def display_query(self) -> str:
        return self.original_query.strip() or self.query


class ConversionProduct(BaseModel):
    id: str
    name: str = ""
    price: float = 0.0


class ConversionEvent(EventModel):
    """Add-to-cart or checkout attributed to a search query; append-only"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: Optional[str] = None
    search_query: str
    original_query: Optional[str] = None
    session_id: str
    user_id: Optional[str] = None
    conversion_type: ConversionType
    timestamp: datetime
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    price: Optional[float] = None
    order_id: Optional[str] = None
    order_total: Optional[float] = None
    products: List[ConversionProduct] = []


class RefinementEvent(EventModel):
    """One query/filter transition inside a session"""
    session_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    previous_query: str = ""
    new_query: str = ""
    added_filters: Dict[str, Any] = {}
    removed_filters: Dict[str, Any] = {}
    previous_results_count: Optional[int] = None
    new_results_count: Optional[int] = None
    timestamp: datetime

    @classmethod
    def from_transition(
        cls,
        session_id: str,
        previous_query: str,
        new_query: str,
        previous_filters: Optional[Dict[str, Any]],
        new_filters: Optional[Dict[str, Any]],
        timestamp: datetime,
        **extra: Any
    ) -> "RefinementEvent":
        """Build a refinement event by diffing the before/after filter maps"""
        added, removed = diff_filters(previous_filters, new_filters)
        return cls(
            session_id=session_id,
            previous_query=previous_query,
            new_query=new_query,
            added_filters=added,
            removed_filters=removed,
            timestamp=timestamp,
            **extra
        )

    @property
    def transition(self) -> str:
        return f"{self.previous_query} -> {self.new_query}"


class IntentResult(BaseModel):
    intent: SearchIntent
    confidence: IntentConfidence
    keywords: List[str] = []


class Suggestion(BaseModel):
    """A query suggestion with a rule-assigned or similarity confidence"""
    type: SuggestionType
    original: str
    suggestion: str
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str

    def display_text(self) -> str:
        if self.type == SuggestionType.TYPO:
            return f'Did you mean "{self.suggestion}"?'
        if self.type == SuggestionType.SYNONYM:
            return f'Try searching for "{self.suggestion}"'
        if self.type == SuggestionType.RELATED:
            return f"Consider: {self.suggestion}"
        return f"Browse {self.suggestion}"


class SearchSession(BaseModel):
    """Searches sharing one session id, derived fresh on every request"""
    session_id: str
    searches: List[SearchEvent] = []
    queries: List[str] = []
    pattern: str = ""
    start_time: datetime
    end_time: datetime
    duration: int = 0  # milliseconds
    total_searches: int = 0
    unique_queries: int = 0
    added_to_cart: bool = False
    converted: bool = False
    user_id: Optional[str] = None


class PatternStat(BaseModel):
    pattern: str
    count: int
    conversion_rate: float


class ConversionPath(BaseModel):
    path: str
    conversions: int


class SessionFlowAnalysis(BaseModel):
    total_sessions: int = 0
    avg_searches_per_session: float = 0.0
    conversion_rate: float = 0.0
    add_to_cart_rate: float = 0.0
    abandonment_rate: float = 0.0
    avg_session_duration: float = 0.0  # milliseconds
    common_patterns: List[PatternStat] = []
    top_conversion_paths: List[ConversionPath] = []


class FlowNode(BaseModel):
    id: str
    name: str


class FlowLink(BaseModel):
    source: str
    target: str
    value: int


class FlowGraph(BaseModel):
    nodes: List[FlowNode] = []
    links: List[FlowLink] = []


class FunnelMetrics(BaseModel):
    total_searches: int = 0
    searches_with_results: int = 0
    added_to_cart: int = 0
    completed_checkout: int = 0
    # Conversion rates (%)
    search_to_view: float = 0.0
    view_to_cart: float = 0.0
    cart_to_checkout: float = 0.0
    search_to_checkout: float = 0.0
    # Revenue
    total_revenue: float = 0.0
    avg_revenue_per_search: float = 0.0
    avg_revenue_per_conversion: float = 0.0
    # Time to conversion (milliseconds)
    avg_time_to_cart: float = 0.0
    avg_time_to_checkout: float = 0.0


class FunnelStage(BaseModel):
    stage: str
    count: int
    percentage: float
    dropoff: int


class SearchTermRevenue(BaseModel):
    query: str
    search_count: int
    conversions: int
    conversion_rate: float
    total_revenue: float
    avg_revenue: float
    revenue_per_search: float


class TrendPoint(BaseModel):
    date: str
    search_count: int
    conversion_rate: float


class ProductConversion(BaseModel):
    product_id: str
    product_name: str
    conversion_count: int
    total_revenue: float


class PathNode(BaseModel):
    query: str
    filters: Dict[str, Any] = {}
    results_count: Optional[int] = None


class StuckIndicators(BaseModel):
    excessive_refinements: bool = False
    loops_detected: bool = False
    repeated_zero_results: bool = False

    @property
    def is_stuck(self) -> bool:
        return self.excessive_refinements or self.loops_detected or self.repeated_zero_results


class RefinementSessionAnalysis(BaseModel):
    session_id: str
    total_refinements: int
    path: List[PathNode] = []
    stuck_indicators: StuckIndicators = Field(default_factory=StuckIndicators)
    most_common_transition: Optional[str] = None


class RefinementReport(BaseModel):
    sessions: List[RefinementSessionAnalysis] = []
    skipped_records: int = 0
