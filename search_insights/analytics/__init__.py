"""
Search behavior analytics engine
Intent classification, query suggestions, session reconstruction and flow
analysis, funnel/revenue attribution and stuck-session detection
"""

from .config import AnalyticsConfig
from .intent import classify_intent, intent_label
from .suggestions import SuggestionEngine, generate_suggestions, levenshtein_distance, similarity_score
from .rules import SuggestionRules, RulesConfigError, load_rules
from .sessions import (
    SessionReconstructor,
    group_into_sessions,
    analyze_session_flow,
    classify_session_behavior,
    behavior_distribution,
    get_session_flow_data,
)
from .funnel import (
    compute_funnel_metrics,
    compute_search_term_revenue,
    top_revenue_terms,
    get_conversion_trend,
    get_funnel_chart_data,
    get_top_converting_products,
)
from .refinement import RefinementDetector, analyze_refinement_sessions
from .session_ids import SessionIdIssuer

__all__ = [
    "AnalyticsConfig",
    "classify_intent",
    "intent_label",
    "SuggestionEngine",
    "generate_suggestions",
    "levenshtein_distance",
    "similarity_score",
    "SuggestionRules",
    "RulesConfigError",
    "load_rules",
    "SessionReconstructor",
    "group_into_sessions",
    "analyze_session_flow",
    "classify_session_behavior",
    "behavior_distribution",
    "get_session_flow_data",
    "compute_funnel_metrics",
    "compute_search_term_revenue",
    "top_revenue_terms",
    "get_conversion_trend",
    "get_funnel_chart_data",
    "get_top_converting_products",
    "RefinementDetector",
    "analyze_refinement_sessions",
    "SessionIdIssuer",
]
