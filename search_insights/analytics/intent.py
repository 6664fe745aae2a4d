"""
Search intent classifier
Categorizes search queries by intent using keyword/pattern matching
"""

import re
import logging
from typing import List, Optional

from .models import IntentResult, SearchIntent, IntentConfidence

logger = logging.getLogger(__name__)

# Comparison intent - comparing products (checked first, wins outright)
COMPARISON_PATTERNS = [
    re.compile(r"\b(\w+)\s+(vs|versus|or)\s+(\w+)"),
    re.compile(r"\b(compare|comparison|difference between)\b"),
    re.compile(r"\b(better|worse)\s+(than)\b"),
]

# Price checking intent - budget/price focused
PRICE_PATTERNS = [
    re.compile(r"\b(cheap|budget|affordable|inexpensive|economical|value)\b"),
    re.compile(r"(\b(price|cost|how much|under|less than)\b|[$£€])"),
    re.compile(r"\b(deal|discount|sale|clearance|bargain)\b"),
    re.compile(r"\b(low cost|low price|price range)\b"),
]

# Research intent - users learning/researching
RESEARCH_PATTERNS = [
    re.compile(r"\b(best|top|recommend|review|guide|how to|what is|should i|worth it|good|comparison guide)\b"),
    re.compile(r"\bwhich\b"),
    re.compile(r"\b(better|fastest|most powerful|quietest|coolest)\b"),
    re.compile(r"\b(benchmark|performance|specs|specifications|features)\b"),
    re.compile(r"\b(explained|tutorial|beginner|for gaming|for streaming)\b"),
]

# Specific product intent - looking for an exact product
SPECIFIC_PATTERNS = [
    re.compile(r"\b(rtx|gtx|rx)\s*\d{4}"),
    re.compile(r"\b(ryzen|core|threadripper|xeon)\s+\d"),
    re.compile(r"\b(ti|super|xt|oc|gaming x|strix|tuf|ftw|aorus)\b"),
    re.compile(r"\b(\d+gb|\d+tb)\b"),
    re.compile(r"\b(ddr\d|gen\d|pcie\s*\d)\b"),
]

INTENT_LABELS = {
    SearchIntent.RESEARCH: "Research",
    SearchIntent.COMPARISON: "Comparison",
    SearchIntent.PRICE_CHECKING: "Price Checking",
    SearchIntent.SPECIFIC_PRODUCT: "Specific Product",
}


def _collect_matches(patterns: List[re.Pattern], query: str, keywords: List[str]) -> int:
    """Count matching patterns and record each new matched keyword"""
    matches = 0
    for pattern in patterns:
        match = pattern.search(query)
        if match:
            matches += 1
            if match.group(0) not in keywords:
                keywords.append(match.group(0))
    return matches


def classify_intent(query: Optional[str]) -> IntentResult:
    """
    Classify a search query by intent

    Args:
        query: Raw search query text

    Returns:
        IntentResult with intent, confidence and the matched keywords.
        Unmatched or empty queries are treated as a low-confidence
        specific product search with no keywords.
    """
    normalized = (query or "").lower().strip()
    if not normalized:
        return IntentResult(intent=SearchIntent.SPECIFIC_PRODUCT, confidence=IntentConfidence.LOW)

    for pattern in COMPARISON_PATTERNS:
        match = pattern.search(normalized)
        if match:
            return IntentResult(
                intent=SearchIntent.COMPARISON,
                confidence=IntentConfidence.HIGH,
                keywords=[match.group(0)]
            )

    keywords: List[str] = []
    intent = SearchIntent.SPECIFIC_PRODUCT
    confidence = IntentConfidence.LOW

    price_matches = _collect_matches(PRICE_PATTERNS, normalized, keywords)
    if price_matches > 0:
        intent = SearchIntent.PRICE_CHECKING
        confidence = IntentConfidence.HIGH if price_matches >= 2 else IntentConfidence.MEDIUM

    research_matches = _collect_matches(RESEARCH_PATTERNS, normalized, keywords)
    if research_matches > price_matches:
        intent = SearchIntent.RESEARCH
        confidence = IntentConfidence.HIGH if research_matches >= 2 else IntentConfidence.MEDIUM

    specific_matches = _collect_matches(SPECIFIC_PATTERNS, normalized, keywords)
    if specific_matches > 0 and confidence != IntentConfidence.HIGH:
        if research_matches == 0 and price_matches == 0:
            intent = SearchIntent.SPECIFIC_PRODUCT
            confidence = IntentConfidence.HIGH if specific_matches >= 2 else IntentConfidence.MEDIUM
        elif specific_matches >= 2:
            # Strong product indicators override a single weak signal
            intent = SearchIntent.SPECIFIC_PRODUCT
            confidence = IntentConfidence.MEDIUM

    logger.debug(f"Classified '{normalized}' as {intent.value} ({confidence.value})")
    return IntentResult(intent=intent, confidence=confidence, keywords=keywords)


def intent_label(intent: SearchIntent) -> str:
    """Human-readable label for an intent"""
    return INTENT_LABELS[SearchIntent(intent)]
