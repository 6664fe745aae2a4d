"""
Smart search suggestions
Typo correction, synonym expansion, fuzzy matching against known terms,
broader alternatives and rule-based product recommendations for queries
that returned nothing useful.
"""

import re
import logging
from typing import List, Optional, Sequence

from .config import AnalyticsConfig
from .models import Suggestion, SuggestionType
from .rules import SuggestionRules, load_rules

logger = logging.getLogger(__name__)

MODEL_NUMBER_PATTERN = re.compile(r"\d{4}")


def levenshtein_distance(str1: str, str2: str) -> int:
    """Edit distance with unit cost for insertion, deletion and substitution"""
    if len(str1) < len(str2):
        str1, str2 = str2, str1

    previous_row = list(range(len(str2) + 1))
    for i, char1 in enumerate(str1, start=1):
        current_row = [i]
        for j, char2 in enumerate(str2, start=1):
            if char1 == char2:
                current_row.append(previous_row[j - 1])
            else:
                current_row.append(min(
                    previous_row[j - 1] + 1,  # substitution
                    current_row[j - 1] + 1,   # insertion
                    previous_row[j] + 1       # deletion
                ))
        previous_row = current_row

    return previous_row[-1]


def similarity_score(str1: str, str2: str) -> float:
    """Case-insensitive normalized similarity in [0, 1]"""
    max_length = max(len(str1), len(str2))
    if max_length == 0:
        return 1.0
    distance = levenshtein_distance(str1.lower(), str2.lower())
    return 1 - distance / max_length


class SuggestionEngine:
    """Generates ranked suggestions for a search query from the rule tables"""

    def __init__(self, rules: Optional[SuggestionRules] = None, max_suggestions: Optional[int] = None):
        self.rules = rules or load_rules()
        if max_suggestions is None:
            max_suggestions = AnalyticsConfig.MAX_SUGGESTIONS
        self.max_suggestions = max_suggestions

    def generate(
        self,
        query: Optional[str],
        category: Optional[str] = None,
        known_terms: Optional[Sequence[str]] = None
    ) -> List[Suggestion]:
        """
        Generate smart suggestions for a search query

        Args:
            query: The original search query
            category: Optional category context
            known_terms: Optional corpus of known product names for fuzzy matching

        Returns:
            Up to max_suggestions suggestions sorted by descending confidence,
            deduplicated by lower-cased suggestion text (first occurrence wins)
        """
        if query is not None and not isinstance(query, str):
            raise TypeError(f"query must be a string, got {type(query).__name__}")
        if not query or not query.strip():
            return []

        candidates: List[Suggestion] = []

        typo = self.check_typo_patterns(query)
        if typo:
            candidates.append(typo)

        candidates.extend(self.find_synonyms(query))

        if known_terms:
            candidates.extend(self.find_fuzzy_matches(query, known_terms))

        candidates.extend(self.generate_alternatives(query, category))
        candidates.extend(self.generate_product_recommendations(query))

        unique: List[Suggestion] = []
        seen = set()
        for candidate in candidates:
            key = candidate.suggestion.lower()
            if key in seen:
                continue
            seen.add(key)
            unique.append(candidate)

        # sorted() is stable, so equal confidences keep pipeline order
        ranked = sorted(unique, key=lambda s: s.confidence, reverse=True)[:self.max_suggestions]
        logger.debug(f"Generated {len(ranked)} suggestions for '{query}' from {len(candidates)} candidates")
        return ranked

    def check_typo_patterns(self, query: str) -> Optional[Suggestion]:
        """First known miskeyed model number found in the query, if any"""
        lower_query = query.lower().strip()

        for table in self.rules.typo_tables:
            for typo, correct in table.patterns.items():
                # "rx 7900" inside "rx 7900 xt" is already the corrected model
                match = next(
                    (
                        m for m in re.finditer(rf"(?<!\w){re.escape(typo)}(?!\w)", lower_query)
                        if not lower_query.startswith(correct.lower(), m.start())
                    ),
                    None
                )
                if not match:
                    continue
                corrected = lower_query[:match.start()] + correct + lower_query[match.end():]
                return Suggestion(
                    type=SuggestionType.TYPO,
                    original=query,
                    suggestion=corrected,
                    confidence=table.confidence,
                    reason=f'Common typo detected: "{typo}" -> "{correct}"'
                )

        return None

    def find_synonyms(self, query: str) -> List[Suggestion]:
        """Rewrite each query term that has synonyms, one suggestion per synonym"""
        suggestions = []
        lower_query = query.lower().strip()
        words = lower_query.split()
        longest = self.rules.longest_synonym_key

        i = 0
        while i < len(words):
            matched = 0
            for size in range(min(longest, len(words) - i), 0, -1):
                term = " ".join(words[i:i + size])
                synonyms = self.rules.synonyms.get(term)
                if not synonyms:
                    continue

                for synonym in synonyms:
                    rewritten = " ".join(words[:i] + [synonym] + words[i + size:])
                    if rewritten.lower() != lower_query:
                        suggestions.append(Suggestion(
                            type=SuggestionType.SYNONYM,
                            original=query,
                            suggestion=rewritten,
                            confidence=0.85,
                            reason=f'"{term}" can also be "{synonym}"'
                        ))
                matched = size
                break
            i += matched or 1

        return suggestions

    def find_fuzzy_matches(self, query: str, known_terms: Sequence[str]) -> List[Suggestion]:
        """Known terms that are similar to the query but not (near) exact matches"""
        suggestions = []
        lower_query = query.lower().strip()

        for term in known_terms:
            if not term:
                continue
            similarity = similarity_score(lower_query, term.lower())
            if AnalyticsConfig.FUZZY_MIN_SIMILARITY < similarity < AnalyticsConfig.FUZZY_MAX_SIMILARITY:
                suggestions.append(Suggestion(
                    type=SuggestionType.TYPO,
                    original=query,
                    suggestion=term,
                    confidence=similarity,
                    reason=f'Similar to "{term}" ({round(similarity * 100)}% match)'
                ))

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions[:AnalyticsConfig.FUZZY_TOP_N]

    def generate_alternatives(self, query: str, category: Optional[str] = None) -> List[Suggestion]:
        """Broader searches: the model's category, or the query minus its first word"""
        suggestions = []
        lower_query = query.lower().strip()
        confidence = self.rules.alternative_confidence

        if MODEL_NUMBER_PATTERN.search(lower_query):
            broad_category = self.rules.default_category
            for candidate in self.rules.broad_categories:
                if any(keyword in lower_query for keyword in candidate.keywords):
                    broad_category = candidate.name
                    break

            suggestions.append(Suggestion(
                type=SuggestionType.ALTERNATIVE,
                original=query,
                suggestion=broad_category,
                confidence=confidence.broader_category,
                reason=f"Try browsing all {broad_category} instead"
            ))

        words = lower_query.split()
        if len(words) > 2:
            # First word is usually the brand or model prefix
            suggestions.append(Suggestion(
                type=SuggestionType.ALTERNATIVE,
                original=query,
                suggestion=" ".join(words[1:]),
                confidence=confidence.drop_first_word,
                reason="Try a more general search"
            ))

        return suggestions

    def generate_product_recommendations(self, query: str) -> List[Suggestion]:
        """Named products for keyword combinations such as budget + gpu"""
        suggestions = []
        lower_query = query.lower().strip()

        for rule in self.rules.recommendations:
            if not rule.matches(lower_query):
                continue
            for product in rule.suggestions:
                suggestions.append(Suggestion(
                    type=SuggestionType.RELATED,
                    original=query,
                    suggestion=product.suggestion,
                    confidence=product.confidence,
                    reason=product.reason
                ))

        return suggestions


_default_engine: Optional[SuggestionEngine] = None


def generate_suggestions(
    query: Optional[str],
    category: Optional[str] = None,
    known_terms: Optional[Sequence[str]] = None
) -> List[Suggestion]:
    """Generate suggestions with the default rule set"""
    global _default_engine
    if _default_engine is None:
        _default_engine = SuggestionEngine()
    return _default_engine.generate(query, category, known_terms)
