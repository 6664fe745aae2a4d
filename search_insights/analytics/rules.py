"""
Heuristic rule tables for the suggestion engine
Synonyms, typo corrections, broad categories and product recommendations are
versioned configuration loaded from JSON rather than inline literals.
"""

import os
import json
import logging
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .config import AnalyticsConfig

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "default_rules.json")


class RulesConfigError(Exception):
    """Raised when a rule file is missing or does not match the schema"""


class TypoTable(BaseModel):
    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    patterns: Dict[str, str]


class BroadCategory(BaseModel):
    name: str
    keywords: List[str]


class AlternativeConfidence(BaseModel):
    broader_category: float = Field(default=0.7, ge=0.0, le=1.0)
    drop_first_word: float = Field(default=0.65, ge=0.0, le=1.0)


class RecommendedProduct(BaseModel):
    suggestion: str
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str


class RecommendationRule(BaseModel):
    """Fires when every keyword group has at least one keyword in the query"""
    name: str
    keyword_groups: List[List[str]]
    suggestions: List[RecommendedProduct]

    def matches(self, query: str) -> bool:
        return all(
            any(keyword in query for keyword in group)
            for group in self.keyword_groups
        )


class SuggestionRules(BaseModel):
    version: str
    synonyms: Dict[str, List[str]] = {}
    typo_tables: List[TypoTable] = []
    broad_categories: List[BroadCategory] = []
    default_category: str = "components"
    alternative_confidence: AlternativeConfidence = Field(default_factory=AlternativeConfidence)
    recommendations: List[RecommendationRule] = []

    @property
    def longest_synonym_key(self) -> int:
        """Number of words in the longest synonym key"""
        return max((len(key.split()) for key in self.synonyms), default=1)


def load_rules(path: Optional[str] = None) -> SuggestionRules:
    """
    Load suggestion rules from a JSON file

    Args:
        path: Rule file path. Falls back to SEARCH_RULES_PATH, then to the
            bundled defaults.

    Returns:
        Validated SuggestionRules

    Raises:
        RulesConfigError: the file cannot be read or fails validation
    """
    path = path or AnalyticsConfig.RULES_PATH or DEFAULT_RULES_PATH
    return _load_rules_file(os.path.abspath(path))


@lru_cache(maxsize=8)
def _load_rules_file(path: str) -> SuggestionRules:
    try:
        with open(path, "r", encoding="utf-8") as rules_file:
            data = json.load(rules_file)
    except (OSError, json.JSONDecodeError) as e:
        raise RulesConfigError(f"Cannot read suggestion rules from {path}: {e}") from e

    try:
        rules = SuggestionRules.model_validate(data)
    except ValidationError as e:
        raise RulesConfigError(f"Invalid suggestion rules in {path}: {e}") from e

    logger.info(
        f"Loaded suggestion rules v{rules.version} from {path}: "
        f"{len(rules.synonyms)} synonyms, {len(rules.typo_tables)} typo tables, "
        f"{len(rules.recommendations)} recommendation rules"
    )
    return rules
