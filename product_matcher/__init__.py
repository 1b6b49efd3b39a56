"""
Product Matcher Module

Resolves free-text invoice lines to catalog entries:
- Exact supplier article code
- Unambiguous description keyword
- Unambiguous first word

Lines that no tier can pin to a single entry are left unmatched.
"""

from product_matcher.models import (
    DEFAULT_MATCHING_CONFIG,
    DEFAULT_STOP_WORDS,
    LineMatch,
    MatchingConfig,
    MatchType,
)
from product_matcher.normalize import extract_keywords, first_word, tokenize_description
from product_matcher.matcher import CatalogLookup, LineMatcher

__all__ = [
    "DEFAULT_MATCHING_CONFIG",
    "DEFAULT_STOP_WORDS",
    "LineMatch",
    "MatchingConfig",
    "MatchType",
    "extract_keywords",
    "first_word",
    "tokenize_description",
    "CatalogLookup",
    "LineMatcher",
]
