"""Line Matcher Implementation.

Resolves an invoice line to at most one catalog entry using tiers tried in
strict order. The first tier that produces a single, unambiguous entry wins;
no scores are merged across tiers.

Tiers:
1. SUPPLIER_CODE: the line's article code is mapped for this supplier
2. KEYWORD: one of the description keywords names exactly one entry
3. FIRST_WORD: the description's first word names exactly one entry
4. NO_MATCH: the line is left for manual review

A term that names several entries is ambiguous and never used as a hit;
matching falls through to the next keyword or tier instead of guessing.
"""

from typing import List, Optional, Protocol

from core.observability.logging import get_logger
from models.invoice import InvoiceLine
from models.inventory import CatalogEntry
from product_matcher.models import (
    DEFAULT_MATCHING_CONFIG,
    LineMatch,
    MatchingConfig,
    MatchType,
)
from product_matcher.normalize import extract_keywords, first_word

logger = get_logger(__name__)


class CatalogLookup(Protocol):
    """Read side of the catalog used for matching."""

    def find_by_supplier_code(self, supplier_name: str, code: str) -> Optional[CatalogEntry]:
        ...

    def search_by_name(self, fragment: str) -> List[CatalogEntry]:
        ...


class LineMatcher:
    """Matches invoice lines to catalog entries.

    Usage:
        matcher = LineMatcher(catalog)
        result = matcher.resolve(line, invoice.supplier_name)
        if result.is_match:
            print(result.entry.name, result.match_type)
    """

    def __init__(self, catalog: CatalogLookup, config: MatchingConfig = DEFAULT_MATCHING_CONFIG):
        self.catalog = catalog
        self.config = config

    def match(self, line: InvoiceLine, supplier_name: str) -> Optional[CatalogEntry]:
        """Catalog entry for the line, or None."""
        return self.resolve(line, supplier_name).entry

    def resolve(self, line: InvoiceLine, supplier_name: str) -> LineMatch:
        """Match a line and explain how the result was reached.

        Args:
            line: Invoice line to match
            supplier_name: Issuer of the invoice the line belongs to

        Returns:
            LineMatch with the entry (if any), the tier and the matched term
        """
        # Tier 1: supplier article code
        if line.supplier_code:
            entry = self.catalog.find_by_supplier_code(supplier_name, line.supplier_code)
            if entry is not None:
                return LineMatch(
                    entry=entry,
                    match_type=MatchType.SUPPLIER_CODE,
                    matched_on=line.supplier_code,
                )

        keywords = extract_keywords(line.description, self.config)
        ambiguous: List[str] = []

        # Tier 2: keywords, longest first
        for keyword in keywords:
            candidates = self.catalog.search_by_name(keyword)
            if len(candidates) == 1:
                return LineMatch(
                    entry=candidates[0],
                    match_type=MatchType.KEYWORD,
                    matched_on=keyword,
                    keywords=keywords,
                    ambiguous=ambiguous,
                )
            if len(candidates) > 1:
                ambiguous.append(keyword)

        # Tier 3: first word of the description
        word = first_word(line.description, self.config)
        if word:
            candidates = self.catalog.search_by_name(word)
            if len(candidates) == 1:
                return LineMatch(
                    entry=candidates[0],
                    match_type=MatchType.FIRST_WORD,
                    matched_on=word,
                    keywords=keywords,
                    ambiguous=ambiguous,
                )
            if len(candidates) > 1:
                ambiguous.append(word)

        if ambiguous:
            logger.debug(
                f"No unambiguous catalog entry for '{line.description}'",
                extra_fields={"ambiguous_terms": ambiguous},
            )
        return LineMatch(keywords=keywords, ambiguous=ambiguous)
