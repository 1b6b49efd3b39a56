"""Product Matcher Data Models.

- MatchType: Which tier resolved an invoice line
- LineMatch: The result of matching one line
- MatchingConfig: Keyword extraction parameters
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.inventory import CatalogEntry


class MatchType(str, Enum):
    """How the catalog entry was matched."""
    SUPPLIER_CODE = "supplier_code"  # Exact (supplier, code) pair
    KEYWORD = "keyword"              # Unambiguous description keyword
    FIRST_WORD = "first_word"        # Unambiguous first word of description
    NO_MATCH = "no_match"            # Left for manual review


# Unit and packaging words that say nothing about the product
DEFAULT_STOP_WORDS = frozenset({
    "da", "di", "in", "per", "con",
    "kg", "gr", "lt", "pz", "pezzi",
    "confezione", "conf", "busta", "sacco", "sacchetto",
})


class MatchingConfig(BaseModel):
    """Configuration for the line matching algorithm."""
    min_token_length: int = Field(
        default=4,
        description="Keywords and first words shorter than this are ignored"
    )
    max_keywords: int = Field(default=3, description="Keywords tried per description")
    stop_words: frozenset = Field(default=DEFAULT_STOP_WORDS)


DEFAULT_MATCHING_CONFIG = MatchingConfig()


class LineMatch(BaseModel):
    """Result of matching one invoice line.

    Attributes:
        entry: The matched catalog entry, None when unmatched
        match_type: Tier that produced the match
        matched_on: The code, keyword or word that matched
        keywords: Keywords extracted from the description, in trial order
        ambiguous: Terms skipped because they matched several entries
    """
    entry: Optional[CatalogEntry] = None
    match_type: MatchType = MatchType.NO_MATCH
    matched_on: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    ambiguous: List[str] = Field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return self.entry is not None
