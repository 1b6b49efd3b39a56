"""Description Normalization Utilities.

Turns a free-text invoice description into the search terms used by the
keyword and first-word tiers of the matcher.

Examples:
    "FARINA TIPO 00 KG 25"      → keywords ["farina", "tipo"]
    "RICOTTA MISTA 2KG"         → keywords ["ricotta", "mista"]
    "Zucchero semolato busta"   → keywords ["zucchero", "semolato"]
"""

import re
from typing import List, Optional

from product_matcher.models import DEFAULT_MATCHING_CONFIG, MatchingConfig


NON_WORD = re.compile(r"\W+")


def tokenize_description(description: str) -> List[str]:
    """Lowercase word tokens, split on every non-word character."""
    if not description:
        return []
    return [token for token in NON_WORD.split(description.lower()) if token]


def extract_keywords(description: str, config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> List[str]:
    """Extract the candidate keywords of a description.

    Drops short tokens and stop words, removes duplicates, then orders the
    rest longest first (ties keep their order in the description) and keeps
    the top config.max_keywords.

    Examples:
        >>> extract_keywords("FARINA TIPO 00 KG 25")
        ['farina', 'tipo']
    """
    seen = set()
    candidates = []
    for token in tokenize_description(description):
        if len(token) < config.min_token_length or token in config.stop_words:
            continue
        if token in seen:
            continue
        seen.add(token)
        candidates.append(token)

    candidates.sort(key=len, reverse=True)
    return candidates[:config.max_keywords]


def first_word(description: str, config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> Optional[str]:
    """First whitespace-delimited word, if long enough to search on."""
    words = (description or "").split()
    if not words:
        return None
    word = words[0]
    if len(word) < config.min_token_length:
        return None
    return word
