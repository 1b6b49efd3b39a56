"""
Product Matcher Tests

Validates the tiered line matching:
1. Keyword extraction (short tokens and stop words dropped, longest first)
2. Supplier code match outranks every description heuristic
3. Ambiguous keywords and first words never produce a match
4. Results are deterministic for a given catalog
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from models.invoice import InvoiceLine
from product_matcher import (
    LineMatcher,
    MatchingConfig,
    MatchType,
    extract_keywords,
    first_word,
)

SUPPLIER = "Molino Rossi SRL"


def line(description, code=None, quantity="1"):
    return InvoiceLine(description=description, quantity=Decimal(quantity), supplier_code=code)


class TestKeywordExtraction:

    def test_drops_short_tokens(self):
        assert extract_keywords("FARINA TIPO 00 KG 25") == ["farina", "tipo"]

    def test_drops_stop_words(self):
        assert extract_keywords("Zucchero semolato confezione busta") == ["zucchero", "semolato"]

    def test_longest_first_top_three(self):
        keywords = extract_keywords("mozzarella fior latte vaccino fresca")
        assert keywords == ["mozzarella", "vaccino", "fresca"]

    def test_ties_keep_description_order(self):
        assert extract_keywords("uova pane miele") == ["miele", "uova", "pane"]

    def test_splits_on_punctuation_and_deduplicates(self):
        assert extract_keywords("Burro/burro-panna 1,5KG") == ["burro", "panna"]

    def test_custom_config(self):
        config = MatchingConfig(max_keywords=1)
        assert extract_keywords("FARINA TIPO 00", config) == ["farina"]

    def test_first_word(self):
        assert first_word("RICOTTA MISTA 2KG") == "RICOTTA"
        assert first_word("UOVO") == "UOVO"
        assert first_word("KG 25 FARINA") is None
        assert first_word("   ") is None


class TestLineMatcher:

    @pytest.fixture
    def entries(self, catalog):
        return SimpleNamespace(
            flour=catalog.add_entry(
                "Farina 00", unit="kg", quantity_on_hand=Decimal("10"),
                supplier_codes=[(SUPPLIER, "F00-25")],
            ),
            fresh_ricotta=catalog.add_entry("Ricotta fresca", unit="kg"),
            sheep_ricotta=catalog.add_entry("Ricotta di pecora", unit="kg"),
            semolina=catalog.add_entry(
                "Semola rimacinata", unit="kg", supplier_codes=[(SUPPLIER, "SR-10")]
            ),
            gift_box=catalog.add_entry("Confezione regalo", unit="pz"),
        )

    @pytest.fixture
    def matcher(self, catalog, entries):
        return LineMatcher(catalog)

    def test_keyword_match(self, matcher, entries):
        """FARINA matches 'Farina 00' as a substring."""
        result = matcher.resolve(line("FARINA TIPO 00 KG 25", quantity="25"), SUPPLIER)
        assert result.entry.id == entries.flour.id
        assert result.match_type == MatchType.KEYWORD
        assert result.matched_on == "farina"

    def test_supplier_code_match(self, matcher, entries):
        result = matcher.resolve(line("ARTICOLO 7", code="F00-25"), SUPPLIER)
        assert result.entry.id == entries.flour.id
        assert result.match_type == MatchType.SUPPLIER_CODE

    def test_supplier_code_wins_over_keywords(self, matcher, entries):
        """Description names the flour, but the code names the semolina."""
        result = matcher.resolve(line("FARINA TIPO 00", code="SR-10"), SUPPLIER)
        assert result.entry.id == entries.semolina.id
        assert result.match_type == MatchType.SUPPLIER_CODE

    def test_supplier_code_is_scoped_to_supplier(self, matcher):
        result = matcher.resolve(line("ARTICOLO 7", code="F00-25"), "Another Supplier")
        assert not result.is_match

    def test_supplier_code_is_case_sensitive(self, matcher):
        result = matcher.resolve(line("ARTICOLO 7", code="f00-25"), SUPPLIER)
        assert not result.is_match

    def test_unknown_code_and_no_keyword(self, matcher):
        result = matcher.resolve(line("ARTICOLO VARIO XYZ", code="SC-99", quantity="5"), SUPPLIER)
        assert result.entry is None
        assert result.match_type == MatchType.NO_MATCH
        assert matcher.match(line("ARTICOLO VARIO XYZ", code="SC-99"), SUPPLIER) is None

    def test_ambiguous_keyword_and_first_word(self, matcher):
        """RICOTTA names two entries, MISTA names none: no match."""
        result = matcher.resolve(line("RICOTTA MISTA 2KG"), SUPPLIER)
        assert result.entry is None
        assert "ricotta" in result.ambiguous
        assert "RICOTTA" in result.ambiguous

    def test_ambiguous_keyword_falls_through_to_next(self, matcher, entries):
        """'ricotta' is ambiguous, 'pecora' is not."""
        result = matcher.resolve(line("RICOTTA PECORA"), SUPPLIER)
        assert result.entry.id == entries.sheep_ricotta.id
        assert result.match_type == MatchType.KEYWORD
        assert result.matched_on == "pecora"
        assert result.ambiguous == ["ricotta"]

    def test_first_word_tier(self, matcher, entries):
        """'confezione' is a stop word, so only the first-word tier can find it."""
        result = matcher.resolve(line("CONFEZIONE 12 PZ"), SUPPLIER)
        assert result.entry.id == entries.gift_box.id
        assert result.match_type == MatchType.FIRST_WORD
        assert result.keywords == []

    def test_deterministic(self, matcher, entries):
        description = line("SEMOLA RIMACINATA DI GRANO DURO")
        results = [matcher.resolve(description, SUPPLIER) for _ in range(3)]
        assert {r.entry.id for r in results} == {entries.semolina.id}
        assert len({r.matched_on for r in results}) == 1

    def test_works_with_any_catalog_lookup(self):
        """The matcher only needs find_by_supplier_code and search_by_name."""

        class FakeCatalog:
            def find_by_supplier_code(self, supplier_name, code):
                return None

            def search_by_name(self, fragment):
                return []

        result = LineMatcher(FakeCatalog()).resolve(line("QUALSIASI COSA"), SUPPLIER)
        assert not result.is_match
