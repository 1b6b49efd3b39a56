"""Extraction - parsing of supplier invoice documents."""

from extraction.parser import DocumentParser, parse_invoice

__all__ = ["DocumentParser", "parse_invoice"]
