"""Core module - configuration, errors and observability.

Shared by every stage of the invoice intake pipeline: the parser,
the matcher, the reconciliation engine and the ingestion service.
"""

__version__ = "1.0.0"
