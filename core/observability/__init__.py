"""
Observability Module for the Invoice Intake Pipeline

Provides:
- Structured logging with correlation IDs
- Metrics collection (documents, line outcomes, processing times)
"""

from core.observability.metrics import IngestionMetrics

from core.observability.logging import (
    configure_logging,
    get_logger,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "IngestionMetrics",
    # Logging
    "configure_logging",
    "get_logger",
    "CorrelationContext",
    "with_correlation",
]
