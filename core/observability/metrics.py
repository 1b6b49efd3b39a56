"""
Metrics Collection for the Ingestion Service

Collects per-instance metrics for:
- Documents (processed, failed, duplicates)
- Line outcomes (matched, unmatched, failed)
- Processing times per stage (average, p95)

Each IngestionService owns one collector; nothing is module-global, so
several isolated services can run side by side (e.g. in tests).
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class DocumentMetrics:
    """Counters for whole documents."""
    processed: int = 0
    failed: int = 0
    duplicates: int = 0
    last_processed_at: Optional[datetime] = None


@dataclass
class LineMetrics:
    """Counters for invoice lines."""
    matched: int = 0
    unmatched: int = 0
    failed: int = 0

    # By match tier
    by_match_type: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: Optional[str] = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: Optional[str] = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: Optional[str] = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector
# =============================================================================

class IngestionMetrics:
    """
    Thread-safe metrics collector for one ingestion service.

    Usage:
        metrics = IngestionMetrics()
        metrics.record_document_processed(matched=3, unmatched=1, failed=0)
        metrics.record_processing_time("parse", 12.5)
    """

    def __init__(self):
        self.documents = DocumentMetrics()
        self.lines = LineMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    # =========================================================================
    # Document Metrics
    # =========================================================================

    def record_document_processed(self, matched: int, unmatched: int, failed: int):
        """Record a reconciled document and its line outcomes."""
        with self._lock:
            self.documents.processed += 1
            self.documents.last_processed_at = datetime.utcnow()
            self.lines.matched += matched
            self.lines.unmatched += unmatched
            self.lines.failed += failed

    def record_document_failed(self):
        """Record a document that could not be read, parsed or reconciled."""
        with self._lock:
            self.documents.failed += 1

    def record_duplicate(self):
        """Record a document skipped because its content was already reconciled."""
        with self._lock:
            self.documents.duplicates += 1

    def record_match(self, match_type: str):
        """Record which matching tier resolved a line."""
        with self._lock:
            self.lines.by_match_type[match_type] += 1

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "documents": {
                    "processed": self.documents.processed,
                    "failed": self.documents.failed,
                    "duplicates": self.documents.duplicates,
                    "last_processed_at": self.documents.last_processed_at,
                },
                "lines": {
                    "matched": self.lines.matched,
                    "unmatched": self.lines.unmatched,
                    "failed": self.lines.failed,
                    "by_match_type": dict(self.lines.by_match_type),
                },
                "timings": {
                    stage: {
                        "average_ms": self.timings.get_average(stage),
                        "p95_ms": self.timings.get_p95(stage),
                    }
                    for stage in self.timings.by_stage.keys()
                },
            }
