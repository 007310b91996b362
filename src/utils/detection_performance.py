"""
Performance monitoring utilities for recurring pattern detection.

This module provides a context manager for timing detection runs:
- Transaction fetch time
- Grouping and classification time
- Reconcile and persistence time
- Total execution time
"""

import time
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SLOW_RUN_WARNING_MS = 10000
SLOW_RUN_ERROR_MS = 30000


@dataclass
class DetectionMetrics:
    """Container for detection run performance metrics."""
    operation_name: str
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    elapsed_ms: Optional[float] = None
    stage_ms: Dict[str, float] = field(default_factory=dict)
    transaction_count: int = 0
    groups_analyzed: int = 0
    candidates_detected: int = 0
    patterns_written: int = 0

    def finish(self):
        """Mark the operation as finished and calculate elapsed time."""
        self.end_time = time.time()
        self.elapsed_ms = (self.end_time - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for logging."""
        return {
            'operation_name': self.operation_name,
            'elapsed_ms': self.elapsed_ms,
            'stage_ms': dict(self.stage_ms),
            'transaction_count': self.transaction_count,
            'groups_analyzed': self.groups_analyzed,
            'candidates_detected': self.candidates_detected,
            'patterns_written': self.patterns_written,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    def log_metrics(self):
        """Log the performance metrics."""
        metrics = self.to_dict()
        elapsed = self.elapsed_ms or 0.0

        # Determine log level based on performance
        if elapsed > SLOW_RUN_ERROR_MS:
            logger.error(
                f"SLOW DETECTION RUN: {self.operation_name} took {elapsed:.2f}ms",
                extra={'detection_metrics': metrics}
            )
        elif elapsed > SLOW_RUN_WARNING_MS:
            logger.warning(
                f"Slow detection run: {self.operation_name} took {elapsed:.2f}ms",
                extra={'detection_metrics': metrics}
            )
        else:
            logger.info(
                f"Detection run completed: {self.operation_name} in {elapsed:.2f}ms: "
                f"{self.transaction_count} transactions, {self.groups_analyzed} groups, "
                f"{self.candidates_detected} candidates",
                extra={'detection_metrics': metrics}
            )

        if self.stage_ms:
            breakdown = ', '.join(f"{name}: {ms:.2f}ms" for name, ms in self.stage_ms.items())
            logger.debug(
                f"Detection run breakdown for {self.operation_name}: {breakdown}",
                extra={'detection_metrics': metrics}
            )


class StageTimer:
    """Times one named stage and records it on the metrics."""

    def __init__(self, metrics: DetectionMetrics, stage: str):
        self.metrics = metrics
        self.stage = stage
        self.start_time: float = 0.0

    def __enter__(self):
        self.start_time = time.time()
        logger.debug(f"Starting stage: {self.stage}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed_ms = (time.time() - self.start_time) * 1000
        self.metrics.stage_ms[self.stage] = elapsed_ms
        logger.debug(f"Completed stage {self.stage} in {elapsed_ms:.2f}ms")


class DetectionPerformanceTracker:
    """
    Context manager for detection run performance tracking.

    Usage:
        with DetectionPerformanceTracker("recurring_detection") as tracker:
            with tracker.stage('fetch'):
                transactions = source.list_transactions(space_id)
            tracker.set_transaction_count(len(transactions))

            with tracker.stage('classify'):
                report = detector.analyze(space_id, transactions)
            tracker.set_candidates_detected(len(report.candidates))
    """

    def __init__(self, operation_name: str):
        self.metrics = DetectionMetrics(operation_name=operation_name)

    def __enter__(self):
        logger.info(f"Starting detection run: {self.metrics.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.metrics.finish()
        if exc_type is not None:
            logger.warning(
                f"Detection run {self.metrics.operation_name} aborted after "
                f"{self.metrics.elapsed_ms:.2f}ms: {exc_val}"
            )
        self.metrics.log_metrics()

    def stage(self, stage_name: str) -> StageTimer:
        """Create a context manager for tracking a stage."""
        return StageTimer(self.metrics, stage_name)

    def set_transaction_count(self, count: int):
        self.metrics.transaction_count = count

    def set_groups_analyzed(self, count: int):
        self.metrics.groups_analyzed = count

    def set_candidates_detected(self, count: int):
        self.metrics.candidates_detected = count

    def set_patterns_written(self, count: int):
        self.metrics.patterns_written = count
