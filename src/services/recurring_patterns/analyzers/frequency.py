"""
Frequency classifier for recurring pattern detection.

Scores each supported recurrence interval against the gaps between
consecutive transaction dates and picks the best fit.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

import numpy as np

from models.recurring_pattern import RecurrenceFrequency
from services.recurring_patterns.config import (
    ConfidenceConfig,
    FrequencyWindows,
)
from utils.temporal_utils import (
    FIXED_PERIOD_DAYS,
    CALENDAR_PERIOD_MONTHS,
    add_months,
)

logger = logging.getLogger(__name__)

# Shortest period first; ties on match ratio go to the earlier entry
CANDIDATE_ORDER = (
    RecurrenceFrequency.WEEKLY,
    RecurrenceFrequency.BIWEEKLY,
    RecurrenceFrequency.MONTHLY,
    RecurrenceFrequency.QUARTERLY,
    RecurrenceFrequency.YEARLY,
)


@dataclass(frozen=True)
class FrequencyResult:
    """Best-fit frequency for a date series."""
    frequency: RecurrenceFrequency
    confidence: float
    match_ratio: float


class FrequencyClassifier:
    """
    Classifies a sorted series of dates into a recurrence frequency.

    Weekly and biweekly gaps are compared against a fixed number of days.
    Monthly, quarterly and yearly gaps are compared against the earlier
    date advanced by whole calendar months, so month length differences
    (28 to 31 days) do not count as jitter.
    """

    def __init__(
        self,
        windows: Optional[FrequencyWindows] = None,
        confidence: Optional[ConfidenceConfig] = None,
        min_occurrences: int = 3
    ):
        """
        Initialize the frequency classifier.

        Args:
            windows: Gap tolerance windows (creates default if None)
            confidence: Confidence scoring parameters (creates default if None)
            min_occurrences: Minimum number of dates required to classify
        """
        self.windows = windows or FrequencyWindows()
        self.confidence = confidence or ConfidenceConfig()
        self.min_occurrences = min_occurrences

    def classify(self, dates: Sequence[date]) -> Optional[FrequencyResult]:
        """
        Infer the recurrence frequency of a date series.

        Args:
            dates: Dates in ascending order

        Returns:
            FrequencyResult, or None when there are too few dates or no
            frequency explains enough of the gaps
        """
        if len(dates) < self.min_occurrences:
            return None

        best: Optional[FrequencyResult] = None
        for frequency in CANDIDATE_ORDER:
            offsets = self.gap_offsets(dates, frequency)
            window = self.window_for(frequency)
            matching = np.abs(offsets[np.abs(offsets) <= window])
            ratio = len(matching) / len(offsets)

            if ratio < self.windows.min_match_ratio:
                continue
            if best is not None and ratio <= best.match_ratio:
                continue

            best = FrequencyResult(
                frequency=frequency,
                confidence=self._score(ratio, matching, window, len(dates)),
                match_ratio=ratio,
            )

        if best is None:
            logger.debug(f"No periodicity found across {len(dates)} dates")
        return best

    def window_for(self, frequency: RecurrenceFrequency) -> int:
        if frequency in FIXED_PERIOD_DAYS:
            return self.windows.fixed_gap_window_days
        return self.windows.calendar_window_days

    @staticmethod
    def gap_offsets(dates: Sequence[date], frequency: RecurrenceFrequency) -> np.ndarray:
        """
        Signed day offsets of each consecutive gap from the ideal gap.

        Args:
            dates: Dates in ascending order
            frequency: Frequency to measure against

        Returns:
            Array with one offset per consecutive pair
        """
        if frequency in FIXED_PERIOD_DAYS:
            ordinals = np.array([d.toordinal() for d in dates], dtype=np.int64)
            return np.diff(ordinals) - FIXED_PERIOD_DAYS[frequency]

        months = CALENDAR_PERIOD_MONTHS[frequency]
        offsets: List[int] = [
            (later - add_months(earlier, months)).days
            for earlier, later in zip(dates[:-1], dates[1:])
        ]
        return np.array(offsets, dtype=np.int64)

    def _score(self, ratio: float, matching: np.ndarray, window: int, count: int) -> float:
        """
        confidence = match ratio * tightness * sample discount

        Tightness shrinks with the mean offset of matching gaps relative to
        the window; a perfectly regular series has tightness 1.0.
        """
        if window > 0 and len(matching) > 0:
            tightness = 1.0 - self.confidence.jitter_penalty * float(np.mean(matching / window))
        else:
            tightness = 1.0

        discount = 1.0
        if count < self.confidence.small_sample_size:
            discount = self.confidence.small_sample_discount

        return round(max(0.0, min(1.0, ratio * tightness * discount)), 4)
