"""
Configuration classes for recurring pattern detection.

Centralizes all thresholds and tolerances used in the detection pipeline.
Values can be overridden per deployment through ``RECURRING_*`` environment
variables without code changes.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class FrequencyWindows:
    """
    Gap tolerances for frequency classification.

    Fixed-gap frequencies (weekly, biweekly) compare the gap in days against
    7 or 14. Calendar frequencies (monthly, quarterly, yearly) compare the
    later date against the earlier date advanced by 1, 3 or 12 months.
    """

    fixed_gap_window_days: int = 2
    """Weekly/biweekly: a gap matches when within this many days of 7 or 14."""

    calendar_window_days: int = 4
    """Monthly/quarterly/yearly: allowed drift from the calendar-advanced date."""

    min_match_ratio: float = 0.6
    """Minimum fraction of gaps that must match the winning frequency."""

    def __post_init__(self):
        if self.fixed_gap_window_days < 0 or self.calendar_window_days < 0:
            raise ValueError(
                f"Frequency windows must be non-negative, got "
                f"fixed={self.fixed_gap_window_days}, calendar={self.calendar_window_days}"
            )
        if not 0.0 < self.min_match_ratio <= 1.0:
            raise ValueError(f"min_match_ratio must be in (0, 1], got {self.min_match_ratio}")


@dataclass
class AmountToleranceConfig:
    """Configuration for the amount tolerance band."""

    floor_pct: float = 0.05
    """Minimum tolerance as a fraction of the median amount."""

    max_drift_pct: float = 0.5
    """Groups whose spread exceeds this fraction of the median are not recurring."""

    def __post_init__(self):
        if self.floor_pct < 0:
            raise ValueError(f"floor_pct must be non-negative, got {self.floor_pct}")
        if self.max_drift_pct < self.floor_pct:
            raise ValueError(
                f"max_drift_pct ({self.max_drift_pct}) must be >= floor_pct ({self.floor_pct})"
            )


@dataclass
class ConfidenceConfig:
    """
    Confidence scoring parameters.

    confidence = match ratio * tightness * sample discount
    """

    jitter_penalty: float = 0.1
    """Weight of mean normalised offset in the tightness factor."""

    small_sample_size: int = 5
    """Groups with fewer dates than this receive the sample discount."""

    small_sample_discount: float = 0.9
    """Multiplier applied to small samples."""

    def __post_init__(self):
        if not 0.0 <= self.jitter_penalty <= 1.0:
            raise ValueError(f"jitter_penalty must be in [0, 1], got {self.jitter_penalty}")
        if not 0.0 < self.small_sample_discount <= 1.0:
            raise ValueError(
                f"small_sample_discount must be in (0, 1], got {self.small_sample_discount}"
            )


@dataclass
class DetectionConfig:
    """
    Master configuration for recurring pattern detection.

    Aggregates all configuration classes into a single configuration object.
    """

    frequency: FrequencyWindows = field(default_factory=FrequencyWindows)
    amount: AmountToleranceConfig = field(default_factory=AmountToleranceConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    min_occurrences: int = 3
    lookback_days: Optional[int] = None
    summary_window_days: int = 30

    def __post_init__(self):
        if self.min_occurrences < 3:
            raise ValueError(f"min_occurrences must be at least 3, got {self.min_occurrences}")
        if self.lookback_days is not None and self.lookback_days <= 0:
            raise ValueError(f"lookback_days must be positive, got {self.lookback_days}")
        if self.summary_window_days < 0:
            raise ValueError(
                f"summary_window_days must be non-negative, got {self.summary_window_days}"
            )

    @classmethod
    def from_environment(cls) -> 'DetectionConfig':
        """
        Create configuration from environment variables with fallback to defaults.

        Environment variables:
        - RECURRING_MIN_OCCURRENCES
        - RECURRING_LOOKBACK_DAYS (unset or empty means no lookback window)
        - RECURRING_SUMMARY_WINDOW_DAYS
        - RECURRING_FIXED_GAP_WINDOW_DAYS
        - RECURRING_CALENDAR_WINDOW_DAYS
        - RECURRING_MIN_MATCH_RATIO
        - RECURRING_AMOUNT_FLOOR_PCT
        - RECURRING_AMOUNT_MAX_DRIFT_PCT
        - RECURRING_JITTER_PENALTY
        """
        lookback = os.getenv('RECURRING_LOOKBACK_DAYS')
        return cls(
            frequency=FrequencyWindows(
                fixed_gap_window_days=int(os.getenv('RECURRING_FIXED_GAP_WINDOW_DAYS', 2)),
                calendar_window_days=int(os.getenv('RECURRING_CALENDAR_WINDOW_DAYS', 4)),
                min_match_ratio=float(os.getenv('RECURRING_MIN_MATCH_RATIO', 0.6)),
            ),
            amount=AmountToleranceConfig(
                floor_pct=float(os.getenv('RECURRING_AMOUNT_FLOOR_PCT', 0.05)),
                max_drift_pct=float(os.getenv('RECURRING_AMOUNT_MAX_DRIFT_PCT', 0.5)),
            ),
            confidence=ConfidenceConfig(
                jitter_penalty=float(os.getenv('RECURRING_JITTER_PENALTY', 0.1)),
            ),
            min_occurrences=int(os.getenv('RECURRING_MIN_OCCURRENCES', 3)),
            lookback_days=int(lookback) if lookback else None,
            summary_window_days=int(os.getenv('RECURRING_SUMMARY_WINDOW_DAYS', 30)),
        )


# Default configuration instance
DEFAULT_CONFIG = DetectionConfig()
