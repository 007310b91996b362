"""
Models package for recurring transaction detection.
"""

from .transaction_record import TransactionRecord

from .recurring_pattern import (
    RecurrenceFrequency,
    PatternStatus,
    TRACKED_STATUSES,
    UNKNOWN_MERCHANT_KEY,
    CandidatePattern,
    RecurringPattern,
    RecurringPatternCreate,
    RecurringPatternUpdate,
    RecurringPatternConfirm,
    ReconcileResult,
    DetectionReport,
    DetectionResult,
    UpcomingRecurring,
    RecurringSummary,
)

__all__ = [
    'TransactionRecord',
    'RecurrenceFrequency',
    'PatternStatus',
    'TRACKED_STATUSES',
    'UNKNOWN_MERCHANT_KEY',
    'CandidatePattern',
    'RecurringPattern',
    'RecurringPatternCreate',
    'RecurringPatternUpdate',
    'RecurringPatternConfirm',
    'ReconcileResult',
    'DetectionReport',
    'DetectionResult',
    'UpcomingRecurring',
    'RecurringSummary',
]
