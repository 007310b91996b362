"""
Recurring Pattern Detection and Lifecycle Services.

This package provides rule-based recurring transaction detection and the
lifecycle management of the resulting patterns.

Public API:
    - RecurringPatternService: Detection runs, user actions and summaries
    - RecurringPatternDetector: Groups transactions and emits candidates
    - PatternLifecycleManager: Reconciles candidates, applies user actions
    - build_summary: Dashboard projection of stored patterns
    - DetectionConfig: Configuration for detection parameters
    - DEFAULT_CONFIG: Default configuration instance
"""

from services.recurring_patterns.config import (
    DetectionConfig,
    DEFAULT_CONFIG,
    FrequencyWindows,
    AmountToleranceConfig,
    ConfidenceConfig,
)
from services.recurring_patterns.exceptions import (
    RecurringPatternError,
    ValidationError,
    PatternNotFound,
    InvalidStateError,
    DetectionSkipped,
    StorageError,
    ConflictError,
    DetectionFailed,
)
from services.recurring_patterns.analyzers import (
    MerchantNormalizer,
    FrequencyClassifier,
    AmountToleranceModel,
)
from services.recurring_patterns.detection_service import RecurringPatternDetector
from services.recurring_patterns.lifecycle_service import PatternLifecycleManager
from services.recurring_patterns.summary_service import build_summary
from services.recurring_patterns.pattern_service import RecurringPatternService

__all__ = [
    'RecurringPatternService',
    'RecurringPatternDetector',
    'PatternLifecycleManager',
    'build_summary',
    'DetectionConfig',
    'DEFAULT_CONFIG',
    'FrequencyWindows',
    'AmountToleranceConfig',
    'ConfidenceConfig',
    'MerchantNormalizer',
    'FrequencyClassifier',
    'AmountToleranceModel',
    'RecurringPatternError',
    'ValidationError',
    'PatternNotFound',
    'InvalidStateError',
    'DetectionSkipped',
    'StorageError',
    'ConflictError',
    'DetectionFailed',
]
