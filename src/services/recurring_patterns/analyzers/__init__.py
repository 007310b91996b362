"""
Analyzers for recurring pattern detection.

Each analyzer handles one aspect of classifying a merchant group.
"""

from services.recurring_patterns.analyzers.merchant import (
    MerchantNormalizer,
    normalize,
    merchant_key_for,
)
from services.recurring_patterns.analyzers.frequency import FrequencyClassifier, FrequencyResult
from services.recurring_patterns.analyzers.amount import AmountToleranceModel, AmountEvaluation

__all__ = [
    'MerchantNormalizer',
    'normalize',
    'merchant_key_for',
    'FrequencyClassifier',
    'FrequencyResult',
    'AmountToleranceModel',
    'AmountEvaluation',
]
