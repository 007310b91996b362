"""
Merchant normalizer for recurring pattern detection.

Reduces raw bank statement text to a stable grouping key so that
"NETFLIX.COM 1234" and "Netflix.com" land in the same merchant group.
"""

import logging
import re
from collections import Counter
from typing import Iterable, List, Optional, Tuple

from models.recurring_pattern import UNKNOWN_MERCHANT_KEY
from models.transaction_record import TransactionRecord

logger = logging.getLogger(__name__)

# Payment-rail prefixes banks prepend to the merchant name
DEFAULT_PREFIXES: Tuple[str, ...] = (
    'pos', 'debit', 'credit', 'ach', 'purchase', 'payment', 'recurring', 'checkcard',
)

_ISO_DATE = re.compile(r'\b\d{4}-\d{1,2}-\d{1,2}\b')
_SLASH_DATE = re.compile(r'\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b')
_STORE_NUMBER = re.compile(r'#\s*\d+')
_PUNCTUATION = re.compile(r'[\W_]+')
_LONG_NUMBER = re.compile(r'\b\d{4,}\b')
_WHITESPACE = re.compile(r'\s+')


class MerchantNormalizer:
    """
    Maps raw merchant or description text to a normalized merchant key.

    Pure and deterministic: the same input always yields the same key.
    Input that reduces to nothing meaningful yields ``"unknown"``.
    """

    def __init__(self, prefixes: Iterable[str] = DEFAULT_PREFIXES):
        self.prefixes = tuple(prefixes)
        self._prefix_pattern = re.compile(
            r'^(?:' + '|'.join(re.escape(p) for p in self.prefixes) + r')\s+'
        ) if self.prefixes else None

    def normalize(self, raw_text: Optional[str]) -> str:
        """
        Normalize raw merchant text.

        Args:
            raw_text: Merchant name or transaction description

        Returns:
            Normalized merchant key, or "unknown"
        """
        if not raw_text:
            return UNKNOWN_MERCHANT_KEY

        text = raw_text.lower().strip()
        text = _ISO_DATE.sub(' ', text)
        text = _SLASH_DATE.sub(' ', text)
        text = _STORE_NUMBER.sub(' ', text)
        text = _PUNCTUATION.sub(' ', text)
        text = _LONG_NUMBER.sub(' ', text)
        text = _WHITESPACE.sub(' ', text).strip()
        text = self._strip_prefixes(text)

        if not text or text.replace(' ', '').isdigit():
            return UNKNOWN_MERCHANT_KEY
        return text

    def _strip_prefixes(self, text: str) -> str:
        if self._prefix_pattern is None:
            return text
        # Prefixes can stack ("pos debit netflix"); keep at least one token
        while True:
            stripped = self._prefix_pattern.sub('', text, count=1)
            if stripped == text or not stripped:
                return text
            text = stripped

    def merchant_key_for(self, transaction: TransactionRecord) -> str:
        """Key for a transaction: its merchant field when present, else its description."""
        if transaction.merchant and transaction.merchant.strip():
            return self.normalize(transaction.merchant)
        return self.normalize(transaction.description)

    @staticmethod
    def display_name_for(transactions: List[TransactionRecord]) -> str:
        """
        Pick a human-readable name for a merchant group.

        Uses the most frequent raw merchant (or description) text; ties go to
        the text seen first.
        """
        names = [
            (txn.merchant or txn.description or '').strip()
            for txn in transactions
        ]
        names = [name for name in names if name]
        if not names:
            return UNKNOWN_MERCHANT_KEY
        return Counter(names).most_common(1)[0][0]


_default_normalizer = MerchantNormalizer()


def normalize(raw_text: Optional[str]) -> str:
    return _default_normalizer.normalize(raw_text)


def merchant_key_for(transaction: TransactionRecord) -> str:
    return _default_normalizer.merchant_key_for(transaction)
