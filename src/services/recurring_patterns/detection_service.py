"""
Recurring Pattern Detection Service.

This module turns a space's transaction history into recurring pattern
candidates using deterministic rules.

## Detection Pipeline

```mermaid
graph TD
    A[Transactions] --> B[Sort by date, id]
    B --> C[Group by account + merchant key]
    C --> D{Enough occurrences?}
    D -->|No| X[Skip]
    D -->|Yes| E[AmountToleranceModel]
    E -->|Inconsistent| F[Split by sign]
    E -->|Consistent| G[FrequencyClassifier]
    F --> G
    G -->|No periodicity| X
    G --> H[CandidatePattern]
    H --> I[Sort by confidence]
```

Detection is read-only: it never touches storage.
"""

import logging
from collections import Counter, defaultdict
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from models.recurring_pattern import (
    UNKNOWN_MERCHANT_KEY,
    CandidatePattern,
    DetectionReport,
)
from models.transaction_record import TransactionRecord
from services.recurring_patterns.analyzers import (
    AmountEvaluation,
    AmountToleranceModel,
    FrequencyClassifier,
    MerchantNormalizer,
)
from services.recurring_patterns.config import DetectionConfig, DEFAULT_CONFIG
from services.recurring_patterns.exceptions import DetectionSkipped
from utils.temporal_utils import advance_date

logger = logging.getLogger(__name__)

# Skip reasons reported in DetectionReport.skipped
SKIP_UNKNOWN_MERCHANT = "unknown_merchant"
SKIP_TOO_FEW = "too_few_transactions"
SKIP_INCONSISTENT_AMOUNT = "inconsistent_amount"
SKIP_NO_PERIODICITY = "no_periodicity"
SKIP_MALFORMED = "malformed"

GroupKey = Tuple[str, str]


class RecurringPatternDetector:
    """
    Builds recurring pattern candidates from transaction history.

    Groups transactions by ``(account_id, merchant_key)``, checks amount
    stability, classifies the date series, and emits at most one candidate
    per group.
    """

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        normalizer: Optional[MerchantNormalizer] = None
    ):
        """
        Initialize the detector.

        Args:
            config: Optional detection configuration. If None, uses DEFAULT_CONFIG.
            normalizer: Optional merchant normalizer (creates default if None)
        """
        self.config = config or DEFAULT_CONFIG
        self.normalizer = normalizer or MerchantNormalizer()
        self.amount_model = AmountToleranceModel(self.config.amount)
        self.frequency_classifier = FrequencyClassifier(
            windows=self.config.frequency,
            confidence=self.config.confidence,
            min_occurrences=self.config.min_occurrences
        )

    def detect(self, space_id: str, transactions: Sequence[TransactionRecord]) -> List[CandidatePattern]:
        """
        Detect recurring patterns in transaction history.

        Args:
            space_id: Space the transactions belong to
            transactions: Transactions in any order

        Returns:
            Candidates sorted by confidence, highest first
        """
        return self.analyze(space_id, transactions).candidates

    def analyze(self, space_id: str, transactions: Sequence[TransactionRecord]) -> DetectionReport:
        """
        Detect recurring patterns and report why other groups were skipped.

        Args:
            space_id: Space the transactions belong to
            transactions: Transactions in any order

        Returns:
            DetectionReport with candidates and skip counts by reason
        """
        history = self._apply_lookback(sorted(transactions, key=lambda t: t.sort_key))
        groups = self.group(history)

        candidates: List[CandidatePattern] = []
        skipped: Dict[str, int] = defaultdict(int)

        for (account_id, merchant_key), group_transactions in groups.items():
            try:
                candidates.append(
                    self._analyze_group(space_id, account_id, merchant_key, group_transactions)
                )
            except DetectionSkipped as e:
                skipped[e.reason] += 1
                logger.debug(
                    f"Skipped group {account_id}/{merchant_key}: {e}",
                    extra={'space_id': space_id, 'reason': e.reason}
                )
            except (ArithmeticError, TypeError, ValueError) as e:
                skipped[SKIP_MALFORMED] += 1
                logger.warning(
                    f"Malformed group {account_id}/{merchant_key} skipped: {e}",
                    extra={'space_id': space_id, 'reason': SKIP_MALFORMED}
                )

        candidates.sort(key=lambda c: (-c.confidence, c.account_id, c.merchant_key))

        logger.info(
            f"Detection for space {space_id}: {len(candidates)} candidates from "
            f"{len(groups)} groups ({sum(skipped.values())} skipped)"
        )
        return DetectionReport(
            spaceId=space_id,
            candidates=candidates,
            groupsAnalyzed=len(groups),
            skipped=dict(skipped)
        )

    def group(self, transactions: Sequence[TransactionRecord]) -> Dict[GroupKey, List[TransactionRecord]]:
        """
        Group transactions by ``(account_id, merchant_key)``, preserving order.

        Args:
            transactions: Transactions sorted by ``(date, transaction_id)``

        Returns:
            Mapping of group key to the group's transactions
        """
        groups: Dict[GroupKey, List[TransactionRecord]] = {}
        for txn in transactions:
            key = (txn.account_id, self.normalizer.merchant_key_for(txn))
            groups.setdefault(key, []).append(txn)
        return groups

    def _apply_lookback(self, transactions: List[TransactionRecord]) -> List[TransactionRecord]:
        if not self.config.lookback_days or not transactions:
            return transactions
        cutoff = transactions[-1].date - timedelta(days=self.config.lookback_days)
        return [txn for txn in transactions if txn.date >= cutoff]

    def _analyze_group(
        self,
        space_id: str,
        account_id: str,
        merchant_key: str,
        transactions: List[TransactionRecord]
    ) -> CandidatePattern:
        """
        Analyze one merchant group.

        Raises:
            DetectionSkipped: when the group yields no candidate
        """
        if merchant_key == UNKNOWN_MERCHANT_KEY:
            raise DetectionSkipped(SKIP_UNKNOWN_MERCHANT)
        if len(transactions) < self.config.min_occurrences:
            raise DetectionSkipped(
                SKIP_TOO_FEW, f"{len(transactions)} < {self.config.min_occurrences} transactions"
            )

        amounts = [txn.amount for txn in transactions]
        evaluation = self.amount_model.evaluate(amounts)
        if evaluation.consistent:
            partitions = [(list(range(len(transactions))), evaluation)]
        else:
            partitions = [
                (indices, part_eval)
                for indices, part_eval in self.amount_model.split(amounts)
                if part_eval.consistent and len(indices) >= self.config.min_occurrences
            ]
        if not partitions:
            raise DetectionSkipped(SKIP_INCONSISTENT_AMOUNT)

        candidates = []
        for indices, part_eval in partitions:
            members = [transactions[i] for i in indices]
            candidate = self._build_candidate(space_id, account_id, merchant_key, members, part_eval)
            if candidate is not None:
                candidates.append(candidate)

        if not candidates:
            raise DetectionSkipped(SKIP_NO_PERIODICITY)

        # One candidate per (account, merchant key): the dominant partition wins
        return max(candidates, key=lambda c: (c.occurrences, c.confidence))

    def _build_candidate(
        self,
        space_id: str,
        account_id: str,
        merchant_key: str,
        members: List[TransactionRecord],
        evaluation: AmountEvaluation
    ) -> Optional[CandidatePattern]:
        dates = [txn.date for txn in members]
        result = self.frequency_classifier.classify(dates)
        if result is None:
            return None

        currencies = Counter(txn.currency for txn in members if txn.currency)

        return CandidatePattern(
            spaceId=space_id,
            accountId=account_id,
            merchantKey=merchant_key,
            displayName=self.normalizer.display_name_for(members),
            frequency=result.frequency,
            confidence=Decimal(str(result.confidence)),
            expectedAmount=evaluation.center,
            amountTolerance=evaluation.tolerance,
            firstSeenDate=dates[0],
            lastSeenDate=dates[-1],
            nextExpectedDate=advance_date(dates[-1], result.frequency),
            occurrences=len(members),
            linkedTransactionIds=[txn.transaction_id for txn in members],
            currency=currencies.most_common(1)[0][0] if currencies else None
        )
