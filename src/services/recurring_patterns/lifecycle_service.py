"""
Pattern Lifecycle Service.

This service merges detection candidates into stored patterns and applies
user actions (confirm, dismiss, pause) to individual patterns.

State machine:

    detected  -> confirmed | dismissed
    confirmed <-> paused
    any       -> dismissed
    any       -> deleted (explicit user action, handled by the store)

Detection runs may refresh tracking fields of detected and confirmed
patterns but never change ``status``.
"""

import logging
from decimal import Decimal, ROUND_UP
from typing import Dict, Iterable, List, Optional, Tuple

from models.recurring_pattern import (
    CandidatePattern,
    PatternStatus,
    RecurringPattern,
    RecurringPatternCreate,
    ReconcileResult,
    TRACKED_STATUSES,
    UNKNOWN_MERCHANT_KEY,
    current_timestamp_ms,
)
from models.transaction_record import TransactionRecord
from services.recurring_patterns.analyzers import MerchantNormalizer
from services.recurring_patterns.exceptions import InvalidStateError, ValidationError
from utils.temporal_utils import advance_date

logger = logging.getLogger(__name__)

# Fields a detection run owns; everything else belongs to the user
TRACKING_FIELDS = (
    'frequency',
    'display_name',
    'expected_amount',
    'amount_tolerance',
    'first_seen_date',
    'last_seen_date',
    'next_expected_date',
    'occurrences',
    'confidence',
    'linked_transaction_ids',
    'currency',
)

MANUAL_CONFIDENCE = Decimal("1.0")
MANUAL_TOLERANCE_PCT = Decimal("0.10")


class PatternLifecycleManager:
    """Reconciles candidates with stored patterns and applies user actions."""

    def __init__(self, normalizer: Optional[MerchantNormalizer] = None):
        self.normalizer = normalizer or MerchantNormalizer()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(
        self,
        candidates: Iterable[CandidatePattern],
        existing_patterns: Iterable[RecurringPattern]
    ) -> ReconcileResult:
        """
        Decide what to create, update, or leave alone.

        Args:
            candidates: Output of a detection run
            existing_patterns: Stored patterns for the same space

        Returns:
            ReconcileResult. ``to_update`` holds refreshed copies; stored
            patterns passed in are never mutated.
        """
        by_identity: Dict[Tuple[str, str], RecurringPattern] = {
            pattern.identity: pattern for pattern in existing_patterns
        }
        result = ReconcileResult()

        for candidate in candidates:
            existing = by_identity.get(candidate.identity)
            if existing is None:
                result.to_create.append(self.pattern_from_candidate(candidate))
                continue

            refreshed = self.refresh(existing, candidate)
            if refreshed is None:
                result.unchanged.append(existing)
            else:
                result.to_update.append(refreshed)

        logger.info(
            f"Reconciled {len(result.to_create)} new, {len(result.to_update)} updated, "
            f"{len(result.unchanged)} unchanged patterns"
        )
        return result

    @staticmethod
    def pattern_from_candidate(candidate: CandidatePattern) -> RecurringPattern:
        return RecurringPattern(
            spaceId=candidate.space_id,
            accountId=candidate.account_id,
            merchantKey=candidate.merchant_key,
            displayName=candidate.display_name,
            frequency=candidate.frequency,
            expectedAmount=candidate.expected_amount,
            amountTolerance=candidate.amount_tolerance,
            currency=candidate.currency,
            status=PatternStatus.DETECTED,
            firstSeenDate=candidate.first_seen_date,
            lastSeenDate=candidate.last_seen_date,
            nextExpectedDate=candidate.next_expected_date,
            occurrences=candidate.occurrences,
            confidence=candidate.confidence,
            linkedTransactionIds=list(candidate.linked_transaction_ids),
        )

    def refresh(
        self,
        existing: RecurringPattern,
        candidate: CandidatePattern
    ) -> Optional[RecurringPattern]:
        """
        Apply a candidate's tracking data to a stored pattern.

        Returns:
            A refreshed copy, or None when the pattern must be left alone
            (dismissed, paused) or nothing would change.
        """
        if existing.status not in TRACKED_STATUSES:
            return None

        refreshed = existing.model_copy(deep=True)
        refreshed.expected_amount = candidate.expected_amount
        refreshed.amount_tolerance = candidate.amount_tolerance
        refreshed.confidence = candidate.confidence
        if candidate.currency:
            refreshed.currency = candidate.currency
        if existing.first_seen_date is None or candidate.first_seen_date < existing.first_seen_date:
            refreshed.first_seen_date = candidate.first_seen_date

        if existing.status == PatternStatus.DETECTED:
            refreshed.frequency = candidate.frequency
            refreshed.display_name = candidate.display_name
            refreshed.last_seen_date = candidate.last_seen_date
            refreshed.next_expected_date = candidate.next_expected_date
            refreshed.occurrences = candidate.occurrences
            refreshed.linked_transaction_ids = list(candidate.linked_transaction_ids)
        else:
            # Confirmed: frequency and name are the user's; history only grows
            last_seen = candidate.last_seen_date
            if existing.last_seen_date is not None and existing.last_seen_date > last_seen:
                last_seen = existing.last_seen_date
            refreshed.last_seen_date = last_seen
            refreshed.next_expected_date = advance_date(last_seen, existing.frequency)
            refreshed.linked_transaction_ids = _merge_ids(
                existing.linked_transaction_ids, candidate.linked_transaction_ids
            )
            refreshed.occurrences = max(existing.occurrences, candidate.occurrences)

        if _tracking_view(refreshed) == _tracking_view(existing):
            return None

        refreshed.touch()
        return refreshed

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def confirm(self, pattern: RecurringPattern) -> RecurringPattern:
        """
        Confirm a detected pattern.

        Raises:
            InvalidStateError: If the pattern is dismissed or paused
        """
        if pattern.status == PatternStatus.CONFIRMED:
            return pattern
        if pattern.status != PatternStatus.DETECTED:
            raise InvalidStateError(
                f"Pattern {pattern.pattern_id} is {pattern.status.value}; "
                f"only detected patterns can be confirmed"
            )

        pattern.status = PatternStatus.CONFIRMED
        pattern.confirmed_at = current_timestamp_ms()
        pattern.touch()
        logger.info(f"Pattern {pattern.pattern_id} confirmed")
        return pattern

    def dismiss(self, pattern: RecurringPattern) -> RecurringPattern:
        if pattern.status == PatternStatus.DISMISSED:
            return pattern

        pattern.status = PatternStatus.DISMISSED
        pattern.dismissed_at = current_timestamp_ms()
        pattern.touch()
        logger.info(f"Pattern {pattern.pattern_id} dismissed")
        return pattern

    def toggle_pause(self, pattern: RecurringPattern) -> RecurringPattern:
        """
        Switch a pattern between confirmed and paused.

        Raises:
            InvalidStateError: If the pattern is detected or dismissed
        """
        if pattern.status == PatternStatus.CONFIRMED:
            pattern.status = PatternStatus.PAUSED
        elif pattern.status == PatternStatus.PAUSED:
            pattern.status = PatternStatus.CONFIRMED
        else:
            raise InvalidStateError(
                f"Pattern {pattern.pattern_id} is {pattern.status.value}; "
                f"only confirmed or paused patterns can be paused or resumed"
            )

        pattern.touch()
        logger.info(f"Pattern {pattern.pattern_id} is now {pattern.status.value}")
        return pattern

    def create_manual(
        self,
        space_id: str,
        data: RecurringPatternCreate,
        existing: Optional[RecurringPattern] = None
    ) -> RecurringPattern:
        """
        Build a user-entered pattern.

        Args:
            space_id: Owning space
            data: Manual entry
            existing: Stored pattern with the same (account, merchant key), if any

        Returns:
            A confirmed pattern with full confidence

        Raises:
            ValidationError: If the merchant name normalizes to nothing
            InvalidStateError: If a non-dismissed pattern already tracks this merchant
        """
        merchant_key = self.normalizer.normalize(data.merchant_name)
        if merchant_key == UNKNOWN_MERCHANT_KEY:
            raise ValidationError(f"Merchant name '{data.merchant_name}' is not usable as a merchant key")

        if existing is not None and existing.status != PatternStatus.DISMISSED:
            raise InvalidStateError(
                f"A {existing.status.value} recurring pattern for '{merchant_key}' already exists"
            )

        tolerance = data.amount_tolerance
        if tolerance is None:
            tolerance = (abs(data.expected_amount) * MANUAL_TOLERANCE_PCT).quantize(
                Decimal("0.01"), rounding=ROUND_UP
            )

        now = current_timestamp_ms()
        pattern = RecurringPattern(
            spaceId=space_id,
            accountId=data.account_id,
            merchantKey=merchant_key,
            displayName=data.merchant_name.strip(),
            frequency=data.frequency,
            expectedAmount=data.expected_amount,
            amountTolerance=tolerance,
            currency=data.currency,
            status=PatternStatus.CONFIRMED,
            lastSeenDate=data.last_seen_date,
            firstSeenDate=data.last_seen_date,
            nextExpectedDate=(
                advance_date(data.last_seen_date, data.frequency) if data.last_seen_date else None
            ),
            occurrences=0,
            confidence=MANUAL_CONFIDENCE,
            categoryId=data.category_id,
            notes=data.notes,
            alertEnabled=data.alert_enabled,
            alertBeforeDays=data.alert_before_days,
            confirmedAt=now,
            createdAt=now,
            updatedAt=now,
        )
        if existing is not None:
            # Replacing a dismissed pattern keeps its id
            pattern.pattern_id = existing.pattern_id
            pattern.created_at = existing.created_at
            logger.info(f"Manual entry replaces dismissed pattern {existing.pattern_id}")
        return pattern

    # ------------------------------------------------------------------
    # Incremental matching
    # ------------------------------------------------------------------

    def matches(self, pattern: RecurringPattern, transaction: TransactionRecord) -> bool:
        """Whether a transaction belongs to a pattern: same account, merchant and amount band."""
        return (
            pattern.account_id == transaction.account_id
            and pattern.merchant_key == self.normalizer.merchant_key_for(transaction)
            and abs(transaction.amount - pattern.expected_amount) <= pattern.amount_tolerance
        )

    def record_occurrence(self, pattern: RecurringPattern, transaction: TransactionRecord) -> bool:
        """
        Fold one newly posted transaction into a confirmed pattern.

        Idempotent per transaction id.

        Returns:
            True if the pattern changed, False otherwise

        Raises:
            InvalidStateError: If the pattern is not confirmed
            ValidationError: If the transaction does not match the pattern
        """
        if pattern.status != PatternStatus.CONFIRMED:
            raise InvalidStateError(
                f"Pattern {pattern.pattern_id} is {pattern.status.value}; "
                f"only confirmed patterns track new occurrences"
            )
        if transaction.transaction_id in pattern.linked_transaction_ids:
            return False
        if not self.matches(pattern, transaction):
            raise ValidationError(
                f"Transaction {transaction.transaction_id} does not match pattern {pattern.pattern_id}"
            )

        pattern.linked_transaction_ids.append(transaction.transaction_id)
        pattern.occurrences += 1
        if pattern.first_seen_date is None or transaction.date < pattern.first_seen_date:
            pattern.first_seen_date = transaction.date
        if pattern.last_seen_date is None or transaction.date > pattern.last_seen_date:
            pattern.last_seen_date = transaction.date
        pattern.next_expected_date = advance_date(pattern.last_seen_date, pattern.frequency)
        pattern.touch()

        logger.info(
            f"Linked transaction {transaction.transaction_id} to pattern {pattern.pattern_id}"
        )
        return True


def _merge_ids(existing: List[str], new: List[str]) -> List[str]:
    seen = set(existing)
    merged = list(existing)
    for tid in new:
        if tid not in seen:
            merged.append(tid)
            seen.add(tid)
    return merged


def _tracking_view(pattern: RecurringPattern) -> Tuple:
    return tuple(getattr(pattern, name) for name in TRACKING_FIELDS)
