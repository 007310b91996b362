"""
Recurring Pattern Service.

Entry point used by handlers and scheduled jobs. Wires the detector and
lifecycle manager to a transaction source and a pattern store, and turns
collaborator failures into the exceptions callers expect.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Union

from models.recurring_pattern import (
    CandidatePattern,
    DetectionResult,
    PatternStatus,
    RecurringPattern,
    RecurringPatternConfirm,
    RecurringPatternCreate,
    RecurringPatternUpdate,
    RecurringSummary,
)
from models.transaction_record import TransactionRecord
from services.recurring_patterns.config import DetectionConfig, DEFAULT_CONFIG
from services.recurring_patterns.detection_service import RecurringPatternDetector
from services.recurring_patterns.exceptions import (
    ConflictError,
    DetectionFailed,
    InvalidStateError,
    PatternNotFound,
    StorageError,
)
from services.recurring_patterns.interfaces import PatternStore, TransactionSource
from services.recurring_patterns.lifecycle_service import PatternLifecycleManager
from services.recurring_patterns.summary_service import build_summary
from utils.detection_performance import DetectionPerformanceTracker
from utils.temporal_utils import advance_date

logger = logging.getLogger(__name__)

PatternId = Union[str, uuid.UUID]


class RecurringPatternService:
    """Detection runs, user actions and summaries for one deployment's stores."""

    def __init__(
        self,
        store: PatternStore,
        source: TransactionSource,
        config: Optional[DetectionConfig] = None,
        detector: Optional[RecurringPatternDetector] = None,
        lifecycle: Optional[PatternLifecycleManager] = None
    ):
        self.store = store
        self.source = source
        self.config = config or DEFAULT_CONFIG
        self.detector = detector or RecurringPatternDetector(self.config)
        self.lifecycle = lifecycle or PatternLifecycleManager(self.detector.normalizer)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def run_detection(self, space_id: str, account_id: Optional[str] = None) -> DetectionResult:
        """
        Detect recurring patterns for a space and persist the outcome.

        Args:
            space_id: Space to analyze
            account_id: Restrict detection to one account

        Returns:
            DetectionResult with the candidates and write counts

        Raises:
            DetectionFailed: If reading or writing failed part way; carries
                the number of patterns already created/updated
        """
        created = 0
        updated = 0
        unchanged = 0

        with DetectionPerformanceTracker(f"recurring_detection:{space_id}") as tracker:
            try:
                with tracker.stage('fetch'):
                    transactions = self.source.list_transactions(space_id, account_id)
                tracker.set_transaction_count(len(transactions))

                with tracker.stage('classify'):
                    report = self.detector.analyze(space_id, transactions)
                tracker.set_groups_analyzed(report.groups_analyzed)
                tracker.set_candidates_detected(len(report.candidates))

                with tracker.stage('reconcile'):
                    existing = self.store.list_all(space_id)
                    plan = self.lifecycle.reconcile(report.candidates, existing)
                    unchanged = len(plan.unchanged)

                with tracker.stage('persist'):
                    by_identity = {c.identity: c for c in report.candidates}
                    for pattern in plan.to_create:
                        outcome = self._create_detected(pattern, by_identity[pattern.identity])
                        if outcome == 'created':
                            created += 1
                        elif outcome == 'updated':
                            updated += 1
                        else:
                            unchanged += 1

                    for pattern in plan.to_update:
                        if self._write_tracking(pattern):
                            updated += 1
                        else:
                            unchanged += 1
                tracker.set_patterns_written(created + updated)

            except StorageError as e:
                logger.error(
                    f"Detection failed for space {space_id}: {e}",
                    extra={'space_id': space_id, 'patterns_created': created, 'patterns_updated': updated}
                )
                raise DetectionFailed(space_id, created=created, updated=updated, cause=e) from e

        return DetectionResult(
            detected=report.candidates,
            total=len(report.candidates),
            created=created,
            updated=updated,
            unchanged=unchanged,
            skipped=report.skipped_count
        )

    def _create_detected(self, pattern: RecurringPattern, candidate: CandidatePattern) -> str:
        """
        Insert a new detected pattern.

        A concurrent run may have created the same key first; in that case
        the stored pattern is re-read and the candidate reconciled against it.
        """
        try:
            self.store.create(pattern)
            return 'created'
        except ConflictError:
            logger.info(
                f"Pattern {pattern.account_id}/{pattern.merchant_key} created concurrently, reconciling"
            )

        current = self.store.find_by_account_and_key(pattern.account_id, pattern.merchant_key)
        if current is None:
            return 'unchanged'
        refreshed = self.lifecycle.refresh(current, candidate)
        if refreshed is None:
            return 'unchanged'
        return 'updated' if self._write_tracking(refreshed) else 'unchanged'

    def _write_tracking(self, pattern: RecurringPattern) -> bool:
        try:
            self.store.update_tracking(pattern)
            return True
        except ConflictError:
            # A user action changed the status since the snapshot was read
            logger.info(f"Pattern {pattern.pattern_id} changed status concurrently, skipping refresh")
            return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_patterns(
        self,
        space_id: str,
        status: Optional[PatternStatus] = None,
        include_detected: bool = False
    ) -> List[RecurringPattern]:
        return self.store.list_by_space(space_id, status=status, include_detected=include_detected)

    def get_pattern(self, space_id: str, pattern_id: PatternId) -> RecurringPattern:
        """
        Raises:
            PatternNotFound: If no such pattern exists in the space
        """
        pattern = self.store.get(space_id, pattern_id)
        if pattern is None:
            raise PatternNotFound(str(pattern_id), space_id)
        return pattern

    def get_summary(
        self,
        space_id: str,
        as_of: Optional[date] = None,
        window_days: Optional[int] = None
    ) -> RecurringSummary:
        as_of = as_of or datetime.now(timezone.utc).date()
        if window_days is None:
            window_days = self.config.summary_window_days
        return build_summary(space_id, self.store.list_all(space_id), as_of, window_days)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def create_pattern(self, space_id: str, data: RecurringPatternCreate) -> RecurringPattern:
        """
        Create a manual (confirmed) pattern.

        Raises:
            ValidationError: If the merchant name is unusable
            InvalidStateError: If the merchant is already tracked
        """
        merchant_key = self.lifecycle.normalizer.normalize(data.merchant_name)
        existing = self.store.find_by_account_and_key(data.account_id, merchant_key)
        pattern = self.lifecycle.create_manual(space_id, data, existing)

        if existing is not None:
            return self.store.upsert(pattern)
        try:
            return self.store.create(pattern)
        except ConflictError as e:
            raise InvalidStateError(
                f"A recurring pattern for '{merchant_key}' already exists"
            ) from e

    def update_pattern(
        self,
        space_id: str,
        pattern_id: PatternId,
        data: RecurringPatternUpdate
    ) -> RecurringPattern:
        pattern = self.get_pattern(space_id, pattern_id)
        if not self._apply_edits(pattern, data):
            return pattern
        logger.info(f"Pattern {pattern.pattern_id} updated by user")
        return self.store.upsert(pattern)

    def confirm(
        self,
        space_id: str,
        pattern_id: PatternId,
        overrides: Optional[RecurringPatternConfirm] = None
    ) -> RecurringPattern:
        """
        Confirm a pattern, optionally adjusting frequency, category and alerts.

        Raises:
            InvalidStateError: If the pattern is dismissed or paused
        """
        pattern = self.get_pattern(space_id, pattern_id)
        status_changed = pattern.status != PatternStatus.CONFIRMED
        if status_changed:
            pattern = self.lifecycle.confirm(pattern)

        if overrides is not None and self._apply_edits(pattern, overrides.to_update()):
            return self.store.upsert(pattern)
        if status_changed:
            return self.store.update_status(pattern)
        return pattern

    def _apply_edits(self, pattern: RecurringPattern, data: RecurringPatternUpdate) -> bool:
        if not pattern.update_model_details(data):
            return False
        # A frequency edit moves the next expected date
        if pattern.last_seen_date is not None:
            pattern.next_expected_date = advance_date(pattern.last_seen_date, pattern.frequency)
        return True

    def dismiss(self, space_id: str, pattern_id: PatternId) -> RecurringPattern:
        pattern = self.get_pattern(space_id, pattern_id)
        if pattern.status == PatternStatus.DISMISSED:
            return pattern
        return self.store.update_status(self.lifecycle.dismiss(pattern))

    def toggle_pause(self, space_id: str, pattern_id: PatternId) -> RecurringPattern:
        pattern = self.get_pattern(space_id, pattern_id)
        return self.store.update_status(self.lifecycle.toggle_pause(pattern))

    def remove(self, space_id: str, pattern_id: PatternId) -> None:
        pattern = self.get_pattern(space_id, pattern_id)
        self.store.delete(pattern)
        logger.info(f"Pattern {pattern.pattern_id} removed from space {space_id}")

    def match_transaction(
        self,
        space_id: str,
        transaction: TransactionRecord
    ) -> Optional[RecurringPattern]:
        """
        Link a newly posted transaction to the confirmed pattern it belongs to.

        Returns:
            The updated pattern, or None if no confirmed pattern matches
        """
        for pattern in self.store.list_by_space(space_id, status=PatternStatus.CONFIRMED):
            if transaction.transaction_id in pattern.linked_transaction_ids:
                return pattern
            if not self.lifecycle.matches(pattern, transaction):
                continue
            if self.lifecycle.record_occurrence(pattern, transaction):
                self._write_tracking(pattern)
            return pattern
        return None

