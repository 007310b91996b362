"""
Unit tests for RecurringPatternDetector.

Tests grouping, amount partitioning, frequency classification and skip
reporting on realistic statement data.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from models.recurring_pattern import RecurrenceFrequency
from models.transaction_record import TransactionRecord
from services.recurring_patterns.config import DetectionConfig
from services.recurring_patterns.detection_service import (
    RecurringPatternDetector,
    SKIP_INCONSISTENT_AMOUNT,
    SKIP_MALFORMED,
    SKIP_NO_PERIODICITY,
    SKIP_TOO_FEW,
    SKIP_UNKNOWN_MERCHANT,
)
from tests.fixtures.recurring_pattern_fixtures import (
    make_series,
    make_transaction,
    netflix_monthly,
    weekly_payroll,
)


class TestRecurringPatternDetector:
    """Test suite for RecurringPatternDetector."""

    @pytest.fixture
    def detector(self):
        return RecurringPatternDetector()

    def test_netflix_monthly(self, detector):
        candidates = detector.detect("space-1", netflix_monthly(6))

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.space_id == "space-1"
        assert candidate.account_id == "acct-1"
        assert candidate.merchant_key == "netflix com"
        assert candidate.display_name == "NETFLIX.COM 4850"
        assert candidate.frequency == RecurrenceFrequency.MONTHLY
        assert candidate.expected_amount == Decimal("-15.99")
        assert candidate.amount_tolerance == Decimal("0.80")
        assert candidate.first_seen_date == date(2024, 1, 15)
        assert candidate.last_seen_date == date(2024, 6, 15)
        assert candidate.next_expected_date == date(2024, 7, 15)
        assert candidate.occurrences == 6
        assert candidate.linked_transaction_ids == [f"nflx-{i}" for i in range(6)]
        assert candidate.confidence == Decimal("1.0")
        assert candidate.currency == "USD"

    def test_two_transactions_are_not_enough(self, detector):
        report = detector.analyze("space-1", netflix_monthly(2))
        assert report.candidates == []
        assert report.skipped == {SKIP_TOO_FEW: 1}

    def test_empty_history(self, detector):
        report = detector.analyze("space-1", [])
        assert report.candidates == []
        assert report.groups_analyzed == 0

    def test_unknown_merchant_skipped(self, detector):
        txns = make_series(date(2024, 1, 1), 4, RecurrenceFrequency.MONTHLY, description="12345678")
        report = detector.analyze("space-1", txns)
        assert report.candidates == []
        assert report.skipped == {SKIP_UNKNOWN_MERCHANT: 1}

    def test_input_order_does_not_matter(self, detector):
        history = netflix_monthly(6) + weekly_payroll(8)
        forward = detector.detect("space-1", history)
        backward = detector.detect("space-1", list(reversed(history)))
        assert forward == backward

    def test_sorted_by_confidence_then_key(self, detector):
        history = netflix_monthly(6) + weekly_payroll(8) + make_series(
            date(2024, 1, 3), 3, RecurrenceFrequency.MONTHLY,
            amount="-45.00", description="PLANET FITNESS", id_prefix="gym"
        )
        candidates = detector.detect("space-1", history)
        assert [c.merchant_key for c in candidates] == ["acme corp payroll", "netflix com", "planet fitness"]
        assert candidates[0].frequency == RecurrenceFrequency.WEEKLY
        assert candidates[-1].confidence == Decimal("0.9")

    def test_same_merchant_on_two_accounts(self, detector):
        history = (
            make_series(date(2024, 1, 10), 4, RecurrenceFrequency.MONTHLY, account_id="acct-1")
            + make_series(date(2024, 1, 12), 4, RecurrenceFrequency.MONTHLY, account_id="acct-2")
        )
        candidates = detector.detect("space-1", history)
        assert sorted(c.account_id for c in candidates) == ["acct-1", "acct-2"]

    def test_refund_does_not_break_income_pattern(self, detector):
        deposits = make_series(
            date(2024, 1, 15), 4, RecurrenceFrequency.MONTHLY,
            amount="100.00", description="RENT SHARE", id_prefix="dep"
        )
        reversal = make_transaction(date(2024, 2, 20), "-100.00", description="RENT SHARE", transaction_id="rev-1")

        candidates = detector.detect("space-1", deposits + [reversal])

        assert len(candidates) == 1
        assert candidates[0].expected_amount == Decimal("100.00")
        assert candidates[0].occurrences == 4
        assert "rev-1" not in candidates[0].linked_transaction_ids

    def test_dominant_partition_wins(self, detector):
        charges = make_series(
            date(2024, 1, 5), 5, RecurrenceFrequency.MONTHLY,
            amount="-20.00", description="CLOUD STORAGE", id_prefix="chg"
        )
        credits = make_series(
            date(2024, 1, 20), 3, RecurrenceFrequency.MONTHLY,
            amount="20.00", description="CLOUD STORAGE", id_prefix="crd"
        )
        candidates = detector.detect("space-1", charges + credits)

        assert len(candidates) == 1
        assert candidates[0].expected_amount == Decimal("-20.00")
        assert candidates[0].occurrences == 5

    def test_inconsistent_amounts_skipped(self, detector):
        txns = [
            make_transaction(date(2024, 1, 1), "-10", description="CORNER STORE"),
            make_transaction(date(2024, 2, 1), "-50", description="CORNER STORE"),
            make_transaction(date(2024, 3, 1), "-100", description="CORNER STORE"),
        ]
        report = detector.analyze("space-1", txns)
        assert report.skipped == {SKIP_INCONSISTENT_AMOUNT: 1}

    def test_irregular_dates_skipped(self, detector):
        dates = [date(2024, 1, 1), date(2024, 1, 20), date(2024, 3, 3), date(2024, 3, 10), date(2024, 7, 1)]
        txns = [make_transaction(d, "-12.00", description="FOOD TRUCK") for d in dates]
        report = detector.analyze("space-1", txns)
        assert report.candidates == []
        assert report.skipped == {SKIP_NO_PERIODICITY: 1}

    def test_malformed_group_does_not_stop_detection(self, detector):
        broken = [
            TransactionRecord.model_construct(
                transaction_id=f"bad-{i}", account_id="acct-1", space_id="space-1",
                date=date(2024, 1, 1) + timedelta(days=30 * i),
                amount="not-a-number" if i == 1 else Decimal("-5"),
                description="BROKEN FEED", merchant=None, currency=None
            )
            for i in range(3)
        ]
        report = detector.analyze("space-1", broken + netflix_monthly(4))

        assert report.skipped == {SKIP_MALFORMED: 1}
        assert [c.merchant_key for c in report.candidates] == ["netflix com"]
        assert report.skipped_count == 1

    def test_lookback_window(self):
        detector = RecurringPatternDetector(DetectionConfig(lookback_days=100))
        history = make_series(date(2023, 1, 15), 12, RecurrenceFrequency.MONTHLY)
        candidates = detector.detect("space-1", history)
        assert candidates[0].occurrences == 4
        assert candidates[0].first_seen_date == date(2023, 9, 15)

    def test_min_occurrences_configurable(self):
        detector = RecurringPatternDetector(DetectionConfig(min_occurrences=5))
        assert detector.detect("space-1", netflix_monthly(4)) == []
        assert len(detector.detect("space-1", netflix_monthly(5))) == 1

    def test_group_uses_merchant_key(self, detector):
        txns = [
            make_transaction(date(2024, 1, 1), "-5", description="HULU 1111"),
            make_transaction(date(2024, 2, 1), "-5", description="Hulu"),
            make_transaction(date(2024, 2, 1), "-5", description="Hulu", account_id="acct-2"),
        ]
        groups = detector.group(txns)
        assert {key: len(group) for key, group in groups.items()} == {
            ("acct-1", "hulu"): 2,
            ("acct-2", "hulu"): 1,
        }

    def test_detection_is_deterministic(self, detector):
        history = netflix_monthly(6) + weekly_payroll(8)
        assert detector.detect("space-1", history) == detector.detect("space-1", history)
