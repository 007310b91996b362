"""
Unit tests for the recurring pattern analyzers.

Covers merchant normalization, frequency classification and the amount
tolerance model.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from models.recurring_pattern import RecurrenceFrequency, UNKNOWN_MERCHANT_KEY
from services.recurring_patterns.analyzers import (
    AmountToleranceModel,
    FrequencyClassifier,
    MerchantNormalizer,
    merchant_key_for,
    normalize,
)
from services.recurring_patterns.config import AmountToleranceConfig, FrequencyWindows
from utils.temporal_utils import advance_date
from tests.fixtures.recurring_pattern_fixtures import make_transaction


def monthly_dates(start: date, count: int):
    return [advance_date(start, RecurrenceFrequency.MONTHLY, i) for i in range(count)]


class TestMerchantNormalizer:
    """Test suite for MerchantNormalizer."""

    @pytest.mark.parametrize("raw,expected", [
        ("NETFLIX.COM 4857", "netflix com"),
        ("Netflix.com", "netflix com"),
        ("POS DEBIT SPOTIFY USA 01/15", "spotify usa"),
        ("Starbucks #1234 2024-01-15", "starbucks"),
        ("CHECKCARD 0115 AMAZON PRIME 12/31/23", "amazon prime"),
        ("  Gold's   Gym  ", "gold s gym"),
        ("ACH PAYMENT", "payment"),
    ])
    def test_normalize(self, raw, expected):
        assert MerchantNormalizer().normalize(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "123456", "12 34", "#5555", "2024-01-15"])
    def test_meaningless_input_is_unknown(self, raw):
        assert normalize(raw) == UNKNOWN_MERCHANT_KEY

    def test_reference_numbers_do_not_split_groups(self):
        keys = {normalize(f"NETFLIX.COM {n}") for n in (4850, 4851, 99812)}
        assert keys == {"netflix com"}

    def test_custom_prefixes(self):
        normalizer = MerchantNormalizer(prefixes=("visa",))
        assert normalizer.normalize("VISA PURCHASE HULU") == "purchase hulu"
        assert MerchantNormalizer(prefixes=()).normalize("POS HULU") == "pos hulu"

    def test_merchant_field_preferred_over_description(self):
        txn = make_transaction(date(2024, 1, 1), "-9.99", description="SQ *XYZ 8812", merchant="Spotify")
        assert merchant_key_for(txn) == "spotify"

    def test_blank_merchant_falls_back_to_description(self):
        txn = make_transaction(date(2024, 1, 1), "-9.99", description="HULU 1234", merchant="  ")
        assert merchant_key_for(txn) == "hulu"

    def test_display_name_most_common_then_first_seen(self):
        txns = [
            make_transaction(date(2024, 1, 1), "-5", description="HULU A"),
            make_transaction(date(2024, 2, 1), "-5", description="HULU B"),
            make_transaction(date(2024, 3, 1), "-5", description="HULU B"),
        ]
        assert MerchantNormalizer.display_name_for(txns) == "HULU B"
        assert MerchantNormalizer.display_name_for(txns[:2]) == "HULU A"


class TestFrequencyClassifier:
    """Test suite for FrequencyClassifier."""

    @pytest.fixture
    def classifier(self):
        return FrequencyClassifier()

    def test_too_few_dates(self, classifier):
        assert classifier.classify([date(2024, 1, 1), date(2024, 2, 1)]) is None

    def test_exact_monthly(self, classifier):
        result = classifier.classify(monthly_dates(date(2024, 1, 15), 6))
        assert result.frequency == RecurrenceFrequency.MONTHLY
        assert result.match_ratio == 1.0
        assert result.confidence == 1.0

    def test_thirty_day_spacing_is_monthly(self, classifier):
        dates = [date(2024, 1, 1) + timedelta(days=30 * i) for i in range(12)]
        result = classifier.classify(dates)
        assert result.frequency == RecurrenceFrequency.MONTHLY
        assert result.match_ratio == 1.0
        # Drift against calendar months costs a little tightness, no sample discount
        assert 0.9 < result.confidence < 1.0

    def test_month_end_dates_are_monthly(self, classifier):
        dates = [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]
        result = classifier.classify(dates)
        assert result.frequency == RecurrenceFrequency.MONTHLY
        assert result.match_ratio == 1.0

    def test_weekly(self, classifier):
        dates = [date(2024, 1, 5) + timedelta(days=7 * i) for i in range(8)]
        result = classifier.classify(dates)
        assert result.frequency == RecurrenceFrequency.WEEKLY
        assert result.confidence == 1.0

    def test_biweekly_is_not_weekly(self, classifier):
        dates = [date(2024, 1, 5) + timedelta(days=14 * i) for i in range(6)]
        assert classifier.classify(dates).frequency == RecurrenceFrequency.BIWEEKLY

    def test_quarterly(self, classifier):
        dates = [advance_date(date(2023, 1, 10), RecurrenceFrequency.QUARTERLY, i) for i in range(5)]
        assert classifier.classify(dates).frequency == RecurrenceFrequency.QUARTERLY

    def test_yearly_small_sample_discount(self, classifier):
        dates = [date(2021, 3, 1), date(2022, 3, 1), date(2023, 3, 1)]
        result = classifier.classify(dates)
        assert result.frequency == RecurrenceFrequency.YEARLY
        assert result.confidence == 0.9

    def test_irregular_dates(self, classifier):
        dates = [date(2024, 1, 1), date(2024, 1, 20), date(2024, 3, 3), date(2024, 3, 10), date(2024, 7, 1)]
        assert classifier.classify(dates) is None

    def test_one_missed_month_still_monthly(self, classifier):
        dates = [date(2024, 1, 15), date(2024, 2, 15), date(2024, 4, 15), date(2024, 5, 15), date(2024, 6, 15)]
        result = classifier.classify(dates)
        assert result.frequency == RecurrenceFrequency.MONTHLY
        assert result.match_ratio == 0.75
        assert result.confidence == 0.75

    def test_jitter_lowers_confidence(self, classifier):
        exact = monthly_dates(date(2024, 1, 15), 6)
        jittered = [d + timedelta(days=2 * (i % 2)) for i, d in enumerate(exact)]
        exact_result = classifier.classify(exact)
        jittered_result = classifier.classify(jittered)
        assert jittered_result.frequency == RecurrenceFrequency.MONTHLY
        assert jittered_result.confidence < exact_result.confidence
        assert jittered_result.confidence == 0.95

    def test_more_observations_never_lower_confidence(self, classifier):
        four = classifier.classify(monthly_dates(date(2024, 1, 15), 4))
        six = classifier.classify(monthly_dates(date(2024, 1, 15), 6))
        assert six.confidence >= four.confidence

    def test_windows_are_configurable(self):
        strict = FrequencyClassifier(windows=FrequencyWindows(calendar_window_days=1))
        dates = [date(2024, 1, 15), date(2024, 2, 18), date(2024, 3, 15), date(2024, 4, 18)]
        assert FrequencyClassifier().classify(dates).frequency == RecurrenceFrequency.MONTHLY
        assert strict.classify(dates) is None

    def test_gap_offsets(self):
        dates = [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 16)]
        assert list(FrequencyClassifier.gap_offsets(dates, RecurrenceFrequency.WEEKLY)) == [0, 1]
        monthly = [date(2024, 1, 31), date(2024, 2, 29), date(2024, 4, 1)]
        assert list(FrequencyClassifier.gap_offsets(monthly, RecurrenceFrequency.MONTHLY)) == [0, 3]


class TestAmountToleranceModel:
    """Test suite for AmountToleranceModel."""

    @pytest.fixture
    def model(self):
        return AmountToleranceModel()

    def test_identical_amounts_use_floor(self, model):
        evaluation = model.evaluate([Decimal("-15.99")] * 4)
        assert evaluation.consistent
        assert evaluation.center == Decimal("-15.99")
        assert evaluation.tolerance == Decimal("0.80")

    def test_varying_utility_bill(self, model):
        amounts = [Decimal("-80"), Decimal("-90"), Decimal("-100"), Decimal("-95")]
        evaluation = model.evaluate(amounts)
        assert evaluation.consistent
        assert evaluation.center == Decimal("-92.5")
        assert evaluation.tolerance == Decimal("12.50")
        assert all(evaluation.contains(a) for a in amounts)
        assert not evaluation.contains(Decimal("-110"))

    def test_center_rounded_to_cents(self, model):
        evaluation = model.evaluate([Decimal("-0.1"), Decimal("-0.2")])
        assert evaluation.center == Decimal("-0.15")
        assert evaluation.center.as_tuple().exponent == -2
        assert evaluation.tolerance == Decimal("0.05")

    def test_drift_cap_is_exact_at_the_boundary(self, model):
        # Deviation of 0.10 against a 0.20 median sits exactly on the 50% cap
        evaluation = model.evaluate([Decimal("-0.1"), Decimal("-0.2"), Decimal("-0.3")])
        assert evaluation.center == Decimal("-0.20")
        assert evaluation.tolerance == Decimal("0.10")
        assert evaluation.consistent

    def test_mixed_signs_inconsistent(self, model):
        amounts = [Decimal("100"), Decimal("100"), Decimal("100"), Decimal("-100")]
        assert not model.evaluate(amounts).consistent

    def test_split_by_sign(self, model):
        amounts = [Decimal("100"), Decimal("100"), Decimal("100"), Decimal("-100")]
        partitions = model.split(amounts)
        assert [indices for indices, _ in partitions] == [[3], [0, 1, 2]]
        inflow_eval = partitions[1][1]
        assert inflow_eval.consistent
        assert inflow_eval.center == Decimal("100")

    def test_split_ignores_zero_amounts(self, model):
        partitions = model.split([Decimal("0"), Decimal("-5"), Decimal("-5")])
        assert [indices for indices, _ in partitions] == [[1, 2]]

    def test_wide_spread_is_inconsistent(self, model):
        assert not model.evaluate([Decimal("-10"), Decimal("-50"), Decimal("-100")]).consistent

    def test_drift_cap_is_configurable(self):
        loose = AmountToleranceModel(AmountToleranceConfig(max_drift_pct=1.0))
        assert loose.evaluate([Decimal("-10"), Decimal("-50"), Decimal("-100")]).consistent

    def test_zero_and_empty_inconsistent(self, model):
        assert not model.evaluate([Decimal("0")] * 3).consistent
        assert not model.evaluate([]).consistent
