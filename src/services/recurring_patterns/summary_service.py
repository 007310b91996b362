"""
Recurring summary projection.

Aggregates stored patterns into the dashboard view: monthly recurring
spend and income, counts by status, and what is due soon.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable

from models.recurring_pattern import (
    PatternStatus,
    RecurrenceFrequency,
    RecurringPattern,
    RecurringSummary,
    UpcomingRecurring,
)
from utils.temporal_utils import days_until

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Multiplier that converts one occurrence into a monthly amount
MONTHLY_FACTORS: Dict[RecurrenceFrequency, Decimal] = {
    RecurrenceFrequency.WEEKLY: Decimal(52) / Decimal(12),
    RecurrenceFrequency.BIWEEKLY: Decimal(26) / Decimal(12),
    RecurrenceFrequency.MONTHLY: Decimal(1),
    RecurrenceFrequency.QUARTERLY: Decimal(1) / Decimal(3),
    RecurrenceFrequency.YEARLY: Decimal(1) / Decimal(12),
}


def monthly_amount(pattern: RecurringPattern) -> Decimal:
    """Signed amount of a pattern normalized to one month (unrounded)."""
    return pattern.expected_amount * MONTHLY_FACTORS[pattern.frequency]


def build_summary(
    space_id: str,
    patterns: Iterable[RecurringPattern],
    as_of: date,
    window_days: int = 30
) -> RecurringSummary:
    """
    Build the recurring summary for a space.

    Only confirmed patterns contribute to totals and upcoming entries.
    Outflow totals are reported as positive numbers.

    Args:
        space_id: Space being summarized
        patterns: All stored patterns of the space, any status
        as_of: Reference date for the upcoming window
        window_days: Length of the upcoming window in days (inclusive)

    Returns:
        RecurringSummary
    """
    counts = {status.value: 0 for status in PatternStatus}
    outflow = Decimal("0")
    inflow = Decimal("0")
    upcoming = []
    window_end = as_of + timedelta(days=window_days)

    for pattern in patterns:
        counts[pattern.status.value] += 1
        if pattern.status != PatternStatus.CONFIRMED:
            continue

        monthly = monthly_amount(pattern)
        if monthly < 0:
            outflow += -monthly
        else:
            inflow += monthly

        expected = pattern.next_expected_date
        if expected is not None and as_of <= expected <= window_end:
            upcoming.append(UpcomingRecurring(
                patternId=pattern.pattern_id,
                displayName=pattern.display_name,
                expectedAmount=pattern.expected_amount,
                currency=pattern.currency,
                expectedDate=expected,
                daysUntil=days_until(expected, as_of)
            ))

    upcoming.sort(key=lambda u: (u.expected_date, u.display_name))
    monthly_outflow = outflow.quantize(CENT, rounding=ROUND_HALF_UP)

    logger.debug(
        f"Summary for space {space_id}: outflow {monthly_outflow}/month, "
        f"{len(upcoming)} upcoming in {window_days} days"
    )
    return RecurringSummary(
        spaceId=space_id,
        asOf=as_of,
        windowDays=window_days,
        monthlyOutflow=monthly_outflow,
        monthlyInflow=inflow.quantize(CENT, rounding=ROUND_HALF_UP),
        annualOutflow=(outflow * 12).quantize(CENT, rounding=ROUND_HALF_UP),
        countsByStatus=counts,
        upcoming=upcoming
    )
