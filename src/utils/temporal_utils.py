"""
Temporal Utility Functions.

This module provides plain calendar arithmetic used by recurring pattern
detection: fixed-length week steps and calendar-month steps with the day
clamped to the end of shorter months.
"""

import calendar
from datetime import date, timedelta

from models.recurring_pattern import RecurrenceFrequency

# Fixed-gap frequencies, in days
FIXED_PERIOD_DAYS = {
    RecurrenceFrequency.WEEKLY: 7,
    RecurrenceFrequency.BIWEEKLY: 14,
}

# Calendar frequencies, in months
CALENDAR_PERIOD_MONTHS = {
    RecurrenceFrequency.MONTHLY: 1,
    RecurrenceFrequency.QUARTERLY: 3,
    RecurrenceFrequency.YEARLY: 12,
}


def add_months(d: date, months: int) -> date:
    """
    Move a date by a number of calendar months.

    The day of month is clamped to the last day of the target month, so
    Jan 31 + 1 month is Feb 28 (or Feb 29 in a leap year).

    Args:
        d: Starting date
        months: Number of months to move (may be negative)

    Returns:
        The shifted date
    """
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def advance_date(d: date, frequency: RecurrenceFrequency, periods: int = 1) -> date:
    """
    Advance a date by whole periods of the given frequency.

    Args:
        d: Starting date
        frequency: Recurrence frequency
        periods: Number of periods to advance

    Returns:
        The date ``periods`` periods after ``d``
    """
    if frequency in FIXED_PERIOD_DAYS:
        return d + timedelta(days=FIXED_PERIOD_DAYS[frequency] * periods)
    return add_months(d, CALENDAR_PERIOD_MONTHS[frequency] * periods)


def days_until(target: date, as_of: date) -> int:
    return (target - as_of).days
