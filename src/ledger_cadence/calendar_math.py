"""Calendar arithmetic primitives.

Pure date-shifting helpers used by the recurrence evaluator. Month and year
shifts clamp to the last valid day instead of overflowing into the next
month, so ``Jan 31 + 1 month`` is ``Feb 28`` (or ``Feb 29`` in a leap year).
Clamping is lossy: shifting back does not restore the original day.
"""

import calendar
from datetime import date, timedelta

# Sentinel day-of-month meaning "last calendar day of the month".
LAST_DAY = -1


def last_day_of_month(year: int, month: int) -> int:
    """Return the number of days in the given month (month is 1-12)."""
    return calendar.monthrange(year, month)[1]


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    """Return the (year, month) pair ``months`` months away."""
    index = month - 1 + months
    return year + index // 12, index % 12 + 1


def add_days(d: date, days: int) -> date:
    return d + timedelta(days=days)


def add_months(d: date, months: int) -> date:
    """Add ``months`` months to ``d``, clamping the day to the month end."""
    year, month = shift_month(d.year, d.month, months)
    day = min(d.day, last_day_of_month(year, month))
    return date(year, month, day)


def add_years(d: date, years: int) -> date:
    """Add ``years`` years to ``d``; Feb 29 becomes Feb 28 in common years."""
    year = d.year + years
    day = min(d.day, last_day_of_month(year, d.month))
    return date(year, d.month, day)


def date_with_day_of_month(year: int, month: int, day_of_month: int) -> date:
    """Build a date in the given month from a day-of-month setting.

    ``LAST_DAY`` resolves to the month's actual last day. Other values are
    clamped to the month length, so the 31st becomes the 30th in April.
    """
    last = last_day_of_month(year, month)
    if day_of_month == LAST_DAY:
        return date(year, month, last)
    return date(year, month, min(day_of_month, last))


def js_weekday(d: date) -> int:
    """Return the weekday index used by day-of-week masks (0=Sunday..6=Saturday)."""
    return (d.weekday() + 1) % 7
