"""Human-readable phrases for recurrence rules."""

import calendar

from ledger_cadence.calendar_math import LAST_DAY
from ledger_cadence.recurrence import (
    DayOfMonthPattern,
    Frequency,
    IntervalPattern,
    RecurrenceRule,
    WeekdayPattern,
    extract_days_from_mask,
)

# Sunday-first, matching the day-of-week mask bit order.
DAY_ABBREVIATIONS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

_FREQUENCY_LABELS: dict[Frequency, str] = {
    Frequency.DAILY: "Daily",
    Frequency.WEEKLY: "Weekly",
    Frequency.BIWEEKLY: "Every 2 weeks",
    Frequency.MONTHLY: "Monthly",
    Frequency.QUARTERLY: "Quarterly",
    Frequency.YEARLY: "Yearly",
    Frequency.CUSTOM: "Custom",
}


def ordinal(n: int) -> str:
    """Return ``n`` with its English ordinal suffix (1st, 2nd, 11th, 23rd)."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def format_day_of_month(day: int) -> str:
    if day == LAST_DAY:
        return "the last day"
    return f"the {ordinal(day)}"


def format_weekdays(mask: int) -> str:
    return ", ".join(DAY_ABBREVIATIONS[i] for i in extract_days_from_mask(mask))


def format_rule(rule: RecurrenceRule) -> str:
    """Render a rule as a short phrase, e.g. "Monthly on the 15th".

    Examples:
        Weekly with Mon/Wed/Fri mask -> "Weekly on Mon, Wed, Fri"
        Quarterly on LAST_DAY        -> "Quarterly on the last day"
        Yearly on 2, start in March  -> "Yearly on the 2nd of March"
        Custom 3 weeks               -> "Every 3 weeks"
    """
    label = _FREQUENCY_LABELS[rule.frequency]
    pattern = rule.pattern

    if isinstance(pattern, WeekdayPattern):
        return f"{label} on {format_weekdays(pattern.mask)}"

    if isinstance(pattern, DayOfMonthPattern):
        day = format_day_of_month(pattern.day)
        if rule.frequency is Frequency.YEARLY:
            # Yearly dates stay in the start month.
            return f"{label} on {day} of {calendar.month_name[rule.start_date.month]}"
        return f"{label} on {day}"

    if isinstance(pattern, IntervalPattern):
        unit = pattern.unit.value
        if pattern.interval == 1:
            unit = unit[:-1]
        return f"Every {pattern.interval} {unit}"

    return label
