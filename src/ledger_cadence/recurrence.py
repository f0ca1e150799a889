"""Recurrence rules and the occurrence evaluator.

A ``RecurrenceRule`` describes when a recurring expense or income falls due.
The evaluator answers two questions about a rule: when does it first fire,
and what comes after a given occurrence. ``None`` from
``calculate_next_occurrence`` means the rule is exhausted (past its end date).

Frequency-specific settings live in exactly one pattern variant:

- ``WeekdayPattern``: a day-of-week bitmask, weekly rules only
- ``DayOfMonthPattern``: a day of the month (or ``LAST_DAY``), for monthly,
  quarterly and yearly rules
- ``IntervalPattern``: N days/weeks/months/years, required by custom rules
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date
from enum import Enum, IntFlag
from itertools import islice

from ledger_cadence.calendar_math import (
    LAST_DAY,
    add_days,
    add_months,
    add_years,
    date_with_day_of_month,
    js_weekday,
    shift_month,
)

# Upper bound on preview length, regardless of what the caller asks for.
MAX_PREVIEW_COUNT = 12

FULL_WEEK_MASK = 0b1111111


class InvalidRuleError(ValueError):
    """A recurrence rule is malformed or inconsistent."""


class Frequency(str, Enum):
    """How often a recurring item repeats."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class CustomUnit(str, Enum):
    """Unit of a custom N-unit interval."""

    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


class DayOfWeek(IntFlag):
    """Day-of-week mask bits (bit 0 is Sunday)."""

    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 4
    WEDNESDAY = 8
    THURSDAY = 16
    FRIDAY = 32
    SATURDAY = 64


def is_day_selected(mask: int, day_index: int) -> bool:
    """Check whether ``day_index`` (0=Sunday..6=Saturday) is set in ``mask``."""
    return bool(mask & (1 << day_index))


def create_day_of_week_mask(days: Iterable[int]) -> int:
    """Build a mask from day indices (0=Sunday..6=Saturday)."""
    mask = 0
    for day in days:
        if not 0 <= day <= 6:
            raise InvalidRuleError(f"Day index out of range: {day}")
        mask |= 1 << day
    return mask


def extract_days_from_mask(mask: int) -> list[int]:
    """Return the selected day indices of ``mask`` in Sunday-first order."""
    return [i for i in range(7) if is_day_selected(mask, i)]


@dataclass(frozen=True)
class WeekdayPattern:
    """Fire on every weekday whose bit is set in ``mask``."""

    mask: int

    def __post_init__(self) -> None:
        if not 0 < self.mask <= FULL_WEEK_MASK:
            raise InvalidRuleError(
                f"Day of week mask must be between 1 and {FULL_WEEK_MASK}, got {self.mask}"
            )

    def selects(self, d: date) -> bool:
        return is_day_selected(self.mask, js_weekday(d))


@dataclass(frozen=True)
class DayOfMonthPattern:
    """Fire on a fixed day of the month; ``LAST_DAY`` tracks the month end."""

    day: int

    def __post_init__(self) -> None:
        if self.day != LAST_DAY and not 1 <= self.day <= 31:
            raise InvalidRuleError(
                f"Day of month must be 1-31 or {LAST_DAY}, got {self.day}"
            )

    def resolve(self, year: int, month: int) -> date:
        return date_with_day_of_month(year, month, self.day)


@dataclass(frozen=True)
class IntervalPattern:
    """Fire every ``interval`` ``unit``s."""

    interval: int
    unit: CustomUnit

    def __post_init__(self) -> None:
        if isinstance(self.interval, bool) or self.interval < 1:
            raise InvalidRuleError(
                f"Custom interval must be a positive integer, got {self.interval}"
            )
        try:
            object.__setattr__(self, "unit", CustomUnit(self.unit))
        except ValueError as e:
            raise InvalidRuleError(f"Unknown custom unit: {self.unit}") from e


RulePattern = WeekdayPattern | DayOfMonthPattern | IntervalPattern

# Month step for each day-of-month family.
_PERIOD_MONTHS: dict[Frequency, int] = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}

_ALLOWED_PATTERNS: dict[Frequency, tuple[type, ...]] = {
    Frequency.DAILY: (),
    Frequency.WEEKLY: (WeekdayPattern,),
    Frequency.BIWEEKLY: (),
    Frequency.MONTHLY: (DayOfMonthPattern,),
    Frequency.QUARTERLY: (DayOfMonthPattern,),
    Frequency.YEARLY: (DayOfMonthPattern,),
    Frequency.CUSTOM: (IntervalPattern,),
}


@dataclass(frozen=True)
class RecurrenceRule:
    """Immutable description of when a recurring item falls due."""

    frequency: Frequency
    start_date: date
    end_date: date | None = None
    pattern: RulePattern | None = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "frequency", Frequency(self.frequency))
        except ValueError as e:
            raise InvalidRuleError(f"Unknown frequency: {self.frequency}") from e

        allowed = _ALLOWED_PATTERNS[self.frequency]
        if self.pattern is not None and not isinstance(self.pattern, allowed):
            raise InvalidRuleError(
                f"{type(self.pattern).__name__} does not apply to "
                f"{self.frequency.value} rules"
            )
        if self.frequency is Frequency.CUSTOM and self.pattern is None:
            raise InvalidRuleError(
                "Custom frequency requires custom_interval and custom_unit"
            )
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidRuleError(
                f"End date {self.end_date} is before start date {self.start_date}"
            )

    @classmethod
    def from_fields(
        cls,
        frequency: Frequency | str,
        start_date: date,
        end_date: date | None = None,
        custom_interval: int | None = None,
        custom_unit: CustomUnit | str | None = None,
        day_of_week_mask: int | None = None,
        day_of_month: int | None = None,
    ) -> "RecurrenceRule":
        """Build a rule from flat, persisted recurrence columns.

        Columns that mean nothing for the frequency are ignored, and a zero
        mask is treated as no mask (plain weekly on the anchor weekday).
        """
        try:
            freq = Frequency(frequency)
        except ValueError as e:
            raise InvalidRuleError(f"Unknown frequency: {frequency}") from e

        pattern: RulePattern | None = None
        if freq is Frequency.WEEKLY and day_of_week_mask:
            pattern = WeekdayPattern(day_of_week_mask)
        elif freq in _PERIOD_MONTHS and day_of_month is not None:
            pattern = DayOfMonthPattern(day_of_month)
        elif freq is Frequency.CUSTOM:
            if not custom_interval or not custom_unit:
                raise InvalidRuleError(
                    "Custom frequency requires custom_interval and custom_unit"
                )
            pattern = IntervalPattern(custom_interval, custom_unit)  # type: ignore[arg-type]

        return cls(
            frequency=freq, start_date=start_date, end_date=end_date, pattern=pattern
        )

    @property
    def day_of_week_mask(self) -> int | None:
        if isinstance(self.pattern, WeekdayPattern):
            return self.pattern.mask
        return None

    @property
    def day_of_month(self) -> int | None:
        if isinstance(self.pattern, DayOfMonthPattern):
            return self.pattern.day
        return None

    @property
    def custom_interval(self) -> int | None:
        if isinstance(self.pattern, IntervalPattern):
            return self.pattern.interval
        return None

    @property
    def custom_unit(self) -> CustomUnit | None:
        if isinstance(self.pattern, IntervalPattern):
            return self.pattern.unit
        return None

    def is_past_end(self, d: date) -> bool:
        """True if ``d`` falls strictly after the rule's end date."""
        return self.end_date is not None and d > self.end_date


def next_matching_weekday(from_date: date, mask: int) -> date:
    """Return the first date strictly after ``from_date`` whose weekday is in ``mask``."""
    if mask & FULL_WEEK_MASK == 0:
        raise InvalidRuleError("Day of week mask cannot be 0")

    candidate = from_date
    for _ in range(7):
        candidate = add_days(candidate, 1)
        if is_day_selected(mask, js_weekday(candidate)):
            return candidate
    raise InvalidRuleError(f"No weekday selected by mask {mask}")


def calculate_first_occurrence(rule: RecurrenceRule) -> date:
    """Return the first date the rule fires on; never before ``start_date``."""
    start = rule.start_date
    pattern = rule.pattern

    if isinstance(pattern, WeekdayPattern):
        if pattern.selects(start):
            return start
        return next_matching_weekday(start, pattern.mask)

    if isinstance(pattern, DayOfMonthPattern):
        target = pattern.resolve(start.year, start.month)
        if target < start:
            year, month = shift_month(
                start.year, start.month, _PERIOD_MONTHS[rule.frequency]
            )
            target = pattern.resolve(year, month)
        return target

    return start


def _advance(rule: RecurrenceRule, from_date: date) -> date:
    frequency = rule.frequency
    pattern = rule.pattern

    if frequency is Frequency.DAILY:
        return add_days(from_date, 1)

    if frequency is Frequency.WEEKLY:
        if isinstance(pattern, WeekdayPattern):
            return next_matching_weekday(from_date, pattern.mask)
        return add_days(from_date, 7)

    if frequency is Frequency.BIWEEKLY:
        return add_days(from_date, 14)

    if frequency in _PERIOD_MONTHS:
        months = _PERIOD_MONTHS[frequency]
        if isinstance(pattern, DayOfMonthPattern):
            year, month = shift_month(from_date.year, from_date.month, months)
            return pattern.resolve(year, month)
        if frequency is Frequency.YEARLY:
            return add_years(from_date, 1)
        return add_months(from_date, months)

    if not isinstance(pattern, IntervalPattern):
        raise InvalidRuleError(
            "Custom frequency requires custom_interval and custom_unit"
        )
    if pattern.unit is CustomUnit.DAYS:
        return add_days(from_date, pattern.interval)
    if pattern.unit is CustomUnit.WEEKS:
        return add_days(from_date, pattern.interval * 7)
    if pattern.unit is CustomUnit.MONTHS:
        return add_months(from_date, pattern.interval)
    return add_years(from_date, pattern.interval)


def calculate_next_occurrence(rule: RecurrenceRule, from_date: date) -> date | None:
    """Return the occurrence after ``from_date``, or None once past ``end_date``."""
    candidate = _advance(rule, from_date)
    if rule.is_past_end(candidate):
        return None
    return candidate


def iter_occurrences(
    rule: RecurrenceRule, from_date: date | None = None
) -> Iterator[date]:
    """Lazily yield occurrences starting at ``from_date`` (or the first occurrence).

    The iterator ends when the rule is exhausted; without an end date it is
    unbounded, so callers must slice it.
    """
    current = from_date if from_date is not None else calculate_first_occurrence(rule)
    if rule.is_past_end(current):
        return
    while True:
        yield current
        following = calculate_next_occurrence(rule, current)
        if following is None:
            return
        current = following


def preview_occurrences(
    rule: RecurrenceRule, count: int = 5, from_date: date | None = None
) -> list[date]:
    """Return up to ``count`` upcoming occurrences, capped at MAX_PREVIEW_COUNT."""
    limit = max(0, min(count, MAX_PREVIEW_COUNT))
    return list(islice(iter_occurrences(rule, from_date), limit))
