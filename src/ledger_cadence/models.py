"""Recurring items, their scheduling state, and run results."""

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_cadence.recurrence import CustomUnit, Frequency, RecurrenceRule


class ItemKind(str, Enum):
    """Recurring items are either expenses or incomes; both schedule the same way."""

    EXPENSE = "expense"
    INCOME = "income"


class RunMode(str, Enum):
    """How the scheduler processes an item."""

    TICK = "tick"           # Generate at most one due occurrence
    CATCH_UP = "catch-up"   # Fast-forward through every missed occurrence


@dataclass(frozen=True)
class ItemState:
    """Scheduling state of a recurring item."""

    next_occurrence: date
    last_generated_date: date | None = None
    is_active: bool = True


@dataclass(frozen=True)
class ItemStateUpdate:
    """The single state write a processing pass makes.

    ``expected_version`` is the item version the pass loaded; stores use it
    to reject writes from a concurrent pass.
    """

    next_occurrence: date
    last_generated_date: date | None
    is_active: bool
    expected_version: int | None = None


@dataclass
class RecurringItem:
    """A persisted recurring expense or income.

    The recurrence columns mirror the persisted row; ``rule`` turns them into
    a validated ``RecurrenceRule``.
    """

    id: UUID
    kind: ItemKind
    account_id: UUID
    user_id: UUID
    amount: Decimal
    currency: str
    frequency: Frequency
    start_date: date
    next_occurrence: date
    category_id: UUID | None = None
    summary: str = ""
    description: str | None = None
    custom_interval: int | None = None
    custom_unit: CustomUnit | None = None
    day_of_week_mask: int | None = None
    day_of_month: int | None = None
    end_date: date | None = None
    last_generated_date: date | None = None
    is_active: bool = True
    version: int = 0

    @property
    def rule(self) -> RecurrenceRule:
        return RecurrenceRule.from_fields(
            frequency=self.frequency,
            start_date=self.start_date,
            end_date=self.end_date,
            custom_interval=self.custom_interval,
            custom_unit=self.custom_unit,
            day_of_week_mask=self.day_of_week_mask,
            day_of_month=self.day_of_month,
        )

    @property
    def state(self) -> ItemState:
        return ItemState(
            next_occurrence=self.next_occurrence,
            last_generated_date=self.last_generated_date,
            is_active=self.is_active,
        )

    def with_state(self, update: ItemStateUpdate) -> "RecurringItem":
        """Return a copy with the update applied and the version bumped."""
        return replace(
            self,
            next_occurrence=update.next_occurrence,
            last_generated_date=update.last_generated_date,
            is_active=update.is_active,
            version=self.version + 1,
        )


@dataclass(frozen=True)
class Conversion:
    """Settlement-currency annotation attached to a materialized transaction."""

    settlement_currency: str
    rate: Decimal
    converted_amount: Decimal
    rate_date: date


@dataclass
class GenerationResult:
    """Outcome of one processing pass over a recurring item."""

    generated: int
    errors: int
    final_next_occurrence: date
    is_active: bool
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated": self.generated,
            "errors": self.errors,
            "finalNextOccurrence": self.final_next_occurrence.isoformat(),
            "isActive": self.is_active,
            "truncated": self.truncated,
        }


@dataclass
class KindRunStats:
    """Counters for one item kind in a due-items run."""

    processed: int = 0
    generated: int = 0
    errors: int = 0


@dataclass
class DueRunSummary:
    """Outcome of a periodic run over every due item."""

    run_date: date
    stats: dict[ItemKind, KindRunStats] = field(
        default_factory=lambda: {kind: KindRunStats() for kind in ItemKind}
    )

    @property
    def generated(self) -> int:
        return sum(s.generated for s in self.stats.values())

    @property
    def errors(self) -> int:
        return sum(s.errors for s in self.stats.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.run_date.isoformat(),
            "result": {
                f"{kind.value}s": {
                    "processed": s.processed,
                    "generated": s.generated,
                    "errors": s.errors,
                }
                for kind, s in self.stats.items()
            },
        }
