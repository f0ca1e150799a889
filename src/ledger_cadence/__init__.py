"""Ledger Cadence - recurrence engine for recurring expenses and incomes."""

__version__ = "0.1.0"

from ledger_cadence.config import configure_logging, get_settings
from ledger_cadence.formatting import format_rule
from ledger_cadence.generator import MaterializationError, RecurringGenerator
from ledger_cadence.lifecycle import ItemPatch, apply_update, create_item, pause, resume
from ledger_cadence.models import (
    Conversion,
    DueRunSummary,
    GenerationResult,
    ItemKind,
    ItemStateUpdate,
    RecurringItem,
    RunMode,
)
from ledger_cadence.recurrence import (
    CustomUnit,
    DayOfMonthPattern,
    DayOfWeek,
    Frequency,
    IntervalPattern,
    InvalidRuleError,
    RecurrenceRule,
    WeekdayPattern,
    calculate_first_occurrence,
    calculate_next_occurrence,
    preview_occurrences,
)
from ledger_cadence.scheduler import ItemLocks, RecurringScheduler
from ledger_cadence.tools import (
    FrankfurterRateResolver,
    InMemoryRecurringItemStore,
    ItemNotFoundError,
)

__all__ = [
    # Version
    "__version__",
    # Rules
    "Frequency",
    "CustomUnit",
    "DayOfWeek",
    "RecurrenceRule",
    "WeekdayPattern",
    "DayOfMonthPattern",
    "IntervalPattern",
    "InvalidRuleError",
    "calculate_first_occurrence",
    "calculate_next_occurrence",
    "preview_occurrences",
    "format_rule",
    # Items & lifecycle
    "RecurringItem",
    "ItemKind",
    "ItemStateUpdate",
    "ItemPatch",
    "create_item",
    "apply_update",
    "pause",
    "resume",
    # Processing
    "RecurringGenerator",
    "RecurringScheduler",
    "ItemLocks",
    "RunMode",
    "GenerationResult",
    "DueRunSummary",
    "Conversion",
    "MaterializationError",
    # Adapters
    "FrankfurterRateResolver",
    "InMemoryRecurringItemStore",
    "ItemNotFoundError",
    # Config
    "get_settings",
    "configure_logging",
]
