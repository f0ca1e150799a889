"""Owner-driven lifecycle of recurring items: create, pause, resume, edit.

These transitions only recompute ``next_occurrence``; generating
transactions is left to the processor. Resuming jumps to the next future
occurrence rather than replaying everything missed while paused.
"""

from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import structlog

from ledger_cadence.models import ItemKind, ItemState, RecurringItem
from ledger_cadence.recurrence import (
    CustomUnit,
    Frequency,
    RecurrenceRule,
    calculate_first_occurrence,
    calculate_next_occurrence,
)

logger = structlog.get_logger(__name__)

# Edits to any of these move the schedule anchor.
RECURRENCE_FIELDS = frozenset(
    {
        "frequency",
        "custom_interval",
        "custom_unit",
        "day_of_week_mask",
        "day_of_month",
        "start_date",
    }
)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class ItemPatch:
    """An owner edit; fields left as UNSET are not changed.

    ``end_date=None`` clears the end date, which is why UNSET is distinct
    from None.
    """

    amount: Decimal = UNSET
    currency: str = UNSET
    category_id: UUID | None = UNSET
    summary: str = UNSET
    description: str | None = UNSET
    frequency: Frequency = UNSET
    custom_interval: int | None = UNSET
    custom_unit: CustomUnit | None = UNSET
    day_of_week_mask: int | None = UNSET
    day_of_month: int | None = UNSET
    start_date: date = UNSET
    end_date: date | None = UNSET
    is_active: bool = UNSET

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


def initial_state(rule: RecurrenceRule) -> ItemState:
    """State of a freshly created item: due first on the rule's first occurrence."""
    first = calculate_first_occurrence(rule)
    return ItemState(
        next_occurrence=first,
        last_generated_date=None,
        is_active=not rule.is_past_end(first),
    )


def create_item(
    kind: ItemKind,
    account_id: UUID,
    user_id: UUID,
    amount: Decimal,
    currency: str,
    rule: RecurrenceRule,
    category_id: UUID | None = None,
    summary: str = "",
    description: str | None = None,
    item_id: UUID | None = None,
) -> RecurringItem:
    """Build a new recurring item from a validated rule."""
    if amount <= 0:
        raise ValueError("Amount must be positive")

    state = initial_state(rule)
    return RecurringItem(
        id=item_id or uuid4(),
        kind=kind,
        account_id=account_id,
        user_id=user_id,
        amount=amount,
        currency=currency.upper(),
        category_id=category_id,
        summary=summary,
        description=description,
        frequency=rule.frequency,
        custom_interval=rule.custom_interval,
        custom_unit=rule.custom_unit,
        day_of_week_mask=rule.day_of_week_mask,
        day_of_month=rule.day_of_month,
        start_date=rule.start_date,
        end_date=rule.end_date,
        next_occurrence=state.next_occurrence,
        last_generated_date=state.last_generated_date,
        is_active=state.is_active,
    )


def resume_next_occurrence(rule: RecurrenceRule, today: date) -> date | None:
    """Return where a resumed item picks up, or None if it has nothing left.

    The first occurrence is kept while it is still today or later; otherwise
    the schedule jumps to the first occurrence after today.
    """
    first = calculate_first_occurrence(rule)
    if first < today:
        return calculate_next_occurrence(rule, today)
    if rule.is_past_end(first):
        return None
    return first


def pause(item: RecurringItem) -> RecurringItem:
    """Deactivate an item; its schedule is kept for a later resume."""
    return replace(item, is_active=False)


def resume(item: RecurringItem, today: date) -> RecurringItem:
    return apply_update(item, ItemPatch(is_active=True), today)


def apply_update(item: RecurringItem, patch: ItemPatch, today: date) -> RecurringItem:
    """Apply an owner edit and recompute ``next_occurrence`` where needed.

    Args:
        item: The item as currently stored.
        patch: Fields to change.
        today: The owner's current date, used when resuming.

    Returns:
        The edited item (not yet persisted).

    Raises:
        InvalidRuleError: If the edit leaves an invalid recurrence rule.
    """
    changes = patch.changes()
    if "currency" in changes:
        changes["currency"] = changes["currency"].upper()
    if "amount" in changes and changes["amount"] <= 0:
        raise ValueError("Amount must be positive")

    updated = replace(item, **changes)
    rule = updated.rule

    resuming = changes.get("is_active") is True and not item.is_active
    recurrence_changed = bool(RECURRENCE_FIELDS & changes.keys())

    if resuming:
        next_occurrence = resume_next_occurrence(rule, today)
        if next_occurrence is None:
            logger.info(
                "resume_exhausted_item",
                item_id=str(item.id),
                end_date=rule.end_date.isoformat() if rule.end_date else None,
            )
            return replace(updated, is_active=False)
        logger.info(
            "item_resumed",
            item_id=str(item.id),
            next_occurrence=next_occurrence.isoformat(),
        )
        return replace(updated, next_occurrence=next_occurrence)

    if "start_date" in changes or (recurrence_changed and not updated.is_active):
        updated = replace(updated, next_occurrence=calculate_first_occurrence(rule))

    if updated.is_active and rule.is_past_end(updated.next_occurrence):
        logger.info(
            "item_ended_by_edit",
            item_id=str(item.id),
            next_occurrence=updated.next_occurrence.isoformat(),
            end_date=rule.end_date.isoformat() if rule.end_date else None,
        )
        updated = replace(updated, is_active=False)

    return updated
