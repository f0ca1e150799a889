"""In-memory recurring-item store.

Implements the store contract the processor and scheduler rely on. Saves
carry the version the writer loaded; a stale version is rejected so two
passes over the same item cannot both commit.
"""

import asyncio
from dataclasses import replace
from datetime import date
from typing import Any
from uuid import UUID

import structlog

from ledger_cadence.models import ItemKind, ItemStateUpdate, RecurringItem

logger = structlog.get_logger(__name__)


class StoreError(Exception):
    """Base exception for recurring-item store errors."""

    def __init__(self, message: str, item_id: UUID | None = None, details: Any = None):
        super().__init__(message)
        self.item_id = item_id
        self.details = details


class ItemNotFoundError(StoreError):
    """No recurring item with the given id."""

    pass


class ConcurrentUpdateError(StoreError):
    """The item changed since the writer loaded it."""

    pass


class InMemoryRecurringItemStore:
    """Async, dict-backed store for recurring items."""

    def __init__(self, items: list[RecurringItem] | None = None):
        self._items: dict[UUID, RecurringItem] = {}
        self._lock = asyncio.Lock()
        self.save_count = 0
        for item in items or []:
            self._items[item.id] = item

    async def add(self, item: RecurringItem) -> RecurringItem:
        async with self._lock:
            self._items[item.id] = item
        return item

    async def load(self, item_id: UUID) -> RecurringItem:
        """Return a copy of the item, raising ItemNotFoundError if absent."""
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFoundError("Recurring item not found", item_id=item_id)
        return replace(item)

    async def save(self, item_id: UUID, update: ItemStateUpdate) -> RecurringItem:
        """Apply a state update, checking ``expected_version`` when given."""
        async with self._lock:
            current = self._items.get(item_id)
            if current is None:
                raise ItemNotFoundError("Recurring item not found", item_id=item_id)

            if (
                update.expected_version is not None
                and update.expected_version != current.version
            ):
                logger.warning(
                    "stale_item_update",
                    item_id=str(item_id),
                    expected=update.expected_version,
                    actual=current.version,
                )
                raise ConcurrentUpdateError(
                    "Recurring item was modified concurrently",
                    item_id=item_id,
                    details={
                        "expected_version": update.expected_version,
                        "actual_version": current.version,
                    },
                )

            saved = current.with_state(update)
            self._items[item_id] = saved
            self.save_count += 1
            return replace(saved)

    async def replace_item(self, item: RecurringItem) -> RecurringItem:
        """Store an owner-edited item, bumping its version."""
        async with self._lock:
            if item.id not in self._items:
                raise ItemNotFoundError("Recurring item not found", item_id=item.id)
            stored = replace(item, version=self._items[item.id].version + 1)
            self._items[item.id] = stored
            return replace(stored)

    async def list_due(self, kind: ItemKind, today: date) -> list[RecurringItem]:
        """Return active items of ``kind`` whose next occurrence is on or before today."""
        due = [
            replace(item)
            for item in self._items.values()
            if item.kind is kind and item.is_active and item.next_occurrence <= today
        ]
        due.sort(key=lambda item: (item.next_occurrence, str(item.id)))
        return due
