"""Scheduling trigger for recurring-item processing.

Exposes the single entry point ``run(item_id, mode)`` and the periodic
due-items run. A pass over an item holds that item's lock, so at most one
pass per item is in flight; different items run concurrently.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any
from uuid import UUID

import structlog

from ledger_cadence.config import get_settings
from ledger_cadence.generator import RecurringGenerator, RecurringItemStore
from ledger_cadence.models import (
    DueRunSummary,
    GenerationResult,
    ItemKind,
    KindRunStats,
    RecurringItem,
    RunMode,
)

logger = structlog.get_logger(__name__)


class ItemLocks:
    """Per-item asyncio locks, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._holders: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, item_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(item_id, asyncio.Lock())
        self._holders[item_id] = self._holders.get(item_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[item_id] -= 1
            if self._holders[item_id] == 0:
                del self._holders[item_id]
                del self._locks[item_id]

    def is_locked(self, item_id: UUID) -> bool:
        lock = self._locks.get(item_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class RecurringScheduler:
    """Runs recurring items through the generator.

    The scheduler:
    1. Serializes passes per item with ``ItemLocks``
    2. Dispatches ``tick`` and ``catch-up`` modes to the generator
    3. Ticks every due item of every kind in the periodic run
    """

    def __init__(
        self,
        generator: RecurringGenerator,
        store: RecurringItemStore,
        locks: ItemLocks | None = None,
        concurrency: int | None = None,
        clock: Callable[[], date] = date.today,
    ):
        settings = get_settings()
        self._generator = generator
        self._store = store
        self._locks = locks or ItemLocks()
        self._concurrency = concurrency or settings.due_run_concurrency
        self._clock = clock

        self._runs = 0
        self._due_runs = 0
        self._last_due_run: date | None = None

        self._logger = logger.bind(component="scheduler")

    @property
    def locks(self) -> ItemLocks:
        return self._locks

    async def run(
        self, item_id: UUID, mode: RunMode | str, today: date | None = None
    ) -> GenerationResult:
        """Process one item in the given mode.

        Args:
            item_id: The recurring item to process.
            mode: ``tick`` for at most one occurrence, ``catch-up`` for all.
            today: Reference date; defaults to the clock.

        Returns:
            The pass result.

        Raises:
            ItemNotFoundError: If the store has no such item.
        """
        mode = RunMode(mode)
        today = today or self._clock()

        with structlog.contextvars.bound_contextvars(
            item_id=str(item_id), mode=mode.value
        ):
            async with self._locks.hold(item_id):
                self._runs += 1
                if mode is RunMode.TICK:
                    return await self._generator.tick(item_id, today)
                return await self._generator.catch_up(item_id, today)

    async def run_due(self, today: date | None = None) -> DueRunSummary:
        """Tick every active item whose next occurrence is on or before today."""
        today = today or self._clock()
        summary = DueRunSummary(run_date=today)
        semaphore = asyncio.Semaphore(self._concurrency)

        self._logger.info("due_run_starting", date=today.isoformat())

        for kind in ItemKind:
            try:
                due_items = await self._store.list_due(kind, today)
            except Exception as e:
                self._logger.error("due_items_fetch_failed", kind=kind.value, error=str(e))
                continue

            stats = summary.stats[kind]
            await asyncio.gather(
                *(self._tick_due(item, today, stats, semaphore) for item in due_items)
            )

        self._due_runs += 1
        self._last_due_run = today
        self._logger.info(
            "due_run_completed",
            date=today.isoformat(),
            generated=summary.generated,
            errors=summary.errors,
        )
        return summary

    async def _tick_due(
        self,
        item: RecurringItem,
        today: date,
        stats: KindRunStats,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            stats.processed += 1
            try:
                result = await self.run(item.id, RunMode.TICK, today)
            except Exception as e:
                stats.errors += 1
                self._logger.error(
                    "due_item_failed",
                    item_id=str(item.id),
                    kind=item.kind.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return
            stats.generated += result.generated
            stats.errors += result.errors

    def get_status(self) -> dict[str, Any]:
        """Get current scheduler status.

        Returns:
            Status dictionary.
        """
        return {
            "runs": self._runs,
            "due_runs": self._due_runs,
            "last_due_run": self._last_due_run.isoformat() if self._last_due_run else None,
            "concurrency": self._concurrency,
            "max_iterations": self._generator.max_iterations,
            "active_locks": len(self._locks),
        }
