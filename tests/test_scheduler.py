"""Tests for the RecurringScheduler."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from ledger_cadence.generator import RecurringGenerator
from ledger_cadence.models import ItemKind, RunMode
from ledger_cadence.recurrence import Frequency
from ledger_cadence.scheduler import ItemLocks, RecurringScheduler
from ledger_cadence.tools.store import ItemNotFoundError


@pytest.fixture
def generator(store, ledger):
    return RecurringGenerator(store=store, materializer=ledger)


@pytest.fixture
def scheduler(generator, store):
    return RecurringScheduler(generator=generator, store=store, concurrency=2)


class TestItemLocks:
    """Tests for per-item locks."""

    @pytest.mark.asyncio
    async def test_lock_dropped_when_idle(self):
        locks = ItemLocks()
        item_id = uuid4()

        async with locks.hold(item_id):
            assert locks.is_locked(item_id)
            assert len(locks) == 1

        assert not locks.is_locked(item_id)
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_same_item_is_serialized(self):
        locks = ItemLocks()
        item_id = uuid4()
        order: list[str] = []

        async def worker(name: str):
            async with locks.hold(item_id):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_items_overlap(self):
        locks = ItemLocks()
        first, second = uuid4(), uuid4()

        async with locks.hold(first):
            async with locks.hold(second):
                assert locks.is_locked(first)
                assert locks.is_locked(second)
                assert len(locks) == 2

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = ItemLocks()
        item_id = uuid4()

        with pytest.raises(RuntimeError):
            async with locks.hold(item_id):
                raise RuntimeError("boom")

        assert len(locks) == 0


class TestRun:
    """Tests for the single-item entry point."""

    @pytest.mark.asyncio
    async def test_catch_up_mode(self, scheduler, store, ledger, item_factory):
        item = await store.add(item_factory())

        result = await scheduler.run(item.id, RunMode.CATCH_UP, today=date(2024, 4, 15))

        assert result.generated == 4
        assert result.final_next_occurrence == date(2024, 5, 1)

    @pytest.mark.asyncio
    async def test_tick_mode_from_string(self, scheduler, store, ledger, item_factory):
        item = await store.add(item_factory())

        result = await scheduler.run(item.id, "tick", today=date(2024, 4, 15))

        assert result.generated == 1
        assert result.truncated is False
        assert ledger.dates == [date(2024, 1, 1)]

    @pytest.mark.asyncio
    async def test_catch_up_string_mode(self, scheduler, store, item_factory):
        item = await store.add(item_factory())

        result = await scheduler.run(item.id, "catch-up", today=date(2024, 2, 1))

        assert result.generated == 2

    @pytest.mark.asyncio
    async def test_unknown_mode_rejected(self, scheduler, item_factory):
        with pytest.raises(ValueError):
            await scheduler.run(uuid4(), "weekly")

    @pytest.mark.asyncio
    async def test_missing_item_raises(self, scheduler):
        with pytest.raises(ItemNotFoundError):
            await scheduler.run(uuid4(), RunMode.TICK, today=date(2024, 1, 1))

        assert len(scheduler.locks) == 0

    @pytest.mark.asyncio
    async def test_defaults_to_clock(self, generator, store, ledger, item_factory):
        scheduler = RecurringScheduler(
            generator=generator, store=store, clock=lambda: date(2024, 3, 10)
        )
        item = await store.add(item_factory())

        result = await scheduler.run(item.id, RunMode.CATCH_UP)

        assert result.generated == 3

    @pytest.mark.asyncio
    async def test_concurrent_runs_do_not_duplicate(
        self, scheduler, store, ledger, item_factory
    ):
        """Two catch-up passes on one item materialize each date once."""
        item = await store.add(item_factory())
        today = date(2024, 6, 15)

        results = await asyncio.gather(
            scheduler.run(item.id, RunMode.CATCH_UP, today),
            scheduler.run(item.id, RunMode.CATCH_UP, today),
        )

        assert sorted(r.generated for r in results) == [0, 6]
        assert len(ledger.dates) == len(set(ledger.dates)) == 6


class TestRunDue:
    """Tests for the periodic due-items run."""

    @pytest.mark.asyncio
    async def test_counts_per_kind(self, scheduler, store, ledger, item_factory):
        await store.add(item_factory())
        await store.add(item_factory(next_occurrence=date(2024, 1, 10)))
        await store.add(item_factory(kind=ItemKind.INCOME, frequency=Frequency.WEEKLY))
        # not due yet
        await store.add(item_factory(next_occurrence=date(2024, 2, 1)))
        # paused
        await store.add(item_factory(is_active=False))

        summary = await scheduler.run_due(today=date(2024, 1, 15))

        expenses = summary.stats[ItemKind.EXPENSE]
        incomes = summary.stats[ItemKind.INCOME]
        assert (expenses.processed, expenses.generated, expenses.errors) == (2, 2, 0)
        assert (incomes.processed, incomes.generated, incomes.errors) == (1, 1, 0)
        assert summary.generated == 3
        assert len(ledger.dates) == 3

    @pytest.mark.asyncio
    async def test_ticks_once_per_item(self, scheduler, store, ledger, item_factory):
        """An item far behind advances by one occurrence per run."""
        item = await store.add(item_factory(frequency=Frequency.DAILY))

        await scheduler.run_due(today=date(2024, 1, 31))
        stored = await store.load(item.id)

        assert ledger.dates == [date(2024, 1, 1)]
        assert stored.next_occurrence == date(2024, 1, 2)

    @pytest.mark.asyncio
    async def test_failing_item_does_not_abort_run(
        self, scheduler, store, ledger, item_factory
    ):
        ledger.fail_on = {date(2024, 1, 5)}
        await store.add(item_factory(next_occurrence=date(2024, 1, 5)))
        await store.add(item_factory(next_occurrence=date(2024, 1, 6)))

        summary = await scheduler.run_due(today=date(2024, 1, 10))

        expenses = summary.stats[ItemKind.EXPENSE]
        assert expenses.processed == 2
        assert expenses.generated == 1
        assert expenses.errors == 1
        assert ledger.dates == [date(2024, 1, 6)]

    @pytest.mark.asyncio
    async def test_raising_pass_counted_as_error(self, store, item_factory):
        generator = AsyncMock(spec=RecurringGenerator)
        generator.tick.side_effect = RuntimeError("store offline")
        scheduler = RecurringScheduler(generator=generator, store=store)
        await store.add(item_factory())

        summary = await scheduler.run_due(today=date(2024, 1, 1))

        assert summary.stats[ItemKind.EXPENSE].errors == 1
        assert summary.stats[ItemKind.EXPENSE].processed == 1

    @pytest.mark.asyncio
    async def test_listing_failure_skips_kind(self, generator, store, item_factory):
        original = store.list_due

        async def list_due(kind, today):
            if kind is ItemKind.EXPENSE:
                raise ConnectionError("replica lag")
            return await original(kind, today)

        store.list_due = list_due
        scheduler = RecurringScheduler(generator=generator, store=store)
        await store.add(item_factory())
        await store.add(item_factory(kind=ItemKind.INCOME))

        summary = await scheduler.run_due(today=date(2024, 1, 1))

        assert summary.stats[ItemKind.EXPENSE].processed == 0
        assert summary.stats[ItemKind.INCOME].generated == 1

    @pytest.mark.asyncio
    async def test_summary_dict(self, scheduler, store, item_factory):
        await store.add(item_factory())

        data = (await scheduler.run_due(today=date(2024, 1, 1))).to_dict()

        assert data["date"] == "2024-01-01"
        assert data["result"]["expenses"] == {"processed": 1, "generated": 1, "errors": 0}
        assert data["result"]["incomes"] == {"processed": 0, "generated": 0, "errors": 0}


class TestStatus:
    """Tests for scheduler status."""

    @pytest.mark.asyncio
    async def test_status_tracks_runs(self, scheduler, store, item_factory):
        item = await store.add(item_factory())

        status = scheduler.get_status()
        assert status["runs"] == 0
        assert status["last_due_run"] is None
        assert status["concurrency"] == 2
        assert status["max_iterations"] == 366

        await scheduler.run(item.id, RunMode.TICK, today=date(2024, 1, 1))
        await scheduler.run_due(today=date(2024, 2, 1))

        status = scheduler.get_status()
        assert status["runs"] == 2
        assert status["due_runs"] == 1
        assert status["last_due_run"] == "2024-02-01"
        assert status["active_locks"] == 0

    def test_concurrency_from_settings(self, store, ledger, monkeypatch):
        monkeypatch.setenv("DUE_RUN_CONCURRENCY", "7")
        generator = RecurringGenerator(store=store, materializer=ledger)

        scheduler = RecurringScheduler(generator=generator, store=store)

        assert scheduler.get_status()["concurrency"] == 7
