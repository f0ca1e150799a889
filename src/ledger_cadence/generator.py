"""Catch-up processor for recurring items.

Walks a recurring item forward through its due occurrences, asking the
transaction materializer for one concrete transaction per occurrence.

A pass:
1. Loads the item; paused or exhausted items are left alone
2. Resolves the settlement currency for the item's account
3. Materializes ``next_occurrence`` while it is on or before today, advancing
   it with the recurrence evaluator after each success
4. Stops at the first collaborator failure (no retries within a pass), on
   exhaustion, or at the step cap
5. Saves ``next_occurrence``, ``last_generated_date`` and ``is_active`` once

Transactions materialized before a failure stay committed; the single save
records how far the pass got.
"""

from collections.abc import Callable
from datetime import date
from typing import Any, Protocol
from uuid import UUID

import structlog

from ledger_cadence.config import get_settings
from ledger_cadence.models import (
    Conversion,
    GenerationResult,
    ItemKind,
    ItemStateUpdate,
    RecurringItem,
)
from ledger_cadence.recurrence import calculate_next_occurrence
from ledger_cadence.tools.exchange_rates import RateQuote, convert_amount

logger = structlog.get_logger(__name__)


class MaterializationError(Exception):
    """A transaction could not be created for an occurrence."""

    def __init__(
        self,
        message: str,
        item_id: UUID | None = None,
        occurrence_date: date | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.item_id = item_id
        self.occurrence_date = occurrence_date
        self.details = details


class RecurringItemStore(Protocol):
    async def load(self, item_id: UUID) -> RecurringItem: ...

    async def save(self, item_id: UUID, update: ItemStateUpdate) -> Any: ...

    async def list_due(self, kind: ItemKind, today: date) -> list[RecurringItem]: ...


class TransactionMaterializer(Protocol):
    async def create(
        self,
        item: RecurringItem,
        occurrence_date: date,
        settlement_currency: str,
        conversion: Conversion | None,
    ) -> Any: ...


class CurrencyRateResolver(Protocol):
    async def rate(self, from_currency: str, to_currency: str) -> RateQuote | None: ...


class SettlementCurrencyResolver(Protocol):
    async def settlement_currency(self, account_id: UUID) -> str | None: ...


class RecurringGenerator:
    """Generates transactions for due occurrences of recurring items."""

    def __init__(
        self,
        store: RecurringItemStore,
        materializer: TransactionMaterializer,
        rates: CurrencyRateResolver | None = None,
        accounts: SettlementCurrencyResolver | None = None,
        max_iterations: int | None = None,
        default_currency: str | None = None,
        clock: Callable[[], date] = date.today,
    ):
        settings = get_settings()
        self._store = store
        self._materializer = materializer
        self._rates = rates
        self._accounts = accounts
        self._max_iterations = max_iterations or settings.catch_up_max_iterations
        self._default_currency = default_currency or settings.default_settlement_currency
        self._clock = clock
        self._logger = logger.bind(component="recurring_generator")

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    async def catch_up(self, item_id: UUID, today: date | None = None) -> GenerationResult:
        """Generate every occurrence the item missed, up to the step cap."""
        item = await self._store.load(item_id)
        return await self.process(item, today or self._clock(), self._max_iterations)

    async def tick(self, item_id: UUID, today: date | None = None) -> GenerationResult:
        """Generate at most one due occurrence."""
        item = await self._store.load(item_id)
        return await self.process(item, today or self._clock(), max_steps=1)

    async def process(
        self, item: RecurringItem, today: date, max_steps: int
    ) -> GenerationResult:
        """Run one pass over an already-loaded item.

        Args:
            item: The item as loaded from the store.
            today: Occurrences on or before this date are due.
            max_steps: Maximum number of occurrences to materialize.

        Returns:
            Counts of generated and failed occurrences and the final state.
        """
        log = self._logger.bind(item_id=str(item.id), kind=item.kind.value)

        if not item.is_active:
            log.debug("item_inactive", next_occurrence=item.next_occurrence.isoformat())
            return GenerationResult(
                generated=0,
                errors=0,
                final_next_occurrence=item.next_occurrence,
                is_active=False,
            )

        rule = item.rule
        current = item.next_occurrence
        last_generated = item.last_generated_date
        is_active = True
        generated = 0
        errors = 0
        settlement_currency: str | None = None

        # An edited end date can leave the pending occurrence past the end.
        if rule.is_past_end(current):
            is_active = False
            log.info(
                "item_exhausted",
                pending_occurrence=current.isoformat(),
                end_date=rule.end_date.isoformat() if rule.end_date else None,
            )

        while is_active and current <= today and generated < max_steps:
            try:
                if settlement_currency is None:
                    settlement_currency = await self._resolve_settlement_currency(item)
                conversion = await self._conversion_for(item, settlement_currency)
                await self._materializer.create(
                    item, current, settlement_currency, conversion
                )
            except Exception as e:
                errors += 1
                log.error(
                    "occurrence_failed",
                    occurrence=current.isoformat(),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                break

            generated += 1
            last_generated = current
            log.info("occurrence_generated", occurrence=current.isoformat())

            following = calculate_next_occurrence(rule, current)
            if following is None or rule.is_past_end(following):
                is_active = False
                log.info(
                    "item_exhausted",
                    last_occurrence=current.isoformat(),
                    end_date=rule.end_date.isoformat() if rule.end_date else None,
                )
                break
            current = following

        truncated = max_steps > 1 and is_active and errors == 0 and current <= today
        if truncated:
            log.warning(
                "catch_up_truncated",
                generated=generated,
                next_occurrence=current.isoformat(),
                max_steps=max_steps,
            )

        await self._store.save(
            item.id,
            ItemStateUpdate(
                next_occurrence=current,
                last_generated_date=last_generated,
                is_active=is_active,
                expected_version=item.version,
            ),
        )

        result = GenerationResult(
            generated=generated,
            errors=errors,
            final_next_occurrence=current,
            is_active=is_active,
            truncated=truncated,
        )
        log.info("pass_completed", **result.to_dict())
        return result

    async def _resolve_settlement_currency(self, item: RecurringItem) -> str:
        if self._accounts is None:
            return self._default_currency
        currency = await self._accounts.settlement_currency(item.account_id)
        return currency or self._default_currency

    async def _conversion_for(
        self, item: RecurringItem, settlement_currency: str
    ) -> Conversion | None:
        """Return the settlement-currency annotation, or None if not needed or unavailable."""
        if self._rates is None or item.currency.upper() == settlement_currency.upper():
            return None

        try:
            quote = await self._rates.rate(item.currency, settlement_currency)
        except Exception as e:
            self._logger.warning(
                "conversion_unavailable",
                item_id=str(item.id),
                from_currency=item.currency,
                to_currency=settlement_currency,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if quote is None:
            self._logger.info(
                "conversion_unavailable",
                item_id=str(item.id),
                from_currency=item.currency,
                to_currency=settlement_currency,
            )
            return None

        return Conversion(
            settlement_currency=settlement_currency,
            rate=quote.rate,
            converted_amount=convert_amount(item.amount, quote.rate),
            rate_date=quote.as_of,
        )
