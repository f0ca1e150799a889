"""Pytest configuration and fixtures."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest

from ledger_cadence.config.settings import get_settings
from ledger_cadence.generator import MaterializationError
from ledger_cadence.models import Conversion, ItemKind, RecurringItem
from ledger_cadence.recurrence import Frequency
from ledger_cadence.tools.exchange_rates import RateQuote
from ledger_cadence.tools.store import InMemoryRecurringItemStore

ACCOUNT_ID = UUID("22222222-2222-2222-2222-222222222222")
USER_ID = UUID("11111111-1111-1111-1111-111111111111")


@dataclass
class FakeLedger:
    """Transaction materializer that records what it was asked to create."""

    created: list[dict[str, Any]] = field(default_factory=list)
    fail_on: set[date] = field(default_factory=set)
    calls: int = 0

    async def create(
        self,
        item: RecurringItem,
        occurrence_date: date,
        settlement_currency: str,
        conversion: Conversion | None,
    ) -> dict[str, Any]:
        self.calls += 1
        if occurrence_date in self.fail_on:
            raise MaterializationError(
                "ledger unavailable", item_id=item.id, occurrence_date=occurrence_date
            )
        row = {
            "id": str(uuid4()),
            "recurring_id": item.id,
            "kind": item.kind,
            "date": occurrence_date,
            "amount": item.amount,
            "currency": item.currency,
            "settlement_currency": settlement_currency,
            "conversion": conversion,
        }
        self.created.append(row)
        return row

    @property
    def dates(self) -> list[date]:
        return [row["date"] for row in self.created]


@dataclass
class FakeRates:
    """Currency rate resolver with fixed quotes."""

    quotes: dict[tuple[str, str], Decimal] = field(default_factory=dict)
    as_of: date = date(2024, 1, 1)
    calls: int = 0

    async def rate(self, from_currency: str, to_currency: str) -> RateQuote | None:
        self.calls += 1
        rate = self.quotes.get((from_currency, to_currency))
        if rate is None:
            return None
        return RateQuote(
            rate=rate,
            as_of=self.as_of,
            from_currency=from_currency,
            to_currency=to_currency,
        )


@dataclass
class FakeAccounts:
    """Settlement currency lookup keyed by account id."""

    currencies: dict[UUID, str] = field(default_factory=dict)

    async def settlement_currency(self, account_id: UUID) -> str | None:
        return self.currencies.get(account_id)


def make_item(**overrides: Any) -> RecurringItem:
    """Build a recurring expense with sensible defaults."""
    values: dict[str, Any] = {
        "id": uuid4(),
        "kind": ItemKind.EXPENSE,
        "account_id": ACCOUNT_ID,
        "user_id": USER_ID,
        "amount": Decimal("50.00"),
        "currency": "EUR",
        "summary": "Gym membership",
        "frequency": Frequency.MONTHLY,
        "start_date": date(2024, 1, 1),
        "next_occurrence": date(2024, 1, 1),
    }
    values.update(overrides)
    return RecurringItem(**values)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Reload settings for every test so env overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def rates():
    return FakeRates(quotes={("USD", "EUR"): Decimal("0.9150")})


@pytest.fixture
def accounts():
    return FakeAccounts(currencies={ACCOUNT_ID: "EUR"})


@pytest.fixture
def store():
    return InMemoryRecurringItemStore()


@pytest.fixture
def item_factory():
    return make_item
