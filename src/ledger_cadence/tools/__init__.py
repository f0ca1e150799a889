"""Collaborator adapters: exchange rates and the recurring-item store."""

from ledger_cadence.tools.exchange_rates import (
    FrankfurterRateResolver,
    RateCache,
    RateQuote,
    convert_amount,
)
from ledger_cadence.tools.store import (
    ConcurrentUpdateError,
    InMemoryRecurringItemStore,
    ItemNotFoundError,
    StoreError,
)

__all__ = [
    "FrankfurterRateResolver",
    "RateCache",
    "RateQuote",
    "convert_amount",
    "InMemoryRecurringItemStore",
    "StoreError",
    "ItemNotFoundError",
    "ConcurrentUpdateError",
]
