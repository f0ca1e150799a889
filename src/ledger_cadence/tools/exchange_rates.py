"""Exchange rates from the Frankfurter API (ECB reference rates).

Rate lookups never raise: when the API is unreachable or does not know the
pair, the resolver falls back to a cached quote (even an expired one) or
returns None, and the transaction is recorded without a conversion.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import httpx
import structlog

from ledger_cadence.config import get_settings

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class RateQuote:
    """Rate to convert ``from_currency`` into ``to_currency`` (1 FROM = rate TO)."""

    rate: Decimal
    as_of: date
    from_currency: str
    to_currency: str


def convert_amount(amount: Decimal, rate: Decimal, quantize: Decimal = CENT) -> Decimal:
    """Convert an amount with the given rate, rounding half-up to cents."""
    return (amount * rate).quantize(quantize, rounding=ROUND_HALF_UP)


@dataclass
class _CacheEntry:
    quote: RateQuote
    fetched_at: float


class RateCache:
    """Injected in-memory cache of fetched quotes with a time-to-live."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds is None:
            ttl_seconds = get_settings().fx_cache_ttl_seconds
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], _CacheEntry] = {}

    def get(self, from_currency: str, to_currency: str) -> RateQuote | None:
        """Return a fresh quote, or None if missing or expired."""
        entry = self._entries.get((from_currency, to_currency))
        if entry is None or self._clock() - entry.fetched_at >= self._ttl:
            return None
        return entry.quote

    def get_stale(self, from_currency: str, to_currency: str) -> RateQuote | None:
        """Return the cached quote regardless of age."""
        entry = self._entries.get((from_currency, to_currency))
        return entry.quote if entry else None

    def put(self, quote: RateQuote) -> None:
        key = (quote.from_currency, quote.to_currency)
        self._entries[key] = _CacheEntry(quote=quote, fetched_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FrankfurterRateResolver:
    """Async currency rate resolver backed by the Frankfurter HTTP API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        cache: RateCache | None = None,
        today: Callable[[], date] = date.today,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.fx_api_url).rstrip("/")
        self._timeout = timeout or settings.fx_timeout
        self._cache = cache if cache is not None else RateCache()
        self._today = today
        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="rate_resolver")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FrankfurterRateResolver":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def cache(self) -> RateCache:
        return self._cache

    async def rate(self, from_currency: str, to_currency: str) -> RateQuote | None:
        """Return the latest quote for the pair, or None if unavailable."""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()

        if from_currency == to_currency:
            return RateQuote(
                rate=Decimal("1"),
                as_of=self._today(),
                from_currency=from_currency,
                to_currency=to_currency,
            )

        cached = self._cache.get(from_currency, to_currency)
        if cached is not None:
            return cached

        try:
            quote = await self._fetch(from_currency, to_currency)
        except (httpx.HTTPError, InvalidOperation, ValueError, KeyError, TypeError) as e:
            self._logger.warning(
                "rate_fetch_failed",
                from_currency=from_currency,
                to_currency=to_currency,
                error=str(e),
            )
            quote = None

        if quote is None:
            stale = self._cache.get_stale(from_currency, to_currency)
            if stale is not None:
                self._logger.info(
                    "rate_stale_fallback",
                    from_currency=from_currency,
                    to_currency=to_currency,
                    as_of=stale.as_of.isoformat(),
                )
            return stale

        self._cache.put(quote)
        return quote

    async def _fetch(self, from_currency: str, to_currency: str) -> RateQuote | None:
        client = await self._get_client()
        response = await client.get(
            "/latest", params={"from": from_currency, "to": to_currency}
        )

        if response.status_code >= 400:
            self._logger.warning(
                "rate_api_error",
                status_code=response.status_code,
                from_currency=from_currency,
                to_currency=to_currency,
            )
            return None

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Invalid rate response format")

        rates = data.get("rates")
        if not isinstance(rates, dict):
            raise ValueError("Invalid rate response format")

        raw_rate = rates.get(to_currency)
        if raw_rate is None:
            self._logger.warning(
                "rate_not_found", from_currency=from_currency, to_currency=to_currency
            )
            return None

        return RateQuote(
            rate=Decimal(str(raw_rate)),
            as_of=date.fromisoformat(data["date"]),
            from_currency=from_currency,
            to_currency=to_currency,
        )
