"""
Currency Exchange Service

Looks up conversion multipliers with a two-level fallback:
1. A fresh cached rate (younger than the configured TTL, 1 hour by default)
2. A live rate from an ExchangeRate-API style endpoint
3. On network failure: the stale cached rate, if any
4. Otherwise: a built-in CNY-pivot table of approximate rates

DESIGN DECISION: Lookups never fail. A wrong-but-close rate is more useful
to a person converting a receipt than an error. Pairs missing from the
offline table convert at 1.0.

The cache map is guarded by an asyncio.Lock. The lock is not held across
the network call, so two concurrent lookups of the same stale pair may both
hit the API.
"""

import asyncio
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Union

import requests
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger.config.settings import CurrencySettings
from ledger.models.transaction import CENT


logger = structlog.get_logger(__name__)


# Approximate value of one unit in CNY.
OFFLINE_RATES_TO_CNY: dict[str, float] = {
    "USD": 7.20,
    "EUR": 7.85,
    "JPY": 0.048,
    "GBP": 9.10,
    "HKD": 0.92,
    "TWD": 0.23,
    "KRW": 0.0055,
    "SGD": 5.35,
    "AUD": 4.70,
    "CAD": 5.25,
    "CNY": 1.0,
}

SUPPORTED_CURRENCIES = tuple(OFFLINE_RATES_TO_CNY)


class CurrencyError(Exception):
    """A live rate could not be obtained."""
    pass


def offline_rate(from_currency: str, to_currency: str) -> float:
    """Convert through CNY using the built-in table; unknown codes give 1.0."""
    from_rate = OFFLINE_RATES_TO_CNY.get(from_currency.upper())
    to_rate = OFFLINE_RATES_TO_CNY.get(to_currency.upper())
    if from_rate is None or to_rate is None:
        return 1.0
    return from_rate / to_rate


class ExchangeRateService:
    """
    Cached exchange rate lookups.

    Usage:
        service = ExchangeRateService(settings.currency)
        rate = await service.get_rate("USD", "CNY")
        amount = await service.convert(Decimal("12.50"), "USD", "CNY")
    """

    def __init__(
        self,
        settings: CurrencySettings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._clock = clock
        self._cache: dict[str, tuple[float, float]] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _cache_key(from_currency: str, to_currency: str) -> str:
        return f"{from_currency}_{to_currency}"

    def _request_rate(self, from_currency: str, to_currency: str) -> float:
        """One HTTP attempt. Blocking; run in a worker thread."""
        if not self._settings.api_key:
            raise CurrencyError("No exchange rate API key configured")

        url = f"{self._settings.base_url}/{self._settings.api_key}/latest/{from_currency}"
        response = requests.get(url, timeout=self._settings.request_timeout_seconds)
        response.raise_for_status()
        payload = response.json()

        if payload.get("result") != "success":
            raise CurrencyError(f"Rate API returned {payload.get('result')!r}")
        rate = (payload.get("conversion_rates") or {}).get(to_currency)
        if rate is None:
            raise CurrencyError(f"Currency not found in rate table: {to_currency}")
        rate = float(rate)
        if rate <= 0:
            raise CurrencyError(f"Rate API returned a non-positive rate for {to_currency}")
        return rate

    @retry(
        retry=retry_if_exception_type(requests.RequestException),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _fetch_rate(self, from_currency: str, to_currency: str) -> float:
        return self._request_rate(from_currency, to_currency)

    async def get_rate(self, from_currency: str, to_currency: str) -> float:
        """
        Multiplier converting one unit of from_currency into to_currency.

        Always positive; identical codes return exactly 1.0.
        """
        from_currency = from_currency.strip().upper()
        to_currency = to_currency.strip().upper()
        if from_currency == to_currency:
            return 1.0

        key = self._cache_key(from_currency, to_currency)
        async with self._lock:
            cached = self._cache.get(key)
        if cached is not None and self._clock() - cached[1] < self._settings.cache_ttl_seconds:
            return cached[0]

        try:
            rate = await asyncio.to_thread(self._fetch_rate, from_currency, to_currency)
        except (requests.RequestException, CurrencyError, ValueError) as e:
            if cached is not None:
                logger.warning("currency_stale_rate_used", pair=key, error=str(e))
                return cached[0]
            logger.warning("currency_offline_rate_used", pair=key, error=str(e))
            return offline_rate(from_currency, to_currency)

        async with self._lock:
            self._cache[key] = (rate, self._clock())
        return rate

    async def convert(
        self,
        amount: Union[Decimal, float, int],
        from_currency: str,
        to_currency: str,
    ) -> Decimal:
        """Convert an amount, rounded to cents."""
        rate = await self.get_rate(from_currency, to_currency)
        converted = Decimal(str(amount)) * Decimal(str(rate))
        return converted.quantize(CENT, rounding=ROUND_HALF_UP)

    async def clear_cache(self) -> None:
        async with self._lock:
            self._cache.clear()

    def cached_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Cached rate regardless of age, for diagnostics."""
        entry = self._cache.get(self._cache_key(from_currency.upper(), to_currency.upper()))
        return entry[0] if entry else None
