"""Currency exchange services package."""

from ledger.services.currency.exchange_service import (
    OFFLINE_RATES_TO_CNY,
    SUPPORTED_CURRENCIES,
    CurrencyError,
    ExchangeRateService,
    offline_rate,
)

__all__ = [
    "OFFLINE_RATES_TO_CNY",
    "SUPPORTED_CURRENCIES",
    "CurrencyError",
    "ExchangeRateService",
    "offline_rate",
]
