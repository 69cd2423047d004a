"""External price and exchange-rate ingestion."""

from .exchange_rate import ExchangeRateService, ExchangeRateUpdate
from .providers import (
    ChartPriceProvider,
    ExchangeRateProvider,
    Quote,
    determine_market_session,
    parse_chart_response,
)
from .rate_limiter import FixedDelayRateLimiter, RateLimiter
from .service import IngestionResult, IngestionService
from .symbols import available_symbols, detect_product_type, resolve_symbol

__all__ = [
    "ExchangeRateService",
    "ExchangeRateUpdate",
    "ChartPriceProvider",
    "ExchangeRateProvider",
    "Quote",
    "determine_market_session",
    "parse_chart_response",
    "FixedDelayRateLimiter",
    "RateLimiter",
    "IngestionResult",
    "IngestionService",
    "available_symbols",
    "detect_product_type",
    "resolve_symbol",
]
