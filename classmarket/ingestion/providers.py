"""HTTP clients for the external price and exchange-rate providers."""

import json
import time
from dataclasses import dataclass
from http.client import HTTPException
from typing import Any, Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote as url_quote
from urllib.request import Request, urlopen

import structlog

from ..config.defaults import IngestionParams
from ..errors import MalformedDataError, MissingDataError, ProviderUnavailableError
from ..models.instrument import MarketSession

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Quote:
    """Latest reference quote for one symbol, in the symbol's own currency."""
    symbol: str
    price: float
    previous_close: Optional[float]
    change: float
    change_percent: float
    currency: Optional[str]
    market_state: MarketSession


def _fetch_json(url: str, provider: str, timeout: float, user_agent: str) -> Any:
    """
    GET a JSON document.

    Raises:
        ProviderUnavailableError: Non-2xx status, timeout, network or protocol failure
        MalformedDataError: Body is not UTF-8 encoded JSON
    """
    req = Request(url, headers={"User-Agent": user_agent, "Accept": "application/json"})

    try:
        with urlopen(req, timeout=timeout) as response:
            status = response.getcode()
            raw = response.read()
    except HTTPError as e:
        raise ProviderUnavailableError(
            f"{provider} answered HTTP {e.code}: {e.reason}",
            provider=provider, status_code=e.code,
        ) from e
    except (OSError, URLError, HTTPException) as e:
        raise ProviderUnavailableError(
            f"{provider} unreachable: {e}", provider=provider
        ) from e

    if not 200 <= status < 300:
        raise ProviderUnavailableError(
            f"{provider} answered HTTP {status}", provider=provider, status_code=status
        )

    try:
        return json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise MalformedDataError(
            f"{provider} returned a body that is not UTF-8: {e}",
            raw_data=repr(raw[:50]), expected_format="utf-8 json",
        ) from e
    except json.JSONDecodeError as e:
        raise MalformedDataError(
            f"{provider} returned invalid JSON: {e}",
            raw_data=raw[:200].decode("utf-8", errors="replace"), expected_format="json",
        ) from e


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    return float(value)


def determine_market_session(meta: dict[str, Any], now_epoch: float) -> MarketSession:
    """
    Trading session of a quote.

    The provider's own `marketState` wins when it is one of the known
    sessions. Otherwise `now_epoch` is checked against the regular, pre and
    post boundaries of `currentTradingPeriod`, in that order. Incomplete
    data means CLOSED.
    """
    upstream = MarketSession.parse(meta.get("marketState"))
    if upstream is not None:
        return upstream

    periods = meta.get("currentTradingPeriod")
    if not isinstance(periods, dict):
        return MarketSession.CLOSED

    for name, session in (("regular", MarketSession.REGULAR),
                          ("pre", MarketSession.PRE),
                          ("post", MarketSession.POST)):
        period = periods.get(name) or {}
        start = period.get("start") or 0
        end = period.get("end") or 0
        if start <= now_epoch < end:
            return session

    return MarketSession.CLOSED


def parse_chart_response(payload: Any, symbol: str, now_epoch: float) -> Quote:
    """
    Extract a Quote from a chart API response.

    Raises:
        MissingDataError: No result, or no positive regular market price
        MalformedDataError: Payload does not have the chart structure
    """
    try:
        results = payload["chart"]["result"]
    except (KeyError, TypeError) as e:
        raise MalformedDataError(
            f"Unexpected chart payload for {symbol}",
            raw_data=str(payload)[:200], expected_format="chart.result[]",
        ) from e

    if not results:
        raise MissingDataError(f"No chart data for {symbol}", data_type="chart", symbol=symbol)

    meta = results[0].get("meta") if isinstance(results[0], dict) else None
    if not isinstance(meta, dict):
        raise MalformedDataError(
            f"Chart result for {symbol} has no meta block",
            raw_data=str(results[0])[:200], expected_format="chart.result[0].meta",
        )

    price = _positive_number(meta.get("regularMarketPrice"))
    if price is None:
        raise MissingDataError(
            f"No market price for {symbol}", data_type="regularMarketPrice", symbol=symbol
        )

    previous_close = (_positive_number(meta.get("chartPreviousClose"))
                      or _positive_number(meta.get("previousClose")))
    change = price - previous_close if previous_close else 0.0
    change_percent = change / previous_close * 100 if previous_close else 0.0

    return Quote(
        symbol=symbol,
        price=price,
        previous_close=previous_close,
        change=change,
        change_percent=change_percent,
        currency=meta.get("currency") or None,
        market_state=determine_market_session(meta, now_epoch),
    )


class ChartPriceProvider:
    """Per-symbol quote client for the public chart API."""

    name = "chart_price_provider"

    def __init__(self, params: Optional[IngestionParams] = None,
                 clock: Callable[[], float] = time.time):
        self.params = params or IngestionParams()
        self._clock = clock

    def fetch_quote(self, symbol: str) -> Quote:
        """
        Fetch the latest quote for `symbol`.

        Raises:
            ProviderUnavailableError: HTTP or network failure
            DataQualityError: Response cannot be turned into a quote
        """
        url = self.params.price_provider_url.format(symbol=url_quote(symbol, safe=""))
        payload = _fetch_json(url, self.name, self.params.request_timeout_seconds,
                              self.params.user_agent)
        quote = parse_chart_response(payload, symbol, self._clock())

        logger.debug(
            "Quote fetched",
            symbol=symbol,
            price=quote.price,
            currency=quote.currency,
            market_state=quote.market_state.value,
        )
        return quote


class ExchangeRateProvider:
    """Client for a USD-based exchange-rate table."""

    name = "exchange_rate_provider"

    def __init__(self, params: Optional[IngestionParams] = None):
        self.params = params or IngestionParams()

    def fetch_rates(self) -> dict[str, float]:
        """
        Fetch the rate table (units of each currency per USD).

        Raises:
            ProviderUnavailableError: HTTP or network failure
            MalformedDataError: Response has no `rates` mapping
        """
        payload = _fetch_json(self.params.exchange_rate_url, self.name,
                              self.params.request_timeout_seconds, self.params.user_agent)
        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict):
            raise MalformedDataError(
                "Exchange-rate payload has no rates table",
                raw_data=str(payload)[:200], expected_format="{rates: {...}}",
            )
        return rates
