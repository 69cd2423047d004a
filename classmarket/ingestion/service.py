"""
Real-price ingestion for instruments that track an external symbol.

One run fetches quotes sequentially through a rate limiter, converts them
to the domestic currency, and writes every successful update in a single
batch, falling back to per-instrument writes when the batch is rejected.
Individual failures are tallied and never stop the run.
"""

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from ..config.defaults import IngestionParams
from ..errors import (
    DataQualityError,
    MalformedDataError,
    PersistenceError,
    ProviderUnavailableError,
    RequestRejectedError,
)
from ..models.instrument import ExternalQuoteData, Instrument
from ..persistence import INSTRUMENTS
from ..persistence.base import Ledger, WriteOp
from ..utils.money import round_half_up
from ..utils.time import format_timestamp, parse_timestamp, utc_now
from .exchange_rate import ExchangeRateService
from .providers import ChartPriceProvider, Quote
from .rate_limiter import FixedDelayRateLimiter, RateLimiter
from .symbols import (
    DEFAULT_REAL_INSTRUMENTS,
    detect_product_type,
    is_domestic_symbol,
    resolve_symbol,
)

logger = structlog.get_logger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass
class IngestionResult:
    """Per-run tally of instrument outcomes."""
    updated: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class _Candidate:
    key: str
    name: str
    symbol: str
    price: int
    history: tuple[int, ...]
    last_updated: datetime


class IngestionService:
    """Fetches reference prices and writes them to real-data instruments."""

    def __init__(
        self,
        ledger: Ledger,
        exchange_rates: ExchangeRateService,
        price_provider: Optional[ChartPriceProvider] = None,
        rate_limiter: Optional[RateLimiter] = None,
        params: Optional[IngestionParams] = None,
    ):
        self.ledger = ledger
        self.params = params or IngestionParams()
        self.exchange_rates = exchange_rates
        self.price_provider = price_provider or ChartPriceProvider(self.params)
        self.rate_limiter = rate_limiter or FixedDelayRateLimiter(self.params.request_delay_seconds)

    def to_domestic_price(self, quote: Quote, usd_rate: int) -> int:
        """
        Convert a quote to whole domestic currency units.

        The quote's own currency wins; without one, domestic-exchange
        symbols are taken as domestic and everything else as USD.

        Raises:
            MalformedDataError: Currency is neither domestic nor USD, or the price rounds to zero
        """
        currency = (quote.currency or "").upper()
        if not currency:
            currency = self.params.domestic_currency if is_domestic_symbol(quote.symbol) else "USD"

        if currency == self.params.domestic_currency:
            price = round_half_up(quote.price)
        elif currency == "USD":
            price = round_half_up(quote.price * usd_rate)
        else:
            raise MalformedDataError(
                f"Unsupported quote currency {currency} for {quote.symbol}",
                raw_data=currency, expected_format=f"{self.params.domestic_currency}|USD",
            )

        if price <= 0:
            raise MalformedDataError(
                f"Converted price for {quote.symbol} is not positive",
                raw_data=str(quote.price), expected_format="positive price",
            )
        return price

    def _collect_candidates(self, result: IngestionResult) -> list[_Candidate]:
        candidates = []
        for key, doc in self.ledger.query(INSTRUMENTS, is_real_stock=True, is_listed=True):
            symbol = resolve_symbol(doc.get("name"), doc.get("real_stock_symbol"))
            if not symbol:
                logger.warning("No external symbol for instrument, skipping",
                               instrument_id=key, name=doc.get("name"))
                result.skipped += 1
                continue
            candidates.append(_Candidate(
                key=key,
                name=doc.get("name", key),
                symbol=symbol,
                price=doc.get("price", 0),
                history=tuple(doc.get("price_history") or ()),
                last_updated=parse_timestamp(doc.get("last_updated")) or _EPOCH,
            ))

        # Least recently refreshed first so overflow rotates between runs
        candidates.sort(key=lambda c: (c.last_updated, c.key))
        limit = self.params.max_instruments_per_run
        if len(candidates) > limit:
            logger.info("Instrument count exceeds per-run bound, deferring the rest",
                        total=len(candidates), limit=limit)
            result.skipped += len(candidates) - limit
            candidates = candidates[:limit]
        return candidates

    def update_real_prices(self, now: Optional[datetime] = None) -> IngestionResult:
        """
        Refresh every listed real-data instrument from the price provider.

        Args:
            now: Timestamp written to updated records

        Returns:
            IngestionResult with updated, failed and skipped counts
        """
        now = utc_now(now)
        result = IngestionResult()
        usd_rate = self.exchange_rates.load_exchange_rate()

        candidates = self._collect_candidates(result)
        if not candidates:
            logger.info("No real-data instruments to update", skipped=result.skipped)
            return result

        ops: list[WriteOp] = []
        keep = self.params.history_limit - 1
        for candidate in self.rate_limiter.iterate(candidates):
            try:
                quote = self.price_provider.fetch_quote(candidate.symbol)
                new_price = self.to_domestic_price(quote, usd_rate)
            except (ProviderUnavailableError, DataQualityError) as e:
                logger.warning("Price update failed", instrument_id=candidate.key,
                               symbol=candidate.symbol, error=str(e))
                result.failed += 1
                continue
            except Exception as e:
                logger.error("Unexpected error updating price", instrument_id=candidate.key,
                             symbol=candidate.symbol, error=str(e), exc_info=True)
                result.failed += 1
                continue

            history = list(candidate.history[-keep:]) if keep > 0 else []
            history.append(new_price)
            quote_data = ExternalQuoteData(
                last_price=quote.price,
                previous_close=quote.previous_close,
                change=quote.change,
                change_percent=quote.change_percent,
                currency=quote.currency or "",
                market_state=quote.market_state,
                last_updated=now,
            )
            ops.append(WriteOp.update(INSTRUMENTS, candidate.key, {
                "price": new_price,
                "price_history": history,
                "real_stock_data": quote_data.to_doc(),
                "last_updated": format_timestamp(now),
            }))
            logger.info("Price updated", instrument_id=candidate.key, name=candidate.name,
                        old_price=candidate.price, new_price=new_price,
                        market_state=quote.market_state.value)
            result.updated += 1

        if ops:
            self._commit_updates(ops, result)

        logger.info("Real price update finished", **result.to_dict())
        return result

    def _commit_updates(self, ops: list[WriteOp], result: IngestionResult) -> None:
        """
        Write the run's updates in one batch.

        If the batch is rejected (e.g. an instrument was deleted while quotes
        were being fetched), each update is retried on its own so only the
        instruments that cannot be written count as failed.
        """
        try:
            self.ledger.commit_batch(ops)
            return
        except PersistenceError as e:
            logger.warning("Price batch write failed, writing instruments one by one",
                           updates=len(ops), error=str(e))

        for op in ops:
            try:
                self.ledger.commit_batch([op])
            except PersistenceError as e:
                logger.warning("Price write failed", instrument_id=op.key, error=str(e))
                result.updated -= 1
                result.failed += 1

    def _build_instrument(self, name: str, symbol: str, quote: Quote, usd_rate: int,
                          sector: Optional[str], product_type: Optional[str],
                          now: datetime) -> Instrument:
        price = self.to_domestic_price(quote, usd_rate)
        return Instrument.create(
            id=uuid.uuid4().hex[:20],
            name=name,
            price=price,
            is_real_stock=True,
            real_stock_symbol=symbol,
            sector=sector or "TECH",
            product_type=detect_product_type(name, symbol, product_type),
            trading_volume=1000,
            real_stock_data=ExternalQuoteData(
                last_price=quote.price,
                previous_close=quote.previous_close,
                change=quote.change,
                change_percent=quote.change_percent,
                currency=quote.currency or "",
                market_state=quote.market_state,
                last_updated=now,
            ),
            last_updated=now,
        )

    def create_real_instruments(self, configs: Optional[list[dict[str, Any]]] = None,
                                now: Optional[datetime] = None) -> list[Instrument]:
        """
        Seed real-data instruments in one batch.

        Entries without a resolvable symbol or a fetchable price are skipped.

        Args:
            configs: Dicts with name and optional symbol, sector, product_type
            now: Creation timestamp

        Returns:
            The instruments written
        """
        now = utc_now(now)
        usd_rate = self.exchange_rates.load_exchange_rate()
        configs = DEFAULT_REAL_INSTRUMENTS if configs is None else configs

        resolved = []
        for config in configs:
            symbol = resolve_symbol(config.get("name"), config.get("symbol"))
            if not symbol:
                logger.warning("No external symbol for seed entry, skipping", name=config.get("name"))
                continue
            resolved.append((config, symbol))

        created = []
        for config, symbol in self.rate_limiter.iterate(resolved):
            try:
                quote = self.price_provider.fetch_quote(symbol)
                instrument = self._build_instrument(
                    config["name"], symbol, quote, usd_rate,
                    config.get("sector"), config.get("product_type"), now,
                )
            except (ProviderUnavailableError, DataQualityError) as e:
                logger.warning("Cannot price seed entry, skipping", name=config.get("name"),
                               symbol=symbol, error=str(e))
                continue
            created.append(instrument)

        if created:
            self.ledger.commit_batch([
                WriteOp.set(INSTRUMENTS, instrument.id, instrument.to_doc()) for instrument in created
            ])
        logger.info("Real-data instruments created", created=len(created))
        return created

    def add_real_instrument(self, name: str, symbol: Optional[str] = None,
                            sector: Optional[str] = None, product_type: Optional[str] = None,
                            now: Optional[datetime] = None) -> Instrument:
        """
        Add one real-data instrument.

        Raises:
            RequestRejectedError: Symbol unknown, or already tracked by another instrument
            ProviderUnavailableError: Price provider unavailable
            DataQualityError: Price provider returned no usable price
        """
        symbol = resolve_symbol(name, symbol)
        if not symbol:
            raise RequestRejectedError(
                f"No symbol known for '{name}'; pass one explicitly (e.g. AAPL, 005930.KS)",
                reason="unknown symbol",
            )

        if self.ledger.query(INSTRUMENTS, real_stock_symbol=symbol):
            raise RequestRejectedError(
                f"Instrument already registered: {name} ({symbol})",
                reason="duplicate symbol",
            )

        now = utc_now(now)
        usd_rate = self.exchange_rates.load_exchange_rate()
        quote = self.price_provider.fetch_quote(symbol)
        instrument = self._build_instrument(name, symbol, quote, usd_rate, sector, product_type, now)
        self.ledger.set(INSTRUMENTS, instrument.id, instrument.to_doc())

        logger.info("Real-data instrument added", instrument_id=instrument.id, name=name,
                    symbol=symbol, price=instrument.price,
                    product_type=instrument.product_type.value)
        return instrument
