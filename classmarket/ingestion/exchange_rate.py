"""USD exchange-rate maintenance with last-known-value fallback."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog

from ..config.defaults import IngestionParams
from ..errors import DataQualityError, PersistenceError, ProviderUnavailableError
from ..models.market import ExchangeRate
from ..persistence import SETTINGS
from ..persistence.base import Ledger
from ..utils.money import round_half_up
from ..utils.time import utc_now
from .providers import ExchangeRateProvider

logger = structlog.get_logger(__name__)

EXCHANGE_RATE_KEY = "exchange_rate"


@dataclass(frozen=True)
class ExchangeRateUpdate:
    rate: int
    updated: bool

    def to_dict(self) -> dict[str, Any]:
        return {"rate": self.rate, "updated": self.updated}


class ExchangeRateService:
    """
    Keeps the domestic-per-USD rate.

    The ledger document is authoritative across restarts. The in-memory
    mirror belongs to this instance only and starts at the configured
    default; it is replaced only by a positive fetched or stored rate.
    """

    def __init__(self, ledger: Ledger, provider: Optional[ExchangeRateProvider] = None,
                 params: Optional[IngestionParams] = None):
        self.ledger = ledger
        self.params = params or IngestionParams()
        self.provider = provider or ExchangeRateProvider(self.params)
        self._current = self.params.default_usd_rate

    @property
    def current_rate(self) -> int:
        return self._current

    def _fetch(self) -> Optional[int]:
        try:
            rates = self.provider.fetch_rates()
        except (ProviderUnavailableError, DataQualityError) as e:
            logger.warning("Exchange-rate fetch failed, keeping last known rate",
                           rate=self._current, error=str(e))
            return None
        except Exception as e:
            logger.error("Unexpected exchange-rate fetch error, keeping last known rate",
                         rate=self._current, error=str(e), exc_info=True)
            return None

        raw = rates.get(self.params.domestic_currency) if isinstance(rates, dict) else None
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw <= 0:
            logger.warning("Exchange-rate table lacks a usable domestic rate",
                           currency=self.params.domestic_currency, value=raw)
            return None

        rate = round_half_up(raw)
        if rate <= 0:
            return None
        return rate

    def fetch_exchange_rate(self) -> int:
        """Fetch the current rate; on any failure return the last known one."""
        rate = self._fetch()
        if rate is not None:
            self._current = rate
        return self._current

    def update_exchange_rate(self, now: Optional[datetime] = None) -> ExchangeRateUpdate:
        """
        Fetch and persist the rate.

        Nothing is written when the fetch fails, so the stored value is
        never replaced by a fallback.
        """
        rate = self._fetch()
        if rate is None:
            return ExchangeRateUpdate(rate=self._current, updated=False)

        previous = self._current
        self._current = rate
        record = ExchangeRate(rate=rate, last_updated=utc_now(now), source=self.provider.name)
        try:
            self.ledger.set(SETTINGS, EXCHANGE_RATE_KEY, record.to_doc())
        except PersistenceError as e:
            logger.error("Failed to store exchange rate", rate=rate, error=str(e))
            return ExchangeRateUpdate(rate=rate, updated=False)

        logger.info("Exchange rate updated", previous=previous, rate=rate)
        return ExchangeRateUpdate(rate=rate, updated=True)

    def load_exchange_rate(self) -> int:
        """Refresh the mirror from the ledger; failures keep the mirror as is."""
        try:
            doc = self.ledger.get(SETTINGS, EXCHANGE_RATE_KEY)
        except PersistenceError as e:
            logger.warning("Failed to load stored exchange rate, using last known",
                           rate=self._current, error=str(e))
            return self._current

        if doc:
            try:
                self._current = ExchangeRate.from_doc(doc).rate
            except (KeyError, TypeError, ValueError):
                logger.warning("Stored exchange rate is invalid, ignoring", doc=doc)
        return self._current
