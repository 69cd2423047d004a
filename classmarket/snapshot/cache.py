"""
Materialized market snapshot.

All listed instruments are projected into one document so read-heavy
clients fetch the whole market with a single read. The document is derived
data: it can be deleted and rebuilt from the instrument records at any time.
"""

from datetime import datetime
from typing import Any, Optional

import structlog

from ..config.defaults import SnapshotParams
from ..models.market import MarketSnapshot
from ..persistence import INSTRUMENTS, SETTINGS
from ..persistence.base import Ledger
from ..utils.time import elapsed_seconds, utc_now

logger = structlog.get_logger(__name__)

SNAPSHOT_KEY = "market_snapshot"

PROJECTED_FIELDS = (
    "name",
    "price",
    "initial_price",
    "min_listing_price",
    "is_listed",
    "is_manual",
    "is_real_stock",
    "product_type",
    "sector",
    "volatility",
    "holder_count",
    "trading_volume",
    "buy_volume",
    "sell_volume",
    "recent_buy_volume",
    "recent_sell_volume",
)


class SnapshotCache:
    """Builds and serves the `settings/market_snapshot` document."""

    def __init__(self, ledger: Ledger, params: Optional[SnapshotParams] = None):
        self.ledger = ledger
        self.params = params or SnapshotParams()

    def project(self, key: str, doc: dict[str, Any]) -> dict[str, Any]:
        """Capped projection of one instrument document."""
        entry: dict[str, Any] = {"id": key}
        for name in PROJECTED_FIELDS:
            entry[name] = doc.get(name)
        entry["price_history"] = list(doc.get("price_history") or [])[-self.params.history_limit:]
        entry["real_stock_data"] = doc.get("real_stock_data") or None
        entry["last_updated"] = doc.get("last_updated")
        return entry

    def refresh(self, now: Optional[datetime] = None) -> MarketSnapshot:
        """Rebuild the snapshot from every listed instrument and store it."""
        stocks = [self.project(key, doc) for key, doc in self.ledger.query(INSTRUMENTS, is_listed=True)]
        snapshot = MarketSnapshot(stocks=stocks, updated_at=utc_now(now))
        self.ledger.set(SETTINGS, SNAPSHOT_KEY, snapshot.to_doc())

        logger.info("Market snapshot refreshed", count=snapshot.count)
        return snapshot

    def get(self, max_age_seconds: Optional[float] = None,
            now: Optional[datetime] = None) -> MarketSnapshot:
        """
        Read the snapshot, rebuilding it only when needed.

        Args:
            max_age_seconds: Also rebuild when the stored snapshot is older than this
            now: Reference time for the age check and for a rebuild

        Returns:
            The stored or freshly rebuilt snapshot
        """
        doc = self.ledger.get(SETTINGS, SNAPSHOT_KEY)
        if doc is None:
            logger.info("Market snapshot missing, rebuilding")
            return self.refresh(now)

        snapshot = MarketSnapshot.from_doc(doc)
        if max_age_seconds is not None:
            if snapshot.updated_at is None or elapsed_seconds(snapshot.updated_at, now) > max_age_seconds:
                logger.info("Market snapshot stale, rebuilding", max_age_seconds=max_age_seconds)
                return self.refresh(now)
        return snapshot
