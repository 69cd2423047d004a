"""Default configuration parameters for the market engine."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SettlementParams:
    """Trade settlement parameters."""
    commission_rate: float = 0.003                 # Charged on buy and sell notional
    stock_tax_rate: float = 0.22                   # Profit tax for stocks and ETFs
    bond_tax_rate: float = 0.154                   # Profit tax for bonds
    holding_lock_seconds: int = 3600               # Minimum hold after a purchase
    max_trade_quantity: int = 10000                # Upper bound for a single order


@dataclass(frozen=True)
class IngestionParams:
    """External price and exchange-rate ingestion parameters."""
    request_delay_seconds: float = 1.5             # Gap between successive symbol fetches
    request_timeout_seconds: float = 10.0
    history_limit: int = 20                        # Price samples kept per instrument
    max_instruments_per_run: int = 40              # Bound so a slow run cannot starve the next
    domestic_currency: str = "KRW"
    default_usd_rate: int = 1350                   # Used until a rate has ever been stored
    price_provider_url: str = (
        "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}?interval=1d&range=1d"
    )
    exchange_rate_url: str = "https://api.exchangerate-api.com/v4/latest/USD"
    user_agent: str = "Mozilla/5.0 (compatible; classmarket/0.1)"


@dataclass(frozen=True)
class SnapshotParams:
    """Materialized market snapshot parameters."""
    history_limit: int = 20


@dataclass(frozen=True)
class SchedulerParams:
    """Orchestrator and trigger endpoint parameters."""
    timezone_offset_hours: int = 9                 # Fixed reporting timezone (UTC+9)
    vacation_cache_ttl_seconds: int = 1800
    active_user_window_minutes: int = 30           # Price refresh skips when nobody traded within; 0 disables
    auth_token: Optional[str] = None
    auth_token_env: str = "SCHEDULER_AUTH_TOKEN"
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(frozen=True)
class EventParams:
    """Economic event injection parameters."""
    default_trigger_hour: int = 13
    trigger_window_minutes: int = 29               # Tolerance around the trigger hour
    batch_size: int = 400                          # Writes per ledger batch
    event_duration_hours: int = 24                 # How long an active event is displayed
    tax_override_hours: int = 24                   # Lifetime of a stock tax multiplier override


@dataclass(frozen=True)
class MarketConfig:
    """Complete default configuration."""
    settlement: SettlementParams
    ingestion: IngestionParams
    snapshot: SnapshotParams
    scheduler: SchedulerParams
    events: EventParams


def get_default_config() -> MarketConfig:
    """Get the default configuration instance."""
    return MarketConfig(
        settlement=SettlementParams(),
        ingestion=IngestionParams(),
        snapshot=SnapshotParams(),
        scheduler=SchedulerParams(),
        events=EventParams(),
    )
