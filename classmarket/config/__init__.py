"""Configuration defaults, loading and validation."""

from .defaults import (
    EventParams,
    IngestionParams,
    MarketConfig,
    SchedulerParams,
    SettlementParams,
    SnapshotParams,
    get_default_config,
)
from .loader import ConfigLoader
from .validation import ConfigValidator, ValidationError

__all__ = [
    "EventParams",
    "IngestionParams",
    "MarketConfig",
    "SchedulerParams",
    "SettlementParams",
    "SnapshotParams",
    "get_default_config",
    "ConfigLoader",
    "ConfigValidator",
    "ValidationError",
]
