"""
Data quality error classifications for external market data.

These exceptions describe problems with payloads returned by the price and
exchange-rate providers. They are always handled locally: the affected
instrument is counted as failed and the last known value is kept.
"""

from typing import Optional, Dict, Any


class DataQualityError(Exception):
    """Base class for data quality issues that can be handled gracefully."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class MissingDataError(DataQualityError):
    """Required data is absent from a provider response."""

    def __init__(self, message: str, data_type: Optional[str] = None,
                 symbol: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.data_type = data_type
        self.symbol = symbol


class MalformedDataError(DataQualityError):
    """Data exists but cannot be interpreted."""

    def __init__(self, message: str, raw_data: Optional[str] = None,
                 expected_format: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.raw_data = raw_data
        self.expected_format = expected_format
