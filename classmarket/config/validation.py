"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_settlement_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate trade settlement parameters."""
        errors = []

        for name in ("commission_rate", "stock_tax_rate", "bond_tax_rate"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value < 0 or value >= 1:
                    errors.append(ValidationError(
                        field=f"settlement.{name}",
                        message="Must be a number in [0, 1)",
                        value=value
                    ))

        if "holding_lock_seconds" in params:
            value = params["holding_lock_seconds"]
            if not _is_int(value) or value < 0:
                errors.append(ValidationError(
                    field="settlement.holding_lock_seconds",
                    message="Must be a non-negative integer",
                    value=value
                ))

        if "max_trade_quantity" in params:
            value = params["max_trade_quantity"]
            if not _is_int(value) or value <= 0:
                errors.append(ValidationError(
                    field="settlement.max_trade_quantity",
                    message="Must be a positive integer",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_ingestion_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate ingestion parameters."""
        errors = []

        for name in ("request_delay_seconds", "request_timeout_seconds"):
            if name in params:
                value = params[name]
                if not _is_number(value) or value < 0:
                    errors.append(ValidationError(
                        field=f"ingestion.{name}",
                        message="Must be a non-negative number",
                        value=value
                    ))

        for name in ("history_limit", "max_instruments_per_run", "default_usd_rate"):
            if name in params:
                value = params[name]
                if not _is_int(value) or value <= 0:
                    errors.append(ValidationError(
                        field=f"ingestion.{name}",
                        message="Must be a positive integer",
                        value=value
                    ))

        for name in ("price_provider_url", "exchange_rate_url"):
            if name in params:
                value = params[name]
                if not isinstance(value, str) or not value.startswith(("http://", "https://")):
                    errors.append(ValidationError(
                        field=f"ingestion.{name}",
                        message="Must be an http(s) URL",
                        value=value
                    ))

        if "price_provider_url" in params:
            value = params["price_provider_url"]
            if isinstance(value, str) and "{symbol}" not in value:
                errors.append(ValidationError(
                    field="ingestion.price_provider_url",
                    message="Must contain a {symbol} placeholder",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_snapshot_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate snapshot parameters."""
        errors = []

        if "history_limit" in params:
            value = params["history_limit"]
            if not _is_int(value) or value <= 0:
                errors.append(ValidationError(
                    field="snapshot.history_limit",
                    message="Must be a positive integer",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_scheduler_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate orchestrator parameters."""
        errors = []

        if "timezone_offset_hours" in params:
            value = params["timezone_offset_hours"]
            if not _is_int(value) or not -12 <= value <= 14:
                errors.append(ValidationError(
                    field="scheduler.timezone_offset_hours",
                    message="Must be an integer between -12 and 14",
                    value=value
                ))

        if "vacation_cache_ttl_seconds" in params:
            value = params["vacation_cache_ttl_seconds"]
            if not _is_number(value) or value < 0:
                errors.append(ValidationError(
                    field="scheduler.vacation_cache_ttl_seconds",
                    message="Must be a non-negative number",
                    value=value
                ))

        if "active_user_window_minutes" in params:
            value = params["active_user_window_minutes"]
            if not _is_int(value) or value < 0:
                errors.append(ValidationError(
                    field="scheduler.active_user_window_minutes",
                    message="Must be a non-negative integer",
                    value=value
                ))

        if params.get("auth_token") is not None:
            value = params["auth_token"]
            if not isinstance(value, str) or not value:
                errors.append(ValidationError(
                    field="scheduler.auth_token",
                    message="Must be a non-empty string when set",
                    value="<redacted>"
                ))

        if "port" in params:
            value = params["port"]
            if not _is_int(value) or not 0 <= value <= 65535:
                errors.append(ValidationError(
                    field="scheduler.port",
                    message="Must be a valid TCP port",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_event_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate economic event parameters."""
        errors = []

        if "default_trigger_hour" in params:
            value = params["default_trigger_hour"]
            if not _is_int(value) or not 0 <= value <= 23:
                errors.append(ValidationError(
                    field="events.default_trigger_hour",
                    message="Must be an integer hour between 0 and 23",
                    value=value
                ))

        if "trigger_window_minutes" in params:
            value = params["trigger_window_minutes"]
            if not _is_int(value) or not 0 <= value < 60:
                errors.append(ValidationError(
                    field="events.trigger_window_minutes",
                    message="Must be an integer between 0 and 59",
                    value=value
                ))

        for name in ("batch_size", "event_duration_hours", "tax_override_hours"):
            if name in params:
                value = params[name]
                if not _is_int(value) or value <= 0:
                    errors.append(ValidationError(
                        field=f"events.{name}",
                        message="Must be a positive integer",
                        value=value
                    ))

        if _is_int(params.get("batch_size")) and params["batch_size"] > 500:
            errors.append(ValidationError(
                field="events.batch_size",
                message="Must not exceed 500 writes per batch",
                value=params["batch_size"]
            ))

        return errors

    @classmethod
    def validate_full_config(cls, config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "settlement" in config:
            errors.extend(cls.validate_settlement_params(config["settlement"]))

        if "ingestion" in config:
            errors.extend(cls.validate_ingestion_params(config["ingestion"]))

        if "snapshot" in config:
            errors.extend(cls.validate_snapshot_params(config["snapshot"]))

        if "scheduler" in config:
            errors.extend(cls.validate_scheduler_params(config["scheduler"]))

        if "events" in config:
            errors.extend(cls.validate_event_params(config["events"]))

        return errors
