"""Configuration loader with layered parameter precedence."""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from ..errors import ConfigurationError
from .defaults import (
    EventParams,
    IngestionParams,
    MarketConfig,
    SchedulerParams,
    SettlementParams,
    SnapshotParams,
    get_default_config,
)
from .validation import ConfigValidator

_SECTIONS = {
    "settlement": SettlementParams,
    "ingestion": IngestionParams,
    "snapshot": SnapshotParams,
    "scheduler": SchedulerParams,
    "events": EventParams,
}


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with layered precedence."""

    config_dir: Path
    defaults: MarketConfig
    environ: Mapping[str, str]

    @classmethod
    def create(cls, config_dir: Optional[Path] = None,
               environ: Optional[Mapping[str, str]] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
            environ=os.environ if environ is None else environ,
        )

    def load_file_config(self) -> dict[str, Any]:
        """Load overrides from config/market.yaml, if present."""
        config_file = self.config_dir / "market.yaml"

        if not config_file.exists():
            return {}

        try:
            with open(config_file) as f:
                file_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Cannot parse {config_file}: {e}",
                context={"path": str(config_file)}
            ) from e

        if file_config is None:
            return {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(
                f"{config_file} must contain a mapping at the top level",
                context={"path": str(config_file)}
            )
        return file_config

    def load_env_config(self) -> dict[str, Any]:
        """Pick up secrets that only live in the environment."""
        token_env = self.defaults.scheduler.auth_token_env
        token = self.environ.get(token_env)
        if token:
            return {"scheduler": {"auth_token": token}}
        return {}

    def merge_config(self, overrides: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Merge configuration layers.

        Priority order:
        1. Environment secrets (highest priority)
        2. Explicit overrides
        3. config/market.yaml
        4. Built-in defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)

        config = self._deep_merge(config, self.load_file_config())

        if overrides:
            config = self._deep_merge(config, overrides)

        config = self._deep_merge(config, self.load_env_config())

        return config

    def load(self, overrides: Optional[dict[str, Any]] = None) -> MarketConfig:
        """
        Build a validated MarketConfig from all layers.

        Raises:
            ConfigurationError: If any section fails validation or has unknown keys
        """
        merged = self.merge_config(overrides)

        errors = ConfigValidator.validate_full_config(merged)
        if errors:
            summary = "; ".join(f"{e.field}: {e.message}" for e in errors)
            raise ConfigurationError(f"Invalid configuration: {summary}", errors=errors)

        sections = {}
        for name, params_cls in _SECTIONS.items():
            values = merged.get(name) or {}
            known = {f.name for f in fields(params_cls)}
            unknown = sorted(set(values) - known)
            if unknown:
                raise ConfigurationError(
                    f"Unknown keys in section '{name}': {', '.join(unknown)}",
                    context={"section": name, "keys": unknown}
                )
            sections[name] = params_cls(**values)

        return MarketConfig(**sections)

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
