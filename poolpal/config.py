"""
Config system - Layered typed configuration for the ledger.

Merge order (later overrides earlier):
1. LedgerConfig defaults, then caller defaults
2. .env file values (POOLPAL_* keys)
3. Environment variables (POOLPAL_* prefix)
4. Manual overrides
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import dotenv_values

from .faults import ConfigError

STORE_BACKENDS = ("memory", "sqlite")


@dataclass
class LedgerConfig:
    """Typed ledger configuration."""
    store_backend: str = "memory"
    database_path: str = "poolpal.db"
    cache_enabled: bool = True
    cache_ttl: float = 120
    cache_max_size: int = 1000
    log_level: str = "WARNING"

    def validate(self) -> "LedgerConfig":
        if self.store_backend not in STORE_BACKENDS:
            raise ConfigError(
                "store_backend",
                f"unknown backend '{self.store_backend}' (expected one of {', '.join(STORE_BACKENDS)})",
            )
        if self.cache_ttl <= 0:
            raise ConfigError("cache_ttl", "must be greater than zero")
        if self.cache_max_size <= 0:
            raise ConfigError("cache_max_size", "must be greater than zero")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError("log_level", f"unknown level '{self.log_level}'")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > defaults
    """

    def __init__(self, env_prefix: str = "POOLPAL_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        env_file: Optional[str] = None,
        env_prefix: str = "POOLPAL_",
        overrides: Optional[Mapping[str, Any]] = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ) -> LedgerConfig:
        """
        Build a validated LedgerConfig.

        Args:
            env_file: Path to .env file (missing files are ignored)
            env_prefix: Prefix for environment variables
            overrides: Manual overrides (highest precedence); None values are skipped
            defaults: Caller defaults layered over the LedgerConfig defaults

        Returns:
            Validated LedgerConfig
        """
        loader = cls(env_prefix=env_prefix)

        if defaults:
            loader.config_data.update(defaults)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_mapping(os.environ)

        if overrides:
            loader.config_data.update({k: v for k, v in overrides.items() if v is not None})

        return loader.build()

    def build(self) -> LedgerConfig:
        kwargs = {}
        for field_info in fields(LedgerConfig):
            if field_info.name in self.config_data:
                kwargs[field_info.name] = self._coerce(field_info.name, field_info.type,
                                                       self.config_data[field_info.name])
        return LedgerConfig(**kwargs).validate()

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        if not Path(path).exists():
            return
        self._load_mapping(dotenv_values(path))

    def _load_mapping(self, values: Mapping[str, Optional[str]]):
        for key, value in values.items():
            if key.startswith(self.env_prefix) and value is not None:
                self.config_data[key[len(self.env_prefix):].lower()] = value

    def _coerce(self, name: str, field_type: Any, value: Any) -> Any:
        """Coerce a raw value to the dataclass field type."""
        type_name = field_type if isinstance(field_type, str) else field_type.__name__

        if type_name == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in ("true", "yes", "1", "on"):
                return True
            if text in ("false", "no", "0", "off"):
                return False
            raise ConfigError(name, f"expected a boolean, got '{value}'")

        if type_name in ("int", "float"):
            if isinstance(value, bool):
                raise ConfigError(name, f"expected a number, got '{value}'")
            try:
                return int(value) if type_name == "int" else float(value)
            except (TypeError, ValueError):
                raise ConfigError(name, f"expected a number, got '{value}'") from None

        return str(value).strip()


def configure_logging(level: str = "WARNING") -> None:
    """Configure root logging for the command line."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
