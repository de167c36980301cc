"""
GoalKeeper Configuration Module - Centralized configuration management.

Provides:
1. Hierarchical configuration with defaults
2. Environment variable overrides (GOALKEEPER_* prefix)
3. Config file loading (JSON/TOML/YAML)
4. Validation on startup

Configuration Hierarchy (highest to lowest priority):
1. Environment variables
2. Config file
3. Default values

Example:
    config = GoalKeeperConfig.load("goalkeeper.toml")
    print(config.ledger.custody_account)

    # Override with environment
    # GOALKEEPER_LEDGER_CHECK_INVARIANTS=true
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

_SECTIONS = ("ledger", "logging", "storage")


# =============================================================================
# Configuration Sections
# =============================================================================

@dataclass
class LedgerConfig:
    """Ledger engine configuration."""
    custody_account: str = "goalkeeper"
    token_decimals: int = 6
    check_invariants: bool = False

    def __post_init__(self):
        account = self.custody_account
        if not isinstance(account, str) or not account or any(ch.isspace() for ch in account):
            raise ValueError("custody_account must be a non-empty identifier without whitespace")
        if not (0 <= self.token_decimals <= 36):
            raise ValueError("token_decimals must be in [0, 36]")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"  # "json" or "text"
    file: Optional[str] = None
    include_timestamps: bool = True
    shorten_accounts: bool = False


@dataclass
class StorageConfig:
    """Snapshot storage configuration."""
    snapshot_path: str = "./data/goalkeeper/ledger.json"


# =============================================================================
# Main Configuration
# =============================================================================

@dataclass
class GoalKeeperConfig:
    """
    Main GoalKeeper configuration.

    Combines all configuration sections into a single object.
    """
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def load(
        cls,
        config_file: Optional[Union[str, Path]] = None,
        env_prefix: str = "GOALKEEPER",
    ) -> "GoalKeeperConfig":
        """
        Load configuration with hierarchy: env vars > config file > defaults.

        Args:
            config_file: Path to config file (JSON, TOML or YAML)
            env_prefix: Prefix for environment variables

        Returns:
            Loaded and validated configuration
        """
        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = cls._load_file(Path(config_file))

        config_dict = cls._apply_env_overrides(config_dict, env_prefix)

        config = cls._from_dict(config_dict)
        config.validate()
        return config

    @classmethod
    def _load_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return {}

        content = path.read_text()

        if path.suffix == ".json":
            parsed = json.loads(content)
        elif path.suffix == ".toml":
            parsed = tomllib.loads(content)
        elif path.suffix in {".yaml", ".yml"}:
            parsed = yaml.safe_load(content)
        else:
            logger.warning(f"Unknown config file format: {path.suffix}")
            return {}

        if not isinstance(parsed, dict):
            logger.warning("Config file must be a mapping at top level")
            return {}
        return parsed

    @classmethod
    def _apply_env_overrides(cls, config: Dict[str, Any], prefix: str) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        for key, value in os.environ.items():
            if not key.startswith(f"{prefix}_"):
                continue

            # GOALKEEPER_LEDGER_CHECK_INVARIANTS -> ledger.check_invariants
            parts = key[len(prefix) + 1:].lower().split("_")

            if len(parts) < 2:
                continue

            section = parts[0]
            if section not in _SECTIONS:
                continue
            field_name = "_".join(parts[1:])

            if section not in config or not isinstance(config[section], dict):
                config[section] = {}

            config[section][field_name] = cls._parse_env_value(value)

        return config

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    @classmethod
    def _from_dict(cls, config_dict: Dict[str, Any]) -> "GoalKeeperConfig":
        """Build config object from dictionary."""
        ledger = dict(config_dict.get("ledger", {}))
        if "check_invariants" in ledger:
            ledger["check_invariants"] = bool(ledger["check_invariants"])
        if "custody_account" in ledger:
            # numeric-looking env values arrive as int
            ledger["custody_account"] = str(ledger["custody_account"])
        return cls(
            ledger=LedgerConfig(**ledger),
            logging=LoggingConfig(**config_dict.get("logging", {})),
            storage=StorageConfig(**config_dict.get("storage", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to file (YAML for .yaml/.yml, JSON otherwise)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.suffix in {".yaml", ".yml"}:
            path.write_text(yaml.safe_dump(self.to_dict(), sort_keys=False))
        else:
            path.write_text(self.to_json())

    def validate(self) -> None:
        """Validate configuration."""
        # Ledger validation happens in __post_init__

        if self.logging.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid logging level: {self.logging.level}")

        if self.logging.format not in ("json", "text"):
            raise ValueError(f"Invalid logging format: {self.logging.format}")

        if not self.storage.snapshot_path:
            raise ValueError("snapshot_path must not be empty")


# =============================================================================
# Global Config Instance
# =============================================================================

_global_config: Optional[GoalKeeperConfig] = None


def get_config() -> GoalKeeperConfig:
    """Get global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = GoalKeeperConfig.load()
    return _global_config


def set_config(config: GoalKeeperConfig) -> None:
    """Set global configuration instance."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset global configuration to None (forces reload)."""
    global _global_config
    _global_config = None
