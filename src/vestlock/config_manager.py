"""
vestlock Configuration Manager

Builds one validated configuration out of several layers. Later layers win:
bundled ``default.yaml``, the ``<environment>.yaml`` file, ``VESTLOCK_*``
environment variables (``.env`` is honoured), then command-line overrides.
Each section is parsed into a dataclass whose ``validate()`` raises
ConfigurationError.
"""

import os
import json
import yaml
from typing import Any, Dict, Optional, Union
from pathlib import Path
from dataclasses import dataclass, field, asdict
from enum import Enum
from dotenv import load_dotenv

from vestlock.core.beneficiary_registry import BeneficiaryRegistry
from vestlock.core.schedule import (
    CHECKPOINT_COUNT,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_LONG_PLAN_THRESHOLD,
    ReleaseSchedule,
)
from vestlock.core.vesting_exceptions import (
    ConfigurationError,
    InvalidRegistryError,
    InvalidScheduleError,
)


DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent / "config"

ENV_PREFIX = "VESTLOCK_"

# Values given as comma-separated strings in environment variables
LIST_KEYS = {"schedule", "beneficiaries"}


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTNET = "testnet"


ENVIRONMENT_ALIASES = {
    **{env.value: env for env in Environment},
    "dev": Environment.DEVELOPMENT,
    "stage": Environment.STAGING,
    "prod": Environment.PRODUCTION,
    "test": Environment.TESTNET,
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` updated with ``override``, merging nested dicts key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


@dataclass
class VestingConfig:
    """Vesting schedule, registry and plan settings"""
    schedule: list = field(default_factory=list)
    beneficiaries: list = field(default_factory=list)
    admin: str = ""
    long_plan_threshold: int = DEFAULT_LONG_PLAN_THRESHOLD
    grace_period_seconds: int = DEFAULT_GRACE_PERIOD

    def validate(self):
        """Validate vesting configuration"""
        if len(self.schedule) != CHECKPOINT_COUNT:
            raise ConfigurationError(
                f"vesting.schedule must contain exactly {CHECKPOINT_COUNT} timestamps, "
                f"got {len(self.schedule)}"
            )
        try:
            ReleaseSchedule.from_iterable(int(stamp) for stamp in self.schedule)
            BeneficiaryRegistry(self.beneficiaries, self.admin)
        except (InvalidScheduleError, InvalidRegistryError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid vesting configuration: {exc}") from exc
        if int(self.long_plan_threshold) <= 0:
            raise ConfigurationError(
                f"Invalid long_plan_threshold: {self.long_plan_threshold}. Must be > 0"
            )
        if int(self.grace_period_seconds) < 0:
            raise ConfigurationError(
                f"Invalid grace_period_seconds: {self.grace_period_seconds}. Must be >= 0"
            )


@dataclass
class TokenConfig:
    """Vested asset settings"""
    name: str = "Vest Token"
    symbol: str = "VEST"
    decimals: int = 18
    custody_address: str = ""
    max_supply: int = 0

    def validate(self):
        """Validate token configuration"""
        if not self.name:
            raise ConfigurationError("token.name cannot be empty")
        if not self.symbol:
            raise ConfigurationError("token.symbol cannot be empty")
        if not 0 <= int(self.decimals) <= 18:
            raise ConfigurationError(f"Invalid decimals: {self.decimals}. Must be between 0-18")
        if not self.custody_address:
            raise ConfigurationError("token.custody_address cannot be empty")
        if not isinstance(self.custody_address, str):
            raise ConfigurationError("token.custody_address must be a string; quote hex addresses in YAML")
        if int(self.max_supply) < 0:
            raise ConfigurationError(f"Invalid max_supply: {self.max_supply}. Must be >= 0")


@dataclass
class StorageConfig:
    """Storage configuration settings"""
    data_dir: str = "data"
    state_file: str = "vesting_state.json"
    backup_enabled: bool = True
    max_backups: int = 10

    def validate(self):
        """Validate storage configuration"""
        if not self.data_dir:
            raise ConfigurationError("data_dir cannot be empty")
        if not self.state_file:
            raise ConfigurationError("state_file cannot be empty")
        if int(self.max_backups) < 1:
            raise ConfigurationError(f"Invalid max_backups: {self.max_backups}. Must be >= 1")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    log_file: str = ""
    environment: str = "development"
    enable_console: bool = True
    enable_file: bool = False

    def validate(self):
        """Validate logging configuration"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if str(self.level).upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")


@dataclass
class MetricsConfig:
    """Prometheus metrics settings"""
    enabled: bool = False
    port: int = 9108

    def validate(self):
        """Validate metrics configuration"""
        if not (1024 <= int(self.port) <= 65535):
            raise ConfigurationError(f"Invalid metrics port: {self.port}. Must be between 1024-65535")


SECTIONS = {
    "vesting": VestingConfig,
    "token": TokenConfig,
    "storage": StorageConfig,
    "logging": LoggingConfig,
    "metrics": MetricsConfig,
}


class ConfigManager:
    """
    Layered, validated vestlock configuration.

    Typed sections are available as attributes (``config.vesting``,
    ``config.storage`` ...); the merged raw mapping backs ``get()``.
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 config_dir: Optional[str] = None,
                 cli_overrides: Optional[Dict[str, Any]] = None):
        """
        Args:
            environment: development, staging, production or testnet (aliases accepted)
            config_dir: Directory holding default.yaml and <environment>.yaml
            cli_overrides: Dot-notation overrides, e.g. {"storage.data_dir": "/tmp/x"}

        Raises:
            ConfigurationError: If any layer is unreadable or a section fails validation
        """
        load_dotenv()

        self.environment = self._determine_environment(environment)
        self.config_dir = Path(config_dir).resolve() if config_dir else DEFAULT_CONFIG_DIR
        self.cli_overrides = cli_overrides or {}

        self.vesting: VestingConfig = None
        self.token: TokenConfig = None
        self.storage: StorageConfig = None
        self.logging: LoggingConfig = None
        self.metrics: MetricsConfig = None

        self._raw_config: Dict[str, Any] = {}

        self._load_configuration()

    def _determine_environment(self, environment: Optional[str]) -> Environment:
        """Explicit argument, then VESTLOCK_ENVIRONMENT, then development."""
        name = (environment or os.getenv("VESTLOCK_ENVIRONMENT", "development")).lower()
        return ENVIRONMENT_ALIASES.get(name, Environment.DEVELOPMENT)

    def _load_configuration(self):
        layers = [self._load_config_file("default"), self._load_config_file(self.environment.value)]
        merged: Dict[str, Any] = {}
        for layer in layers:
            merged = deep_merge(merged, layer)
        merged = self._apply_env_variables(merged)
        merged = self._apply_cli_overrides(merged)

        self._raw_config = merged
        self._parse_configuration(merged)
        self._validate_configuration()

    def _load_config_file(self, filename: str) -> Dict[str, Any]:
        """Read ``<filename>.yaml`` (or ``.json``) from the config dir; missing files are empty."""
        yaml_path = self.config_dir / f"{filename}.yaml"
        json_path = self.config_dir / f"{filename}.json"
        try:
            if yaml_path.exists():
                with open(yaml_path, "r") as f:
                    return yaml.safe_load(f) or {}
            if json_path.exists():
                with open(json_path, "r") as f:
                    return json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Invalid config file {filename}: {exc}") from exc
        return {}

    def _apply_env_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides (VESTLOCK_*)

        Environment variables format:
        VESTLOCK_SECTION_KEY=value

        Example:
        VESTLOCK_STORAGE_DATA_DIR=/var/lib/vestlock
        VESTLOCK_VESTING_GRACE_PERIOD_SECONDS=86400
        """
        result = config.copy()

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX) or key == "VESTLOCK_ENVIRONMENT":
                continue

            parts = key[len(ENV_PREFIX):].lower().split("_")
            if len(parts) < 2:
                continue

            section = parts[0]
            config_key = "_".join(parts[1:])
            if section not in SECTIONS:
                continue

            if not isinstance(result.get(section), dict):
                result[section] = {}
            else:
                result[section] = dict(result[section])

            if config_key in LIST_KEYS:
                items = [item.strip() for item in value.split(",") if item.strip()]
                result[section][config_key] = [self._parse_env_value(item) for item in items]
            else:
                result[section][config_key] = self._parse_env_value(value)

        return result

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool]:
        """Parse environment variable value to appropriate type"""
        try:
            return int(value)
        except ValueError:
            pass

        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _apply_cli_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply command-line argument overrides"""
        result = config.copy()

        for key, value in self.cli_overrides.items():
            parts = key.split(".")

            if len(parts) == 1:
                result[key] = value
            elif len(parts) == 2:
                section, config_key = parts
                section_data = dict(result.get(section) or {})
                section_data[config_key] = value
                result[section] = section_data

        return result

    def _parse_configuration(self, config: Dict[str, Any]):
        """Parse configuration into typed objects"""
        for name, section_cls in SECTIONS.items():
            section = config.get(name) or {}
            try:
                setattr(self, name, section_cls(**section))
            except TypeError as exc:
                raise ConfigurationError(f"Unknown key in [{name}] section: {exc}") from exc

    def _validate_configuration(self):
        """Validate all configuration sections"""
        for name in SECTIONS:
            getattr(self, name).validate()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Configuration key (e.g., "vesting.admin")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._raw_config

        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def get_section(self, section: str) -> Optional[Dict[str, Any]]:
        """Get entire configuration section"""
        return self._raw_config.get(section)

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration to dictionary"""
        data = {"environment": self.environment.value}
        for name in SECTIONS:
            data[name] = asdict(getattr(self, name))
        return data

    def reload(self):
        """Reload configuration from files"""
        self._load_configuration()

    def __repr__(self) -> str:
        return f"ConfigManager(environment={self.environment.value})"


_config_manager: Optional[ConfigManager] = None


def get_config_manager(
    environment: Optional[str] = None,
    config_dir: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    reload: bool = False,
) -> ConfigManager:
    """Return the process-wide ConfigManager, creating it on first use."""
    global _config_manager
    if _config_manager is None or reload:
        _config_manager = ConfigManager(
            environment=environment, config_dir=config_dir, cli_overrides=cli_overrides
        )
    return _config_manager
