"""Configuration Manager for the Monitoring Pipeline.

This module loads the monitoring configuration (alert policy, session
settings, performance thresholds, patient store location) from environment
variables or a JSON file and validates it before use.

Architecture:
    - Follows Hexagonal Architecture: Infrastructure layer isolated from domain
    - The domain defines the policy models; this layer only populates them
    - Type-safe configuration using Pydantic models
    - Fail-fast validation: invalid values raise ConfigurationError at load time
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from vitalwatch.domain.alerting import AlertPolicy
from vitalwatch.domain.performance import PerformanceThresholds
from vitalwatch.domain.ports import ConfigurationError
from vitalwatch.domain.session import SessionConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "VW_"


class StoreConfig(BaseModel):
    """Patient/vitals store configuration.

    Parameters:
        db_path: Path to the DuckDB database file, or ':memory:'
    """

    db_path: str = Field(default=":memory:", description="Path to DuckDB database file")

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: str) -> str:
        """Validate the database directory exists (the file may not exist yet)."""
        if v == ":memory:":
            return v
        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")
        return str(db_path_obj)


class MonitoringConfig(BaseModel):
    """Complete monitoring configuration."""

    alerts: AlertPolicy = Field(default_factory=AlertPolicy)
    session: SessionConfig = Field(default_factory=SessionConfig)
    performance: PerformanceThresholds = Field(default_factory=PerformanceThresholds)
    store: StoreConfig = Field(default_factory=StoreConfig)


# Environment variable -> (section, field)
_ENV_FIELDS = {
    "CRITICAL_RISK_THRESHOLD": ("alerts", "critical_risk_threshold"),
    "ALERT_COOLDOWN_SECONDS": ("alerts", "cooldown_seconds"),
    "MAX_ALERTS_PER_MINUTE": ("alerts", "max_alerts_per_minute"),
    "ALERT_WINDOW_SIZE": ("alerts", "window_size"),
    "HISTORY_SIZE": ("session", "history_size"),
    "INIT_TIMEOUT_SECONDS": ("session", "init_timeout_seconds"),
    "FRESHNESS_CHECK_SECONDS": ("session", "freshness_check_seconds"),
    "STALE_AFTER_SECONDS": ("session", "stale_after_seconds"),
    "PERF_TICK_SECONDS": ("performance", "tick_interval_seconds"),
    "FRAME_BUDGET_MS": ("performance", "frame_budget_ms"),
    "JANK_THRESHOLD_PERCENT": ("performance", "jank_threshold_percent"),
    "OPERATION_THRESHOLD_MS": ("performance", "operation_threshold_ms"),
    "AUTO_OPTIMIZE": ("performance", "auto_optimize"),
    "DB_PATH": ("store", "db_path"),
}


class ConfigManager:
    """Configuration manager for the monitoring pipeline.

    Example Usage:
        ```python
        # Load from environment variables
        config = ConfigManager.from_environment()
        policy = config.get_monitoring_config().alerts

        # Load from file
        config = ConfigManager.from_file("monitoring.json")
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary keyed by section
                (alerts, session, performance, store)
        """
        self._config_data = config_data
        self._monitoring_config: Optional[MonitoringConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[Path] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - VW_CRITICAL_RISK_THRESHOLD: Risk level that escalates to a critical alert
            - VW_ALERT_COOLDOWN_SECONDS: Same-key suppression window
            - VW_MAX_ALERTS_PER_MINUTE: Per-patient warning budget
            - VW_ALERT_WINDOW_SIZE: Alerts remembered for de-duplication
            - VW_HISTORY_SIZE: Readings kept per session
            - VW_INIT_TIMEOUT_SECONDS: Session startup bound
            - VW_FRESHNESS_CHECK_SECONDS / VW_STALE_AFTER_SECONDS: Data freshness check
            - VW_PERF_TICK_SECONDS, VW_FRAME_BUDGET_MS, VW_JANK_THRESHOLD_PERCENT,
              VW_OPERATION_THRESHOLD_MS, VW_AUTO_OPTIMIZE: Performance reporter
            - VW_DB_PATH: DuckDB database path

        A ``.env`` file in the project root is loaded first when present.

        Returns:
            ConfigManager instance
        """
        env_path = env_file or Path(__file__).parent.parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        config_data: Dict[str, Dict[str, Any]] = {}
        for suffix, (section, field_name) in _ENV_FIELDS.items():
            value = os.getenv(f"{ENV_PREFIX}{suffix}")
            if value is None or value == "":
                continue
            config_data.setdefault(section, {})[field_name] = value

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Returns:
            ConfigManager instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If config file is not valid JSON
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {str(e)}")

        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration file must contain a JSON object")
        return cls(config_data)

    def get_monitoring_config(self) -> MonitoringConfig:
        """Get the validated monitoring configuration.

        Raises:
            ConfigurationError: If any value fails validation
        """
        if self._monitoring_config is None:
            try:
                self._monitoring_config = MonitoringConfig(**self._config_data)
            except PydanticValidationError as e:
                raise ConfigurationError(
                    f"Invalid monitoring configuration: {e.error_count()} error(s)",
                    details={"errors": [err["loc"] for err in e.errors()]},
                ) from e
        return self._monitoring_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Parameters:
            key: Configuration key (supports dot notation, e.g., "alerts.cooldown_seconds")
            default: Default value if key not found
        """
        keys = key.split(".")
        value = self._config_data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


def get_monitoring_config() -> MonitoringConfig:
    """Convenience function to load the monitoring configuration from the environment."""
    return ConfigManager.from_environment().get_monitoring_config()
