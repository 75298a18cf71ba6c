"""Application Settings and Configuration.

This module provides application-wide settings that combine the monitoring
configuration from the configuration manager with application-specific
defaults (logging, CORS, server binding).
"""

import os
from typing import Optional

from vitalwatch.infrastructure.config_manager import ConfigManager, MonitoringConfig

# Application metadata
APP_NAME = "VitalWatch"
APP_VERSION = "1.0.0"

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"


class Settings:
    """Application settings loaded from configuration manager and environment."""

    def __init__(self):
        """Initialize settings from environment."""
        self._config_manager: Optional[ConfigManager] = None
        self._monitoring: Optional[MonitoringConfig] = None

        self.app_name = os.getenv("VW_APP_NAME", APP_NAME)

        # Logging
        self.log_level = os.getenv("VW_LOG_LEVEL", "INFO")
        self.log_json = os.getenv("VW_LOG_JSON", "false").lower() == "true"

        # HTTP surface
        self.host = os.getenv("VW_HOST", "127.0.0.1")
        self.port = int(os.getenv("VW_PORT", "8000"))
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("VW_CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
            if origin.strip()
        ]

        # Broadcast hub message history limit
        self.broadcast_history_limit = int(os.getenv("VW_BROADCAST_HISTORY_LIMIT", "1000"))

    @property
    def config_manager(self) -> ConfigManager:
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def monitoring(self) -> MonitoringConfig:
        """Monitoring configuration, loaded lazily on first access."""
        if self._monitoring is None:
            self._monitoring = self.config_manager.get_monitoring_config()
        return self._monitoring

    def get_db_path(self) -> str:
        """Get database path for DuckDB (':memory:' when unset)."""
        return self.monitoring.store.db_path


# Global settings instance
settings = Settings()
