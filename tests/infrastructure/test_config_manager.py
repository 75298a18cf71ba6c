"""Tests for configuration loading."""

import json
import os

import pytest

from vitalwatch.domain.ports import ConfigurationError
from vitalwatch.infrastructure.config_manager import ConfigManager, MonitoringConfig
from vitalwatch.infrastructure.settings import Settings


@pytest.fixture
def no_env_file(tmp_path):
    """Path of a .env file that does not exist."""
    return tmp_path / "missing.env"


class TestFromEnvironment:
    """Test suite for ConfigManager.from_environment()."""

    def test_defaults(self, monkeypatch, no_env_file):
        for name in ("VW_ALERT_COOLDOWN_SECONDS", "VW_HISTORY_SIZE", "VW_DB_PATH"):
            monkeypatch.delenv(name, raising=False)

        config = ConfigManager.from_environment(env_file=no_env_file).get_monitoring_config()

        assert config.alerts.critical_risk_threshold == 0.7
        assert config.alerts.cooldown_seconds == 0
        assert config.alerts.max_alerts_per_minute is None
        assert config.session.history_size == 50
        assert config.session.init_timeout_seconds == 10
        assert config.performance.tick_interval_seconds == 30
        assert config.performance.jank_threshold_percent == 5
        assert config.store.db_path == ":memory:"

    def test_environment_overrides(self, monkeypatch, no_env_file):
        monkeypatch.setenv("VW_ALERT_COOLDOWN_SECONDS", "120")
        monkeypatch.setenv("VW_MAX_ALERTS_PER_MINUTE", "5")
        monkeypatch.setenv("VW_HISTORY_SIZE", "20")
        monkeypatch.setenv("VW_AUTO_OPTIMIZE", "true")

        config = ConfigManager.from_environment(env_file=no_env_file).get_monitoring_config()

        assert config.alerts.cooldown_seconds == 120
        assert config.alerts.max_alerts_per_minute == 5
        assert config.session.history_size == 20
        assert config.performance.auto_optimize is True

    def test_env_file_is_loaded(self, monkeypatch, tmp_path):
        monkeypatch.delenv("VW_STALE_AFTER_SECONDS", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("VW_STALE_AFTER_SECONDS=45\n")

        try:
            config = ConfigManager.from_environment(env_file=env_file).get_monitoring_config()
        finally:
            os.environ.pop("VW_STALE_AFTER_SECONDS", None)

        assert config.session.stale_after_seconds == 45

    def test_invalid_value_raises_configuration_error(self, monkeypatch, no_env_file):
        monkeypatch.setenv("VW_CRITICAL_RISK_THRESHOLD", "1.5")

        manager = ConfigManager.from_environment(env_file=no_env_file)

        with pytest.raises(ConfigurationError) as exc_info:
            manager.get_monitoring_config()
        assert ("alerts", "critical_risk_threshold") in exc_info.value.details["errors"]

    def test_missing_db_directory_is_rejected(self, monkeypatch, tmp_path, no_env_file):
        monkeypatch.setenv("VW_DB_PATH", str(tmp_path / "nope" / "vitals.duckdb"))
        with pytest.raises(ConfigurationError):
            ConfigManager.from_environment(env_file=no_env_file).get_monitoring_config()


class TestFromFile:
    """Test suite for ConfigManager.from_file()."""

    def test_load_json(self, tmp_path):
        path = tmp_path / "monitoring.json"
        path.write_text(json.dumps({"alerts": {"cooldown_seconds": 30}, "session": {"history_size": 10}}))

        manager = ConfigManager.from_file(str(path))

        assert manager.get_monitoring_config().alerts.cooldown_seconds == 30
        assert manager.get("session.history_size") == 10
        assert manager.get("session.missing", "fallback") == "fallback"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigManager.from_file(str(tmp_path / "absent.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            ConfigManager.from_file(str(path))

    def test_non_object_json(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError):
            ConfigManager.from_file(str(path))


class TestSettings:
    """Test suite for application settings."""

    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("VW_PORT", "9100")
        monkeypatch.setenv("VW_LOG_JSON", "true")
        monkeypatch.setenv("VW_CORS_ORIGINS", "http://a.test, http://b.test")

        settings = Settings()

        assert settings.port == 9100
        assert settings.log_json is True
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_monitoring_config_is_lazy(self):
        settings = Settings()
        assert settings._monitoring is None
        assert isinstance(settings.monitoring, MonitoringConfig)
        assert settings.get_db_path() == settings.monitoring.store.db_path
