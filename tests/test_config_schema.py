"""Tests for the unified config schema and its flattening into load_config fallbacks."""

import pytest
from pydantic import ValidationError

from cookiejar_sync.config_schema import (
    LoggingConfig,
    RemoteConfig,
    TriggerConfig,
    UnifiedConfig,
    build_config,
    yaml_fallbacks,
)


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_zero_config_defaults(self):
        config = UnifiedConfig()
        assert config.remote.api_url is None
        assert config.remote.timeout == 60.0
        assert config.storage.state_dir is None
        assert config.triggers.debounce_seconds == 60.0
        assert config.logging.level == "INFO"

    def test_unknown_sections_ignored(self):
        config = build_config({"remote": {"timeout": 5}, "future": {"x": 1}})
        assert config.remote.timeout == 5
        assert not hasattr(config, "future")

    def test_build_config_empty(self):
        assert build_config({}) == UnifiedConfig()

    def test_frozen(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.remote = RemoteConfig(api_url="https://x.example.com")


class TestSectionValidation:
    @pytest.mark.parametrize("timeout", [0, 601])
    def test_timeout_bounds(self, timeout):
        with pytest.raises(ValidationError):
            RemoteConfig(timeout=timeout)

    def test_debounce_bounds(self):
        with pytest.raises(ValidationError):
            TriggerConfig(debounce_seconds=0)

    def test_logging_section(self):
        config = LoggingConfig(level="DEBUG", file="/tmp/cj.log", debug=True)
        assert config.file == "/tmp/cj.log"


class TestYamlFallbacks:
    def test_none_values_dropped(self):
        flat = yaml_fallbacks(UnifiedConfig())
        assert "api_url" not in flat
        assert "state_dir" not in flat
        assert flat["timeout"] == 60.0
        assert flat["granted_origins"] == []
        assert flat["debug"] is False

    def test_full_config_flattened(self):
        unified = build_config(
            {
                "remote": {"api_url": "https://ghe.example.com/api/v3", "timeout": 30},
                "storage": {"state_dir": "/srv/cj", "cookie_jar": "/srv/cj/jar.json"},
                "triggers": {
                    "debounce_seconds": 15,
                    "granted_origins": ["https://a.com/*"],
                },
                "logging": {"debug": True},
            }
        )
        assert yaml_fallbacks(unified) == {
            "api_url": "https://ghe.example.com/api/v3",
            "timeout": 30.0,
            "state_dir": "/srv/cj",
            "cookie_jar": "/srv/cj/jar.json",
            "debounce_seconds": 15.0,
            "granted_origins": ["https://a.com/*"],
            "debug": True,
        }
