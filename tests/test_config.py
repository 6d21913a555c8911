"""Tests for configuration validation and environment loading."""

import logging
from pathlib import Path

import pytest

from insightflow.config import ConfigError, InsightConfig


class TestValidation:
    def test_defaults(self, tmp_path):
        config = InsightConfig(data_dir=tmp_path)
        assert config.request_timeout == 30.0
        assert config.switch_delay == 0.3
        assert config.default_range == "week"
        assert config.accounts_path == tmp_path / "accounts.json"
        assert config.companion_path == tmp_path / "widget_accounts.json"
        assert config.cache_dir == tmp_path / "analytics_cache"

    def test_data_dir_coerced_to_path(self):
        assert isinstance(InsightConfig(data_dir="/tmp/insight").data_dir, Path)

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigError, match="auth_timeout"):
            InsightConfig(auth_timeout=0)

    def test_negative_switch_delay(self):
        with pytest.raises(ConfigError):
            InsightConfig(switch_delay=-1)

    def test_long_switch_delay_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="insightflow.config"):
            InsightConfig(switch_delay=5)
        assert "switch_delay" in caplog.text

    def test_breakdown_limit(self):
        with pytest.raises(ConfigError):
            InsightConfig(breakdown_limit=0)

    def test_unknown_default_range(self):
        with pytest.raises(ConfigError, match="Unknown default_range"):
            InsightConfig(default_range="fortnight")

    def test_custom_default_range_rejected(self):
        with pytest.raises(ConfigError):
            InsightConfig(default_range="custom")


class TestFromEnv:
    def test_reads_prefixed_variables(self, tmp_path):
        config = InsightConfig.from_env({
            "INSIGHTFLOW_DATA_DIR": str(tmp_path),
            "INSIGHTFLOW_REQUEST_TIMEOUT": "12.5",
            "INSIGHTFLOW_SWITCH_DELAY": "0",
            "INSIGHTFLOW_BREAKDOWN_LIMIT": "25",
            "INSIGHTFLOW_DEFAULT_RANGE": "30d",
        })
        assert config.data_dir == tmp_path
        assert config.request_timeout == 12.5
        assert config.switch_delay == 0
        assert config.breakdown_limit == 25
        assert config.default_range == "30d"

    def test_empty_environment_uses_defaults(self):
        config = InsightConfig.from_env({})
        assert config.breakdown_limit == 10

    def test_bad_number(self):
        with pytest.raises(ConfigError, match="INSIGHTFLOW_AUTH_TIMEOUT"):
            InsightConfig.from_env({"INSIGHTFLOW_AUTH_TIMEOUT": "soon"})

    def test_bad_integer(self):
        with pytest.raises(ConfigError):
            InsightConfig.from_env({"INSIGHTFLOW_BREAKDOWN_LIMIT": "2.5"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
