"""Unit tests for config parsing module."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from image_rampup import config as rampup_config


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Write a [rampup] config file and point IMAGE_RAMPUP_CONFIG at it."""
    path = tmp_path / "rampup.conf"
    path.write_text(
        """[rampup]
plan_order = reject
monitoring_enabled = yes
monitoring_bind = 0.0.0.0:9090
monitoring_history_ttl = 60
monitoring_history_limit = 25
"""
    )
    monkeypatch.setenv("IMAGE_RAMPUP_CONFIG", str(path))
    rampup_config.reset_config()
    return path


class TestConfigParsing:
    """Test config fallback chain."""

    def test_defaults_without_config(self):
        """Test that defaults work when no config file exists."""
        assert rampup_config.rampup_plan_order() == "normalize"
        assert rampup_config.rampup_monitoring_enabled() is False
        assert rampup_config.rampup_monitoring_bind() == "127.0.0.1:8080"
        assert rampup_config.rampup_monitoring_history_ttl() == 3600
        assert rampup_config.rampup_monitoring_history_limit() == 500

    def test_config_file_parsing(self, config_file):
        """Test parsing from config file."""
        assert rampup_config.rampup_plan_order() == "reject"
        assert rampup_config.rampup_monitoring_enabled() is True
        assert rampup_config.rampup_monitoring_bind() == "0.0.0.0:9090"
        assert rampup_config.rampup_monitoring_history_ttl() == 60
        assert rampup_config.rampup_monitoring_history_limit() == 25

    def test_env_var_overrides(self, config_file, monkeypatch):
        """Test that environment variables override the config file."""
        monkeypatch.setenv("IMAGE_RAMPUP_PLAN_ORDER", "Preserve")
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_ENABLED", "false")
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_HISTORY_TTL", "120")

        assert rampup_config.rampup_plan_order() == "preserve"
        assert rampup_config.rampup_monitoring_enabled() is False
        assert rampup_config.rampup_monitoring_history_ttl() == 120
        assert rampup_config.rampup_monitoring_bind() == "0.0.0.0:9090"

    def test_options_object(self, config_file):
        """Test the options object sits between env vars and the config file."""
        rampup_config.initialize(
            SimpleNamespace(rampup_plan_order="preserve", rampup_monitoring_history_limit=10)
        )
        assert rampup_config.rampup_plan_order() == "preserve"
        assert rampup_config.rampup_monitoring_history_limit() == 10
        assert rampup_config.rampup_monitoring_history_ttl() == 60

    def test_missing_config_file(self, tmp_path, monkeypatch):
        """Test a missing config file falls back to defaults."""
        monkeypatch.setenv("IMAGE_RAMPUP_CONFIG", str(tmp_path / "absent.conf"))
        assert rampup_config.rampup_plan_order() == "normalize"

    def test_config_file_without_section(self, tmp_path, monkeypatch):
        """Test a config file without [rampup] falls back to defaults."""
        path = tmp_path / "other.conf"
        path.write_text("[other]\nplan_order = reject\n")
        monkeypatch.setenv("IMAGE_RAMPUP_CONFIG", str(path))
        assert rampup_config.rampup_plan_order() == "normalize"

    def test_invalid_values_use_defaults(self, monkeypatch):
        """Test invalid values are replaced by defaults."""
        monkeypatch.setenv("IMAGE_RAMPUP_PLAN_ORDER", "shuffle")
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_HISTORY_TTL", "soon")
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_BIND", "localhost")

        assert rampup_config.rampup_plan_order() == "normalize"
        assert rampup_config.rampup_monitoring_history_ttl() == 3600
        assert rampup_config.rampup_monitoring_bind() == "127.0.0.1:8080"

    @pytest.mark.parametrize("value", ["0", "-1", "-500"])
    def test_non_positive_history_values_use_defaults(self, monkeypatch, value):
        """Test history TTL and limit below 1 fall back to defaults."""
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_HISTORY_TTL", value)
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_HISTORY_LIMIT", value)

        assert rampup_config.rampup_monitoring_history_ttl() == 3600
        assert rampup_config.rampup_monitoring_history_limit() == 500

    def test_non_positive_option_uses_default(self):
        """Test non-string option values go through the same validation."""
        rampup_config.initialize(SimpleNamespace(rampup_monitoring_history_limit=-1))
        assert rampup_config.rampup_monitoring_history_limit() == 500

    def test_bool_parsing(self, monkeypatch):
        """Test boolean value parsing."""
        test_cases = [
            ("true", True),
            ("True", True),
            ("1", True),
            ("yes", True),
            ("on", True),
            ("false", False),
            ("0", False),
            ("no", False),
            ("off", False),
        ]

        for value, expected in test_cases:
            monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_ENABLED", value)
            assert rampup_config.rampup_monitoring_enabled() is expected

    def test_reset_config(self, config_file, monkeypatch):
        """Test reset_config drops the cached file and options."""
        assert rampup_config.rampup_plan_order() == "reject"
        monkeypatch.delenv("IMAGE_RAMPUP_CONFIG")
        assert rampup_config.rampup_plan_order() == "reject"
        rampup_config.reset_config()
        assert rampup_config.rampup_plan_order() == "normalize"
