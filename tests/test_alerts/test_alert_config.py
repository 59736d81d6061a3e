"""Tests for AlertConfig settings."""

import pytest
from pydantic import ValidationError

from alert_engine.alerts.config import AlertConfig
from alert_engine.anomaly.config import AnomalyConfig


class TestAlertConfig:
    def test_defaults(self):
        config = AlertConfig()
        assert config.enable_anomaly_detection is False
        assert config.anomaly is None
        assert config.evaluation_interval_seconds == 10.0
        assert config.max_history_size == 1000

    def test_nested_anomaly_config(self):
        config = AlertConfig(anomaly=AnomalyConfig(sensitivity=0.5))
        assert config.anomaly.sensitivity == 0.5

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ALERTS_MAX_HISTORY_SIZE", "50")
        monkeypatch.setenv("ALERTS_ENABLE_ANOMALY_DETECTION", "true")
        config = AlertConfig()
        assert config.max_history_size == 50
        assert config.enable_anomaly_detection is True

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValidationError):
            AlertConfig(evaluation_interval_seconds=0)

    def test_rejects_zero_history(self):
        with pytest.raises(ValidationError):
            AlertConfig(max_history_size=0)
