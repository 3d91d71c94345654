"""
Unit tests for engine configuration.

Tests cover:
- Defaults for weights, deduction points and required tags
- Environment variable overlay
- Validation of weights and JSON input
"""

import pytest
from pydantic import ValidationError

from governance_engine.config import EngineSettings
from governance_engine.models import Severity


def test_defaults():
    settings = EngineSettings()

    assert settings.max_workers == 4
    assert settings.analyzer_timeout_seconds == 60.0
    assert settings.weight_for("Anything") == 1.0
    assert settings.deduction_points[Severity.CRITICAL] == 10.0
    assert settings.tagging.required_tags == ["Environment", "Owner", "CostCenter"]
    assert settings.naming.consistency_threshold == 0.8
    assert settings.metrics_enabled is False


def test_category_weights():
    settings = EngineSettings(category_weights={"Tagging": 2.0})

    assert settings.weight_for("Tagging") == 2.0
    assert settings.weight_for("NamingConvention") == 1.0


def test_negative_weight_rejected():
    with pytest.raises(ValidationError):
        EngineSettings(category_weights={"Tagging": -1.0})


def test_from_env(monkeypatch):
    monkeypatch.setenv("GOVERNANCE_MAX_WORKERS", "8")
    monkeypatch.setenv("GOVERNANCE_ANALYZER_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("GOVERNANCE_CATEGORY_WEIGHTS", '{"SecurityPosture": 2}')
    monkeypatch.setenv("GOVERNANCE_REQUIRED_TAGS", "env, owner ,")
    monkeypatch.setenv("GOVERNANCE_METRICS_ENABLED", "true")
    monkeypatch.setenv("AWS_REGION", "eu-west-1")

    settings = EngineSettings.from_env()

    assert settings.max_workers == 8
    assert settings.analyzer_timeout_seconds == 12.5
    assert settings.weight_for("SecurityPosture") == 2.0
    assert settings.tagging.required_tags == ["env", "owner"]
    assert settings.metrics_enabled is True
    assert settings.aws_region == "eu-west-1"


def test_from_env_defaults(monkeypatch):
    for name in ("GOVERNANCE_MAX_WORKERS", "GOVERNANCE_METRICS_ENABLED", "GOVERNANCE_CATEGORY_WEIGHTS", "AWS_REGION"):
        monkeypatch.delenv(name, raising=False)

    settings = EngineSettings.from_env()

    assert settings.max_workers == 4
    assert settings.metrics_enabled is False


def test_from_env_invalid_weights(monkeypatch):
    monkeypatch.setenv("GOVERNANCE_CATEGORY_WEIGHTS", "not json")

    with pytest.raises(ValueError, match="not valid JSON"):
        EngineSettings.from_env()


def test_from_env_out_of_range(monkeypatch):
    monkeypatch.setenv("GOVERNANCE_MAX_WORKERS", "0")

    with pytest.raises(ValidationError):
        EngineSettings.from_env()
