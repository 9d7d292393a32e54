"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from vitalsync.core.config.settings import get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("DB_PATH", raising=False)
    monkeypatch.delenv("DB_POOL_SIZE", raising=False)
    settings = get_settings()
    assert settings.db_path == "~/.vitalsync/metrics.db"
    assert settings.db_pool_size == 10
    assert settings.score_weight_scheme == "baseline"
    assert settings.insights_timeout_seconds == 10.0
    assert settings.step_streak_threshold == 8000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SCORE_WEIGHT_SCHEME", "enhanced")
    monkeypatch.setenv("INSIGHTS_TIMEOUT_SECONDS", "2.5")
    settings = get_settings()
    assert settings.score_weight_scheme == "enhanced"
    assert settings.insights_timeout_seconds == 2.5
    assert settings.db_pool_size == 4


def test_unknown_weight_scheme_rejected(monkeypatch):
    monkeypatch.setenv("SCORE_WEIGHT_SCHEME", "aggressive")
    with pytest.raises(ValidationError):
        get_settings()
