from __future__ import annotations

import logging

import pytest

from arb_matcher.config import (
    ArbitrageSettings,
    MatcherSettings,
    SimilarityWeights,
    load_settings,
)
from arb_matcher.logging_setup import configure_logging


def test_defaults() -> None:
    settings = MatcherSettings()
    weights = settings.similarity.weights
    assert (weights.title, weights.date, weights.conditions, weights.settlement, weights.category) == (
        0.40,
        0.25,
        0.15,
        0.10,
        0.10,
    )
    assert settings.similarity.match_threshold == 0.80
    assert settings.classifier.same_threshold == 0.95
    assert settings.arbitrage == ArbitrageSettings()
    assert settings.arbitrage.max_stake == 10_000.0
    assert settings.portfolio.risk_count_saturation == 10


def test_load_settings_without_env(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in ("ARB_MATCHER_WEIGHT_TITLE", "ARB_MATCHER_MATCH_THRESHOLD", "ARB_MATCHER_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.similarity.match_threshold == 0.80
    assert settings.log_level == "INFO"


def test_load_settings_env_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ARB_MATCHER_WEIGHT_TITLE", "0.5")
    monkeypatch.setenv("ARB_MATCHER_WEIGHT_DATE", "0.15")
    monkeypatch.setenv("ARB_MATCHER_MATCH_THRESHOLD", "0.75")
    monkeypatch.setenv("ARB_MATCHER_MAX_STAKE", "2500")
    monkeypatch.setenv("ARB_MATCHER_DAYS_PER_YEAR", "360")
    monkeypatch.setenv("ARB_MATCHER_RISK_COUNT_SATURATION", "4")
    monkeypatch.setenv("ARB_MATCHER_LOG_LEVEL", "DEBUG")

    settings = load_settings()

    assert settings.similarity.weights.title == 0.5
    assert settings.similarity.weights.date == 0.15
    assert settings.similarity.match_threshold == 0.75
    assert settings.arbitrage.max_stake == 2500.0
    assert settings.arbitrage.days_per_year == 360
    assert settings.portfolio.risk_count_saturation == 4
    assert settings.log_level == "DEBUG"


def test_load_settings_reads_dotenv(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    # Registered with monkeypatch so the value load_dotenv sets is undone.
    monkeypatch.setenv("ARB_MATCHER_SAME_THRESHOLD", "0.95")
    monkeypatch.delenv("ARB_MATCHER_SAME_THRESHOLD")
    env_file = tmp_path / ".env"
    env_file.write_text("ARB_MATCHER_SAME_THRESHOLD=0.9\n")
    settings = load_settings(env_file)
    assert settings.classifier.same_threshold == 0.9


def test_invalid_weight_sum_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ARB_MATCHER_WEIGHT_TITLE", "0.9")
    with pytest.raises(ValueError, match="sum to 1.0"):
        load_settings()


def test_negative_weight_rejected() -> None:
    with pytest.raises(ValueError, match="non-negative"):
        SimilarityWeights(title=0.6, date=-0.2, conditions=0.3, settlement=0.2, category=0.1)


def test_configure_logging_quiets_similarity() -> None:
    configure_logging("debug")
    assert logging.getLogger("arb_matcher.similarity").level == logging.WARNING
