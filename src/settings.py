"""Centralized settings for the regime fusion engine.

Uses pydantic-settings to load tunables from environment variables
(prefixed REGIME_FUSION_) with defaults matching the component configs.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine tunables loaded from environment variables."""

    # --- Regime tracking ---
    min_observations: int = 1
    min_dwell_cycles: int = 2
    momentum_window: int = 5
    momentum_threshold: float = 0.15

    # Volatility hysteresis band (normalized 0-1 metric)
    volatility_enter_high: float = 0.8
    volatility_exit_high: float = 0.6
    volatility_enter_low: float = 0.2
    volatility_exit_low: float = 0.4

    # Trend hysteresis band (signed metric)
    trend_enter_high: float = 0.5
    trend_exit_high: float = 0.3
    trend_enter_low: float = -0.5
    trend_exit_low: float = -0.3

    # --- Confluence clustering ---
    cluster_tolerance: float = 1.0
    solo_significance: float = 0.8

    # --- Signal fusion ---
    strong_bias_threshold: float = 0.5
    strong_conflict_ceiling: float = 0.3
    conflicted_threshold: float = 0.5
    use_default_source_weights: bool = False

    # --- Condition classifier ---
    ranging_bias_ceiling: float = 0.2

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "REGIME_FUSION_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
