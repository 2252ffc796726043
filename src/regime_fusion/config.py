"""Regime Fusion Configuration."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from src.regime_fusion.exceptions import InvalidConfigurationError


class Direction(str, Enum):
    """Directional opinion of a signal component."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

    @property
    def sign(self) -> int:
        if self is Direction.BULLISH:
            return 1
        if self is Direction.BEARISH:
            return -1
        return 0

    @classmethod
    def from_sign(cls, value: float) -> "Direction":
        if value > 0:
            return cls.BULLISH
        if value < 0:
            return cls.BEARISH
        return cls.NEUTRAL


class SignalSource(str, Enum):
    """Upstream producer families that emit signal components."""
    TREND = "trend"
    MOMENTUM = "momentum"
    VOLATILITY = "volatility"
    SENTIMENT = "sentiment"
    CORRELATION = "correlation"
    PATTERN = "pattern"
    VOLUME = "volume"
    LEVEL = "level"


class FactorKind(str, Enum):
    """Producer type of a price-anchored observation."""
    TREND_LINE = "trend_line"
    LEVEL = "level"
    PATTERN_TARGET = "pattern_target"
    PIVOT = "pivot"
    FIBONACCI = "fibonacci"
    MOVING_AVERAGE = "moving_average"
    VOLUME_NODE = "volume_node"


class Dimension(str, Enum):
    """Monitored regime dimensions."""
    VOLATILITY = "volatility"
    TREND = "trend"
    SENTIMENT = "sentiment"
    CORRELATION = "correlation"


class RegimeLabel(str, Enum):
    """Hysteresis classification of one dimension."""
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"
    UNKNOWN = "unknown"


class Consensus(str, Enum):
    """Degree of directional agreement among fused components."""
    STRONG_AGREEMENT = "strong_agreement"
    WEAK_AGREEMENT = "weak_agreement"
    CONFLICTED = "conflicted"
    UNKNOWN = "unknown"


class ZoneType(str, Enum):
    """Position of a confluence zone relative to a reference price."""
    SUPPORT = "support"
    RESISTANCE = "resistance"
    NEUTRAL = "neutral"


class MarketCondition(str, Enum):
    """Qualitative market condition for one evaluation cycle."""
    TRENDING = "trending"
    TRANSITIONAL = "transitional"
    RANGING = "ranging"
    UNDETERMINED = "undetermined"


class TradingStance(str, Enum):
    """Recommended posture for the strategy layer."""
    TREND_FOLLOW = "trend_follow"
    MEAN_REVERT = "mean_revert"
    REDUCE_EXPOSURE = "reduce_exposure"
    STAND_ASIDE = "stand_aside"


def _require(condition: bool, message: str, field_name: str) -> None:
    if not condition:
        raise InvalidConfigurationError(message, field=field_name)


def _require_unit(value: float, field_name: str) -> None:
    _require(
        math.isfinite(value) and 0.0 <= value <= 1.0,
        f"{field_name} must be in [0, 1], got {value!r}",
        field_name,
    )


@dataclass(frozen=True)
class HysteresisThresholds:
    """Asymmetric enter/exit band for a High/Normal/Low dimension.

    Entering an extreme label needs a stronger move than leaving it:
    ``enter_low < exit_low <= exit_high < enter_high``.
    """
    enter_high: float = 0.8
    exit_high: float = 0.6
    enter_low: float = 0.2
    exit_low: float = 0.4

    def __post_init__(self):
        for name in ("enter_high", "exit_high", "enter_low", "exit_low"):
            value = getattr(self, name)
            _require(math.isfinite(value), f"{name} must be finite", name)
        _require(
            self.exit_high < self.enter_high,
            f"exit_high ({self.exit_high}) must be below enter_high ({self.enter_high})",
            "exit_high",
        )
        _require(
            self.exit_low > self.enter_low,
            f"exit_low ({self.exit_low}) must be above enter_low ({self.enter_low})",
            "exit_low",
        )
        _require(
            self.exit_low <= self.exit_high,
            f"exit_low ({self.exit_low}) must not exceed exit_high ({self.exit_high})",
            "exit_low",
        )


# Trend is a signed metric (e.g. normalized slope): HIGH is a strong
# uptrend, LOW a strong downtrend.
DEFAULT_DIMENSION_THRESHOLDS: dict[Dimension, HysteresisThresholds] = {
    Dimension.VOLATILITY: HysteresisThresholds(0.8, 0.6, 0.2, 0.4),
    Dimension.TREND: HysteresisThresholds(0.5, 0.3, -0.5, -0.3),
    Dimension.SENTIMENT: HysteresisThresholds(0.7, 0.55, 0.3, 0.45),
    Dimension.CORRELATION: HysteresisThresholds(0.8, 0.65, 0.2, 0.35),
}


@dataclass(frozen=True)
class TrackerConfig:
    """Regime tracker configuration.

    Attributes:
        min_observations: Observations required before a label is reported.
        min_dwell_cycles: Cycles a HIGH/LOW label must have held before it
            may be left. Entering an extreme label is never delayed.
        momentum_window: Values in the last-N delta behind pending_change.
        momentum_threshold: Delta against the label that raises pending_change.
    """
    default_thresholds: HysteresisThresholds = field(default_factory=HysteresisThresholds)
    thresholds: dict[Dimension, HysteresisThresholds] = field(
        default_factory=lambda: dict(DEFAULT_DIMENSION_THRESHOLDS)
    )
    min_observations: int = 1
    min_dwell_cycles: int = 2
    momentum_window: int = 5
    momentum_threshold: float = 0.15
    max_transition_history: int = 500

    def __post_init__(self):
        _require(self.min_observations >= 1, "min_observations must be >= 1", "min_observations")
        _require(self.min_dwell_cycles >= 0, "min_dwell_cycles must be >= 0", "min_dwell_cycles")
        _require(self.momentum_window >= 2, "momentum_window must be >= 2", "momentum_window")
        _require(
            math.isfinite(self.momentum_threshold) and self.momentum_threshold > 0,
            "momentum_threshold must be positive",
            "momentum_threshold",
        )
        _require(
            self.max_transition_history >= 0,
            "max_transition_history must be >= 0",
            "max_transition_history",
        )

    def thresholds_for(self, dimension: Dimension) -> HysteresisThresholds:
        return self.thresholds.get(dimension, self.default_thresholds)


@dataclass(frozen=True)
class ClusterConfig:
    """Confluence clustering configuration."""
    tolerance: float = 1.0
    solo_significance: float = 0.8
    count_bonus_per_member: float = 0.05
    max_count_bonus: float = 0.15
    diversity_bonus_per_kind: float = 0.05
    max_diversity_bonus: float = 0.15

    def __post_init__(self):
        _require(
            math.isfinite(self.tolerance) and self.tolerance > 0,
            f"tolerance must be positive, got {self.tolerance!r}",
            "tolerance",
        )
        _require_unit(self.solo_significance, "solo_significance")
        for name in (
            "count_bonus_per_member",
            "max_count_bonus",
            "diversity_bonus_per_kind",
            "max_diversity_bonus",
        ):
            _require_unit(getattr(self, name), name)


# Preset importance per producer family. Not applied unless passed as
# FusionConfig.source_weights.
DEFAULT_SOURCE_WEIGHTS: dict[SignalSource, float] = {
    SignalSource.TREND: 1.0,
    SignalSource.MOMENTUM: 0.8,
    SignalSource.PATTERN: 0.7,
    SignalSource.LEVEL: 0.7,
    SignalSource.VOLUME: 0.6,
    SignalSource.VOLATILITY: 0.5,
    SignalSource.CORRELATION: 0.5,
    SignalSource.SENTIMENT: 0.4,
}


@dataclass(frozen=True)
class FusionConfig:
    """Signal fusion configuration.

    Attributes:
        mean_confidence_weight: Share of fused confidence taken from the
            mean component confidence.
        agreement_weight: Share taken from the weighted agreement ratio.
        strong_bias_threshold: |bias| above which agreement can be strong.
        strong_conflict_ceiling: Conflict below which agreement can be strong.
        conflicted_threshold: Conflict above which the set is conflicted.
        source_weights: Engine-configured weight per source. Empty keeps
            the weights the producers set.
    """
    mean_confidence_weight: float = 0.6
    agreement_weight: float = 0.4
    strong_bias_threshold: float = 0.5
    strong_conflict_ceiling: float = 0.3
    conflicted_threshold: float = 0.5
    source_weights: dict[SignalSource, float] = field(default_factory=dict)

    def __post_init__(self):
        for name in (
            "mean_confidence_weight",
            "agreement_weight",
            "strong_bias_threshold",
            "strong_conflict_ceiling",
            "conflicted_threshold",
        ):
            _require_unit(getattr(self, name), name)
        _require(
            math.isclose(self.mean_confidence_weight + self.agreement_weight, 1.0),
            "mean_confidence_weight and agreement_weight must sum to 1.0",
            "agreement_weight",
        )
        _require(
            self.strong_conflict_ceiling <= self.conflicted_threshold,
            "strong_conflict_ceiling must not exceed conflicted_threshold",
            "strong_conflict_ceiling",
        )
        for source, weight in self.source_weights.items():
            _require(
                math.isfinite(weight) and weight >= 0,
                f"source weight for {source} must be >= 0, got {weight!r}",
                "source_weights",
            )

    def get_weight(self, source: SignalSource) -> Optional[float]:
        """Return the configured weight for a source, or None to keep the producer's."""
        return self.source_weights.get(source)


@dataclass(frozen=True)
class ClassifierConfig:
    """Market condition decision-table configuration."""
    trend_dimension: Dimension = Dimension.TREND
    volatility_dimension: Dimension = Dimension.VOLATILITY
    ranging_bias_ceiling: float = 0.2
    trend_bias_floor: float = 0.0
    warning_confidence_penalty: float = 0.25

    def __post_init__(self):
        _require_unit(self.ranging_bias_ceiling, "ranging_bias_ceiling")
        _require_unit(self.trend_bias_floor, "trend_bias_floor")
        _require_unit(self.warning_confidence_penalty, "warning_confidence_penalty")
        _require(
            self.trend_dimension != self.volatility_dimension,
            "trend_dimension and volatility_dimension must differ",
            "volatility_dimension",
        )


@dataclass(frozen=True)
class EngineConfig:
    """Bundle of component configs for one evaluation context."""
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)

    @classmethod
    def from_settings(cls, settings) -> "EngineConfig":
        """Build component configs from flat environment settings.

        Args:
            settings: A ``src.settings.Settings`` instance.
        """
        thresholds = dict(DEFAULT_DIMENSION_THRESHOLDS)
        thresholds[Dimension.VOLATILITY] = HysteresisThresholds(
            enter_high=settings.volatility_enter_high,
            exit_high=settings.volatility_exit_high,
            enter_low=settings.volatility_enter_low,
            exit_low=settings.volatility_exit_low,
        )
        thresholds[Dimension.TREND] = HysteresisThresholds(
            enter_high=settings.trend_enter_high,
            exit_high=settings.trend_exit_high,
            enter_low=settings.trend_enter_low,
            exit_low=settings.trend_exit_low,
        )
        return cls(
            tracker=TrackerConfig(
                thresholds=thresholds,
                min_observations=settings.min_observations,
                min_dwell_cycles=settings.min_dwell_cycles,
                momentum_window=settings.momentum_window,
                momentum_threshold=settings.momentum_threshold,
            ),
            cluster=ClusterConfig(
                tolerance=settings.cluster_tolerance,
                solo_significance=settings.solo_significance,
            ),
            fusion=FusionConfig(
                strong_bias_threshold=settings.strong_bias_threshold,
                strong_conflict_ceiling=settings.strong_conflict_ceiling,
                conflicted_threshold=settings.conflicted_threshold,
                source_weights=(
                    dict(DEFAULT_SOURCE_WEIGHTS)
                    if settings.use_default_source_weights
                    else {}
                ),
            ),
            classifier=ClassifierConfig(
                ranging_bias_ceiling=settings.ranging_bias_ceiling,
            ),
        )
