"""Regime Fusion Engine.

Multi-factor signal fusion and market-regime classification:
hysteresis regime tracking per dimension, confluence clustering of
price-anchored factors, and weighted consensus of directional signals,
combined into one market condition per evaluation cycle.

Example:
    from src.regime_fusion import RegimeFusionEngine, SignalComponent

    engine = RegimeFusionEngine("BTCUSDT", "1h")
    result = engine.evaluate(
        components=components,
        factors=factors,
        metrics={"volatility": 0.42, "trend": 0.61},
        reference_price=64_250.0,
    )
    print(result.assessment.condition, result.unified.bias)
"""

from src.regime_fusion.config import (
    Consensus,
    Dimension,
    Direction,
    FactorKind,
    MarketCondition,
    RegimeLabel,
    SignalSource,
    TradingStance,
    ZoneType,
    HysteresisThresholds,
    TrackerConfig,
    ClusterConfig,
    FusionConfig,
    ClassifierConfig,
    EngineConfig,
    DEFAULT_DIMENSION_THRESHOLDS,
    DEFAULT_SOURCE_WEIGHTS,
)
from src.regime_fusion.exceptions import (
    ErrorKind,
    RegimeFusionError,
    InvalidMetricError,
    InvalidConfigurationError,
)
from src.regime_fusion.models import (
    SignalComponent,
    SpatialFactor,
    ConfluenceZone,
    RegimeState,
    RegimeTransition,
    UnifiedSignal,
    ConditionAssessment,
    CycleResult,
)
from src.regime_fusion.tracker import RegimeTracker
from src.regime_fusion.clustering import (
    FactorClusterer,
    classify_zones,
    nearest_support,
    nearest_resistance,
    zones_frame,
)
from src.regime_fusion.fusion import SignalFusion
from src.regime_fusion.classifier import MarketConditionClassifier
from src.regime_fusion.engine import RegimeFusionEngine, EngineRegistry

__all__ = [
    # Enums
    "Consensus",
    "Dimension",
    "Direction",
    "FactorKind",
    "MarketCondition",
    "RegimeLabel",
    "SignalSource",
    "TradingStance",
    "ZoneType",
    # Config
    "HysteresisThresholds",
    "TrackerConfig",
    "ClusterConfig",
    "FusionConfig",
    "ClassifierConfig",
    "EngineConfig",
    "DEFAULT_DIMENSION_THRESHOLDS",
    "DEFAULT_SOURCE_WEIGHTS",
    # Errors
    "ErrorKind",
    "RegimeFusionError",
    "InvalidMetricError",
    "InvalidConfigurationError",
    # Models
    "SignalComponent",
    "SpatialFactor",
    "ConfluenceZone",
    "RegimeState",
    "RegimeTransition",
    "UnifiedSignal",
    "ConditionAssessment",
    "CycleResult",
    # Components
    "RegimeTracker",
    "FactorClusterer",
    "classify_zones",
    "nearest_support",
    "nearest_resistance",
    "zones_frame",
    "SignalFusion",
    "MarketConditionClassifier",
    # Engine
    "RegimeFusionEngine",
    "EngineRegistry",
]
