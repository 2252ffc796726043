"""Market Condition Classifier.

Small decision table over regime labels and the fused signal:
- Trend regime HIGH with bullish bias, or LOW with bearish bias: TRENDING
- Volatility regime HIGH with conflicted consensus: TRANSITIONAL
- Every regime NORMAL with a flat bias: RANGING
- Nothing fires: UNDETERMINED

When several rules fire the most conservative label wins.
"""

import logging
from typing import Iterable, Optional

from src.regime_fusion.clustering import nearest_resistance, nearest_support
from src.regime_fusion.config import (
    ClassifierConfig,
    Consensus,
    Dimension,
    Direction,
    MarketCondition,
    RegimeLabel,
    TradingStance,
)
from src.regime_fusion.models import (
    ConditionAssessment,
    ConfluenceZone,
    RegimeState,
    UnifiedSignal,
)

logger = logging.getLogger(__name__)

# Most conservative first.
CONDITION_PRIORITY = (
    MarketCondition.TRANSITIONAL,
    MarketCondition.RANGING,
    MarketCondition.TRENDING,
)

STANCE_BY_CONDITION = {
    MarketCondition.TRENDING: TradingStance.TREND_FOLLOW,
    MarketCondition.RANGING: TradingStance.MEAN_REVERT,
    MarketCondition.TRANSITIONAL: TradingStance.REDUCE_EXPOSURE,
    MarketCondition.UNDETERMINED: TradingStance.STAND_ASIDE,
}


class MarketConditionClassifier:
    """Combines regimes, the unified signal and zones into one assessment."""

    def __init__(self, config: Optional[ClassifierConfig] = None) -> None:
        self.config = config or ClassifierConfig()

    def classify(
        self,
        regimes: dict[Dimension, RegimeState],
        unified: UnifiedSignal,
        zones: Iterable[ConfluenceZone] = (),
        reference_price: Optional[float] = None,
    ) -> ConditionAssessment:
        """Classify the cycle's market condition.

        Args:
            regimes: Regime state per dimension.
            unified: This cycle's fused signal.
            zones: This cycle's confluence zones.
            reference_price: Current price, used to pick the nearest
                support and resistance zones.

        Returns:
            ConditionAssessment.
        """
        cfg = self.config
        fired: dict[MarketCondition, Direction] = {}
        rationale: list[str] = []

        trend = regimes.get(cfg.trend_dimension)
        trend_direction = self._trend_direction(trend, unified.bias)
        if trend_direction is not None:
            fired[MarketCondition.TRENDING] = trend_direction
            rationale.append(
                f"{cfg.trend_dimension.value} regime {trend.label.value} "
                f"agrees with bias {unified.bias:+.2f}"
            )

        volatility = regimes.get(cfg.volatility_dimension)
        if (
            volatility is not None
            and volatility.label == RegimeLabel.HIGH
            and unified.consensus == Consensus.CONFLICTED
        ):
            fired[MarketCondition.TRANSITIONAL] = Direction.NEUTRAL
            rationale.append(
                f"{cfg.volatility_dimension.value} regime high with conflicted signals "
                f"(conflict={unified.conflict_score:.2f})"
            )

        if (
            regimes
            and all(s.label == RegimeLabel.NORMAL for s in regimes.values())
            and abs(unified.bias) < cfg.ranging_bias_ceiling
        ):
            fired[MarketCondition.RANGING] = Direction.NEUTRAL
            rationale.append(
                f"All regimes normal with flat bias {unified.bias:+.2f}"
            )

        unknown = [dim.value for dim, s in regimes.items() if not s.is_known]
        if unknown:
            rationale.append(f"Insufficient data for: {', '.join(unknown)}")

        condition = next(
            (c for c in CONDITION_PRIORITY if c in fired),
            MarketCondition.UNDETERMINED,
        )
        if len(fired) > 1:
            rationale.append(
                f"Resolved {', '.join(c.value for c in fired)} to {condition.value}"
            )
        direction = fired.get(condition, Direction.NEUTRAL)

        early_warnings = tuple(dim for dim, s in regimes.items() if s.pending_change)
        if condition == MarketCondition.UNDETERMINED:
            confidence = 0.0
            rationale.append("No decision rule matched")
        else:
            confidence = unified.confidence
            if early_warnings:
                confidence *= 1.0 - cfg.warning_confidence_penalty
                rationale.append(
                    "Pending regime change: "
                    + ", ".join(d.value for d in early_warnings)
                )

        support = resistance = None
        if reference_price is not None:
            zones = list(zones)
            support = nearest_support(zones, reference_price)
            resistance = nearest_resistance(zones, reference_price)

        logger.debug(
            f"Condition {condition.value} ({direction.value}), "
            f"confidence={confidence:.2f}"
        )
        return ConditionAssessment(
            condition=condition,
            stance=STANCE_BY_CONDITION[condition],
            direction=direction,
            confidence=max(0.0, min(1.0, confidence)),
            bias=unified.bias,
            consensus=unified.consensus,
            early_warnings=early_warnings,
            nearest_support=support,
            nearest_resistance=resistance,
            rationale=tuple(rationale),
        )

    def _trend_direction(
        self, trend: Optional[RegimeState], bias: float
    ) -> Optional[Direction]:
        if trend is None:
            return None
        floor = self.config.trend_bias_floor
        if trend.label == RegimeLabel.HIGH and bias > floor:
            return Direction.BULLISH
        if trend.label == RegimeLabel.LOW and bias < -floor:
            return Direction.BEARISH
        return None
