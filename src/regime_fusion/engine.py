"""Regime Fusion Engine.

Runs one evaluation cycle per bar close or timer tick for a single
(symbol, timeframe) context:

  factors   -> FactorClusterer          -> confluence zones
  metrics   -> RegimeTracker            -> regime states
  components-> SignalFusion             -> unified signal
  all three -> MarketConditionClassifier-> condition assessment

Each context owns its own RegimeTracker; contexts share nothing, so
independent (symbol, timeframe) pairs can be evaluated in parallel.
"""

import logging
import math
from typing import Iterable, Mapping, Optional, Union

from src.logging_config.context import CycleContext
from src.logging_config.performance import PerformanceTimer, log_performance
from src.regime_fusion.classifier import MarketConditionClassifier
from src.regime_fusion.clustering import FactorClusterer
from src.regime_fusion.config import Dimension, EngineConfig
from src.regime_fusion.exceptions import InvalidMetricError
from src.regime_fusion.fusion import SignalFusion
from src.regime_fusion.models import (
    CycleResult,
    CycleTime,
    SignalComponent,
    SpatialFactor,
)
from src.regime_fusion.tracker import RegimeTracker
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class RegimeFusionEngine:
    """Evaluation loop for one (symbol, timeframe) context.

    Args:
        symbol: Instrument identifier.
        timeframe: Bar timeframe label, e.g. "1h".
        config: EngineConfig bundle. Defaults to component defaults.
        tracker: Optional pre-built tracker (e.g. restored state).
    """

    def __init__(
        self,
        symbol: str,
        timeframe: str,
        config: Optional[EngineConfig] = None,
        tracker: Optional[RegimeTracker] = None,
    ) -> None:
        self.symbol = symbol
        self.timeframe = timeframe
        self.config = config or EngineConfig()
        self.tracker = tracker or RegimeTracker(self.config.tracker)
        self.clusterer = FactorClusterer(self.config.cluster)
        self.fusion = SignalFusion(self.config.fusion)
        self.classifier = MarketConditionClassifier(self.config.classifier)
        self._cycle = 0
        self._last_result: Optional[CycleResult] = None

    @classmethod
    def from_settings(
        cls, symbol: str, timeframe: str, settings: Optional[Settings] = None
    ) -> "RegimeFusionEngine":
        """Build an engine whose tunables come from the environment."""
        settings = settings or get_settings()
        return cls(symbol, timeframe, config=EngineConfig.from_settings(settings))

    # ── public API ────────────────────────────────────────────────

    @property
    def cycle(self) -> int:
        """Number of cycles evaluated so far."""
        return self._cycle

    @property
    def last_result(self) -> Optional[CycleResult]:
        return self._last_result

    @log_performance()
    def evaluate(
        self,
        components: Iterable[SignalComponent] = (),
        factors: Iterable[SpatialFactor] = (),
        metrics: Optional[Mapping[Union[Dimension, str], float]] = None,
        reference_price: Optional[float] = None,
        cycle_time: Optional[CycleTime] = None,
        tolerance: Optional[float] = None,
    ) -> CycleResult:
        """Run one evaluation cycle.

        Args:
            components: Directional signal components for this cycle.
            factors: Price-anchored factors for this cycle.
            metrics: Latest metric value per regime dimension.
            reference_price: Current price for support/resistance views.
            cycle_time: Logical time of the cycle. Defaults to the cycle number.
            tolerance: Clustering tolerance override for this cycle.

        Returns:
            The immutable CycleResult. Invalid metrics are reported in
            ``rejected_metrics``; the other dimensions still update.

        Raises:
            ValueError: bad reference_price or an unknown dimension name.
                Nothing is updated and the cycle counter does not move.
        """
        if reference_price is not None and (
            not math.isfinite(reference_price) or reference_price <= 0
        ):
            raise ValueError(
                f"reference_price must be a finite positive value, got {reference_price!r}"
            )
        # Unknown dimension names fail here, before any tracker state moves.
        observations = [
            (Dimension(dimension), value) for dimension, value in (metrics or {}).items()
        ]

        cycle = self._cycle + 1
        cycle_time = cycle if cycle_time is None else cycle_time

        with CycleContext(symbol=self.symbol, timeframe=self.timeframe, cycle=cycle):
            with PerformanceTimer("cluster"):
                zones = self.clusterer.cluster(factors, tolerance)

            transitions = []
            rejected = {}
            for dimension, value in observations:
                try:
                    _, transition = self.tracker.observe(dimension, value, cycle_time)
                except InvalidMetricError as exc:
                    rejected[dimension] = exc.error_kind
                    continue
                if transition is not None:
                    transitions.append(transition)
            regimes = self.tracker.snapshot()

            with PerformanceTimer("fuse"):
                unified = self.fusion.fuse(self.apply_source_weights(components))
            assessment = self.classifier.classify(
                regimes, unified, zones, reference_price
            )

            result = CycleResult(
                symbol=self.symbol,
                timeframe=self.timeframe,
                cycle=cycle,
                cycle_time=cycle_time,
                reference_price=reference_price,
                unified=unified,
                zones=tuple(zones),
                regimes=regimes,
                assessment=assessment,
                transitions=tuple(transitions),
                rejected_metrics=rejected,
            )
            if rejected:
                logger.warning(
                    f"Rejected metrics for {', '.join(d.value for d in rejected)}"
                )
            logger.debug(
                f"Cycle {cycle}: bias={unified.bias:+.3f} "
                f"consensus={unified.consensus.value} zones={len(zones)} "
                f"condition={assessment.condition.value}",
                extra={"condition": assessment.condition.value},
            )

        self._cycle = cycle
        self._last_result = result
        return result

    def apply_source_weights(
        self, components: Iterable[SignalComponent]
    ) -> list[SignalComponent]:
        """Replace producer weights with the engine-configured source weights."""
        fusion_config = self.config.fusion
        weighted = []
        for comp in components:
            weight = fusion_config.get_weight(comp.source)
            weighted.append(comp if weight is None else comp.with_weight(weight))
        return weighted

    def remove_dimension(self, dimension: Union[Dimension, str]) -> bool:
        return self.tracker.remove_dimension(dimension)

    def reset(self) -> None:
        """Forget all regime state and restart the cycle counter."""
        self.tracker.reset()
        self._cycle = 0
        self._last_result = None
        logger.info(f"Reset engine {self.symbol}/{self.timeframe}")


class EngineRegistry:
    """Isolated engines keyed by (symbol, timeframe)."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()
        self._engines: dict[tuple[str, str], RegimeFusionEngine] = {}

    def get_or_create(self, symbol: str, timeframe: str) -> RegimeFusionEngine:
        key = (symbol, timeframe)
        engine = self._engines.get(key)
        if engine is None:
            engine = RegimeFusionEngine(symbol, timeframe, config=self.config)
            self._engines[key] = engine
            logger.debug(f"Created engine for {symbol}/{timeframe}")
        return engine

    def get(self, symbol: str, timeframe: str) -> Optional[RegimeFusionEngine]:
        return self._engines.get((symbol, timeframe))

    def remove(self, symbol: str, timeframe: str) -> bool:
        return self._engines.pop((symbol, timeframe), None) is not None

    @property
    def contexts(self) -> list[tuple[str, str]]:
        return list(self._engines)

    def __len__(self) -> int:
        return len(self._engines)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._engines
