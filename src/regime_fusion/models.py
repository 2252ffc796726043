"""Regime Fusion Data Models."""

import dataclasses
import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from src.regime_fusion.config import (
    Consensus,
    Dimension,
    Direction,
    FactorKind,
    HysteresisThresholds,
    MarketCondition,
    RegimeLabel,
    SignalSource,
    TradingStance,
    ZoneType,
)
from src.regime_fusion.exceptions import ErrorKind

# Logical cycle time: a bar index or a bar-close timestamp.
CycleTime = Union[int, float, datetime]


def _time_value(value: Optional[CycleTime]) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _check_unit(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be in [0, 1], got {value!r}")
    return value


def _check_weight(value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value < 0.0:
        raise ValueError(f"weight must be a finite value >= 0, got {value!r}")
    return value


@dataclass(frozen=True)
class SignalComponent:
    """One directional opinion from one upstream producer.

    Lives for a single evaluation cycle; the next cycle builds a new set.
    """
    source: SignalSource
    direction: Direction
    strength: float
    confidence: float
    weight: float = 1.0
    timestamp: Optional[CycleTime] = None
    active: bool = True

    def __post_init__(self):
        # Raises ValueError for names outside the known producer set.
        object.__setattr__(self, "source", SignalSource(self.source))
        if not isinstance(self.direction, Direction):
            raise ValueError(
                f"direction must be a Direction, got {self.direction!r}"
            )
        object.__setattr__(self, "strength", _check_unit("strength", self.strength))
        object.__setattr__(self, "confidence", _check_unit("confidence", self.confidence))
        object.__setattr__(self, "weight", _check_weight(self.weight))

    @property
    def bias(self) -> float:
        """Signed opinion in [-1, 1]."""
        return self.direction.sign * self.strength

    @property
    def effective_weight(self) -> float:
        return self.weight * self.confidence

    @property
    def score(self) -> float:
        """Ranking key for the dominant component."""
        return self.strength * self.confidence * self.weight

    def with_weight(self, weight: float) -> "SignalComponent":
        return dataclasses.replace(self, weight=weight)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "direction": self.direction.value,
            "strength": self.strength,
            "confidence": self.confidence,
            "weight": self.weight,
            "timestamp": _time_value(self.timestamp),
            "active": self.active,
        }


@dataclass(frozen=True)
class SpatialFactor:
    """One observation anchored to a price level."""
    kind: FactorKind
    price: float
    strength: float
    weight: float = 1.0
    observed_at: Optional[CycleTime] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", FactorKind(self.kind))
        price = float(self.price)
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"price must be a finite positive value, got {self.price!r}")
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "strength", _check_unit("strength", self.strength))
        object.__setattr__(self, "weight", _check_weight(self.weight))

    @property
    def mass(self) -> float:
        """Centroid weight of this factor."""
        return self.strength * self.weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "price": self.price,
            "strength": self.strength,
            "weight": self.weight,
            "observed_at": _time_value(self.observed_at),
        }


@dataclass(frozen=True)
class ConfluenceZone:
    """A price region where several spatial factors agree.

    Support/resistance is not stored: it depends on where price is when
    the zone is read, see ``zone_type``.
    """
    center: float
    tolerance: float
    members: tuple[SpatialFactor, ...]
    aggregate_strength: float
    confidence: float
    diversity: int

    @property
    def bounds(self) -> tuple[float, float]:
        return (self.center - self.tolerance, self.center + self.tolerance)

    @property
    def lower(self) -> float:
        return self.center - self.tolerance

    @property
    def upper(self) -> float:
        return self.center + self.tolerance

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def kinds(self) -> frozenset[FactorKind]:
        return frozenset(m.kind for m in self.members)

    def contains(self, price: float) -> bool:
        return self.lower <= price <= self.upper

    def distance_to(self, price: float) -> float:
        """Distance from price to the nearest zone edge (0 when inside)."""
        if self.contains(price):
            return 0.0
        return min(abs(price - self.lower), abs(price - self.upper))

    def zone_type(self, reference_price: float) -> ZoneType:
        if reference_price > self.upper:
            return ZoneType.SUPPORT
        if reference_price < self.lower:
            return ZoneType.RESISTANCE
        return ZoneType.NEUTRAL

    def to_dict(self, reference_price: Optional[float] = None) -> dict[str, Any]:
        d = {
            "center": round(self.center, 6),
            "lower": round(self.lower, 6),
            "upper": round(self.upper, 6),
            "member_count": self.member_count,
            "aggregate_strength": round(self.aggregate_strength, 4),
            "confidence": round(self.confidence, 4),
            "diversity": self.diversity,
            "kinds": sorted(k.value for k in self.kinds),
        }
        if reference_price is not None:
            d["zone_type"] = self.zone_type(reference_price).value
        return d


@dataclass(frozen=True)
class RegimeTransition:
    """A hysteresis label change for one dimension."""
    dimension: Dimension
    from_label: RegimeLabel
    to_label: RegimeLabel
    cycle_time: Optional[CycleTime]
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "dimension": self.dimension.value,
            "from": self.from_label.value,
            "to": self.to_label.value,
            "cycle_time": _time_value(self.cycle_time),
            "value": self.value,
        }


@dataclass
class RegimeState:
    """Cross-cycle classification state of one dimension.

    Owned and mutated by RegimeTracker only; consumers get copies through
    ``RegimeTracker.snapshot``.

    Attributes:
        label: Reported label, UNKNOWN until enough observations.
        raw_label: Hysteresis classification regardless of warm-up.
        running_mean: Streaming mean of the metric under the current label.
        pending_change: Short-window momentum runs against the label.
        momentum: Last-N delta behind ``pending_change``.
    """
    dimension: Dimension
    thresholds: HysteresisThresholds
    label: RegimeLabel = RegimeLabel.UNKNOWN
    raw_label: RegimeLabel = RegimeLabel.NORMAL
    started_at: Optional[CycleTime] = None
    duration_cycles: int = 0
    running_mean: float = 0.0
    pending_change: bool = False
    momentum: float = 0.0
    observations: int = 0
    last_value: Optional[float] = None
    mean_samples: int = 0
    recent: tuple[float, ...] = field(default_factory=tuple, repr=False)

    @property
    def is_known(self) -> bool:
        return self.label != RegimeLabel.UNKNOWN

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return None if self.is_known else ErrorKind.INSUFFICIENT_DATA

    def copy(self) -> "RegimeState":
        return dataclasses.replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dimension": self.dimension.value,
            "label": self.label.value,
            "raw_label": self.raw_label.value,
            "started_at": _time_value(self.started_at),
            "duration_cycles": self.duration_cycles,
            "running_mean": round(self.running_mean, 6),
            "pending_change": self.pending_change,
            "momentum": round(self.momentum, 6),
            "observations": self.observations,
            "last_value": self.last_value,
            "thresholds": dataclasses.asdict(self.thresholds),
        }


@dataclass(frozen=True)
class UnifiedSignal:
    """Consensus of one cycle's signal components.

    Attributes:
        bias: Weighted directional bias in [-1, 1].
        confidence: Fused confidence in [0, 1].
        consensus: Agreement classification.
        conflict_score: Weighted share of mass not agreeing with the bias.
        dominant: Component with the highest strength x confidence x weight.
        error_kind: ZERO_WEIGHT_MASS when nothing carried weight.
    """
    bias: float
    confidence: float
    consensus: Consensus
    conflict_score: float
    dominant: Optional[SignalComponent] = None
    component_count: int = 0
    agreeing_sources: tuple[SignalSource, ...] = ()
    dissenting_sources: tuple[SignalSource, ...] = ()
    reasoning: tuple[str, ...] = ()
    error_kind: Optional[ErrorKind] = None

    @property
    def dominant_source(self) -> Optional[SignalSource]:
        return self.dominant.source if self.dominant is not None else None

    @property
    def direction(self) -> Direction:
        return Direction.from_sign(self.bias)

    @property
    def agreement_ratio(self) -> float:
        return 1.0 - self.conflict_score

    def to_dict(self) -> dict[str, Any]:
        return {
            "bias": round(self.bias, 4),
            "confidence": round(self.confidence, 4),
            "consensus": self.consensus.value,
            "conflict_score": round(self.conflict_score, 4),
            "direction": self.direction.value,
            "dominant_source": self.dominant_source.value if self.dominant_source else None,
            "component_count": self.component_count,
            "agreeing_sources": [s.value for s in self.agreeing_sources],
            "dissenting_sources": [s.value for s in self.dissenting_sources],
            "reasoning": list(self.reasoning),
            "error": self.error_kind.value if self.error_kind else None,
        }


@dataclass(frozen=True)
class ConditionAssessment:
    """Qualitative market condition and stance for one cycle."""
    condition: MarketCondition
    stance: TradingStance
    direction: Direction
    confidence: float
    bias: float
    consensus: Consensus
    early_warnings: tuple[Dimension, ...] = ()
    nearest_support: Optional[ConfluenceZone] = None
    nearest_resistance: Optional[ConfluenceZone] = None
    rationale: tuple[str, ...] = ()

    @property
    def is_directional(self) -> bool:
        return self.stance == TradingStance.TREND_FOLLOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition.value,
            "stance": self.stance.value,
            "direction": self.direction.value,
            "confidence": round(self.confidence, 4),
            "bias": round(self.bias, 4),
            "consensus": self.consensus.value,
            "early_warnings": [d.value for d in self.early_warnings],
            "nearest_support": (
                self.nearest_support.to_dict() if self.nearest_support else None
            ),
            "nearest_resistance": (
                self.nearest_resistance.to_dict() if self.nearest_resistance else None
            ),
            "rationale": list(self.rationale),
        }


@dataclass(frozen=True)
class CycleResult:
    """Everything one evaluation cycle produced. Immutable once built.

    ``regimes`` and ``rejected_metrics`` are read-only mapping views over
    private copies; the regime states are tracker snapshots, not live state.
    """
    symbol: str
    timeframe: str
    cycle: int
    cycle_time: Optional[CycleTime]
    reference_price: Optional[float]
    unified: UnifiedSignal
    zones: tuple[ConfluenceZone, ...]
    regimes: Mapping[Dimension, RegimeState]
    assessment: ConditionAssessment
    transitions: tuple[RegimeTransition, ...] = ()
    rejected_metrics: Mapping[Dimension, ErrorKind] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "zones", tuple(self.zones))
        object.__setattr__(self, "transitions", tuple(self.transitions))
        object.__setattr__(self, "regimes", MappingProxyType(dict(self.regimes)))
        object.__setattr__(
            self, "rejected_metrics", MappingProxyType(dict(self.rejected_metrics))
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "cycle": self.cycle,
            "cycle_time": _time_value(self.cycle_time),
            "reference_price": self.reference_price,
            "unified": self.unified.to_dict(),
            "zones": [z.to_dict(self.reference_price) for z in self.zones],
            "regimes": {d.value: s.to_dict() for d, s in self.regimes.items()},
            "assessment": self.assessment.to_dict(),
            "transitions": [t.to_dict() for t in self.transitions],
            "rejected_metrics": {d.value: k.value for d, k in self.rejected_metrics.items()},
        }
