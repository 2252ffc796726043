"""Signal Fusion: merges directional signal components into one consensus.

Implements confidence-weighted bias, weighted agreement scoring,
explicit conflict accounting, and reasoning generation.
"""

from __future__ import annotations

import logging
from typing import Iterable

from src.regime_fusion.config import Consensus, Direction, FusionConfig, SignalSource
from src.regime_fusion.exceptions import ErrorKind
from src.regime_fusion.models import SignalComponent, UnifiedSignal

logger = logging.getLogger(__name__)

# |bias| below this is treated as no direction (rounding noise).
BIAS_EPSILON = 1e-12


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _unique_sources(components: Iterable[SignalComponent]) -> tuple[SignalSource, ...]:
    return tuple(dict.fromkeys(c.source for c in components))


class SignalFusion:
    """Fuses a cycle's signal components into a UnifiedSignal.

    Pipeline:
      1) Drop inactive and zero-effective-weight components
      2) Weighted bias: sum(sign x strength x weight x confidence) / sum(weight x confidence)
      3) Weighted agreement with the sign of the bias
      4) Confidence from mean confidence and agreement
      5) Consensus classification and dominant component
      6) Human-readable reasoning

    Args:
        config: FusionConfig with confidence blend and consensus cut-offs.
    """

    def __init__(self, config: FusionConfig | None = None) -> None:
        self.config = config or FusionConfig()

    # ── public API ────────────────────────────────────────────────

    def fuse(self, components: Iterable[SignalComponent]) -> UnifiedSignal:
        """Fuse signal components into one bounded consensus.

        Args:
            components: This cycle's components. Empty is valid.

        Returns:
            A UnifiedSignal. When no component carries weight the result
            has bias 0, confidence 0, consensus UNKNOWN and
            ``error_kind = ZERO_WEIGHT_MASS``.
        """
        components = list(components)
        effective = [c for c in components if c.active and c.effective_weight > 0]
        ignored = len(components) - len(effective)

        if not effective:
            reason = (
                "No signal components provided"
                if not components
                else f"All {len(components)} components inactive or zero-weight"
            )
            logger.debug(f"Fusion produced no signal: {reason}")
            return UnifiedSignal(
                bias=0.0,
                confidence=0.0,
                consensus=Consensus.UNKNOWN,
                conflict_score=0.0,
                component_count=0,
                reasoning=(reason,),
                error_kind=ErrorKind.ZERO_WEIGHT_MASS,
            )

        total_weight = 0.0
        weighted_bias = 0.0
        reasoning: list[str] = []
        for comp in effective:
            cw = comp.effective_weight
            total_weight += cw
            weighted_bias += comp.bias * cw
            reasoning.append(
                f"{comp.source.value}: {comp.direction.value} "
                f"(str={comp.strength:.2f}, conf={comp.confidence:.2f}, "
                f"w={comp.weight:.2f})"
            )

        bias = _clamp(weighted_bias / total_weight, -1.0, 1.0)
        bias_sign = 0 if abs(bias) < BIAS_EPSILON else (1 if bias > 0 else -1)

        agreeing = [c for c in effective if c.direction.sign == bias_sign]
        dissenting = [c for c in effective if c.direction.sign != bias_sign]
        agreement_ratio = _clamp(
            sum(c.effective_weight for c in agreeing) / total_weight, 0.0, 1.0
        )
        conflict_score = _clamp(1.0 - agreement_ratio, 0.0, 1.0)

        mean_confidence = sum(c.confidence for c in effective) / len(effective)
        confidence = _clamp(
            mean_confidence * self.config.mean_confidence_weight
            + agreement_ratio * self.config.agreement_weight,
            0.0,
            1.0,
        )

        consensus = self._consensus(bias, conflict_score)
        dominant = max(effective, key=lambda c: c.score)

        reasoning.insert(
            0,
            f"Consensus: {consensus.value} | Bias: {bias:+.3f} "
            f"({Direction.from_sign(bias_sign).value}) | "
            f"Agreement: {agreement_ratio:.0%} | Conflict: {conflict_score:.2f}",
        )
        if ignored:
            reasoning.append(f"Ignored {ignored} inactive or zero-weight components")

        return UnifiedSignal(
            bias=bias,
            confidence=confidence,
            consensus=consensus,
            conflict_score=conflict_score,
            dominant=dominant,
            component_count=len(effective),
            agreeing_sources=_unique_sources(agreeing),
            dissenting_sources=_unique_sources(dissenting),
            reasoning=tuple(reasoning),
        )

    def fuse_batch(
        self, by_symbol: dict[str, list[SignalComponent]]
    ) -> dict[str, UnifiedSignal]:
        """Fuse component sets for multiple symbols.

        Args:
            by_symbol: Dict mapping symbol -> list of SignalComponent.

        Returns:
            Dict mapping symbol -> UnifiedSignal.
        """
        return {symbol: self.fuse(comps) for symbol, comps in by_symbol.items()}

    # ── internal helpers ──────────────────────────────────────────

    def _consensus(self, bias: float, conflict_score: float) -> Consensus:
        cfg = self.config
        if abs(bias) > cfg.strong_bias_threshold and conflict_score < cfg.strong_conflict_ceiling:
            return Consensus.STRONG_AGREEMENT
        if conflict_score > cfg.conflicted_threshold:
            return Consensus.CONFLICTED
        return Consensus.WEAK_AGREEMENT
