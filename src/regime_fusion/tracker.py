"""Regime Tracker.

Hysteresis state machine per monitored dimension. Each dimension moves
between LOW, NORMAL and HIGH through an asymmetric enter/exit band, so a
metric hovering near one cutoff does not flap between labels. A
short-window momentum check runs alongside and raises ``pending_change``
before a formal transition happens.
"""

import logging
import math
from typing import Optional, Union

import pandas as pd

from src.regime_fusion.config import (
    Dimension,
    HysteresisThresholds,
    RegimeLabel,
    TrackerConfig,
)
from src.regime_fusion.exceptions import InvalidMetricError
from src.regime_fusion.models import CycleTime, RegimeState, RegimeTransition

logger = logging.getLogger(__name__)

EXTREME_LABELS = (RegimeLabel.HIGH, RegimeLabel.LOW)


class RegimeTracker:
    """Owns one RegimeState per dimension for a single evaluation context.

    Args:
        config: TrackerConfig with thresholds, warm-up and momentum settings.
        states: Optional pre-existing state arena keyed by dimension. The
            tracker takes ownership; nothing else should mutate it.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        states: Optional[dict[Dimension, RegimeState]] = None,
    ) -> None:
        self.config = config or TrackerConfig()
        self._states: dict[Dimension, RegimeState] = states if states is not None else {}
        self._transitions: list[RegimeTransition] = []

    # ── public API ────────────────────────────────────────────────

    def update(
        self,
        dimension: Union[Dimension, str],
        metric_value: float,
        cycle_time: Optional[CycleTime] = None,
    ) -> RegimeState:
        """Feed one metric value and return the dimension's state handle.

        Raises:
            InvalidMetricError: value is NaN or infinite. The previous
                state is left untouched.
        """
        state, _ = self.observe(dimension, metric_value, cycle_time)
        return state

    def observe(
        self,
        dimension: Union[Dimension, str],
        metric_value: float,
        cycle_time: Optional[CycleTime] = None,
    ) -> tuple[RegimeState, Optional[RegimeTransition]]:
        """Like ``update`` but also returns the transition, if one fired."""
        dimension = Dimension(dimension)
        value = float(metric_value)
        if not math.isfinite(value):
            logger.warning(
                f"Rejected non-finite metric for {dimension.value}: {value!r}"
            )
            raise InvalidMetricError(dimension.value, value)

        state = self._states.get(dimension)
        if state is None:
            state = self._create(dimension, value, cycle_time)
            self._states[dimension] = state
            logger.debug(f"Tracking new dimension {dimension.value} at {value:.4f}")
            return state, None

        transition = self._advance(state, value, cycle_time)
        return state, transition

    def get(self, dimension: Union[Dimension, str]) -> Optional[RegimeState]:
        """Return the live state handle for a dimension (None if untracked)."""
        return self._states.get(Dimension(dimension))

    def remove_dimension(self, dimension: Union[Dimension, str]) -> bool:
        """Stop tracking a dimension. Returns False if it was not tracked."""
        removed = self._states.pop(Dimension(dimension), None)
        if removed is not None:
            logger.info(f"Removed regime dimension {removed.dimension.value}")
        return removed is not None

    def reset(self) -> None:
        self._states.clear()
        self._transitions.clear()

    def snapshot(self) -> dict[Dimension, RegimeState]:
        """Copies of every state, safe to hand to other layers."""
        return {dim: state.copy() for dim, state in self._states.items()}

    @property
    def dimensions(self) -> list[Dimension]:
        return list(self._states)

    @property
    def transitions(self) -> tuple[RegimeTransition, ...]:
        return tuple(self._transitions)

    def regime_frame(self) -> pd.DataFrame:
        """Current states as a DataFrame indexed by dimension."""
        columns = [
            "label", "raw_label", "duration_cycles", "running_mean",
            "pending_change", "momentum", "observations", "last_value",
        ]
        if not self._states:
            return pd.DataFrame(columns=columns)
        rows = []
        for dim, state in self._states.items():
            rows.append({
                "dimension": dim.value,
                "label": state.label.value,
                "raw_label": state.raw_label.value,
                "duration_cycles": state.duration_cycles,
                "running_mean": state.running_mean,
                "pending_change": state.pending_change,
                "momentum": state.momentum,
                "observations": state.observations,
                "last_value": state.last_value,
            })
        return pd.DataFrame(rows).set_index("dimension")[columns]

    # ── internal helpers ──────────────────────────────────────────

    def _create(
        self, dimension: Dimension, value: float, cycle_time: Optional[CycleTime]
    ) -> RegimeState:
        state = RegimeState(
            dimension=dimension,
            thresholds=self.config.thresholds_for(dimension),
            raw_label=RegimeLabel.NORMAL,
            started_at=cycle_time,
            duration_cycles=1,
            running_mean=value,
            observations=1,
            last_value=value,
            mean_samples=1,
            recent=(value,),
        )
        state.label = self._reported_label(state)
        return state

    def _advance(
        self, state: RegimeState, value: float, cycle_time: Optional[CycleTime]
    ) -> Optional[RegimeTransition]:
        state.observations += 1
        next_label = self._next_label(state, value)

        transition = None
        if next_label != state.raw_label:
            transition = RegimeTransition(
                dimension=state.dimension,
                from_label=state.raw_label,
                to_label=next_label,
                cycle_time=cycle_time,
                value=value,
            )
            self._record(transition)
            state.raw_label = next_label
            state.started_at = cycle_time
            state.duration_cycles = 0
            state.running_mean = value
            state.mean_samples = 1
        else:
            state.duration_cycles += 1
            state.mean_samples += 1
            state.running_mean += (value - state.running_mean) / state.mean_samples

        state.last_value = value
        state.recent = (state.recent + (value,))[-self.config.momentum_window:]
        state.label = self._reported_label(state)
        state.momentum, state.pending_change = self._momentum(state)
        return transition

    def _next_label(self, state: RegimeState, value: float) -> RegimeLabel:
        t: HysteresisThresholds = state.thresholds
        label = state.raw_label

        if label == RegimeLabel.NORMAL:
            if value > t.enter_high:
                return RegimeLabel.HIGH
            if value < t.enter_low:
                return RegimeLabel.LOW
            return label

        if state.duration_cycles < self.config.min_dwell_cycles:
            return label

        if label == RegimeLabel.HIGH:
            if value < t.enter_low:
                return RegimeLabel.LOW
            if value < t.exit_high:
                return RegimeLabel.NORMAL
            return label

        # LOW
        if value > t.enter_high:
            return RegimeLabel.HIGH
        if value > t.exit_low:
            return RegimeLabel.NORMAL
        return label

    def _reported_label(self, state: RegimeState) -> RegimeLabel:
        if state.observations < self.config.min_observations:
            return RegimeLabel.UNKNOWN
        return state.raw_label

    def _momentum(self, state: RegimeState) -> tuple[float, bool]:
        if len(state.recent) < 2:
            return 0.0, False
        delta = state.recent[-1] - state.recent[0]
        threshold = self.config.momentum_threshold

        if state.label == RegimeLabel.HIGH:
            pending = delta < -threshold
        elif state.label == RegimeLabel.LOW:
            pending = delta > threshold
        elif state.label == RegimeLabel.NORMAL:
            pending = abs(delta) > threshold
        else:
            pending = False
        return delta, pending

    def _record(self, transition: RegimeTransition) -> None:
        logger.info(
            f"Regime transition {transition.dimension.value}: "
            f"{transition.from_label.value} -> {transition.to_label.value} "
            f"at {transition.value:.4f}"
        )
        limit = self.config.max_transition_history
        if limit == 0:
            return
        self._transitions.append(transition)
        if len(self._transitions) > limit:
            del self._transitions[: len(self._transitions) - limit]
