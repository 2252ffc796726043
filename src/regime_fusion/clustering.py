"""Confluence Zone Clustering.

Groups price-anchored factors (levels, trend lines, pattern targets, ...)
into confluence zones by scanning against a running, strength-weighted
centroid. Every member of a zone lies within its bounds: members left
behind by a moving centroid are released and clustered again. Factors
are sorted by price before scanning, so the resulting zones do not
depend on input order.
"""

import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from src.regime_fusion.config import ClusterConfig, ZoneType
from src.regime_fusion.exceptions import InvalidConfigurationError
from src.regime_fusion.models import ConfluenceZone, SpatialFactor

logger = logging.getLogger(__name__)


def _sort_key(factor: SpatialFactor) -> tuple:
    return (
        factor.price,
        factor.kind.value,
        factor.strength,
        factor.weight,
        repr(factor.observed_at),
    )


def _centroid(members: list[SpatialFactor]) -> float:
    """Strength x weight centroid; plain mean when no member carries mass."""
    prices = np.array([m.price for m in members])
    masses = np.array([m.mass for m in members])
    if masses.sum() > 0:
        return float(np.average(prices, weights=masses))
    return float(prices.mean())


class FactorClusterer:
    """Clusters spatial factors into confidence-scored confluence zones."""

    def __init__(self, config: Optional[ClusterConfig] = None) -> None:
        self.config = config or ClusterConfig()

    def cluster(
        self,
        factors: Iterable[SpatialFactor],
        tolerance: Optional[float] = None,
    ) -> list[ConfluenceZone]:
        """Cluster factors into zones, ordered by center price.

        Args:
            factors: This cycle's spatial factors.
            tolerance: Absolute price distance from the running centroid
                within which a factor joins a zone. Defaults to
                ``config.tolerance``.

        Returns:
            List of ConfluenceZone; empty when nothing qualifies.
        """
        tol = self.config.tolerance if tolerance is None else float(tolerance)
        if not np.isfinite(tol) or tol <= 0:
            raise InvalidConfigurationError(
                f"tolerance must be positive, got {tolerance!r}", field="tolerance"
            )

        ordered = sorted(factors, key=_sort_key)
        zones: list[ConfluenceZone] = []
        for members in self._scan(ordered, tol):
            zone = self._build_zone(members, tol)
            if zone is not None:
                zones.append(zone)
        zones.sort(key=lambda z: z.center)

        logger.debug(
            f"Clustered {len(ordered)} factors into {len(zones)} zones (tolerance={tol})"
        )
        return zones

    def _scan(
        self, ordered: list[SpatialFactor], tolerance: float
    ) -> list[list[SpatialFactor]]:
        """Split price-sorted factors into groups that fit their own centroid band.

        A factor joins while it is within tolerance of the running centroid.
        Each join pulls the centroid up, so the lowest members are released
        as soon as they fall below ``centroid - tolerance``; released
        factors are scanned again as their own group.
        """
        groups: list[list[SpatialFactor]] = []
        i = 0
        n = len(ordered)
        while i < n:
            members = [ordered[i]]
            j = i + 1
            # Sorted input: once one factor is out of reach, all later ones are.
            while j < n and ordered[j].price - _centroid(members) <= tolerance:
                members.append(ordered[j])
                j += 1

                released: list[SpatialFactor] = []
                while members[0].price < _centroid(members) - tolerance:
                    released.append(members.pop(0))
                if released:
                    groups.extend(self._scan(released, tolerance))
            groups.append(members)
            i = j
        return groups

    def _build_zone(
        self, members: list[SpatialFactor], tolerance: float
    ) -> Optional[ConfluenceZone]:
        cfg = self.config
        if len(members) == 1 and members[0].strength <= cfg.solo_significance:
            return None

        prices = np.array([m.price for m in members])
        strengths = np.array([m.strength for m in members])
        weights = np.array([m.weight for m in members])
        masses = strengths * weights

        center = _centroid(members)
        if masses.sum() > 0:
            spread = float(np.average(np.abs(prices - center), weights=masses))
        else:
            spread = float(np.abs(prices - center).mean())

        if weights.sum() > 0:
            base_strength = float(np.average(strengths, weights=weights))
        else:
            base_strength = float(strengths.mean())

        diversity = len({m.kind for m in members})
        count_bonus = min(cfg.count_bonus_per_member * (len(members) - 1), cfg.max_count_bonus)
        diversity_bonus = min(cfg.diversity_bonus_per_kind * (diversity - 1), cfg.max_diversity_bonus)
        aggregate = min(1.0, base_strength + count_bonus + diversity_bonus)

        # Tight zones keep full confidence; members spread to the edge halve it.
        tightness = 1.0 - 0.5 * min(1.0, spread / tolerance)
        confidence = max(0.0, min(1.0, aggregate * tightness))

        return ConfluenceZone(
            center=center,
            tolerance=tolerance,
            members=tuple(members),
            aggregate_strength=round(aggregate, 6),
            confidence=round(confidence, 6),
            diversity=diversity,
        )


# ── read-time zone views ──────────────────────────────────────────────


def classify_zones(
    zones: Iterable[ConfluenceZone], reference_price: float
) -> list[tuple[ConfluenceZone, ZoneType]]:
    """Pair each zone with its type relative to the current price."""
    return [(zone, zone.zone_type(reference_price)) for zone in zones]


def nearest_support(
    zones: Iterable[ConfluenceZone], reference_price: float
) -> Optional[ConfluenceZone]:
    """Closest zone lying wholly below the price."""
    below = [z for z in zones if z.zone_type(reference_price) == ZoneType.SUPPORT]
    if not below:
        return None
    return max(below, key=lambda z: (z.upper, z.confidence))


def nearest_resistance(
    zones: Iterable[ConfluenceZone], reference_price: float
) -> Optional[ConfluenceZone]:
    """Closest zone lying wholly above the price."""
    above = [z for z in zones if z.zone_type(reference_price) == ZoneType.RESISTANCE]
    if not above:
        return None
    return min(above, key=lambda z: (z.lower, -z.confidence))


def zones_frame(
    zones: Iterable[ConfluenceZone], reference_price: Optional[float] = None
) -> pd.DataFrame:
    """Tabulate zones for display collaborators."""
    rows = [zone.to_dict(reference_price) for zone in zones]
    if not rows:
        return pd.DataFrame(
            columns=["center", "lower", "upper", "member_count",
                     "aggregate_strength", "confidence", "diversity", "kinds"]
        )
    return pd.DataFrame(rows)
