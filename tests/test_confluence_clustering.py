"""Tests for src/regime_fusion/clustering.py: confluence zone clustering."""

import itertools

import numpy as np
import pytest

from src.regime_fusion.clustering import (
    FactorClusterer,
    classify_zones,
    nearest_resistance,
    nearest_support,
    zones_frame,
)
from src.regime_fusion.config import ClusterConfig, FactorKind, ZoneType
from src.regime_fusion.exceptions import ErrorKind, InvalidConfigurationError
from src.regime_fusion.models import SpatialFactor


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _factors() -> list[SpatialFactor]:
    return [
        SpatialFactor(FactorKind.LEVEL, 100.0, strength=0.6),
        SpatialFactor(FactorKind.TREND_LINE, 100.4, strength=0.7),
        SpatialFactor(FactorKind.PIVOT, 100.8, strength=0.5),
        SpatialFactor(FactorKind.LEVEL, 110.0, strength=0.5),
        SpatialFactor(FactorKind.PATTERN_TARGET, 120.0, strength=0.9),
    ]


def _signature(zones) -> list[tuple]:
    return [
        (
            round(z.center, 9),
            tuple(sorted((m.kind.value, m.price, m.strength, m.weight) for m in z.members)),
        )
        for z in zones
    ]


def _random_factors(n: int, seed: int = 7) -> list[SpatialFactor]:
    rng = np.random.RandomState(seed)
    kinds = list(FactorKind)
    return [
        SpatialFactor(
            kind=kinds[rng.randint(len(kinds))],
            price=float(round(rng.uniform(95, 105), 2)),
            strength=float(round(rng.uniform(0.1, 1.0), 2)),
            weight=float(round(rng.uniform(0.5, 2.0), 2)),
        )
        for _ in range(n)
    ]


# ---------------------------------------------------------------------------
# TestSpatialFactor
# ---------------------------------------------------------------------------
class TestSpatialFactor:
    def test_mass(self):
        f = SpatialFactor(FactorKind.LEVEL, 50.0, strength=0.5, weight=2.0)
        assert f.mass == 1.0

    @pytest.mark.parametrize("price", [0.0, -1.0, float("nan"), float("inf")])
    def test_invalid_price(self, price):
        with pytest.raises(ValueError, match="price"):
            SpatialFactor(FactorKind.LEVEL, price, strength=0.5)

    def test_invalid_strength(self):
        with pytest.raises(ValueError, match="strength"):
            SpatialFactor(FactorKind.LEVEL, 10.0, strength=1.2)

    def test_negative_weight(self):
        with pytest.raises(ValueError, match="weight"):
            SpatialFactor(FactorKind.LEVEL, 10.0, strength=0.5, weight=-1.0)

    def test_kind_name_coerced(self):
        f = SpatialFactor("pivot", 10.0, strength=0.5)
        assert f.kind is FactorKind.PIVOT

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError, match="bogus"):
            SpatialFactor("bogus", 10.0, strength=0.5)


# ---------------------------------------------------------------------------
# TestFactorClusterer
# ---------------------------------------------------------------------------
class TestFactorClusterer:
    def test_zone_count(self):
        zones = FactorClusterer().cluster(_factors(), tolerance=1.0)
        assert len(zones) == 2

    def test_weighted_running_centroid(self):
        zones = FactorClusterer().cluster(_factors(), tolerance=1.0)
        zone = zones[0]
        # (100*0.6 + 100.4*0.7 + 100.8*0.5) / 1.8
        assert zone.center == pytest.approx(180.68 / 1.8)
        assert zone.member_count == 3
        assert zone.diversity == 3
        assert zone.bounds == pytest.approx((zone.center - 1.0, zone.center + 1.0))

    def test_members_price_ordered(self):
        zone = FactorClusterer().cluster(_factors(), tolerance=1.0)[0]
        prices = [m.price for m in zone.members]
        assert prices == sorted(prices)

    def test_aggregate_strength_with_bonuses(self):
        zone = FactorClusterer().cluster(_factors(), tolerance=1.0)[0]
        # mean 0.6 + count bonus 0.1 + diversity bonus 0.1
        assert zone.aggregate_strength == pytest.approx(0.8)
        assert zone.confidence == pytest.approx(0.6993, abs=1e-3)

    def test_weak_singleton_dropped(self):
        zones = FactorClusterer().cluster(_factors(), tolerance=1.0)
        assert all(z.center != pytest.approx(110.0) for z in zones)

    def test_strong_singleton_kept(self):
        zones = FactorClusterer().cluster(_factors(), tolerance=1.0)
        solo = zones[1]
        assert solo.center == pytest.approx(120.0)
        assert solo.member_count == 1
        assert solo.aggregate_strength == pytest.approx(0.9)
        assert solo.confidence == pytest.approx(0.9)

    def test_diversity_beats_repetition(self):
        same = [
            SpatialFactor(FactorKind.LEVEL, 100.0, strength=0.6),
            SpatialFactor(FactorKind.LEVEL, 100.2, strength=0.6),
        ]
        mixed = [
            SpatialFactor(FactorKind.LEVEL, 100.0, strength=0.6),
            SpatialFactor(FactorKind.FIBONACCI, 100.2, strength=0.6),
        ]
        clusterer = FactorClusterer()
        z_same = clusterer.cluster(same, tolerance=1.0)[0]
        z_mixed = clusterer.cluster(mixed, tolerance=1.0)[0]
        assert z_same.aggregate_strength == pytest.approx(0.65)
        assert z_mixed.aggregate_strength == pytest.approx(0.70)

    def test_bonus_capped(self):
        factors = [
            SpatialFactor(kind, 100.0 + i * 0.01, strength=0.9)
            for i, kind in enumerate(FactorKind)
        ]
        zone = FactorClusterer().cluster(factors, tolerance=1.0)[0]
        assert zone.aggregate_strength <= 1.0
        assert 0.0 <= zone.confidence <= 1.0

    def test_chain_follows_centroid(self):
        # 102.5 is more than 1.0 from the seed but within 1.0 of the centroid.
        factors = [
            SpatialFactor(FactorKind.LEVEL, 101.0, strength=0.5),
            SpatialFactor(FactorKind.PIVOT, 101.8, strength=0.9),
            SpatialFactor(FactorKind.FIBONACCI, 102.5, strength=0.5),
        ]
        zones = FactorClusterer().cluster(factors, tolerance=1.0)
        assert len(zones) == 1
        assert zones[0].member_count == 3

    def test_member_left_behind_by_centroid_is_released(self):
        # 101.8 pulls the centroid to ~101.29, more than 1.0 above 100.0.
        factors = [
            SpatialFactor(FactorKind.LEVEL, 100.0, strength=0.1),
            SpatialFactor(FactorKind.PIVOT, 100.9, strength=1.0),
            SpatialFactor(FactorKind.FIBONACCI, 101.8, strength=1.0),
        ]
        zones = FactorClusterer().cluster(factors, tolerance=1.0)
        assert len(zones) == 1
        zone = zones[0]
        assert [m.price for m in zone.members] == [100.9, 101.8]
        assert zone.center == pytest.approx(101.35)
        assert all(zone.contains(m.price) for m in zone.members)

    def test_released_members_form_their_own_zone(self):
        factors = [
            SpatialFactor(FactorKind.LEVEL, 100.0, strength=0.9, weight=0.1),
            SpatialFactor(FactorKind.PIVOT, 100.9, strength=1.0),
            SpatialFactor(FactorKind.FIBONACCI, 101.8, strength=1.0),
        ]
        zones = FactorClusterer().cluster(factors, tolerance=1.0)
        assert [z.member_count for z in zones] == [1, 2]
        assert zones[0].center == pytest.approx(100.0)
        assert [z.center for z in zones] == sorted(z.center for z in zones)

    def test_zero_mass_members_use_plain_mean(self):
        factors = [
            SpatialFactor(FactorKind.LEVEL, 50.0, strength=0.5, weight=0.0),
            SpatialFactor(FactorKind.PIVOT, 50.5, strength=0.5, weight=0.0),
        ]
        zone = FactorClusterer().cluster(factors, tolerance=1.0)[0]
        assert zone.center == pytest.approx(50.25)
        # plain mean 0.5 + count bonus 0.05 + diversity bonus 0.05
        assert zone.aggregate_strength == pytest.approx(0.6)

    def test_empty_input(self):
        assert FactorClusterer().cluster([]) == []

    def test_config_tolerance_used_by_default(self):
        clusterer = FactorClusterer(ClusterConfig(tolerance=0.1))
        zones = clusterer.cluster(_factors())
        # Everything splits apart; only the strong singleton survives.
        assert len(zones) == 1
        assert zones[0].center == pytest.approx(120.0)

    @pytest.mark.parametrize("tol", [0.0, -1.0, float("nan")])
    def test_invalid_tolerance(self, tol):
        with pytest.raises(InvalidConfigurationError) as exc_info:
            FactorClusterer().cluster(_factors(), tolerance=tol)
        assert exc_info.value.error_kind == ErrorKind.INVALID_CONFIGURATION


# ---------------------------------------------------------------------------
# TestClusteringProperties
# ---------------------------------------------------------------------------
class TestClusteringProperties:
    def test_all_permutations_same_zones(self):
        factors = _factors()
        clusterer = FactorClusterer()
        expected = _signature(clusterer.cluster(factors, tolerance=1.0))
        for perm in itertools.permutations(factors):
            assert _signature(clusterer.cluster(list(perm), tolerance=1.0)) == expected

    def test_shuffled_large_set(self):
        factors = _random_factors(60)
        clusterer = FactorClusterer()
        expected = clusterer.cluster(factors, tolerance=0.75)
        rng = np.random.RandomState(11)
        for _ in range(10):
            shuffled = [factors[i] for i in rng.permutation(len(factors))]
            assert clusterer.cluster(shuffled, tolerance=0.75) == expected

    def test_every_factor_assigned_once(self):
        factors = _random_factors(40)
        zones = FactorClusterer(ClusterConfig(solo_significance=0.0)).cluster(
            factors, tolerance=0.5
        )
        members = [m for z in zones for m in z.members]
        assert len(members) == len(factors)

    @pytest.mark.parametrize("seed", [3, 7, 19, 42])
    def test_members_within_zone_bounds(self, seed):
        factors = _random_factors(80, seed=seed)
        zones = FactorClusterer(ClusterConfig(solo_significance=0.0)).cluster(
            factors, tolerance=0.6
        )
        for zone in zones:
            assert all(zone.contains(m.price) for m in zone.members)
        assert sum(z.member_count for z in zones) == len(factors)

    def test_idempotent(self):
        factors = _random_factors(30)
        clusterer = FactorClusterer()
        assert clusterer.cluster(factors, 0.5) == clusterer.cluster(factors, 0.5)

    def test_input_not_mutated(self):
        factors = _factors()
        original = list(factors)
        FactorClusterer().cluster(factors, tolerance=1.0)
        assert factors == original


# ---------------------------------------------------------------------------
# TestZoneViews
# ---------------------------------------------------------------------------
class TestZoneViews:
    @pytest.fixture
    def zones(self):
        return FactorClusterer().cluster(_factors(), tolerance=1.0)

    def test_zone_type_relative_to_price(self, zones):
        low, high = zones
        assert low.zone_type(105.0) == ZoneType.SUPPORT
        assert high.zone_type(105.0) == ZoneType.RESISTANCE
        assert low.zone_type(100.5) == ZoneType.NEUTRAL

    def test_same_zone_flips_as_price_moves(self, zones):
        low = zones[0]
        assert low.zone_type(95.0) == ZoneType.RESISTANCE
        assert low.zone_type(105.0) == ZoneType.SUPPORT

    def test_classify_zones(self, zones):
        pairs = classify_zones(zones, 105.0)
        assert [t for _, t in pairs] == [ZoneType.SUPPORT, ZoneType.RESISTANCE]

    def test_nearest_support_and_resistance(self, zones):
        assert nearest_support(zones, 105.0) is zones[0]
        assert nearest_resistance(zones, 105.0) is zones[1]
        assert nearest_support(zones, 125.0) is zones[1]
        assert nearest_resistance(zones, 125.0) is None
        assert nearest_support(zones, 90.0) is None

    def test_contains_and_distance(self, zones):
        low = zones[0]
        assert low.contains(low.center)
        assert low.distance_to(low.center) == 0.0
        assert low.distance_to(low.upper + 2.0) == pytest.approx(2.0)

    def test_to_dict(self, zones):
        d = zones[0].to_dict(105.0)
        assert d["zone_type"] == "support"
        assert d["member_count"] == 3
        assert d["kinds"] == ["level", "pivot", "trend_line"]

    def test_zones_frame(self, zones):
        df = zones_frame(zones, 105.0)
        assert len(df) == 2
        assert list(df["zone_type"]) == ["support", "resistance"]

    def test_empty_zones_frame(self):
        df = zones_frame([])
        assert df.empty
        assert "center" in df.columns
