"""Tests for pcod_lhs.bioenergetics — feeding-larva growth and survival."""

import math
from datetime import datetime

import pytest

from pcod_lhs.bioenergetics import (
    PREY_NAMES,
    BioenergeticGrowthDW,
    capture_success,
    gape_size,
    handling_time,
    length_from_weight,
    light_at_depth,
    light_attenuation,
    total_mortality,
    turbulent_dissipation,
    visual_range,
    weight_from_length,
)
from pcod_lhs.types import GrowthKind, LETHAL_INDEX


class TestLengthWeight:
    def test_inverse(self):
        w = weight_from_length(12.0)
        assert length_from_weight(w, 0.0) == pytest.approx(12.0)

    def test_length_never_shrinks(self):
        w = weight_from_length(12.0)
        assert length_from_weight(0.5 * w, 12.0) == 12.0
        assert length_from_weight(0.0, 7.0) == 7.0

    def test_heavier_is_longer(self):
        assert length_from_weight(2e-3, 0.0) > length_from_weight(1e-3, 0.0)


class TestLight:
    def test_clear_water_attenuation(self):
        k, fraction = light_attenuation(0.0, 10.0, 100.0)
        assert k == pytest.approx(0.0384)
        assert fraction == pytest.approx(math.exp(-0.384))

    def test_chlorophyll_darkens(self):
        k0, _ = light_attenuation(0.0, 10.0, 100.0)
        k1, _ = light_attenuation(5.0, 10.0, 100.0)
        assert k1 > k0

    def test_depth_capped_at_bottom(self):
        _, deep = light_attenuation(1.0, 500.0, 50.0)
        _, bottom = light_attenuation(1.0, 50.0, 50.0)
        assert deep == bottom

    def test_dark_at_midnight(self):
        # 00:00 UTC at 0°E is local midnight
        eb, _ = light_at_depth(45.0, 0.0, datetime(2001, 6, 21, 0), 0.5, 5.0,
                               100.0)
        assert eb == 0.0

    def test_light_at_noon_decreases_with_depth(self):
        shallow, _ = light_at_depth(45.0, 0.0, datetime(2001, 6, 21, 12), 0.5,
                                    1.0, 100.0)
        deep, _ = light_at_depth(45.0, 0.0, datetime(2001, 6, 21, 12), 0.5,
                                 30.0, 100.0)
        assert shallow > deep > 0.0


class TestForaging:
    def test_visual_range_solves_equation(self):
        contrast, area, eye, light, ke, k = 0.3, 1e-6, 1e4, 10.0, 1.0, 0.1
        r = visual_range(contrast, area, eye, light, ke, k)
        x = contrast * area * eye * light / (ke + light)
        assert r > 0
        assert r * r * math.exp(3 * k * r) == pytest.approx(x, rel=1e-8)

    def test_no_vision_in_darkness(self):
        assert visual_range(0.3, 1e-6, 1e4, 0.0, 1.0, 0.1) == 0.0

    def test_gape_grows_with_length(self):
        assert gape_size(10.0) > gape_size(5.0)

    def test_prey_wider_than_gape_not_captured(self):
        assert capture_success(2.0, gape_size(5.0) * 1.1, 5.0) == 0.0
        assert 0.0 < capture_success(0.6, 0.21, 10.0) <= 1.0

    def test_handling_time_finite(self):
        assert math.isfinite(handling_time(10.0, 0.5))
        assert handling_time(2.0, 5.0) > handling_time(0.6, 5.0)

    def test_dissipation_decreases_with_depth(self):
        assert turbulent_dissipation(10.0, 5.0) > turbulent_dissipation(10.0, 50.0)
        assert turbulent_dissipation(0.0, 5.0) == 0.0


class TestBioenergeticGrowth:
    def _compute(self, f, light, dt=3600.0, prey=(10.0, 10.0, 10.0, 10.0),
                 stomach=0.0):
        weight = weight_from_length(10.0)
        return f.compute(
            temperature=8.0, weight=weight, dt=dt, dt_days=dt / 86400.0,
            length=10.0, light=light, wind_x=5.0, wind_y=0.0, depth=10.0,
            stomach=stomach, attenuation=0.1, prey=prey, pco2=400.0,
            age_from_ysl=5.0, max_weight=weight,
        )

    def test_growth_kind(self):
        assert BioenergeticGrowthDW.growth_kind is GrowthKind.BIOENERGETIC
        assert len(PREY_NAMES) == 4

    def test_feeds_in_daylight(self):
        f = BioenergeticGrowthDW()
        res = self._compute(f, light=50.0)
        capacity = f.get_parameter('gut_size') * weight_from_length(10.0)
        assert 0.0 < res.ingestion <= capacity
        assert 0.0 < res.stomach_fullness <= 1.0
        assert 1.0 <= res.avg_prey_rank <= 4.0
        assert res.avg_prey_size > 0.0

    def test_no_feeding_in_darkness(self):
        res = self._compute(BioenergeticGrowthDW(), light=0.0)
        assert res.ingestion == 0.0
        assert res.metabolic_cost > 0.0

    def test_no_feeding_without_time(self):
        res = self._compute(BioenergeticGrowthDW(), light=50.0, dt=0.0)
        assert res.ingestion == 0.0
        assert res.metabolic_cost == 0.0

    def test_no_feeding_without_prey(self):
        res = self._compute(BioenergeticGrowthDW(), light=50.0,
                            prey=(0.0, 0.0, 0.0, 0.0))
        assert res.ingestion == 0.0

    def test_full_stomach_stops_ingestion(self):
        f = BioenergeticGrowthDW()
        full = f.get_parameter('gut_size') * weight_from_length(10.0)
        res = self._compute(f, light=50.0, stomach=full)
        assert res.ingestion == 0.0
        assert res.stomach_fullness == 1.0

    def test_daylight_raises_metabolism(self):
        f = BioenergeticGrowthDW()
        w = weight_from_length(10.0)
        assert f.metabolism(8.0, w, 3600.0, True) > \
            f.metabolism(8.0, w, 3600.0, False)

    def test_pco2_effect(self):
        w = weight_from_length(10.0)
        base = BioenergeticGrowthDW().max_growth(8.0, w, 1.0, 1200.0)
        acid = BioenergeticGrowthDW(pco2_effect=0.1).max_growth(8.0, w, 1.0, 1200.0)
        assert acid < base


class TestTotalMortality:
    def test_well_fed(self):
        m = total_mortality(10.0, 20.0, 0.1, 1e-3, 0.5, 1e-3)
        assert m.index == 0.0
        assert m.starvation == 0.0
        assert m.total == pytest.approx(m.fish + m.invertebrate)
        assert m.fish > 0.0

    def test_no_fish_predation_in_darkness(self):
        assert total_mortality(10.0, 0.0, 0.1, 1e-3, 0.5, 1e-3).fish == 0.0

    def test_starvation_index(self):
        half = total_mortality(10.0, 0.0, 0.1, 0.5e-3, 0.0, 1e-3)
        assert half.index == pytest.approx(LETHAL_INDEX)
        assert half.starvation > 0.0
        worse = total_mortality(10.0, 0.0, 0.1, 0.4e-3, 0.0, 1e-3)
        assert worse.index > LETHAL_INDEX

    def test_full_stomach_suppresses_starvation(self):
        m = total_mortality(10.0, 0.0, 0.1, 0.6e-3, 1.0, 1e-3)
        assert m.starvation == 0.0

    def test_larger_larvae_suffer_less_invertebrate_predation(self):
        small = total_mortality(5.0, 0.0, 0.1, 1e-3, 0.5, 1e-3)
        large = total_mortality(20.0, 0.0, 0.1, 1e-3, 0.5, 1e-3)
        assert large.invertebrate < small.invertebrate
