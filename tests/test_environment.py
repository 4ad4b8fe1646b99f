"""Tests for pcod_lhs.environment — gridded field interpolation."""

from datetime import datetime

import numpy as np
import pytest

from pcod_lhs.environment import GriddedEnvironment


class TestConstruction:
    def test_uniform_box(self, environment):
        assert (environment.ni, environment.nj) == (10, 10)
        assert environment.n_levels == 11
        assert environment.field_exists('temp')
        assert not environment.field_exists('u')

    def test_shape_mismatch(self):
        lon, lat = np.meshgrid(np.arange(4.0), np.arange(3.0))
        with pytest.raises(ValueError, match="must match bathymetry"):
            GriddedEnvironment(lon, lat, np.ones((4, 4)))
        with pytest.raises(ValueError, match="Field 'temp'"):
            GriddedEnvironment(lon, lat, np.ones((3, 4)),
                               {'temp': np.ones((5, 3, 4))}, n_levels=2)

    def test_needs_two_levels(self):
        with pytest.raises(ValueError, match="n_levels"):
            GriddedEnvironment.uniform(n_levels=1)

    def test_fields_are_read_only(self, environment):
        with pytest.raises(ValueError):
            environment.fields['temp'][0, 0, 0] = 0.0
        with pytest.raises(ValueError):
            environment.bathymetry[0, 0] = 0.0


class TestInterpolation:
    def _sloped(self):
        lon, lat = np.meshgrid(np.arange(5.0), np.arange(5.0))
        bathy = np.full((5, 5), 50.0)
        temp = np.broadcast_to(np.arange(5.0), (3, 5, 5)).copy()
        surface = np.arange(5.0)[:, None] * np.ones((5, 5))
        return GriddedEnvironment(lon, lat, bathy,
                                  {'temp': temp, 'Su': surface}, n_levels=3)

    def test_uniform_value(self, environment):
        assert environment.interpolate_temperature((3.3, 4.1, 2.5)) == \
            pytest.approx(8.0)
        assert environment.interpolate_salinity((3.3, 4.1, 2.5)) == \
            pytest.approx(32.0)

    def test_linear_in_i(self):
        env = self._sloped()
        assert env.interpolate('temp', (1.5, 2.0, 1.0)) == pytest.approx(1.5)

    def test_two_dimensional_field(self):
        env = self._sloped()
        assert env.interpolate('Su', (0.0, 2.5, 2.0)) == pytest.approx(2.5)

    def test_clamped_outside_grid(self):
        env = self._sloped()
        assert env.interpolate('temp', (-3.0, 2.0, 9.0)) == pytest.approx(0.0)

    def test_missing_field(self, environment):
        with pytest.raises(KeyError, match="No environment field 'rho'"):
            environment.interpolate('rho', (1.0, 1.0, 1.0))

    def test_lon_lat(self, environment):
        assert environment.interpolate_lon((2.0, 0.0)) == pytest.approx(-159.98)
        assert environment.interpolate_lat((0.0, 3.0)) == pytest.approx(55.03)


class TestVerticalCoordinate:
    def test_levels_span_water_column(self, environment):
        assert environment.calc_z_from_k(4.0, 4.0, 0.0) == pytest.approx(-100.0)
        assert environment.calc_z_from_k(4.0, 4.0, 10.0) == pytest.approx(0.0)
        assert environment.calc_z_from_k(4.0, 4.0, 5.0) == pytest.approx(-50.0)

    def test_inverse(self, environment):
        k = environment.calc_k_from_z(4.0, 4.0, -37.0)
        assert environment.calc_z_from_k(4.0, 4.0, k) == pytest.approx(-37.0)

    def test_k_clipped(self, environment):
        assert environment.calc_k_from_z(4.0, 4.0, -250.0) == 0.0
        assert environment.calc_k_from_z(4.0, 4.0, 5.0) == 10.0


class TestHorizontalCoordinates:
    def test_from_geographic(self, environment):
        i, j = environment.compute_grid_from_geographic(-159.965, 55.02)
        assert i == pytest.approx(3.5)
        assert j == pytest.approx(2.0)

    def test_projected_round_trip(self, environment):
        x, y = environment.compute_projected_from_grid(2.5, 3.0)
        assert (x, y) == (2500.0, 3000.0)
        assert environment.compute_grid_from_projected(x, y) == (2.5, 3.0)

    def test_grid_edge(self, environment):
        assert not environment.is_at_grid_edge((4.5, 4.5, 0.0), 0.5)
        assert environment.is_at_grid_edge((0.2, 4.5, 0.0), 0.5)
        assert environment.is_at_grid_edge((4.5, 8.7, 0.0), 0.5)


class TestCalendar:
    def test_year_day(self, environment):
        assert environment.year_day(0.0) == 1.0
        assert environment.year_day(1.5 * 86400.0) == pytest.approx(2.5)

    def test_reference_time(self):
        env = GriddedEnvironment.uniform(reference_time=datetime(2001, 3, 1, 6))
        assert env.year_day(0.0) == pytest.approx(60.25)
        assert env.calendar_time(3600.0) == datetime(2001, 3, 1, 7)

    def test_set_reference_time(self, environment):
        environment.set_reference_time(datetime(2000, 3, 1))
        assert environment.year_day(0.0) == pytest.approx(61.0)
        assert environment.calendar_time(86400.0) == datetime(2000, 3, 2)
