"""Tests for pcod_lhs.solar — sun position, day/night sign and surface irradiance."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from pcod_lhs.solar import (
    HORIZON_ALTITUDE,
    as_utc,
    compute_solar_position,
    light_level,
    polar_condition,
    solar_altitude,
    surface_shortwave,
)
from pcod_lhs.types import SUNSET_ZENITH

SOLSTICE_NOON = datetime(2001, 6, 21, 12)
SOLSTICE_MIDNIGHT = datetime(2001, 6, 21, 0)
DECEMBER_NOON = datetime(2001, 12, 21, 12)


class TestSolarPosition:
    def test_naive_times_are_utc(self):
        assert as_utc(SOLSTICE_NOON).tzinfo is timezone.utc
        alaska = timezone(timedelta(hours=-8))
        local = datetime(2001, 6, 21, 4, tzinfo=alaska)
        assert as_utc(local) == as_utc(SOLSTICE_NOON)

    def test_noon_altitude_at_solstice(self):
        # 90 - 45 + 23.44
        assert solar_altitude(0.0, 45.0, SOLSTICE_NOON) == pytest.approx(
            68.4, abs=1.0)

    def test_zenith_complements_altitude(self):
        pos = compute_solar_position(-160.0, 55.0, datetime(2001, 4, 30, 22))
        assert pos.zenith == pytest.approx(90.0 - pos.altitude)
        assert pos.polar is None

    def test_summer_sun_higher_than_winter(self):
        assert solar_altitude(0.0, 55.0, SOLSTICE_NOON) > \
            solar_altitude(0.0, 55.0, DECEMBER_NOON)

    def test_horizon_matches_sunset_zenith(self):
        assert HORIZON_ALTITUDE == pytest.approx(90.0 - SUNSET_ZENITH)


class TestPolarConditions:
    def test_polar_day(self):
        assert polar_condition(0.0, 80.0, SOLSTICE_NOON) == 'day'

    def test_polar_night(self):
        assert polar_condition(0.0, 80.0, DECEMBER_NOON) == 'night'

    def test_midlatitudes_have_sunrise(self):
        assert polar_condition(0.0, 55.0, SOLSTICE_NOON) is None
        assert polar_condition(0.0, 55.0, DECEMBER_NOON) is None

    def test_polar_day_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger='pcod_lhs.solar'):
            pos = compute_solar_position(0.0, 80.0, SOLSTICE_NOON)
        assert pos.polar == 'day'
        assert pos.zenith < SUNSET_ZENITH
        assert 'no sunrise/sunset' in caplog.text

    def test_polar_night_stays_dark(self, caplog):
        with caplog.at_level(logging.WARNING, logger='pcod_lhs.solar'):
            level = light_level(0.0, 80.0, DECEMBER_NOON)
        assert level < 0.0
        assert 'polar night' in caplog.text


class TestLightLevel:
    def test_positive_at_noon(self):
        assert light_level(0.0, 45.0, SOLSTICE_NOON) > 0.0

    def test_negative_at_midnight(self):
        assert light_level(0.0, 45.0, SOLSTICE_MIDNIGHT) < 0.0

    def test_local_time_follows_longitude(self):
        # 00:00 UTC is around local noon at 180°
        assert light_level(180.0, 45.0, SOLSTICE_MIDNIGHT) > 0.0

    def test_sign_flips_at_sunset_zenith(self):
        when = SOLSTICE_NOON
        pos = compute_solar_position(0.0, 45.0, when)
        assert light_level(0.0, 45.0, when) == pytest.approx(
            SUNSET_ZENITH - pos.zenith)


class TestSurfaceShortwave:
    def test_zero_at_night(self):
        assert surface_shortwave(0.0, 45.0, SOLSTICE_MIDNIGHT) == 0.0

    def test_clear_sky_noon(self):
        noon = surface_shortwave(0.0, 45.0, SOLSTICE_NOON)
        assert 500.0 < noon < 1361.0

    def test_morning_dimmer_than_noon(self):
        morning = surface_shortwave(0.0, 45.0, datetime(2001, 6, 21, 7))
        assert 0.0 < morning < surface_shortwave(0.0, 45.0, SOLSTICE_NOON)
