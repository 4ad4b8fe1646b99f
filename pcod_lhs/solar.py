"""Sun position and clear-sky irradiance at an individual's location.

Thin layer over PySolar (https://pysolar.readthedocs.io). Calendar times
are treated as UTC; naive datetimes are taken to be UTC already. Angles
are degrees and longitudes are reckoned positive east of Greenwich.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from pysolar import radiation, solar

from pcod_lhs.types import SUNSET_ZENITH

logger = logging.getLogger(__name__)

# Sun altitude at the sunrise/sunset instant (refraction plus solar radius)
HORIZON_ALTITUDE = 90.0 - SUNSET_ZENITH


class SolarPosition(NamedTuple):
    altitude: float     # deg above the horizon
    zenith: float       # deg, 90 - altitude
    polar: Optional[str]  # 'day' or 'night' when the sun never crosses the horizon


def as_utc(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def solar_altitude(lon: float, lat: float, when: datetime) -> float:
    """Sun altitude (deg) including atmospheric refraction."""
    return float(solar.get_altitude(lat, lon, as_utc(when)))


def polar_condition(lon: float, lat: float, when: datetime) -> Optional[str]:
    """'day' or 'night' if the sun stays on one side of the horizon all day.

    Compares the altitude at local solar noon and local midnight of the
    UTC date of `when`.
    """
    when = as_utc(when)
    midnight = when.replace(hour=0, minute=0, second=0, microsecond=0)
    noon = midnight + timedelta(hours=12.0 - lon / 15.0)
    if solar_altitude(lon, lat, noon) < HORIZON_ALTITUDE:
        return 'night'
    if solar_altitude(lon, lat, noon + timedelta(hours=12)) > HORIZON_ALTITUDE:
        return 'day'
    return None


def compute_solar_position(lon: float, lat: float,
                           when: datetime) -> SolarPosition:
    """Altitude and zenith angle of the sun; warns on polar day or night."""
    altitude = solar_altitude(lon, lat, when)
    polar = polar_condition(lon, lat, when)
    if polar is not None:
        logger.warning("no sunrise/sunset at lon=%.3f lat=%.3f on %s (polar %s)",
                       lon, lat, as_utc(when).date(), polar)
    return SolarPosition(altitude, 90.0 - altitude, polar)


def light_level(lon: float, lat: float, when: datetime) -> float:
    """Signed light level: >= 0 during daytime, < 0 at night."""
    return SUNSET_ZENITH - compute_solar_position(lon, lat, when).zenith


def surface_shortwave(lon: float, lat: float, when: datetime) -> float:
    """Clear-sky direct shortwave at the sea surface (W/m^2); 0 at night."""
    altitude = solar_altitude(lon, lat, when)
    if altitude <= 0.0:
        return 0.0
    return max(float(radiation.get_radiation_direct(as_utc(when), altitude)),
               0.0)
