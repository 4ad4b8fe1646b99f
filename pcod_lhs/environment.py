"""Physical environment: field interpolation on a terrain-following grid.

Positions are fractional grid indices (i, j, k):
  - i: x index (0 .. ni-1), j: y index (0 .. nj-1)
  - k: vertical level (0 = bottom, n_levels-1 = surface)

Three-dimensional fields have shape (nk, nj, ni); two-dimensional
fields (bathymetry, SSH, wind stress, lon, lat) have shape (nj, ni).
Interpolation is trilinear/bilinear (scipy.ndimage.map_coordinates,
order 1), clamped at the grid boundary.

Vertical levels are evenly spaced between the bottom (z = -h) and the
sea surface (z = ssh):

    z(k) = -h + k / (nk - 1) · (h + ssh)

Fields are read-only inputs shared by every individual; nothing here
mutates them after construction.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.ndimage import map_coordinates

from pcod_lhs.types import SECONDS_PER_DAY


Position = Sequence[float]


class PhysicalEnvironment:
    """Interface the life-stage engine uses to query the ocean model."""

    def field_exists(self, name: str) -> bool:
        raise NotImplementedError

    def interpolate(self, name: str, pos: Position) -> float:
        raise NotImplementedError

    def interpolate_temperature(self, pos: Position) -> float:
        return self.interpolate('temp', pos)

    def interpolate_salinity(self, pos: Position) -> float:
        return self.interpolate('salt', pos)

    def interpolate_bathymetric_depth(self, pos: Position) -> float:
        raise NotImplementedError

    def interpolate_ssh(self, pos: Position) -> float:
        raise NotImplementedError

    def interpolate_lat(self, pos: Position) -> float:
        raise NotImplementedError

    def interpolate_lon(self, pos: Position) -> float:
        raise NotImplementedError

    def calc_z_from_k(self, i: float, j: float, k: float) -> float:
        raise NotImplementedError

    def calc_k_from_z(self, i: float, j: float, z: float) -> float:
        raise NotImplementedError

    def compute_grid_from_geographic(self, lon: float,
                                     lat: float) -> Tuple[float, float]:
        raise NotImplementedError

    def compute_grid_from_projected(self, x: float,
                                    y: float) -> Tuple[float, float]:
        raise NotImplementedError

    def compute_projected_from_grid(self, i: float,
                                    j: float) -> Tuple[float, float]:
        raise NotImplementedError

    def is_at_grid_edge(self, pos: Position, tolerance: float) -> bool:
        raise NotImplementedError

    def grid_spacing(self) -> Tuple[float, float]:
        raise NotImplementedError

    def calendar_time(self, time: float) -> datetime:
        raise NotImplementedError

    def set_reference_time(self, when: datetime) -> None:
        raise NotImplementedError

    def year_day(self, time: float) -> float:
        raise NotImplementedError

    @property
    def n_levels(self) -> int:
        raise NotImplementedError


class GriddedEnvironment(PhysicalEnvironment):
    """In-memory gridded environment.

    Args:
        lon: Longitude (deg) of grid points, shape (nj, ni).
        lat: Latitude (deg) of grid points, shape (nj, ni).
        bathymetry: Bottom depth (m, positive), shape (nj, ni).
        fields: Named 3-D (nk, nj, ni) or 2-D (nj, ni) arrays. Conventional
            names: 'temp', 'salt', 'rho', 'u', 'v', 'w' (m/s), prey fields
            and surface stresses 'Su', 'Sv'.
        n_levels: Number of vertical levels (nk >= 2).
        ssh: Sea-surface height (m), shape (nj, ni); zeros if omitted.
        dx, dy: Grid spacing (m).
        reference_time: Calendar time of model time 0 (s).
    """

    def __init__(
        self,
        lon: np.ndarray,
        lat: np.ndarray,
        bathymetry: np.ndarray,
        fields: Optional[Dict[str, np.ndarray]] = None,
        n_levels: int = 2,
        ssh: Optional[np.ndarray] = None,
        dx: float = 1000.0,
        dy: float = 1000.0,
        reference_time: Optional[datetime] = None,
    ):
        self.bathymetry = self._frozen(bathymetry)
        nj, ni = self.bathymetry.shape
        self.lon = self._frozen(lon)
        self.lat = self._frozen(lat)
        if self.lon.shape != (nj, ni) or self.lat.shape != (nj, ni):
            raise ValueError(
                f"lon/lat shapes {self.lon.shape}/{self.lat.shape} must "
                f"match bathymetry {(nj, ni)}"
            )
        if n_levels < 2:
            raise ValueError(f"n_levels must be >= 2, got {n_levels}")
        self._n_levels = int(n_levels)
        self.ssh = self._frozen(ssh if ssh is not None else np.zeros((nj, ni)))
        self.fields: Dict[str, np.ndarray] = {}
        for name, values in (fields or {}).items():
            arr = self._frozen(values)
            if arr.shape not in ((self._n_levels, nj, ni), (nj, ni)):
                raise ValueError(
                    f"Field '{name}' has shape {arr.shape}; expected "
                    f"{(self._n_levels, nj, ni)} or {(nj, ni)}"
                )
            self.fields[name] = arr
        self.dx = float(dx)
        self.dy = float(dy)
        self.reference_time = reference_time or datetime(2000, 1, 1)
        self.ni, self.nj = ni, nj

    @staticmethod
    def _frozen(values: np.ndarray) -> np.ndarray:
        arr = np.array(values, dtype=np.float64)
        arr.setflags(write=False)
        return arr

    @classmethod
    def uniform(cls, ni: int = 10, nj: int = 10, n_levels: int = 11,
                depth: float = 100.0, lon0: float = -160.0,
                lat0: float = 55.0, dlon: float = 0.01,
                dlat: float = 0.01, values: Optional[Dict[str, float]] = None,
                **kwargs) -> 'GriddedEnvironment':
        """Flat-bottomed box with spatially constant 3-D fields."""
        lon, lat = np.meshgrid(lon0 + dlon * np.arange(ni),
                               lat0 + dlat * np.arange(nj))
        bathy = np.full((nj, ni), float(depth))
        fields = {name: np.full((n_levels, nj, ni), float(v))
                  for name, v in (values or {}).items()}
        return cls(lon, lat, bathy, fields, n_levels=n_levels, **kwargs)

    # ── interpolation ────────────────────────────────────────────────

    @property
    def n_levels(self) -> int:
        return self._n_levels

    def field_exists(self, name: str) -> bool:
        return name in self.fields

    @staticmethod
    def _sample(arr: np.ndarray, coords: Sequence[float]) -> float:
        pts = np.asarray(coords, dtype=np.float64).reshape(-1, 1)
        return float(map_coordinates(arr, pts, order=1, mode='nearest')[0])

    def _sample2d(self, arr: np.ndarray, pos: Position) -> float:
        return self._sample(arr, (pos[1], pos[0]))

    def interpolate(self, name: str, pos: Position) -> float:
        """Value of field `name` at (i, j, k). Raises KeyError if absent."""
        try:
            arr = self.fields[name]
        except KeyError:
            raise KeyError(f"No environment field '{name}'") from None
        if arr.ndim == 2:
            return self._sample2d(arr, pos)
        k = min(max(pos[2], 0.0), self._n_levels - 1.0)
        return self._sample(arr, (k, pos[1], pos[0]))

    def interpolate_bathymetric_depth(self, pos: Position) -> float:
        return self._sample2d(self.bathymetry, pos)

    def interpolate_ssh(self, pos: Position) -> float:
        return self._sample2d(self.ssh, pos)

    def interpolate_lat(self, pos: Position) -> float:
        return self._sample2d(self.lat, pos)

    def interpolate_lon(self, pos: Position) -> float:
        return self._sample2d(self.lon, pos)

    # ── vertical coordinate ──────────────────────────────────────────

    def calc_z_from_k(self, i: float, j: float, k: float) -> float:
        h = self.interpolate_bathymetric_depth((i, j))
        zeta = self.interpolate_ssh((i, j))
        return -h + k / (self._n_levels - 1) * (h + zeta)

    def calc_k_from_z(self, i: float, j: float, z: float) -> float:
        h = self.interpolate_bathymetric_depth((i, j))
        zeta = self.interpolate_ssh((i, j))
        k = (z + h) / (h + zeta) * (self._n_levels - 1)
        return min(max(k, 0.0), self._n_levels - 1.0)

    # ── horizontal coordinates ───────────────────────────────────────

    def compute_grid_from_geographic(self, lon: float,
                                     lat: float) -> Tuple[float, float]:
        """Fractional (i, j) of a lon/lat point on a rectilinear grid."""
        lon_axis = self.lon[0, :]
        lat_axis = self.lat[:, 0]
        return (self._fractional_index(lon_axis, lon),
                self._fractional_index(lat_axis, lat))

    @staticmethod
    def _fractional_index(axis: np.ndarray, value: float) -> float:
        idx = np.arange(axis.size, dtype=np.float64)
        if axis.size > 1 and axis[-1] < axis[0]:
            return float(np.interp(value, axis[::-1], idx[::-1]))
        return float(np.interp(value, axis, idx))

    def compute_grid_from_projected(self, x: float,
                                    y: float) -> Tuple[float, float]:
        return x / self.dx, y / self.dy

    def compute_projected_from_grid(self, i: float,
                                    j: float) -> Tuple[float, float]:
        return i * self.dx, j * self.dy

    def grid_spacing(self) -> Tuple[float, float]:
        return self.dx, self.dy

    def is_at_grid_edge(self, pos: Position, tolerance: float) -> bool:
        i, j = pos[0], pos[1]
        return (i < tolerance or i > self.ni - 1 - tolerance
                or j < tolerance or j > self.nj - 1 - tolerance)

    # ── calendar ─────────────────────────────────────────────────────

    def calendar_time(self, time: float) -> datetime:
        return self.reference_time + timedelta(seconds=time)

    def set_reference_time(self, when: datetime) -> None:
        """Anchor model time 0 at calendar time `when`."""
        self.reference_time = when

    def year_day(self, time: float) -> float:
        """1-based day of year; fractional part is the time of day."""
        when = self.calendar_time(time)
        seconds = when.hour * 3600 + when.minute * 60 + when.second \
            + when.microsecond * 1e-6
        return when.timetuple().tm_yday + seconds / SECONDS_PER_DAY
