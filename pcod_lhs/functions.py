"""Pluggable behavior functions: mortality, growth, development, movement.

Each function is a named, side-effect-free rate law that owns its own
scalar parameters. The calling convention is fixed per category:

  mortality          compute(size=None)                 -> rate (1/d)
  growth_sl/_dw      compute(temperature, size)         -> rate
  development/pnr/ysa compute(temperature)              -> duration (d)
  vertical_movement  compute(dt, depth, bottom, w, light) -> (w, flag)
  vertical_velocity  compute(temperature, total_length) -> speed (mm/s)
  habitat            compute(lon, lat)                  -> suitability

The bioenergetic growth function lives in pcod_lhs.bioenergetics and
has its own (multi-covariate) convention, tagged by GrowthKind.

Every law that takes a temperature applies the 0.01 °C floor itself.
"""

from __future__ import annotations

import copy
import math
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from pcod_lhs.types import (
    FunctionCategory,
    GrowthKind,
    TypeMismatch,
    UnknownFunction,
    clamp_temperature,
)


# ═══════════════════════════════════════════════════════════════════════
# BASE CLASS
# ═══════════════════════════════════════════════════════════════════════

class BehaviorFunction:
    """Base class for a named rate law with named scalar parameters.

    Subclasses set `name`, `category`, `description` and `defaults`.
    Keyword arguments to the constructor override defaults.
    """

    name: str = ''
    category: FunctionCategory = FunctionCategory.MORTALITY
    description: str = ''
    defaults: Dict[str, float] = {}
    growth_kind: GrowthKind = GrowthKind.SIMPLE

    def __init__(self, **params: float):
        self.params: Dict[str, float] = dict(self.defaults)
        for key, value in params.items():
            self.set_parameter(key, value)

    def parameter_names(self) -> List[str]:
        return list(self.params)

    def get_parameter(self, key: str) -> float:
        if key not in self.params:
            raise UnknownFunction(
                f"Function '{self.name}' has no parameter '{key}'"
            )
        return self.params[key]

    def set_parameter(self, key: str, value: float) -> None:
        if key not in self.params:
            raise UnknownFunction(
                f"Function '{self.name}' has no parameter '{key}'. "
                f"Known: {sorted(self.params)}"
            )
        if isinstance(value, bool) or not isinstance(
                value, (int, float, np.integer, np.floating)):
            raise TypeMismatch(
                f"Parameter '{key}' of '{self.name}' must be numeric, "
                f"got {value!r}"
            )
        self.params[key] = float(value)

    def copy(self) -> 'BehaviorFunction':
        """Copy with an independent parameter dict."""
        new = copy.copy(self)
        new.params = dict(self.params)
        return new

    def compute(self, *args):
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BehaviorFunction):
            return NotImplemented
        return type(self) is type(other) and self.params == other.params

    def __repr__(self) -> str:
        args = ', '.join(f"{k}={v!r}" for k, v in self.params.items())
        return f"{type(self).__name__}({args})"


# ═══════════════════════════════════════════════════════════════════════
# MORTALITY
# ═══════════════════════════════════════════════════════════════════════

class ConstantMortalityRate(BehaviorFunction):
    name = 'constant_mortality'
    category = FunctionCategory.MORTALITY
    description = 'Constant instantaneous mortality rate (1/d).'
    defaults = {'rate': 0.0}

    def compute(self, size: Optional[float] = None) -> float:
        return self.params['rate']


class InversePowerLawMortalityRate(BehaviorFunction):
    """Size-dependent mortality: c·(size/reference_size)^(−z)."""
    name = 'inverse_power_law_mortality'
    category = FunctionCategory.MORTALITY
    description = 'Mortality rate (1/d) decreasing as a power of size.'
    defaults = {'c': 0.1, 'z': 1.0, 'reference_size': 1.0}

    def compute(self, size: Optional[float] = None) -> float:
        if size is None:
            raise ValueError(f"'{self.name}' requires a size covariate")
        if size <= 0:
            raise ValueError(f"'{self.name}' requires size > 0, got {size}")
        p = self.params
        return p['c'] * (size / p['reference_size']) ** (-p['z'])


# ═══════════════════════════════════════════════════════════════════════
# GROWTH (SIMPLE)
# ═══════════════════════════════════════════════════════════════════════

class StandardGrowthRate(BehaviorFunction):
    """Polynomial-in-temperature allometric growth: (a + bT + cT²)·size^d."""
    defaults = {'a': 0.0, 'b': 0.0, 'c': 0.0, 'd': 0.0}

    def compute(self, temperature: float, size: float = 0.0) -> float:
        p = self.params
        T = clamp_temperature(temperature)
        rate = p['a'] + p['b'] * T + p['c'] * T * T
        if p['d'] != 0.0:
            rate *= size ** p['d'] if size > 0 else 0.0
        return rate


class StandardGrowthRateSL(StandardGrowthRate):
    name = 'standard_growth_sl'
    category = FunctionCategory.GROWTH_SL
    description = 'Growth rate in length (mm/d).'


class StandardGrowthRateDW(StandardGrowthRate):
    name = 'standard_growth_dw'
    category = FunctionCategory.GROWTH_DW
    description = 'Specific growth rate in dry weight (1/d).'


class LinearGrowthRate(BehaviorFunction):
    """Growth linear in temperature: a + bT."""

    def compute(self, temperature: float, size: float = 0.0) -> float:
        T = clamp_temperature(temperature)
        return self.params['a'] + self.params['b'] * T


class EggGrowthRateSL(LinearGrowthRate):
    name = 'egg_growth_sl'
    category = FunctionCategory.GROWTH_SL
    description = 'Embryo growth in length (mm/d).'
    defaults = {'a': 0.05, 'b': 0.01}


class EggGrowthRateDW(LinearGrowthRate):
    name = 'egg_growth_dw'
    category = FunctionCategory.GROWTH_DW
    description = 'Embryo specific growth in dry weight (1/d).'
    defaults = {'a': 0.02, 'b': 0.005}


class YSLGrowthRateSL(LinearGrowthRate):
    name = 'ysl_growth_sl'
    category = FunctionCategory.GROWTH_SL
    description = 'Yolk-sac larva growth in length (mm/d).'
    defaults = {'a': 0.08, 'b': 0.02}


class YSLGrowthRateDW(LinearGrowthRate):
    name = 'ysl_growth_dw'
    category = FunctionCategory.GROWTH_DW
    description = 'Yolk-sac larva specific growth in dry weight (1/d).'
    defaults = {'a': 0.0, 'b': 0.005}


class ExponentialGrowthRate(BehaviorFunction):
    """Growth exponential in temperature: a·exp(bT)."""

    def compute(self, temperature: float, size: float = 0.0) -> float:
        T = clamp_temperature(temperature)
        return self.params['a'] * math.exp(self.params['b'] * T)


class FDLpfGrowthRateSL(ExponentialGrowthRate):
    name = 'fdlpf_growth_sl'
    category = FunctionCategory.GROWTH_SL
    description = 'Feeding larva growth in length (mm/d).'
    defaults = {'a': 0.05, 'b': 0.1}


class FDLpfGrowthRateDW(ExponentialGrowthRate):
    name = 'fdlpf_growth_dw'
    category = FunctionCategory.GROWTH_DW
    description = 'Feeding larva specific growth in dry weight (1/d).'
    defaults = {'a': 0.05, 'b': 0.08}


# ═══════════════════════════════════════════════════════════════════════
# DEVELOPMENT / YOLK-SAC ABSORPTION / POINT OF NO RETURN
# ═══════════════════════════════════════════════════════════════════════

class StageDuration(BehaviorFunction):
    """Temperature-dependent duration a·exp(bT) in days."""
    defaults = {'a': 1.0, 'b': 0.0}

    def compute(self, temperature: float) -> float:
        T = clamp_temperature(temperature)
        return self.params['a'] * math.exp(self.params['b'] * T)


class EggHatchTime(StageDuration):
    name = 'egg_hatch_time'
    category = FunctionCategory.DEVELOPMENT
    description = 'Days from fertilization to hatching.'
    defaults = {'a': 46.4, 'b': -0.119}


class YSLYolkSacAbsorption(StageDuration):
    name = 'ysl_ysa'
    category = FunctionCategory.YSA
    description = 'Days from hatching to yolk-sac absorption.'
    defaults = {'a': 12.0, 'b': -0.10}


class YSLPointOfNoReturn(StageDuration):
    name = 'ysl_pnr'
    category = FunctionCategory.PNR
    description = 'Days from hatching to the point of no return.'
    defaults = {'a': 22.0, 'b': -0.09}


# ═══════════════════════════════════════════════════════════════════════
# VERTICAL MOVEMENT
# ═══════════════════════════════════════════════════════════════════════

class DielVerticalMigrationFixedDepthRanges(BehaviorFunction):
    """Swim toward a preferred day or night depth range.

    Velocities are positive upward. Inside the preferred range the
    active velocity is zero; outside it the individual swims toward the
    range at the supplied speed, reduced so it does not overshoot the
    range edge within one time step. The range is truncated at the local
    bottom. When the whole range lies below the bottom and the
    individual is within `attach_distance` of it, the returned flag is
    negative (attached to the bottom).
    """
    name = 'dvm_fixed_depth_ranges'
    category = FunctionCategory.VERTICAL_MOVEMENT
    description = 'Diel vertical migration between fixed depth ranges.'
    defaults = {
        'day_min_depth': 20.0,
        'day_max_depth': 40.0,
        'night_min_depth': 5.0,
        'night_max_depth': 20.0,
        'attach_distance': 1.0,
    }

    def depth_range(self, light: float) -> Tuple[float, float]:
        p = self.params
        if light >= 0:
            return p['day_min_depth'], p['day_max_depth']
        return p['night_min_depth'], p['night_max_depth']

    def compute(self, dt: float, depth: float, bottom_depth: float,
                w: float, light: float) -> Tuple[float, float]:
        """Active vertical velocity (m/s) and attached flag.

        Args:
            dt: Time step (s).
            depth: Current depth (m, positive down).
            bottom_depth: Local bottom depth (m).
            w: Swimming speed outside the preferred range (m/s).
            light: Light level; >= 0 is daytime, < 0 night.

        Returns:
            (w, flag) where flag < 0 means attached to the bottom.
        """
        zmin, zmax = self.depth_range(light)
        if zmin >= bottom_depth and \
                depth >= bottom_depth - self.params['attach_distance']:
            return 0.0, -1.0
        if dt == 0:
            return 0.0, 1.0
        zmax = min(zmax, bottom_depth)
        zmin = min(zmin, zmax)
        speed = abs(w)
        if depth < zmin:
            return -min(speed, (zmin - depth) / abs(dt)), 1.0
        if depth > zmax:
            return min(speed, (depth - zmax) / abs(dt)), 1.0
        return 0.0, 1.0


# ═══════════════════════════════════════════════════════════════════════
# VERTICAL VELOCITY
# ═══════════════════════════════════════════════════════════════════════

class ConstantSwimmingSpeed(BehaviorFunction):
    name = 'constant_swimming_speed'
    category = FunctionCategory.VERTICAL_VELOCITY
    description = 'Constant swimming speed (mm/s).'
    defaults = {'speed': 1.0}

    def compute(self, temperature: float, total_length: float) -> float:
        return self.params['speed']


class HurstSwimmingSpeed(BehaviorFunction):
    """Swimming speed (a + b·log10 T)·TL^c in mm/s (Hurst et al. 2009)."""
    name = 'hurst_swimming_speed'
    category = FunctionCategory.VERTICAL_VELOCITY
    description = 'Temperature- and length-dependent swimming speed (mm/s).'
    defaults = {'a': 0.081221, 'b': 0.043168, 'c': 1.49652}

    def compute(self, temperature: float, total_length: float) -> float:
        p = self.params
        T = clamp_temperature(temperature)
        speed = (p['a'] + p['b'] * math.log10(T)) * \
            max(total_length, 0.0) ** p['c']
        return max(speed, 0.0)


# ═══════════════════════════════════════════════════════════════════════
# HABITAT SUITABILITY
# ═══════════════════════════════════════════════════════════════════════

class ConstantHabitatSuitability(BehaviorFunction):
    name = 'constant_habitat'
    category = FunctionCategory.HABITAT
    description = 'Spatially uniform habitat suitability index.'
    defaults = {'value': 1.0}

    def compute(self, lon: float, lat: float) -> float:
        return self.params['value']


class GriddedHabitatSuitability(BehaviorFunction):
    """Habitat suitability looked up on a regular lon/lat grid.

    Bilinear interpolation; positions off the grid return
    `outside_value`. The grid arrays are read-only and shared between
    copies.
    """
    name = 'gridded_habitat'
    category = FunctionCategory.HABITAT
    description = 'Habitat suitability index from a lon/lat grid.'
    defaults = {'outside_value': 0.0}

    def __init__(self, lon: Optional[np.ndarray] = None,
                 lat: Optional[np.ndarray] = None,
                 values: Optional[np.ndarray] = None,
                 **params: float):
        super().__init__(**params)
        self._interp: Optional[RegularGridInterpolator] = None
        self.lon = self.lat = self.values = None
        if lon is not None:
            self.set_grid(lon, lat, values)

    def set_grid(self, lon: np.ndarray, lat: np.ndarray,
                 values: np.ndarray) -> None:
        """Attach grid axes (1-D, ascending) and values of shape (nlat, nlon)."""
        lon = np.asarray(lon, dtype=np.float64)
        lat = np.asarray(lat, dtype=np.float64)
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (lat.size, lon.size):
            raise ValueError(
                f"HSI grid shape {values.shape} does not match "
                f"(n_lat, n_lon) = ({lat.size}, {lon.size})"
            )
        for arr in (lon, lat, values):
            arr.setflags(write=False)
        self.lon, self.lat, self.values = lon, lat, values
        self._interp = None

    @classmethod
    def load(cls, path: Union[str, Path], **params: float
             ) -> 'GriddedHabitatSuitability':
        """Load from an .npz archive with arrays 'lon', 'lat', 'hsi'."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Habitat file not found: {path}")
        with np.load(path) as data:
            return cls(data['lon'], data['lat'], data['hsi'], **params)

    def compute(self, lon: float, lat: float) -> float:
        if self.values is None:
            raise ValueError(f"'{self.name}' has no grid loaded")
        if self._interp is None:
            self._interp = RegularGridInterpolator(
                (self.lat, self.lon), self.values,
                bounds_error=False,
                fill_value=self.params['outside_value'],
            )
        return float(self._interp([[lat, lon]])[0])

    def copy(self) -> 'GriddedHabitatSuitability':
        new = super().copy()
        new._interp = None
        return new
