"""Lagrangian particle tracker with a predictor/corrector (Heun) scheme.

Velocity at a position is the ambient current (environment fields
'u', 'v', 'w' when present) plus the individual's active velocity for
the time level being evaluated:

    N   = 0   active velocity at the start of the step
    NP1 = 1   active velocity at the predicted end-of-step position

The predictor advances with the start-of-step velocity; the corrector
restarts from the start-of-step position with the mean of the two.
Horizontal velocities (m/s) are converted to grid-index increments with
the grid spacing; vertical motion is integrated in z and mapped back to
a level index, which is clipped to the water column.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from pcod_lhs.environment import PhysicalEnvironment

logger = logging.getLogger(__name__)

N = 0
NP1 = 1


class LagrangianParticle:
    """Position and velocity state of one tracked particle.

    Args:
        environment: Environment providing currents and the vertical grid.
        i, j, k: Initial fractional grid position.
    """

    def __init__(self, environment: PhysicalEnvironment,
                 i: float = 0.0, j: float = 0.0, k: float = 0.0):
        self.environment = environment
        self._pos: List[float] = [float(i), float(j), float(k)]
        self._predicted: List[float] = list(self._pos)
        self._start: List[float] = list(self._pos)
        self._active = [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]]
        self._vel_n: Optional[Tuple[float, float, float]] = None

    # ── state ────────────────────────────────────────────────────────

    def get_position(self) -> Tuple[float, float, float]:
        return tuple(self._pos)

    def get_predicted_position(self) -> Tuple[float, float, float]:
        return tuple(self._predicted)

    def set_position(self, i: float, j: float, k: float) -> None:
        self._pos = [float(i), float(j), float(k)]
        self._predicted = list(self._pos)
        self._vel_n = None

    def set_velocity(self, u: float, v: float, w: float,
                     time_level: int = N) -> None:
        """Active velocity (m/s) for time level N or NP1."""
        if time_level not in (N, NP1):
            raise ValueError(f"time_level must be {N} or {NP1}, got {time_level}")
        self._active[time_level] = [float(u), float(v), float(w)]

    def get_velocity(self, time_level: int = N) -> Tuple[float, float, float]:
        return tuple(self._active[time_level])

    # ── stepping ─────────────────────────────────────────────────────

    def _velocity(self, pos: Sequence[float],
                  time_level: int) -> Tuple[float, float, float]:
        env = self.environment
        u, v, w = self._active[time_level]
        if env.field_exists('u'):
            u += env.interpolate('u', pos)
        if env.field_exists('v'):
            v += env.interpolate('v', pos)
        if env.field_exists('w'):
            w += env.interpolate('w', pos)
        return u, v, w

    def _advance(self, pos: Sequence[float], vel: Sequence[float],
                 dt: float) -> List[float]:
        if dt == 0:
            return list(pos)
        env = self.environment
        dx, dy = env.grid_spacing()
        i = pos[0] + vel[0] * dt / dx
        j = pos[1] + vel[1] * dt / dy
        z = env.calc_z_from_k(pos[0], pos[1], pos[2]) + vel[2] * dt
        k = env.calc_k_from_z(i, j, z)
        return [i, j, k]

    def predictor_step(self, dt: float) -> None:
        """Advance from the current position with the level-N velocity."""
        self._start = list(self._pos)
        self._vel_n = self._velocity(self._pos, N)
        self._predicted = self._advance(self._pos, self._vel_n, dt)
        logger.debug("predictor: vel=%s predicted=%s",
                     self._vel_n, self._predicted)

    def corrector_step(self, dt: float) -> None:
        """Advance from the step start with the mean of both velocities."""
        if self._vel_n is None:
            self._start = list(self._pos)
            self._vel_n = self._velocity(self._pos, N)
            self._predicted = list(self._pos)
        vel_np1 = self._velocity(self._predicted, NP1)
        mean = [0.5 * (a + b) for a, b in zip(self._vel_n, vel_np1)]
        self._pos = self._advance(self._start, mean, dt)
        self._predicted = list(self._pos)
        self._vel_n = None

    def is_at_domain_edge(self, tolerance: float) -> bool:
        return self.environment.is_at_grid_edge(self._pos, tolerance)

    def copy(self) -> 'LagrangianParticle':
        """Independent tracker at the same position, sharing the environment."""
        new = LagrangianParticle(self.environment, *self._pos)
        new._predicted = list(self._predicted)
        new._active = [list(self._active[N]), list(self._active[NP1])]
        return new
