"""Life-stage individuals: one generic state machine, five stage descriptors.

Every stage shares the same per-step protocol:

   1. read the tracker position
   2. interpolate temperature (floored at 0.01 °C) and stage forcing
   3. compute active velocity (vertical swimming, diel migration,
      horizontal random walk); attached individuals are pinned to the
      bottom and skip advection
   4. predictor/corrector step of the tracker
   5. advance time
   6. growth
   7. mortality and super-individual transition outflow
   8. aging; death past the maximum stage duration
   9. derived position fields and track
  10. environment values for reporting
  11. death on leaving the grid
  12. write state back to the attribute set

What differs between stages (schema, growth, exit test, transition
window, successor) is data in a StageDescriptor plus per-StageType
dispatch tables in this module.

States: Active-Alive, Inactive-Dead (terminal) and, for ordinary
individuals, Transitioned (terminal). A super-individual stays
Active-Alive after spawning a successor, with its pending outflow reset.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from pcod_lhs import solar
from pcod_lhs.attributes import (
    BENTHIC_JUV_SCHEMA,
    EGG_SCHEMA,
    EPIJUV_SCHEMA,
    FDLPF_SCHEMA,
    YSL_SCHEMA,
    AttributeSchema,
    AttributeSet,
)
from pcod_lhs.bioenergetics import (
    BioenergeticGrowthDW,
    length_from_weight,
    light_at_depth,
    total_mortality,
)
from pcod_lhs.environment import PhysicalEnvironment
from pcod_lhs.functions import BehaviorFunction
from pcod_lhs.parameters import ParameterSet
from pcod_lhs.tracker import N, NP1, LagrangianParticle
from pcod_lhs.types import (
    LETHAL_INDEX,
    SECONDS_PER_DAY,
    STANDARD_VELOCITY,
    DeathCause,
    FunctionCategory,
    GrowthKind,
    HorizType,
    StageType,
    VertType,
    clamp_temperature,
    total_length,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# STAGE DESCRIPTORS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StageDescriptor:
    """Static description of one developmental stage.

    Attributes:
        stage: Stage tag selecting the growth, exit and window handlers.
        schema: Attribute layout.
        default_next: Successor stage, or None for the last stage.
        size_key: Attribute used as the size covariate.
        field_map: successor key → predecessor key, applied on entry
            after same-named fields are copied.
        entry_values: Values forced on entering the stage.
        prey_fields: attribute key → environment field for prey forcing.
    """
    stage: StageType
    schema: AttributeSchema
    default_next: Optional[StageType]
    size_key: str
    field_map: Dict[str, str] = field(default_factory=dict)
    entry_values: Dict[str, Any] = field(default_factory=dict)
    prey_fields: Dict[str, str] = field(default_factory=dict)

    def renamed(self, type_name: str) -> 'StageDescriptor':
        """Same descriptor with its schema registered under `type_name`."""
        if type_name == self.schema.type_name:
            return self
        schema = AttributeSchema(type_name, self.schema.specs)
        return StageDescriptor(self.stage, schema, self.default_next,
                               self.size_key, dict(self.field_map),
                               dict(self.entry_values),
                               dict(self.prey_fields))


STAGE_DESCRIPTORS: Dict[StageType, StageDescriptor] = {
    StageType.EGG: StageDescriptor(
        StageType.EGG, EGG_SCHEMA, StageType.YSL, 'SL',
    ),
    StageType.YSL: StageDescriptor(
        StageType.YSL, YSL_SCHEMA, StageType.FDLPF, 'SL',
        entry_values={'attached': False, 'progYSA': 0.0, 'progPNR': 0.0},
        prey_fields={'copepod': 'Cop', 'euphausiid': 'Eup',
                     'neocalanus': 'NCa'},
    ),
    StageType.FDLPF: StageDescriptor(
        StageType.FDLPF, FDLPF_SCHEMA, StageType.EPIJUV, 'SL',
        field_map={'dwmax': 'DW'},
        entry_values={'ageFromYSL': 0.0, 'stmsta': 0.0, 'psurvival': 1.0},
        prey_fields={'copepod': 'Cop', 'euphausiid': 'Eup',
                     'euphausiidShelf': 'EupS', 'neocalanus': 'NCa',
                     'neocalanusShelf': 'NCaS'},
    ),
    StageType.EPIJUV: StageDescriptor(
        StageType.EPIJUV, EPIJUV_SCHEMA, StageType.BENTHIC_JUV, 'length',
        field_map={'length': 'SL'},
        entry_values={'attached': False},
        prey_fields={'copepod': 'Cop', 'neocalanus': 'NCa',
                     'euphausiid': 'Eup'},
    ),
    StageType.BENTHIC_JUV: StageDescriptor(
        StageType.BENTHIC_JUV, BENTHIC_JUV_SCHEMA, None, 'length',
        entry_values={'attached': True},
    ),
}


# Environment field names
FIELD_TEMPERATURE = 'temp'
FIELD_SALINITY = 'salt'
FIELD_DENSITY = 'rho'
FIELD_PHYTO_LARGE = 'PhL'
FIELD_PHYTO_SMALL = 'PhS'
FIELD_STRESS_X = 'Su'
FIELD_STRESS_Y = 'Sv'
FIELD_PCO2 = 'pCO2'

# Wind speed (m/s) from surface stress: |tau| = rho_air · Cd · U^2
AIR_DENSITY = 1.3
DRAG_COEFFICIENT = 1.2e-3

ACTIVITY_COST = 0.5   # activity cost as a fraction of routine metabolism


# ═══════════════════════════════════════════════════════════════════════
# INDIVIDUAL
# ═══════════════════════════════════════════════════════════════════════

class StageIndividual:
    """One individual (or super-individual) in one developmental stage.

    Args:
        descriptor: Stage description (schema, successor, entry rules).
        parameters: Stage parameter set; may be shared between individuals.
        attributes: Initial attribute values (defaults if omitted).
        environment: Physical environment queried while stepping.
        rng: Source of normal variates for the horizontal random walk.
        transition_rng: Source of uniform variates for random transitions.
        grid_edge_tolerance: Distance (grid cells) from the edge at which
            the individual is considered to have left the domain.
    """

    def __init__(
        self,
        descriptor: StageDescriptor,
        parameters: ParameterSet,
        attributes: Optional[AttributeSet] = None,
        environment: Optional[PhysicalEnvironment] = None,
        rng: Optional[np.random.Generator] = None,
        transition_rng: Optional[np.random.Generator] = None,
        grid_edge_tolerance: float = 0.5,
    ):
        if parameters.stage != descriptor.stage:
            raise ValueError(
                f"Parameters for {parameters.stage.name} cannot drive a "
                f"{descriptor.stage.name} individual"
            )
        self.descriptor = descriptor
        self.parameters = parameters
        self.environment = environment
        self.rng = rng
        self.transition_rng = transition_rng
        self.grid_edge_tolerance = grid_edge_tolerance
        self.factory = None
        self.record_track = True
        self.tracker: Optional[LagrangianParticle] = None
        self.track_xy: List[Tuple[float, float, float]] = []
        self.track_ll: List[Tuple[float, float, float]] = []
        self.pending_transition = 0.0
        self.death_cause = DeathCause.ALIVE
        self.bathym = 0.0
        self.depth = 0.0
        self.lat = 0.0
        self.lon = 0.0
        self._temperature = 0.0
        self._last_dt = 0.0
        self._forcing: Dict[str, float] = {}
        self.atts = attributes if attributes is not None \
            else AttributeSet(descriptor.schema)
        self.state: Dict[str, Any] = {}
        self.set_attributes(self.atts)
        self.resolve_functions()

    # ── identity and flags ───────────────────────────────────────────

    @property
    def stage(self) -> StageType:
        return self.descriptor.stage

    @property
    def type_name(self) -> str:
        return self.descriptor.schema.type_name

    @property
    def id(self) -> int:
        return self.state['id']

    @property
    def parent_id(self) -> int:
        return self.state['parentID']

    @property
    def orig_id(self) -> int:
        return self.state['origID']

    @property
    def number(self) -> float:
        return self.state['number']

    @property
    def alive(self) -> bool:
        return self.state['alive']

    @property
    def active(self) -> bool:
        return self.state['active']

    @property
    def time(self) -> float:
        return self.state['time']

    @property
    def is_super_individual(self) -> bool:
        return bool(self.parameters.get_scalar('is_super_individual', False))

    def set_start_time(self, t: float) -> None:
        self.state['startTime'] = t
        self.state['time'] = t
        self.atts.set('startTime', t)
        self.atts.set('time', t)

    def die(self, cause: DeathCause) -> None:
        """Enter the terminal Inactive-Dead state."""
        self.state['alive'] = False
        self.state['active'] = False
        self.death_cause = cause

    def __repr__(self) -> str:
        return (f"StageIndividual({self.type_name!r}, id={self.id}, "
                f"alive={self.alive}, number={self.number:g})")

    # ── configuration ────────────────────────────────────────────────

    def set_attributes(self, atts: AttributeSet) -> None:
        """Replace the attribute set and load working state from it."""
        if atts.schema.keys != self.descriptor.schema.keys:
            raise ValueError(
                f"Attribute layout of {atts.type_name} does not match "
                f"{self.type_name}"
            )
        self.atts = atts
        self.state = dict(atts.items())

    def resolve_functions(self) -> None:
        """Cache the selected function per category and the growth kind.

        Called at construction and whenever the parameter set's selection
        changes, so stepping never re-inspects function types.
        """
        self.functions: Dict[FunctionCategory, Optional[BehaviorFunction]] = {
            cat: self.parameters.get_selected_function(cat)
            for cat in self.parameters.categories()
        }
        growth_dw = self.functions.get(FunctionCategory.GROWTH_DW)
        self.growth_kind = growth_dw.growth_kind if growth_dw is not None \
            else GrowthKind.SIMPLE

    def function(self, category: FunctionCategory) -> Optional[BehaviorFunction]:
        return self.functions.get(category)

    # ── initialization ───────────────────────────────────────────────

    def initialize(self) -> None:
        """Place the individual on the grid from its position attributes.

        Converts the horizontal (IJ/XY/LL) and vertical (K/Z/H/DH)
        position into grid indices, creates the tracker and rewrites the
        position attributes as lon/lat and depth.
        """
        env = self.environment
        if env is None:
            raise ValueError(f"{self.type_name} {self.id}: no environment")
        s = self.state
        h1, h2 = s['horizPos1'], s['horizPos2']
        htype = HorizType(s['horizType'])
        if htype is HorizType.IJ:
            i, j = h1, h2
        elif htype is HorizType.XY:
            i, j = env.compute_grid_from_projected(h1, h2)
        else:
            i, j = env.compute_grid_from_geographic(h1, h2)

        vtype = VertType(s['vertType'])
        vert = s['vertPos']
        if vtype is VertType.K:
            k = vert
        elif vtype is VertType.Z:
            k = env.calc_k_from_z(i, j, vert)
        elif vtype is VertType.H:
            k = env.calc_k_from_z(i, j, -vert)
        else:
            bottom = env.interpolate_bathymetric_depth((i, j))
            k = env.calc_k_from_z(i, j, -bottom + vert)
        if s['attached']:
            k = 0.0

        self.tracker = LagrangianParticle(env, i, j, k)
        self.track_xy = []
        self.track_ll = []
        pos = self.tracker.get_position()
        self.update_position(pos)
        self.interpolate_env_vars(pos)
        self.update_attributes()
        logger.info("initialized %s %d at lon=%.4f lat=%.4f depth=%.2f",
                    self.type_name, self.id, self.lon, self.lat, self.depth)

    # ── stepping ─────────────────────────────────────────────────────

    def step(self, dt: float) -> None:
        """Advance the individual by `dt` seconds.

        Inactive individuals are not stepped. A zero time step only
        refreshes the derived position and environment fields.
        """
        if not self.state['active']:
            return
        if self.tracker is None:
            raise ValueError(
                f"{self.type_name} {self.id} must be initialized before stepping"
            )
        self._last_dt = dt
        pos = self.tracker.get_position()
        if dt == 0:
            self.update_position(pos)
            self.interpolate_env_vars(pos)
            self.update_attributes()
            return

        self._temperature = clamp_temperature(
            self._field(FIELD_TEMPERATURE, pos))
        self._read_forcing(pos)

        u, v, w = self.calc_uvw(pos, dt)
        if self.state['attached']:
            self.tracker.set_position(pos[0], pos[1], 0.0)
        else:
            self.tracker.set_velocity(u, v, w, N)
            self.tracker.predictor_step(dt)
            predicted = self.tracker.get_predicted_position()
            logger.debug("depth after predictor step = %.3f",
                         -self.environment.calc_z_from_k(*predicted))
            self.tracker.set_velocity(u, v, w, NP1)
            self.tracker.corrector_step(dt)
        pos = self.tracker.get_position()
        logger.debug("depth after corrector step = %.3f",
                     -self.environment.calc_z_from_k(*pos))

        self.state['time'] += dt
        _GROWTH[self.stage](self, pos, dt)
        self.update_num(dt)
        self.update_age(dt)
        self.update_position(pos)
        self.interpolate_env_vars(pos)
        if self.tracker.is_at_domain_edge(self.grid_edge_tolerance):
            self.die(DeathCause.DOMAIN_EXIT)
        self.update_attributes()

    def _field(self, name: str, pos) -> float:
        env = self.environment
        if env.field_exists(name):
            return env.interpolate(name, pos)
        return 0.0

    def _read_forcing(self, pos) -> None:
        forcing = {}
        for key, name in self.descriptor.prey_fields.items():
            forcing[key] = max(self._field(name, pos), 0.0)
        if self.stage is StageType.FDLPF:
            surface = (pos[0], pos[1], self.environment.n_levels - 1)
            chl = self._field(FIELD_PHYTO_LARGE, pos) / 25.0 + \
                self._field(FIELD_PHYTO_SMALL, pos) / 65.0
            forcing['chlorophyll'] = max(chl, 0.0)
            forcing['tau_x'] = self._field(FIELD_STRESS_X, surface)
            forcing['tau_y'] = self._field(FIELD_STRESS_Y, surface)
            forcing['pCO2'] = self._field(FIELD_PCO2, pos)
            forcing['microzoo'] = 0.0
        self._forcing = forcing
        for key in self.descriptor.prey_fields:
            self.state[key] = forcing[key]
        if self.stage is StageType.FDLPF:
            self.state['pCO2'] = forcing['pCO2']
            self.state['microzoo'] = forcing['microzoo']

    def size(self) -> float:
        return self.state[self.descriptor.size_key]

    def light_level(self) -> float:
        """Signed light level at the current position: >= 0 by day."""
        when = self.environment.calendar_time(self.state['time'])
        return solar.light_level(self.lon, self.lat, when)

    def calc_uvw(self, pos, dt: float) -> Tuple[float, float, float]:
        """Active velocity (m/s) for this step; may set `attached`."""
        w = 0.0
        f_vm = self.function(FunctionCategory.VERTICAL_MOVEMENT)
        if f_vm is not None:
            f_vv = self.function(FunctionCategory.VERTICAL_VELOCITY)
            if f_vv is not None:
                w = f_vv.compute(self._temperature,
                                 total_length(self.size())) / 1000.0
            w = min(w, STANDARD_VELOCITY)
            bottom = self.environment.interpolate_bathymetric_depth(pos)
            depth = -self.environment.calc_z_from_k(*pos)
            w, flag = f_vm.compute(dt, depth, bottom, w, self.light_level())
            self.state['attached'] = flag < 0

        u = v = 0.0
        rwp = self.parameters.get_scalar('horizontal_rwp', 0.0)
        if not self.state['attached'] and rwp > 0 and abs(dt) > 0:
            if self.rng is None:
                raise ValueError(
                    f"{self.type_name} {self.id}: random walk needs an rng"
                )
            r = math.sqrt(rwp / abs(dt))
            du, dv = self.rng.standard_normal(2)
            u, v = r * du, r * dv
        sign = math.copysign(1.0, dt)
        return sign * u, sign * v, sign * w

    def update_num(self, dt: float) -> None:
        """Apply mortality and accrue the pending transition outflow."""
        f_mort = self.function(FunctionCategory.MORTALITY)
        mortality = f_mort.compute(self.size()) if f_mort is not None else 0.0
        total = mortality
        trans = self.parameters.get_scalar('stage_transition_rate', 0.0)
        if trans > 0 and _WINDOW[self.stage](self):
            total += trans
            self.pending_transition = (
                self.pending_transition
                * math.exp(-dt * mortality / SECONDS_PER_DAY)
                + (trans / total) * self.state['number']
                * (1.0 - math.exp(-dt * total / SECONDS_PER_DAY))
            )
        self.state['number'] *= math.exp(-dt * total / SECONDS_PER_DAY)

    def update_age(self, dt: float) -> None:
        self.state['age'] += dt / SECONDS_PER_DAY
        self.state['ageInStage'] += dt / SECONDS_PER_DAY
        if self.state['ageInStage'] > \
                self.parameters.get_scalar('max_stage_duration', math.inf):
            self.die(DeathCause.MAX_DURATION)

    def update_position(self, pos) -> None:
        """Recompute bathymetry, depth, lat/lon and grid cell; extend the track."""
        env = self.environment
        self.bathym = env.interpolate_bathymetric_depth(pos)
        self.depth = -env.calc_z_from_k(pos[0], pos[1], pos[2])
        self.lat = env.interpolate_lat(pos)
        self.lon = env.interpolate_lon(pos)
        s = self.state
        s['gridCellID'] = f"{int(round(pos[0]))}_{int(round(pos[1]))}"
        s['horizType'] = int(HorizType.LL)
        s['vertType'] = int(VertType.H)
        s['horizPos1'] = self.lon
        s['horizPos2'] = self.lat
        s['vertPos'] = self.depth
        if 'hsi' in s:
            f_hsi = self.function(FunctionCategory.HABITAT)
            s['hsi'] = f_hsi.compute(self.lon, self.lat) \
                if f_hsi is not None else 0.0
        x, y = env.compute_projected_from_grid(pos[0], pos[1])
        self._append_track((x, y, -self.depth), (self.lon, self.lat, self.depth))

    def _append_track(self, xy, ll) -> None:
        if self.track_ll and self.track_ll[-1] == ll \
                and self.track_xy[-1] == xy:
            return
        self.track_xy.append(xy)
        self.track_ll.append(ll)

    def interpolate_env_vars(self, pos) -> None:
        env = self.environment
        s = self.state
        s['temp'] = env.interpolate_temperature(pos) \
            if env.field_exists(FIELD_TEMPERATURE) else 0.0
        s['sal'] = env.interpolate_salinity(pos) \
            if env.field_exists(FIELD_SALINITY) else 0.0
        s['rho'] = self._field(FIELD_DENSITY, pos)

    def track_string(self) -> str:
        return ';'.join(f"{lon!r}:{lat!r}:{depth!r}"
                        for lon, lat, depth in self.track_ll)

    def update_attributes(self) -> None:
        """Write working state into the attribute set."""
        self.state['track'] = self.track_string() if self.record_track else ''
        for key, value in self.state.items():
            self.atts.set(key, value)

    # ── transitions ──────────────────────────────────────────────────

    def is_ready_to_transition(self) -> bool:
        """Stage-exit predicate for the current state."""
        return _EXIT[self.stage](self)

    def check_metamorphosis(self, dt: Optional[float] = None
                            ) -> List['StageIndividual']:
        """Spawn successor(s) if the stage-exit criteria are met.

        Args:
            dt: Time step (s) for random transitions; defaults to the last
                step's length.

        Returns:
            List of new individuals (empty, or one successor).

        Raises:
            ConstructionError: If the successor cannot be built; this
                individual is then left unchanged.
        """
        if not (self.state['active'] and self.state['alive']):
            return []
        if self.factory is None or not self.factory.has_successor(self.type_name):
            return []
        if not self.is_ready_to_transition():
            return []
        is_super = self.is_super_individual
        if is_super and self.pending_transition <= 0:
            return []
        if not is_super and \
                self.parameters.get_scalar('use_random_transitions', False):
            dt = self._last_dt if dt is None else dt
            rate = self.parameters.get_scalar('stage_transition_rate', 0.0)
            p = 1.0 - math.exp(-rate * abs(dt) / SECONDS_PER_DAY)
            if self.transition_rng is None:
                raise ValueError(
                    f"{self.type_name} {self.id}: random transitions need an rng"
                )
            if self.transition_rng.random() >= p:
                return []
        return [self.factory.create_next(self)]

    # ── reporting ────────────────────────────────────────────────────

    def report_header(self, short: bool = False) -> str:
        return self.atts.csv_header(short)

    def report(self) -> str:
        self.update_attributes()
        return self.atts.csv_line()


# ═══════════════════════════════════════════════════════════════════════
# STAGE HANDLERS
# ═══════════════════════════════════════════════════════════════════════

def _grow_size_and_weight(ind: StageIndividual, dt_days: float) -> None:
    s = ind.state
    T = ind._temperature
    f_sl = ind.function(FunctionCategory.GROWTH_SL)
    f_dw = ind.function(FunctionCategory.GROWTH_DW)
    s['grSL'] = f_sl.compute(T, s['SL']) if f_sl is not None else 0.0
    s['SL'] += s['grSL'] * dt_days
    s['grDW'] = f_dw.compute(T, s['DW']) if f_dw is not None else 0.0
    s['DW'] *= math.exp(s['grDW'] * dt_days)


def _progress(ind: StageIndividual, category: FunctionCategory,
              dt_days: float) -> float:
    f = ind.function(category)
    if f is None:
        return 0.0
    duration = f.compute(ind._temperature)
    return dt_days / duration if duration > 0 else math.inf


def _grow_egg(ind: StageIndividual, pos, dt: float) -> None:
    dt_days = dt / SECONDS_PER_DAY
    _grow_size_and_weight(ind, dt_days)
    ind.state['stgProg'] += _progress(ind, FunctionCategory.DEVELOPMENT, dt_days)


def _grow_ysl(ind: StageIndividual, pos, dt: float) -> None:
    dt_days = dt / SECONDS_PER_DAY
    s = ind.state
    _grow_size_and_weight(ind, dt_days)
    s['progYSA'] += _progress(ind, FunctionCategory.YSA, dt_days)
    s['progPNR'] += _progress(ind, FunctionCategory.PNR, dt_days)
    if s['progPNR'] >= 1.0 and s['progYSA'] < 1.0:
        ind.die(DeathCause.PNR_STARVATION)


def _grow_fdlpf(ind: StageIndividual, pos, dt: float) -> None:
    """Growth, stomach and survival of a feeding larva.

    Weights are handled in grams here and stored in mg.
    """
    s = ind.state
    T = ind._temperature
    dt_days = dt / SECONDS_PER_DAY
    forcing = ind._forcing
    env = ind.environment

    weight = s['DW'] * 1e-3
    max_weight = s['dwmax'] * 1e-3
    stomach = s['stmsta'] * 1e-3
    old_weight = weight
    old_length = s['SL']

    depth = max(-env.calc_z_from_k(pos[0], pos[1], pos[2]), 0.01)
    bathym = env.interpolate_bathymetric_depth(pos)
    eb, k = light_at_depth(ind.lat, ind.lon, env.calendar_time(s['time']),
                           forcing['chlorophyll'], depth, bathym)
    s['eb'] = eb
    s['ebtwozero'] = k
    s['ageFromYSL'] += dt_days

    if ind.growth_kind is GrowthKind.BIOENERGETIC:
        f_dw: BioenergeticGrowthDW = ind.function(FunctionCategory.GROWTH_DW)
        wind_x = math.sqrt(abs(forcing['tau_x']) / (AIR_DENSITY * DRAG_COEFFICIENT))
        wind_y = math.sqrt(abs(forcing['tau_y']) / (AIR_DENSITY * DRAG_COEFFICIENT))
        prey = (forcing['euphausiid'] + forcing['euphausiidShelf'],
                forcing['neocalanusShelf'], forcing['neocalanus'],
                forcing['copepod'])
        res = f_dw.compute(T, old_weight, dt, dt_days, old_length, eb,
                           wind_x, wind_y, depth, stomach, k, prey,
                           forcing['pCO2'], s['ageFromYSL'], max_weight)
        s['grDW'] = res.gross_growth
        s['stomachFullness'] = res.stomach_fullness
        s['avgRank'] = res.avg_prey_rank
        s['avgSize'] = res.avg_prey_size
        s['eps'] = res.epsilon
        meta = res.metabolic_cost
        assim = res.assimilation_efficiency
        gut_size = f_dw.get_parameter('gut_size')

        stomach = max(0.0, min(gut_size * old_weight, stomach + res.ingestion))
        gain = min(res.gross_growth + meta, stomach * assim) \
            - meta - ACTIVITY_COST * meta
        max_weight += res.max_growth - ACTIVITY_COST * res.max_metabolic_cost
        weight += gain
        stomach = max(0.0, stomach - ((weight - old_weight) + meta) / assim)
        s['SL'] = length_from_weight(weight, old_length)
        s['grSL'] = s['SL'] - old_length
    else:
        f_sl = ind.function(FunctionCategory.GROWTH_SL)
        f_dw = ind.function(FunctionCategory.GROWTH_DW)
        s['grSL'] = f_sl.compute(T, s['SL']) if f_sl is not None else 0.0
        s['SL'] += s['grSL'] * dt_days
        s['grDW'] = f_dw.compute(T, s['DW']) if f_dw is not None else 0.0
        weight *= math.exp(s['grDW'] * dt_days)
        max_weight = max(max_weight, weight)

    mort = total_mortality(old_length, eb, k, weight,
                           s['stomachFullness'], max_weight)
    s['mortfish'] = mort.fish
    s['mortinv'] = mort.invertebrate
    s['mortstarv'] = mort.starvation
    if mort.index > LETHAL_INDEX:
        s['psurvival'] = 0.0
        ind.die(DeathCause.LETHAL_MORTALITY)
    else:
        s['psurvival'] *= math.exp(-dt * mort.total)

    s['DW'] = weight * 1e3
    s['dwmax'] = max_weight * 1e3
    s['stmsta'] = stomach * 1e3


def _grow_length(ind: StageIndividual, dt: float) -> float:
    f_sl = ind.function(FunctionCategory.GROWTH_SL)
    rate = f_sl.compute(ind._temperature, ind.state['length']) \
        if f_sl is not None else 0.0
    ind.state['length'] += rate * dt / SECONDS_PER_DAY
    return rate


def _grow_epijuv(ind: StageIndividual, pos, dt: float) -> None:
    _grow_length(ind, dt)


def _grow_benthic(ind: StageIndividual, pos, dt: float) -> None:
    ind.state['grL'] = _grow_length(ind, dt)


def _settlement_habitat(ind: StageIndividual, offset_key: str,
                        strict_hsi: bool) -> bool:
    p = ind.parameters
    if not (p.get_scalar('min_settlement_depth') <= ind.bathym
            <= p.get_scalar('max_settlement_depth')):
        return False
    if not ind.depth > ind.bathym + p.get_scalar(offset_key):
        return False
    hsi = ind.state['hsi']
    min_hsi = p.get_scalar('min_settlement_hsi')
    return min_hsi < hsi if strict_hsi else min_hsi <= hsi


def _past_min_duration(ind: StageIndividual) -> bool:
    return ind.state['ageInStage'] >= \
        ind.parameters.get_scalar('min_stage_duration', 0.0)


_GROWTH: Dict[StageType, Callable[[StageIndividual, Any, float], None]] = {
    StageType.EGG: _grow_egg,
    StageType.YSL: _grow_ysl,
    StageType.FDLPF: _grow_fdlpf,
    StageType.EPIJUV: _grow_epijuv,
    StageType.BENTHIC_JUV: _grow_benthic,
}

_EXIT: Dict[StageType, Callable[[StageIndividual], bool]] = {
    StageType.EGG: lambda ind: ind.state['stgProg'] >= 1.0,
    StageType.YSL: lambda ind: (ind.state['progYSA'] >= 1.0
                                and _past_min_duration(ind)),
    StageType.FDLPF: lambda ind: ind.state['SL'] >=
        ind.parameters.get_scalar('max_length'),
    StageType.EPIJUV: lambda ind: _settlement_habitat(
        ind, 'settlement_check_offset', strict_hsi=True),
    StageType.BENTHIC_JUV: lambda ind: False,
}

# Window in which the super-individual transition outflow accrues
_WINDOW: Dict[StageType, Callable[[StageIndividual], bool]] = {
    StageType.EGG: _past_min_duration,
    StageType.YSL: _past_min_duration,
    StageType.FDLPF: _past_min_duration,
    StageType.EPIJUV: lambda ind: _settlement_habitat(
        ind, 'settlement_rate_offset', strict_hsi=False),
    StageType.BENTHIC_JUV: _past_min_duration,
}
