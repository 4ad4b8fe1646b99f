"""Configuration system for pcod_lhs.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Top-level sections:
  simulation: seed, time step, number of steps, start date, grid-edge tolerance
  stages:     one entry per type name: stage, successor, scalar
              parameters and selected functions (with their parameters)
  output:     report directory and header style

Function names and categories are checked when the configuration is
loaded, so an unknown function never surfaces during stepping.
"""

from __future__ import annotations

import copy
import dataclasses
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from pcod_lhs.functions import GriddedHabitatSuitability
from pcod_lhs.parameters import (
    FUNCTION_TYPES,
    STAGE_FUNCTIONS,
    STAGE_SCALARS,
    ParameterSet,
    default_parameter_set,
)
from pcod_lhs.types import (
    STAGE_NAMES,
    FunctionCategory,
    StageType,
    UnknownFunction,
    UnknownStage,
)


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Simulation timing and control."""
    seed: int = 42
    time_step: float = 10800.0           # s (3 h)
    n_steps: int = 240
    start_date: str = '2000-03-01T00:00:00'
    grid_edge_tolerance: float = 0.5     # grid cells


@dataclass
class FunctionSpec:
    """Selected function for one category, with parameter overrides."""
    name: str = ''
    params: Dict[str, float] = field(default_factory=dict)
    file: Optional[str] = None           # .npz grid for gridded_habitat


@dataclass
class StageSection:
    """Configuration of one stage type."""
    stage: str = 'EGG'
    next: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    functions: Dict[str, FunctionSpec] = field(default_factory=dict)


@dataclass
class OutputSection:
    """Output control."""
    directory: Optional[str] = 'results/'   # None: no report files
    short_names: bool = False
    write_tracks: bool = True


def _default_stages() -> Dict[str, StageSection]:
    stages = {}
    order = list(StageType)
    for i, stage in enumerate(order):
        nxt = STAGE_NAMES[order[i + 1]] if i + 1 < len(order) else None
        stages[STAGE_NAMES[stage]] = StageSection(stage=stage.name, next=nxt)
    return stages


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    stages: Dict[str, StageSection] = field(default_factory=_default_stages)
    output: OutputSection = field(default_factory=OutputSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _stage_from_dict(type_name: str, data: Dict) -> StageSection:
    data = dict(data)
    if 'stage' not in data:
        # Default type names imply their stage
        for stage, name in STAGE_NAMES.items():
            if name == type_name:
                data['stage'] = stage.name
    functions = {}
    for category, spec in (data.get('functions') or {}).items():
        if isinstance(spec, str):
            spec = {'name': spec}
        elif not isinstance(spec, dict):
            raise ValueError(
                f"stages.{type_name}.functions.{category} must be a name "
                f"or a mapping, got {spec!r}"
            )
        spec = dict(spec)
        spec['params'] = dict(spec.get('params') or {})
        functions[category] = _dict_to_section(FunctionSpec, spec)
    data['functions'] = functions
    data['parameters'] = dict(data.get('parameters') or {})
    return _dict_to_section(StageSection, data)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections: Dict[str, Any] = {}
    for key, cls in (('simulation', SimulationSection),
                     ('output', OutputSection)):
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    if isinstance(data.get('stages'), dict):
        sections['stages'] = {
            str(name): _stage_from_dict(str(name), stage_data or {})
            for name, stage_data in data['stages'].items()
        }
    return SimulationConfig(**sections)


def stage_type(section: StageSection) -> StageType:
    try:
        return StageType[str(section.stage).upper()]
    except KeyError:
        raise ValueError(
            f"Unknown stage '{section.stage}'. "
            f"Valid: {[s.name for s in StageType]}"
        ) from None


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints.

    Checks:
      - Time step is non-zero and the step count non-negative
      - Start date parses as ISO 8601
      - Every stage names a known StageType and a registered successor
      - Scalar overrides exist for the stage; durations are ordered
      - Function categories and names are registered for the stage

    Raises:
        ValueError: On inconsistent settings.
        UnknownStage: If a successor type name is not configured.
        UnknownFunction: If a function category or name is unknown.
    """
    sim = config.simulation
    if sim.time_step == 0:
        raise ValueError("simulation.time_step must be non-zero")
    if sim.n_steps < 0:
        raise ValueError(f"simulation.n_steps must be >= 0, got {sim.n_steps}")
    if sim.grid_edge_tolerance < 0:
        raise ValueError("simulation.grid_edge_tolerance must be >= 0")
    try:
        datetime.fromisoformat(str(sim.start_date))
    except ValueError:
        raise ValueError(
            f"simulation.start_date '{sim.start_date}' is not ISO 8601"
        ) from None

    if not config.stages:
        raise ValueError("At least one stage must be configured")

    for name, section in config.stages.items():
        stage = stage_type(section)
        if section.next is not None and section.next not in config.stages:
            raise UnknownStage(
                f"stages.{name}.next: '{section.next}' is not a configured "
                f"stage. Configured: {list(config.stages)}"
            )

        known = {p.key for p in STAGE_SCALARS[stage]}
        for key in section.parameters:
            if key not in known:
                raise ValueError(
                    f"stages.{name}.parameters: unknown parameter '{key}' "
                    f"for {stage.name}. Known: {sorted(known)}"
                )
        params = {p.key: p.default for p in STAGE_SCALARS[stage]}
        params.update(section.parameters)
        if params['min_stage_duration'] > params['max_stage_duration']:
            raise ValueError(
                f"stages.{name}: min_stage_duration "
                f"({params['min_stage_duration']}) > max_stage_duration "
                f"({params['max_stage_duration']})"
            )
        if params['horizontal_rwp'] < 0:
            raise ValueError(f"stages.{name}: horizontal_rwp must be >= 0")
        if params['stage_transition_rate'] < 0:
            raise ValueError(
                f"stages.{name}: stage_transition_rate must be >= 0"
            )
        if stage is StageType.EPIJUV:
            if params['min_settlement_depth'] > params['max_settlement_depth']:
                raise ValueError(
                    f"stages.{name}: min_settlement_depth > "
                    f"max_settlement_depth"
                )
            if params['settlement_check_offset'] != \
                    params['settlement_rate_offset']:
                warnings.warn(
                    f"stages.{name}: settlement_check_offset "
                    f"({params['settlement_check_offset']}) differs from "
                    f"settlement_rate_offset "
                    f"({params['settlement_rate_offset']}); the exit test "
                    f"and the transition-rate window use different depth "
                    f"criteria",
                    UserWarning,
                )

        for key, spec in section.functions.items():
            try:
                category = FunctionCategory(key)
            except ValueError:
                raise UnknownFunction(
                    f"stages.{name}.functions: unknown category '{key}'"
                ) from None
            allowed = STAGE_FUNCTIONS[stage].get(category)
            if allowed is None:
                raise UnknownFunction(
                    f"stages.{name}: {stage.name} has no '{key}' category"
                )
            if spec.name not in FUNCTION_TYPES or spec.name not in allowed:
                raise UnknownFunction(
                    f"stages.{name}.functions.{key}: unknown function "
                    f"'{spec.name}'. Candidates: {list(allowed)}"
                )
            for pkey in spec.params:
                if pkey not in FUNCTION_TYPES[spec.name].defaults:
                    raise UnknownFunction(
                        f"stages.{name}.functions.{key}: '{spec.name}' has "
                        f"no parameter '{pkey}'"
                    )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter sweep overrides.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, copy.deepcopy(sweep_overrides))

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config


# ═══════════════════════════════════════════════════════════════════════
# PARAMETER SETS FROM CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════

def build_parameter_sets(
    config: SimulationConfig,
    base_dir: Optional[Union[str, Path]] = None,
) -> Dict[str, ParameterSet]:
    """Parameter set per configured type name.

    Args:
        config: Validated configuration.
        base_dir: Directory that relative habitat-grid paths resolve against.

    Raises:
        UnknownFunction: If a function is not a candidate for its stage.
        FileNotFoundError: If a habitat grid file is missing.
    """
    base_dir = Path(base_dir) if base_dir is not None else Path('.')
    sets: Dict[str, ParameterSet] = {}
    for name, section in config.stages.items():
        stage = stage_type(section)
        ps = default_parameter_set(stage, name)
        for key, value in section.parameters.items():
            ps.set_scalar(key, value)
        for key, spec in section.functions.items():
            category = FunctionCategory(key)
            func = ps.get_function(category, spec.name)
            for pkey, pvalue in spec.params.items():
                func.set_parameter(pkey, pvalue)
            if spec.file is not None:
                if not isinstance(func, GriddedHabitatSuitability):
                    raise ValueError(
                        f"stages.{name}.functions.{key}: '{spec.name}' "
                        f"does not read a file"
                    )
                path = Path(spec.file)
                if not path.is_absolute():
                    path = base_dir / path
                loaded = GriddedHabitatSuitability.load(path, **func.params)
                ps.add_function(loaded)
            ps.select_function(category, spec.name)
        sets[name] = ps
    return sets


def next_types(config: SimulationConfig) -> Dict[str, Optional[str]]:
    """Successor type name per configured type name."""
    return {name: section.next for name, section in config.stages.items()}


def start_datetime(config: SimulationConfig) -> datetime:
    return datetime.fromisoformat(str(config.simulation.start_date))
