"""Stage parameter sets: scalar settings plus one selected function per category.

A ParameterSet is shared by reference between individuals of one type,
or cloned when individuals need independent settings. Cloning copies
every candidate function's own parameters and keeps the selection.

A category with no selection is a disabled feature: callers receive
None from `get_selected_function` and skip it.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from pcod_lhs.attributes import coerce_value, format_value
from pcod_lhs.bioenergetics import BioenergeticGrowthDW
from pcod_lhs.functions import (
    BehaviorFunction,
    ConstantHabitatSuitability,
    ConstantMortalityRate,
    ConstantSwimmingSpeed,
    DielVerticalMigrationFixedDepthRanges,
    EggGrowthRateDW,
    EggGrowthRateSL,
    EggHatchTime,
    FDLpfGrowthRateDW,
    FDLpfGrowthRateSL,
    GriddedHabitatSuitability,
    HurstSwimmingSpeed,
    InversePowerLawMortalityRate,
    StandardGrowthRateDW,
    StandardGrowthRateSL,
    YSLGrowthRateDW,
    YSLGrowthRateSL,
    YSLPointOfNoReturn,
    YSLYolkSacAbsorption,
)
from pcod_lhs.types import (
    STAGE_NAMES,
    AttributeKind,
    FunctionCategory,
    StageType,
    UnknownFunction,
)


# ═══════════════════════════════════════════════════════════════════════
# FUNCTION REGISTRY
# ═══════════════════════════════════════════════════════════════════════

FUNCTION_TYPES: Dict[str, Type[BehaviorFunction]] = {
    cls.name: cls for cls in (
        ConstantMortalityRate,
        InversePowerLawMortalityRate,
        StandardGrowthRateSL,
        StandardGrowthRateDW,
        EggGrowthRateSL,
        EggGrowthRateDW,
        YSLGrowthRateSL,
        YSLGrowthRateDW,
        FDLpfGrowthRateSL,
        FDLpfGrowthRateDW,
        BioenergeticGrowthDW,
        EggHatchTime,
        YSLYolkSacAbsorption,
        YSLPointOfNoReturn,
        DielVerticalMigrationFixedDepthRanges,
        ConstantSwimmingSpeed,
        HurstSwimmingSpeed,
        ConstantHabitatSuitability,
        GriddedHabitatSuitability,
    )
}


def create_function(name: str, **params: float) -> BehaviorFunction:
    """Instantiate a registered function by name.

    Raises:
        UnknownFunction: If `name` is not registered.
    """
    try:
        cls = FUNCTION_TYPES[name]
    except KeyError:
        raise UnknownFunction(
            f"Unknown function '{name}'. Known: {sorted(FUNCTION_TYPES)}"
        ) from None
    return cls(**params)


# ═══════════════════════════════════════════════════════════════════════
# PARAMETER SET
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Parameter:
    """Declaration of one scalar parameter."""
    key: str
    kind: AttributeKind
    default: Any
    description: str = ''


class ParameterSet:
    """Scalar parameters plus per-category candidate functions.

    Args:
        type_name: Stage type name this set configures.
        stage: StageType of that type.
        scalars: Scalar parameter declarations, in report order.
        candidates: Per category, candidate functions keyed by name.
        selected: Per category, the selected function name (or None).
    """

    def __init__(
        self,
        type_name: str,
        stage: StageType,
        scalars: Iterable[Parameter],
        candidates: Dict[FunctionCategory, Dict[str, BehaviorFunction]],
        selected: Optional[Dict[FunctionCategory, Optional[str]]] = None,
    ):
        self.type_name = type_name
        self.stage = stage
        self._scalars: Dict[str, Parameter] = {p.key: p for p in scalars}
        self._values: Dict[str, Any] = {
            p.key: p.default for p in self._scalars.values()
        }
        self._candidates = {cat: dict(funcs)
                            for cat, funcs in candidates.items()}
        self._selected: Dict[FunctionCategory, Optional[str]] = {
            cat: None for cat in self._candidates
        }
        for cat, name in (selected or {}).items():
            if name is not None:
                self.select_function(cat, name)

    # ── scalars ──────────────────────────────────────────────────────

    def scalar_names(self) -> List[str]:
        return list(self._scalars)

    def get_scalar(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set_scalar(self, name: str, value: Any) -> None:
        """Set a scalar. Raises KeyError if undeclared, TypeMismatch on kind."""
        if name not in self._scalars:
            raise KeyError(
                f"Unknown parameter '{name}' for {self.type_name}. "
                f"Known: {list(self._scalars)}"
            )
        kind = self._scalars[name].kind
        if kind is AttributeKind.DOUBLE and isinstance(value, int) \
                and not isinstance(value, bool):
            value = float(value)
        self._values[name] = coerce_value(kind, value, name)

    # ── functions ────────────────────────────────────────────────────

    def categories(self) -> Tuple[FunctionCategory, ...]:
        return tuple(self._candidates)

    def _category(self, category: FunctionCategory) -> Dict[str, BehaviorFunction]:
        try:
            return self._candidates[category]
        except KeyError:
            raise UnknownFunction(
                f"{self.type_name} has no function category "
                f"'{category.value}'"
            ) from None

    def candidates(self, category: FunctionCategory) -> List[str]:
        return list(self._category(category))

    def get_function(self, category: FunctionCategory,
                     name: str) -> BehaviorFunction:
        funcs = self._category(category)
        if name not in funcs:
            raise UnknownFunction(
                f"'{name}' is not a {category.label.lower()} for "
                f"{self.type_name}. Candidates: {list(funcs)}"
            )
        return funcs[name]

    def add_function(self, func: BehaviorFunction) -> None:
        """Register (or replace) a candidate in its own category."""
        self._candidates.setdefault(func.category, {})[func.name] = func
        self._selected.setdefault(func.category, None)

    def select_function(self, category: FunctionCategory, name: str) -> None:
        """Select a candidate. Raises UnknownFunction if not registered."""
        self.get_function(category, name)
        self._selected[category] = name

    def clear_selection(self, category: FunctionCategory) -> None:
        self._category(category)
        self._selected[category] = None

    def selected_name(self, category: FunctionCategory) -> Optional[str]:
        return self._selected.get(category)

    def get_selected_function(
            self, category: FunctionCategory) -> Optional[BehaviorFunction]:
        """Selected function, or None if the category is disabled."""
        name = self._selected.get(category)
        if name is None:
            return None
        return self._candidates[category][name]

    # ── copy / report ────────────────────────────────────────────────

    def copy(self) -> 'ParameterSet':
        """Independent copy: function parameters copied, selection kept."""
        new = copy.copy(self)
        new._values = dict(self._values)
        new._candidates = {
            cat: {name: func.copy() for name, func in funcs.items()}
            for cat, funcs in self._candidates.items()
        }
        new._selected = dict(self._selected)
        return new

    def csv_header(self, sep: str = ',') -> str:
        cols = list(self._scalars)
        cols += [cat.value for cat in self._candidates]
        return sep.join(cols)

    def csv_line(self, sep: str = ',') -> str:
        cols = [format_value(p.kind, self._values[p.key])
                for p in self._scalars.values()]
        cols += [self._selected[cat] or '' for cat in self._candidates]
        return sep.join(cols)

    def __repr__(self) -> str:
        sel = {cat.value: name for cat, name in self._selected.items()}
        return f"ParameterSet({self.type_name!r}, selected={sel})"


# ═══════════════════════════════════════════════════════════════════════
# STAGE DEFAULTS
# ═══════════════════════════════════════════════════════════════════════

_B = AttributeKind.BOOLEAN
_D = AttributeKind.DOUBLE

COMMON_SCALARS = (
    Parameter('is_super_individual', _B, False,
              'individual represents a weighted abundance'),
    Parameter('horizontal_rwp', _D, 0.0,
              'horizontal random-walk parameter (m^2/s)'),
    Parameter('min_stage_duration', _D, 0.0, 'minimum stage duration (d)'),
    Parameter('max_stage_duration', _D, 365.0, 'maximum stage duration (d)'),
    Parameter('use_random_transitions', _B, False,
              'exit fires with probability from stage_transition_rate'),
    Parameter('stage_transition_rate', _D, 0.0,
              'instantaneous stage transition rate (1/d)'),
)

STAGE_SCALARS: Dict[StageType, Tuple[Parameter, ...]] = {
    StageType.EGG: COMMON_SCALARS,
    StageType.YSL: COMMON_SCALARS,
    StageType.FDLPF: COMMON_SCALARS + (
        Parameter('max_length', _D, 25.0,
                  'standard length at metamorphosis (mm)'),
    ),
    StageType.EPIJUV: COMMON_SCALARS + (
        Parameter('min_settlement_depth', _D, 10.0,
                  'minimum bottom depth for settlement (m)'),
        Parameter('max_settlement_depth', _D, 100.0,
                  'maximum bottom depth for settlement (m)'),
        Parameter('min_settlement_hsi', _D, 0.0,
                  'habitat suitability required for settlement'),
        Parameter('settlement_check_offset', _D, -5.0,
                  'exit test: depth > bathym + offset (m)'),
        Parameter('settlement_rate_offset', _D, 5.0,
                  'transition-rate window: depth > bathym + offset (m)'),
    ),
    StageType.BENTHIC_JUV: COMMON_SCALARS,
}

_M = FunctionCategory.MORTALITY
_SL = FunctionCategory.GROWTH_SL
_DW = FunctionCategory.GROWTH_DW
_VM = FunctionCategory.VERTICAL_MOVEMENT
_VV = FunctionCategory.VERTICAL_VELOCITY

_MORTALITY = ('constant_mortality', 'inverse_power_law_mortality')

# Per stage and category: candidate names, the first being the default.
STAGE_FUNCTIONS: Dict[StageType, Dict[FunctionCategory, Tuple[str, ...]]] = {
    StageType.EGG: {
        _M: _MORTALITY,
        _SL: ('egg_growth_sl', 'standard_growth_sl'),
        _DW: ('egg_growth_dw', 'standard_growth_dw'),
        FunctionCategory.DEVELOPMENT: ('egg_hatch_time',),
    },
    StageType.YSL: {
        _M: _MORTALITY,
        _SL: ('ysl_growth_sl', 'standard_growth_sl'),
        _DW: ('ysl_growth_dw', 'standard_growth_dw'),
        _VM: ('dvm_fixed_depth_ranges',),
        _VV: ('constant_swimming_speed', 'hurst_swimming_speed'),
        FunctionCategory.YSA: ('ysl_ysa',),
        FunctionCategory.PNR: ('ysl_pnr',),
    },
    StageType.FDLPF: {
        _M: _MORTALITY,
        _SL: ('fdlpf_growth_sl', 'standard_growth_sl'),
        _DW: ('bioenergetic_growth_dw', 'fdlpf_growth_dw',
              'standard_growth_dw'),
        _VM: ('dvm_fixed_depth_ranges',),
        _VV: ('hurst_swimming_speed', 'constant_swimming_speed'),
    },
    StageType.EPIJUV: {
        _M: _MORTALITY,
        _SL: ('standard_growth_sl',),
        _VM: ('dvm_fixed_depth_ranges',),
        _VV: ('hurst_swimming_speed', 'constant_swimming_speed'),
        FunctionCategory.HABITAT: ('constant_habitat', 'gridded_habitat'),
    },
    StageType.BENTHIC_JUV: {
        _M: _MORTALITY,
        _SL: ('standard_growth_sl',),
        FunctionCategory.HABITAT: ('constant_habitat', 'gridded_habitat'),
    },
}

# Juvenile growth in length (mm/d): -0.081 + 0.079 T - 0.003 T^2
_JUVENILE_GROWTH = {'a': -0.081, 'b': 0.079, 'c': -0.003, 'd': 0.0}

STAGE_FUNCTION_DEFAULTS: Dict[StageType, Dict[str, Dict[str, float]]] = {
    StageType.EPIJUV: {
        'standard_growth_sl': _JUVENILE_GROWTH,
        'dvm_fixed_depth_ranges': {
            'day_min_depth': 30.0, 'day_max_depth': 60.0,
            'night_min_depth': 10.0, 'night_max_depth': 30.0,
        },
    },
    StageType.BENTHIC_JUV: {
        'standard_growth_sl': _JUVENILE_GROWTH,
    },
}


def default_parameter_set(stage: StageType,
                          type_name: Optional[str] = None) -> ParameterSet:
    """Parameter set for `stage` with its default function selected per category."""
    type_name = type_name or STAGE_NAMES[stage]
    overrides = STAGE_FUNCTION_DEFAULTS.get(stage, {})
    candidates: Dict[FunctionCategory, Dict[str, BehaviorFunction]] = {}
    selected: Dict[FunctionCategory, Optional[str]] = {}
    for category, names in STAGE_FUNCTIONS[stage].items():
        candidates[category] = {
            name: create_function(name, **overrides.get(name, {}))
            for name in names
        }
        selected[category] = names[0]
    return ParameterSet(type_name, stage, STAGE_SCALARS[stage],
                        candidates, selected)
