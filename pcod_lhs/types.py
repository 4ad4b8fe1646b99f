"""Core enumerations, constants and exceptions for pcod_lhs.

This module is the SINGLE SOURCE OF TRUTH for:
  - StageType, HorizType, VertType, DeathCause enumerations
  - AttributeKind (value kinds of attribute and parameter fields)
  - FunctionCategory and GrowthKind (behavior-function dispatch tags)
  - The LifeStageError exception taxonomy
  - Physical constants shared by the stage and function modules

All modules import these types from here.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, List, Optional


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class StageType(IntEnum):
    """Developmental stages of Pacific cod early life history.

    Transition criteria:
      EGG         →  YSL:         stage progression ≥ 1 (hatching)
      YSL         →  FDLPF:       yolk-sac absorption complete
      FDLPF       →  EPIJUV:      standard length ≥ max_length (25 mm)
      EPIJUV      →  BENTHIC_JUV: settlement depth + habitat suitability
      BENTHIC_JUV →  (none)
    """
    EGG         = 0
    YSL         = 1   # Yolk-sac larva
    FDLPF       = 2   # Feeding larva, pre-flexion
    EPIJUV      = 3   # Epipelagic juvenile
    BENTHIC_JUV = 4   # Settled benthic juvenile


# Default type names, as they appear in attribute vectors and reports
STAGE_NAMES = {
    StageType.EGG: 'Egg',
    StageType.YSL: 'YSL',
    StageType.FDLPF: 'FDLpf',
    StageType.EPIJUV: 'Epijuv',
    StageType.BENTHIC_JUV: 'BenthicJuv',
}


class HorizType(IntEnum):
    """Horizontal coordinate convention of horizPos1/horizPos2."""
    IJ = 0   # Grid indices
    XY = 1   # Projected metres
    LL = 2   # horizPos1 = lon, horizPos2 = lat


class VertType(IntEnum):
    """Vertical coordinate convention of vertPos."""
    K  = 0   # Grid level (0 = bottom)
    Z  = 1   # Height (m, negative below the surface)
    H  = 2   # Depth (m, positive down)
    DH = 3   # Distance off bottom (m)


class DeathCause(IntEnum):
    """Reason an individual left the Active-Alive state."""
    ALIVE            = 0
    MAX_DURATION     = 1   # ageInStage > max_stage_duration
    DOMAIN_EXIT      = 2   # Tracker reached the grid edge
    LETHAL_MORTALITY = 3   # Starvation index above the lethal threshold
    PNR_STARVATION   = 4   # Point-of-no-return reached before first feeding
    TRANSITIONED     = 5   # Continued as the next stage


class AttributeKind(Enum):
    """Value kind of a typed attribute or scalar parameter."""
    BOOLEAN = 'boolean'
    DOUBLE  = 'double'
    LONG    = 'long'
    STRING  = 'string'


class FunctionCategory(Enum):
    """Functional category of a pluggable behavior function.

    Values are the YAML keys used under ``stages.<type>.functions``.
    """
    MORTALITY         = 'mortality'
    GROWTH_SL         = 'growth_sl'
    GROWTH_DW         = 'growth_dw'
    VERTICAL_MOVEMENT = 'vertical_movement'
    VERTICAL_VELOCITY = 'vertical_velocity'
    PNR               = 'pnr'
    YSA               = 'ysa'
    HABITAT           = 'habitat'
    DEVELOPMENT       = 'development'

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    FunctionCategory.MORTALITY: 'Mortality function',
    FunctionCategory.GROWTH_SL: 'Growth function in SL',
    FunctionCategory.GROWTH_DW: 'Growth function in DW',
    FunctionCategory.VERTICAL_MOVEMENT: 'Vertical movement',
    FunctionCategory.VERTICAL_VELOCITY: 'Vertical velocity',
    FunctionCategory.PNR: 'Point of no return',
    FunctionCategory.YSA: 'Yolk-sac absorption',
    FunctionCategory.HABITAT: 'Habitat suitability',
    FunctionCategory.DEVELOPMENT: 'Egg development',
}


class GrowthKind(Enum):
    """Calling convention of a growth function."""
    SIMPLE       = 'simple'        # compute(temperature, size) -> rate
    BIOENERGETIC = 'bioenergetic'  # compute(...) -> BioenergeticsResult


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

SECONDS_PER_DAY = 86400.0

TEMPERATURE_FLOOR = 0.01      # °C; rate laws see max(T, floor) for T <= 0

STANDARD_VELOCITY = 15.0 / 3600.0   # m/s; swim-speed ceiling (15 m/h)

SUNSET_ZENITH = 90.833        # deg; zenith angle at apparent sunset

LETHAL_INDEX = 1000.0         # Starvation index above which a larva dies

SL_TO_TL_OFFSET = 0.5169      # TL = (SL + offset) / slope  (mm)
SL_TO_TL_SLOPE = 0.9315


def total_length(standard_length: float) -> float:
    """Convert standard length to total length (mm)."""
    return (standard_length + SL_TO_TL_OFFSET) / SL_TO_TL_SLOPE


def clamp_temperature(temperature: float) -> float:
    """Apply the temperature floor used by every rate law."""
    if temperature <= 0.0:
        return TEMPERATURE_FLOOR
    return temperature


# ═══════════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════

class LifeStageError(Exception):
    """Base class for failures surfaced by the life-stage engine."""


class FormatError(LifeStageError, ValueError):
    """Malformed value while parsing an attribute vector.

    Attributes:
        field: Key of the offending field.
        value: Raw value that failed to parse (None if missing).
        parsed: Values successfully parsed before the failure, in order.
        type_name: Stage type name of the schema being parsed.
    """

    def __init__(
        self,
        field: str,
        value: Any = None,
        parsed: Optional[List[Any]] = None,
        type_name: str = '',
        message: Optional[str] = None,
    ):
        self.field = field
        self.value = value
        self.parsed = list(parsed or [])
        self.type_name = type_name
        if message is None:
            message = (
                f"Could not parse value {value!r} for attribute '{field}'"
                f" of {type_name or 'unknown type'}"
            )
        super().__init__(f"{message}; prior values: {self.parsed}")


class MissingField(FormatError):
    """Attribute vector shorter than the schema."""

    def __init__(
        self,
        field: str,
        parsed: Optional[List[Any]] = None,
        type_name: str = '',
    ):
        super().__init__(
            field, None, parsed, type_name,
            message=f"Missing attribute value for '{field}'"
                    f" of {type_name or 'unknown type'}",
        )


class TypeMismatch(LifeStageError, TypeError):
    """Value kind disagrees with the declared kind of a field."""


class UnknownFunction(LifeStageError, LookupError):
    """Unknown function category, function name or function parameter."""


class UnknownStage(LifeStageError, LookupError):
    """Type name not registered with the factory or configuration."""


class ConstructionError(LifeStageError):
    """Successor individual could not be built."""
