"""Typed, ordered attribute records for life-stage individuals.

An AttributeSet holds one individual's persisted state. Its layout is
fixed by an immutable AttributeSchema: a core block shared by every
stage (identity, position, age, abundance, flags) followed by the
stage-specific biology. The schema order defines the flat value vector
used for construction, initial-condition files and CSV export, so it
must stay stable for a given stage type.

Text encoding of vector values:
  - boolean: 'true' / 'false' (parsing also accepts any case and 1/0)
  - double:  repr(float), which round-trips exactly
  - long:    decimal integer
  - string:  verbatim
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Sequence, Tuple

import numpy as np

from pcod_lhs.types import (
    AttributeKind,
    FormatError,
    MissingField,
    StageType,
    TypeMismatch,
)


# ═══════════════════════════════════════════════════════════════════════
# VALUE KINDS
# ═══════════════════════════════════════════════════════════════════════

def coerce_value(kind: AttributeKind, value: Any, key: str = '') -> Any:
    """Normalize a typed value to the Python type of `kind`.

    Raises:
        TypeMismatch: If the value's type disagrees with `kind`. Booleans
            are never accepted as numbers.
    """
    if kind is AttributeKind.BOOLEAN:
        if isinstance(value, (bool, np.bool_)):
            return bool(value)
    elif kind is AttributeKind.DOUBLE:
        if isinstance(value, (int, float, np.integer, np.floating)) \
                and not isinstance(value, (bool, np.bool_)):
            return float(value)
    elif kind is AttributeKind.LONG:
        if isinstance(value, (int, np.integer)) \
                and not isinstance(value, (bool, np.bool_)):
            return int(value)
    elif kind is AttributeKind.STRING:
        if isinstance(value, str):
            return value
    raise TypeMismatch(
        f"Attribute '{key}' expects a {kind.value} value, "
        f"got {type(value).__name__} {value!r}"
    )


def parse_text(kind: AttributeKind, text: str) -> Any:
    """Parse the textual form of a value. Raises ValueError on failure."""
    text = text.strip() if kind is not AttributeKind.STRING else text
    if kind is AttributeKind.BOOLEAN:
        lowered = text.lower()
        if lowered in ('true', '1'):
            return True
        if lowered in ('false', '0'):
            return False
        raise ValueError(f"not a boolean: {text!r}")
    if kind is AttributeKind.DOUBLE:
        return float(text)
    if kind is AttributeKind.LONG:
        return int(text)
    return text


def format_value(kind: AttributeKind, value: Any) -> str:
    """Textual form of a typed value."""
    if kind is AttributeKind.BOOLEAN:
        return 'true' if value else 'false'
    if kind is AttributeKind.DOUBLE:
        return repr(float(value))
    if kind is AttributeKind.LONG:
        return str(int(value))
    return str(value)


# ═══════════════════════════════════════════════════════════════════════
# SCHEMA
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AttributeSpec:
    """One field of a schema: short key, full name, kind and default."""
    key: str
    name: str
    kind: AttributeKind
    default: Any


class AttributeSchema:
    """Immutable ordered field layout for one stage type.

    Built once per stage type; individuals share it by reference.
    """

    def __init__(self, type_name: str, specs: Sequence[AttributeSpec]):
        self._type_name = type_name
        self._specs: Tuple[AttributeSpec, ...] = tuple(specs)
        self._index: Dict[str, int] = {}
        for i, spec in enumerate(self._specs):
            if spec.key in self._index:
                raise ValueError(f"Duplicate attribute key '{spec.key}'")
            self._index[spec.key] = i

    @property
    def type_name(self) -> str:
        return self._type_name

    @property
    def specs(self) -> Tuple[AttributeSpec, ...]:
        return self._specs

    @property
    def keys(self) -> Tuple[str, ...]:
        return tuple(s.key for s in self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[AttributeSpec]:
        return iter(self._specs)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def spec(self, key: str) -> AttributeSpec:
        try:
            return self._specs[self._index[key]]
        except KeyError:
            raise KeyError(
                f"Unknown attribute '{key}' for {self._type_name}"
            ) from None

    def extend(self, type_name: str,
               specs: Sequence[AttributeSpec]) -> 'AttributeSchema':
        """New schema with this schema's fields followed by `specs`."""
        return AttributeSchema(type_name, self._specs + tuple(specs))

    def defaults(self) -> Dict[str, Any]:
        values = {s.key: s.default for s in self._specs}
        if 'typeName' in values:
            values['typeName'] = self._type_name
        return values

    def header(self, short: bool = False) -> List[str]:
        return [s.key if short else s.name for s in self._specs]


def _specs(*rows: Tuple[str, str, AttributeKind, Any]) -> List[AttributeSpec]:
    return [AttributeSpec(*row) for row in rows]


_B = AttributeKind.BOOLEAN
_D = AttributeKind.DOUBLE
_L = AttributeKind.LONG
_S = AttributeKind.STRING

CORE_SCHEMA = AttributeSchema('', _specs(
    ('typeName',   'typeName',           _S, ''),
    ('id',         'ID',                 _L, -1),
    ('parentID',   'Parent ID',          _L, -1),
    ('origID',     'Original ID',        _L, -1),
    ('startTime',  'start time (s)',     _D, 0.0),
    ('time',       'time (s)',           _D, 0.0),
    ('horizType',  'horizType',          _L, 2),
    ('vertType',   'vertType',           _L, 2),
    ('horizPos1',  'horizPos1',          _D, 0.0),
    ('horizPos2',  'horizPos2',          _D, 0.0),
    ('vertPos',    'vertPos',            _D, 0.0),
    ('gridCellID', 'gridCellID',         _S, ''),
    ('track',      'track',              _S, ''),
    ('active',     'active status',      _B, True),
    ('alive',      'alive status',       _B, True),
    ('age',        'age (d)',            _D, 0.0),
    ('ageInStage', 'age in stage (d)',   _D, 0.0),
    ('number',     'number of individuals', _D, 1.0),
))

EGG_SCHEMA = CORE_SCHEMA.extend('Egg', _specs(
    ('attached', 'attached',                    _B, True),
    ('stgProg',  'egg stage progression',       _D, 0.0),
    ('SL',       'embryo SL (mm)',              _D, 0.0),
    ('DW',       'embryo DW (mg)',              _D, 0.0),
    ('grSL',     'growth rate for SL (mm/d)',   _D, 0.0),
    ('grDW',     'growth rate for DW (1/d)',    _D, 0.0),
    ('density',  'egg density',                 _D, 0.0),
    ('temp',     'temperature deg C',           _D, -1.0),
    ('sal',      'salinity',                    _D, -1.0),
    ('rho',      'in situ density',             _D, -1.0),
))

YSL_SCHEMA = CORE_SCHEMA.extend('YSL', _specs(
    ('attached',   'attached',                  _B, False),
    ('SL',         'standard length (mm)',      _D, 0.0),
    ('DW',         'dry weight (mg)',           _D, 0.0),
    ('grSL',       'growth rate for SL (mm/d)', _D, 0.0),
    ('grDW',       'growth rate for DW (1/d)',  _D, 0.0),
    ('progYSA',    'progression to yolk-sac absorption', _D, 0.0),
    ('progPNR',    'progression to point of no return',  _D, 0.0),
    ('temp',       'temperature deg C',         _D, 0.0),
    ('sal',        'salinity',                  _D, 0.0),
    ('rho',        'in situ water density',     _D, 0.0),
    ('copepod',    'small copepods',            _D, 0.0),
    ('euphausiid', 'euphausiids',               _D, 0.0),
    ('neocalanus', 'neocalanus',                _D, 0.0),
))

FDLPF_SCHEMA = CORE_SCHEMA.extend('FDLpf', _specs(
    ('attached',        'attached',                      _B, False),
    ('SL',              'standard length (mm)',          _D, 0.0),
    ('DW',              'dry weight (mg)',               _D, 0.0),
    ('ageFromYSL',      'age from yolk-sac absorption (d)', _D, 0.0),
    ('stmsta',          'stomach state (mg)',            _D, 0.0),
    ('psurvival',       'survival probability',          _D, 1.0),
    ('mortfish',        'fish predation mortality (1/s)', _D, 0.0),
    ('mortinv',         'invertebrate predation mortality (1/s)', _D, 0.0),
    ('mortstarv',       'starvation mortality (1/s)',    _D, 0.0),
    ('dwmax',           'maximum dry weight (mg)',       _D, 0.0),
    ('avgRank',         'average prey rank',             _D, 0.0),
    ('avgSize',         'average prey size (mm)',        _D, 0.0),
    ('stomachFullness', 'stomach fullness',              _D, 0.0),
    ('pCO2',            'pCO2 (uatm)',                   _D, 0.0),
    ('grSL',            'growth rate for SL (mm/d)',     _D, 0.0),
    ('grDW',            'growth rate for DW',            _D, 0.0),
    ('temp',            'temperature deg C',             _D, 0.0),
    ('sal',             'salinity',                      _D, 0.0),
    ('rho',             'in situ water density',         _D, 0.0),
    ('copepod',         'small copepods',                _D, 0.0),
    ('euphausiid',      'euphausiids',                   _D, 0.0),
    ('euphausiidShelf', 'shelf euphausiids',             _D, 0.0),
    ('neocalanus',      'neocalanus',                    _D, 0.0),
    ('neocalanusShelf', 'shelf neocalanus',              _D, 0.0),
    ('microzoo',        'microzooplankton',              _D, 0.0),
    ('eps',             'turbulent dissipation (W/kg)', _D, 0.0),
    ('eb',              'light at depth (uE/m^2/s)',     _D, 0.0),
    ('ebtwozero',       'light attenuation coefficient', _D, 0.0),
))

EPIJUV_SCHEMA = CORE_SCHEMA.extend('Epijuv', _specs(
    ('attached',   'attached',                _B, False),
    ('length',     'length (mm)',             _D, 0.0),
    ('temp',       'temperature deg C',       _D, 0.0),
    ('sal',        'salinity',                _D, 0.0),
    ('rho',        'in situ water density',   _D, 0.0),
    ('copepod',    'small copepods',          _D, 0.0),
    ('neocalanus', 'neocalanus',              _D, 0.0),
    ('euphausiid', 'euphausiids',             _D, 0.0),
    ('hsi',        'habitat suitability index', _D, 0.0),
))

BENTHIC_JUV_SCHEMA = CORE_SCHEMA.extend('BenthicJuv', _specs(
    ('attached', 'attached',                  _B, True),
    ('length',   'length (mm)',               _D, 0.0),
    ('grL',      'growth rate in length (mm/d)', _D, 0.0),
    ('temp',     'temperature deg C',         _D, 0.0),
    ('sal',      'salinity',                  _D, 0.0),
    ('rho',      'in situ water density',     _D, 0.0),
    ('hsi',      'habitat suitability index', _D, 0.0),
))

STAGE_SCHEMAS: Dict[StageType, AttributeSchema] = {
    StageType.EGG: EGG_SCHEMA,
    StageType.YSL: YSL_SCHEMA,
    StageType.FDLPF: FDLPF_SCHEMA,
    StageType.EPIJUV: EPIJUV_SCHEMA,
    StageType.BENTHIC_JUV: BENTHIC_JUV_SCHEMA,
}


# ═══════════════════════════════════════════════════════════════════════
# ATTRIBUTE SET
# ═══════════════════════════════════════════════════════════════════════

class AttributeSet:
    """Typed key→value record laid out by an AttributeSchema.

    Args:
        schema: Field layout (shared, immutable).
        values: Optional typed values overriding the schema defaults.
    """

    def __init__(self, schema: AttributeSchema,
                 values: Dict[str, Any] = None):
        self._schema = schema
        self._values: Dict[str, Any] = schema.defaults()
        if values:
            for key, value in values.items():
                self.set(key, value)

    @property
    def schema(self) -> AttributeSchema:
        return self._schema

    @property
    def type_name(self) -> str:
        return self._schema.type_name

    def get(self, key: str) -> Any:
        if key not in self._values:
            raise KeyError(
                f"Unknown attribute '{key}' for {self._schema.type_name}"
            )
        return self._values[key]

    def set(self, key: str, value: Any) -> None:
        """Set a field. Raises TypeMismatch if the kind disagrees."""
        spec = self._schema.spec(key)
        self._values[key] = coerce_value(spec.kind, value, key)

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return key in self._schema

    def keys(self) -> Tuple[str, ...]:
        return self._schema.keys

    def items(self) -> Iterator[Tuple[str, Any]]:
        for key in self._schema.keys:
            yield key, self._values[key]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AttributeSet):
            return NotImplemented
        return (self._schema.keys == other._schema.keys
                and self._schema.type_name == other._schema.type_name
                and self._values == other._values)

    def __repr__(self) -> str:
        return (f"AttributeSet({self._schema.type_name!r}, "
                f"id={self._values.get('id')})")

    def copy(self) -> 'AttributeSet':
        """Independent copy sharing the immutable schema."""
        new = AttributeSet.__new__(AttributeSet)
        new._schema = self._schema
        new._values = dict(self._values)
        return new

    # ── vector transport ─────────────────────────────────────────────

    def to_vector(self) -> List[Any]:
        """Typed values in schema order."""
        return [self._values[key] for key in self._schema.keys]

    def to_text_vector(self) -> List[str]:
        """Textual values in schema order."""
        return [format_value(s.kind, self._values[s.key])
                for s in self._schema]

    @classmethod
    def from_vector(cls, schema: AttributeSchema,
                    values: Sequence[Any]) -> 'AttributeSet':
        """Build from a flat vector of typed or textual values.

        Values beyond the schema length are ignored.

        Raises:
            MissingField: If the vector is shorter than the schema; names
                the first missing field.
            FormatError: If a value does not parse as its field's kind;
                carries the field and the values parsed before it.
        """
        parsed: List[Any] = []
        for i, spec in enumerate(schema):
            if i >= len(values):
                raise MissingField(spec.key, parsed, schema.type_name)
            raw = values[i]
            try:
                if isinstance(raw, str):
                    value = parse_text(spec.kind, raw)
                else:
                    value = coerce_value(spec.kind, raw, spec.key)
            except (ValueError, TypeMismatch) as exc:
                raise FormatError(spec.key, raw, parsed,
                                  schema.type_name) from exc
            parsed.append(value)
        new = cls(schema)
        new._values = dict(zip(schema.keys, parsed))
        return new

    # ── delimited output ─────────────────────────────────────────────

    def csv_header(self, short: bool = False, sep: str = ',') -> str:
        return sep.join(self._schema.header(short))

    def csv_line(self, sep: str = ',') -> str:
        return sep.join(self.to_text_vector())

    def serialize_delimited(self, short: bool = False,
                            sep: str = ',') -> Tuple[str, str]:
        """(header, line) pair consistent with the vector layout."""
        return self.csv_header(short, sep), self.csv_line(sep)
