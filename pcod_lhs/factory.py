"""Stage factory: creation of individuals and the stage-transition pipeline.

The factory knows every registered type name, its stage descriptor and
its prototype ParameterSet, and hands each new individual the shared
environment and random sources.

Lineage rules:
  - A fresh individual gets a new id; parentID and origID equal the id.
  - An ordinary individual keeps id/parentID/origID across a transition;
    its tracker moves to the successor and it becomes Inactive-Dead.
  - A super-individual spawns a successor with a new id, parentID set to
    its own id, origID unchanged and number equal to its pending
    transition outflow; it then resets the outflow and stays alive.

A successor is fully built before the predecessor is touched, so a
failed transition leaves the predecessor exactly as it was.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np

from pcod_lhs.attributes import AttributeSet
from pcod_lhs.environment import PhysicalEnvironment
from pcod_lhs.parameters import ParameterSet
from pcod_lhs.stages import STAGE_DESCRIPTORS, StageDescriptor, StageIndividual
from pcod_lhs.types import (
    ConstructionError,
    DeathCause,
    FormatError,
    LifeStageError,
    UnknownStage,
)

logger = logging.getLogger(__name__)

INHERIT = -1

# Core fields that a successor never copies from its predecessor
_LINEAGE_KEYS = ('typeName', 'id', 'parentID', 'origID', 'number')


class IdAllocator:
    """Monotonic source of unique individual ids."""

    def __init__(self, start: int = 1):
        self._next = int(start)

    def allocate(self) -> int:
        new_id = self._next
        self._next += 1
        return new_id

    def observe(self, existing_id: int) -> None:
        """Ensure later ids never collide with an externally assigned id."""
        if existing_id >= self._next:
            self._next = int(existing_id) + 1

    @property
    def next_id(self) -> int:
        return self._next


class StageFactory:
    """Registry of stage types and builder of individuals.

    Args:
        parameter_sets: Prototype parameter set per type name. Each set's
            `stage` selects the stage descriptor.
        environment: Physical environment for all individuals.
        rng: Movement random source (normal variates).
        transition_rng: Random source for stochastic transitions.
        next_types: Successor type name per type name; defaults follow
            the developmental order among the registered names.
        id_allocator: Shared id source.
        grid_edge_tolerance: Grid-edge distance treated as leaving the domain.
        record_tracks: Store the position history in the 'track' attribute.
    """

    def __init__(
        self,
        parameter_sets: Mapping[str, ParameterSet],
        environment: Optional[PhysicalEnvironment] = None,
        rng: Optional[np.random.Generator] = None,
        transition_rng: Optional[np.random.Generator] = None,
        next_types: Optional[Mapping[str, Optional[str]]] = None,
        id_allocator: Optional[IdAllocator] = None,
        grid_edge_tolerance: float = 0.5,
        record_tracks: bool = True,
    ):
        self.parameter_sets: Dict[str, ParameterSet] = dict(parameter_sets)
        self.environment = environment
        self.rng = rng
        self.transition_rng = transition_rng
        self.ids = id_allocator or IdAllocator()
        self.grid_edge_tolerance = grid_edge_tolerance
        self.record_tracks = record_tracks
        self.descriptors: Dict[str, StageDescriptor] = {
            name: STAGE_DESCRIPTORS[ps.stage].renamed(name)
            for name, ps in self.parameter_sets.items()
        }
        self.next_types: Dict[str, Optional[str]] = {}
        for name, desc in self.descriptors.items():
            self.next_types[name] = self._default_next(desc)
        if next_types:
            self.next_types.update(next_types)

    def _default_next(self, desc: StageDescriptor) -> Optional[str]:
        if desc.default_next is None:
            return None
        for name, other in self.descriptors.items():
            if other.stage == desc.default_next:
                return name
        return None

    # ── lookup ───────────────────────────────────────────────────────

    @property
    def type_names(self):
        return list(self.descriptors)

    def descriptor(self, type_name: str) -> StageDescriptor:
        try:
            return self.descriptors[type_name]
        except KeyError:
            raise UnknownStage(
                f"Unknown stage type '{type_name}'. "
                f"Registered: {list(self.descriptors)}"
            ) from None

    def has_successor(self, type_name: str) -> bool:
        return self.next_types.get(type_name) is not None

    def _build(self, type_name: str, atts: AttributeSet) -> StageIndividual:
        ind = StageIndividual(
            self.descriptor(type_name),
            self.parameter_sets[type_name],
            atts,
            environment=self.environment,
            rng=self.rng,
            transition_rng=self.transition_rng,
            grid_edge_tolerance=self.grid_edge_tolerance,
        )
        ind.factory = self
        ind.record_track = self.record_tracks
        return ind

    # ── creation ─────────────────────────────────────────────────────

    def create(self, type_name: str,
               values: Optional[Mapping[str, Any]] = None,
               initialize: bool = False) -> StageIndividual:
        """Fresh individual with default attributes and a new id.

        Args:
            type_name: Registered type name.
            values: Optional typed attribute overrides.
            initialize: Place the individual on the grid right away.
        """
        atts = AttributeSet(self.descriptor(type_name).schema, values)
        self._assign_ids(atts)
        ind = self._build(type_name, atts)
        if initialize:
            ind.initialize()
        return ind

    def from_vector(self, values: Sequence[Any],
                    initialize: bool = True) -> StageIndividual:
        """Individual from a flat attribute vector (type name first).

        Raises:
            MissingField: If the vector is empty or too short.
            FormatError: If a value does not parse.
            UnknownStage: If the type name is not registered.
        """
        if len(values) == 0:
            raise FormatError('typeName', None, [], '',
                              message="Empty attribute vector")
        type_name = str(values[0]).strip()
        desc = self.descriptor(type_name)
        atts = AttributeSet.from_vector(desc.schema, values)
        self._assign_ids(atts)
        ind = self._build(type_name, atts)
        if initialize and self.environment is not None:
            ind.initialize()
        return ind

    def _assign_ids(self, atts: AttributeSet) -> None:
        new_id = atts.get('id')
        if new_id == INHERIT:
            new_id = self.ids.allocate()
            atts.set('id', new_id)
        else:
            self.ids.observe(new_id)
        if atts.get('parentID') == INHERIT:
            atts.set('parentID', new_id)
        if atts.get('origID') == INHERIT:
            atts.set('origID', new_id)

    # ── transitions ──────────────────────────────────────────────────

    def create_next(self, ind: StageIndividual) -> StageIndividual:
        """Spawn the next-stage individual from `ind`.

        Raises:
            ConstructionError: If the successor cannot be built. `ind` is
                left unmodified.
        """
        next_name = self.next_types.get(ind.type_name)
        if next_name is None:
            raise ConstructionError(
                f"{ind.type_name} has no configured successor"
            )
        if ind.tracker is None:
            raise ConstructionError(
                f"{ind.type_name} {ind.id} has no tracker to hand over"
            )
        is_super = ind.is_super_individual
        try:
            successor = self._build_successor(ind, next_name, is_super)
        except LifeStageError as exc:
            if isinstance(exc, ConstructionError):
                raise
            raise ConstructionError(
                f"Could not build {next_name} from {ind.type_name} "
                f"{ind.id}: {exc}"
            ) from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise ConstructionError(
                f"Could not build {next_name} from {ind.type_name} "
                f"{ind.id}: {exc}"
            ) from exc

        if is_super:
            successor.tracker = ind.tracker.copy()
            ind.pending_transition = 0.0
        else:
            successor.tracker = ind.tracker
            ind.tracker = None
            ind.die(DeathCause.TRANSITIONED)
        ind.update_attributes()
        logger.info(
            "%s %d -> %s %d (parent %d, origin %d, number %.4g)",
            ind.type_name, ind.id, successor.type_name, successor.id,
            successor.parent_id, successor.orig_id, successor.number,
        )
        return successor

    def _build_successor(self, ind: StageIndividual, next_name: str,
                         is_super: bool) -> StageIndividual:
        desc = self.descriptor(next_name)
        ind.update_attributes()
        pred = ind.atts
        atts = AttributeSet(desc.schema)
        for key in desc.schema.keys:
            if key in pred and key not in _LINEAGE_KEYS:
                atts.set(key, pred.get(key))
        for key, pred_key in desc.field_map.items():
            if pred_key in pred:
                atts.set(key, pred.get(pred_key))
        for key, value in desc.entry_values.items():
            atts.set(key, value)
        atts.set('ageInStage', 0.0)
        atts.set('active', True)
        atts.set('alive', True)
        atts.set('origID', ind.orig_id)
        if is_super:
            atts.set('id', self.ids.allocate())
            atts.set('parentID', ind.id)
            atts.set('number', ind.pending_transition)
        else:
            atts.set('id', ind.id)
            atts.set('parentID', ind.parent_id)
            atts.set('number', ind.number)

        successor = self._build(next_name, atts)
        successor.bathym = ind.bathym
        successor.depth = ind.depth
        successor.lat = ind.lat
        successor.lon = ind.lon
        if ind.track_xy:
            successor.track_xy = [ind.track_xy[-1]]
            successor.track_ll = [ind.track_ll[-1]]
        successor.update_attributes()
        return successor
