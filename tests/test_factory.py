"""Tests for pcod_lhs.factory — ids, lineage and successor construction."""

import pytest

from pcod_lhs.attributes import AttributeSet
from pcod_lhs.factory import IdAllocator, StageFactory
from pcod_lhs.parameters import default_parameter_set
from pcod_lhs.types import (
    ConstructionError,
    FormatError,
    MissingField,
    StageType,
    UnknownStage,
)


class TestIdAllocator:
    def test_monotonic(self):
        ids = IdAllocator()
        assert [ids.allocate() for _ in range(3)] == [1, 2, 3]

    def test_observe_skips_used_ids(self):
        ids = IdAllocator()
        ids.observe(41)
        assert ids.allocate() == 42
        ids.observe(5)
        assert ids.next_id == 43


class TestRegistry:
    def test_default_successors(self, factory):
        assert factory.next_types == {
            'Egg': 'YSL', 'YSL': 'FDLpf', 'FDLpf': 'Epijuv',
            'Epijuv': 'BenthicJuv', 'BenthicJuv': None,
        }
        assert not factory.has_successor('BenthicJuv')

    def test_successor_skips_unregistered_stage(self, environment):
        f = StageFactory({'Egg': default_parameter_set(StageType.EGG)},
                         environment)
        assert f.next_types == {'Egg': None}

    def test_custom_type_names(self, environment):
        sets = {
            'EarlyEgg': default_parameter_set(StageType.EGG, 'EarlyEgg'),
            'Larva': default_parameter_set(StageType.YSL, 'Larva'),
        }
        f = StageFactory(sets, environment)
        assert f.next_types['EarlyEgg'] == 'Larva'
        egg = f.create('EarlyEgg')
        assert egg.type_name == 'EarlyEgg'
        assert egg.atts['typeName'] == 'EarlyEgg'
        assert egg.stage is StageType.EGG

    def test_unknown_type(self, factory):
        with pytest.raises(UnknownStage, match="Unknown stage type 'Adult'"):
            factory.create('Adult')


class TestCreate:
    def test_fresh_ids(self, factory):
        a = factory.create('Egg')
        b = factory.create('YSL')
        assert (a.id, b.id) == (1, 2)
        assert (a.parent_id, a.orig_id) == (1, 1)
        assert (b.parent_id, b.orig_id) == (2, 2)

    def test_shared_parameters(self, factory):
        a = factory.create('Egg')
        b = factory.create('Egg')
        assert a.parameters is b.parameters is factory.parameter_sets['Egg']

    def test_initialize_flag(self, factory, centre):
        assert factory.create('Egg').tracker is None
        assert factory.create('Egg', centre, initialize=True).tracker is not None


class TestFromVector:
    def _vector(self, factory, type_name='Egg', **values):
        schema = factory.descriptor(type_name).schema
        return AttributeSet(schema, values).to_text_vector()

    def test_text_vector(self, factory):
        vec = self._vector(factory, horizType=0, horizPos1=3.0, horizPos2=4.0,
                           SL=1.5)
        egg = factory.from_vector(vec)
        assert egg.type_name == 'Egg'
        assert egg.atts['SL'] == 1.5
        assert egg.id == 1
        assert egg.tracker.get_position()[:2] == (3.0, 4.0)

    def test_explicit_ids_respected(self, factory):
        vec = self._vector(factory, id=10, parentID=7, origID=3)
        egg = factory.from_vector(vec, initialize=False)
        assert (egg.id, egg.parent_id, egg.orig_id) == (10, 7, 3)
        assert factory.create('Egg').id == 11

    def test_missing_fields(self, factory):
        vec = self._vector(factory)[:5]
        with pytest.raises(MissingField) as info:
            factory.from_vector(vec)
        assert info.value.field == 'time'

    def test_empty_vector(self, factory):
        with pytest.raises(FormatError, match="Empty"):
            factory.from_vector([])

    def test_unknown_type_name(self, factory):
        vec = self._vector(factory)
        vec[0] = 'Adult'
        with pytest.raises(UnknownStage):
            factory.from_vector(vec)


class TestCreateNext:
    def test_no_successor(self, factory, centre):
        juv = factory.create('BenthicJuv', centre, initialize=True)
        with pytest.raises(ConstructionError, match="no configured successor"):
            factory.create_next(juv)

    def test_needs_tracker(self, factory):
        egg = factory.create('Egg')
        with pytest.raises(ConstructionError, match="no tracker"):
            factory.create_next(egg)
        assert egg.alive

    def test_failure_leaves_predecessor_unchanged(self, environment, centre):
        f = StageFactory({'Egg': default_parameter_set(StageType.EGG)},
                         environment, next_types={'Egg': 'Missing'})
        egg = f.create('Egg', dict(centre, stgProg=1.0), initialize=True)
        before = egg.atts.copy()
        tracker = egg.tracker
        with pytest.raises(ConstructionError, match="Could not build Missing"):
            egg.check_metamorphosis()
        assert egg.atts == before
        assert egg.alive and egg.active
        assert egg.tracker is tracker

    def test_ordinary_lineage(self, factory, centre):
        egg = factory.create('Egg', dict(centre, number=3.0), initialize=True)
        ysl = factory.create_next(egg)
        assert (ysl.id, ysl.parent_id, ysl.orig_id) == (egg.id, egg.id, egg.id)
        assert ysl.number == 3.0
        assert egg.atts['alive'] is False
        assert egg.atts['active'] is False

    def test_super_lineage(self, factory, centre):
        factory.parameter_sets['YSL'].set_scalar('is_super_individual', True)
        ysl = factory.create('YSL', dict(centre, number=1000.0), initialize=True)
        ysl.pending_transition = 50.0
        first = factory.create_next(ysl)
        ysl.pending_transition = 20.0
        second = factory.create_next(ysl)
        assert first.id != second.id
        assert first.parent_id == second.parent_id == ysl.id
        assert first.orig_id == second.orig_id == ysl.orig_id
        assert (first.number, second.number) == (50.0, 20.0)
        assert ysl.alive

    def test_entry_values(self, factory, centre):
        ysl = factory.create('YSL', dict(centre, DW=0.8, SL=5.0),
                             initialize=True)
        fdl = factory.create_next(ysl)
        assert fdl.atts['dwmax'] == 0.8
        assert fdl.atts['DW'] == 0.8
        assert fdl.atts['psurvival'] == 1.0
        assert fdl.atts['ageFromYSL'] == 0.0
        assert fdl.depth == ysl.depth
        assert fdl.factory is factory
