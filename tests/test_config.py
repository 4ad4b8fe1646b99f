"""Tests for pcod_lhs.config — configuration loading and validation."""

import warnings
from pathlib import Path

import numpy as np
import pytest
import yaml

from pcod_lhs.config import (
    FunctionSpec,
    SimulationConfig,
    StageSection,
    build_parameter_sets,
    deep_merge,
    default_config,
    load_config,
    next_types,
    start_datetime,
    validate_config,
)
from pcod_lhs.functions import GriddedHabitatSuitability
from pcod_lhs.types import (
    FunctionCategory,
    StageType,
    UnknownFunction,
    UnknownStage,
)

BASE_CONFIG = Path(__file__).resolve().parent.parent / 'configs' / 'base.yaml'

SAME_OFFSETS = {'stages': {'Epijuv': {'parameters': {
    'settlement_check_offset': -5.0, 'settlement_rate_offset': -5.0}}}}


def _quiet_config():
    """Default configuration with matching settlement offsets."""
    config = SimulationConfig()
    config.stages['Epijuv'].parameters.update(
        settlement_check_offset=-5.0, settlement_rate_offset=-5.0)
    return config


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_nested_merge(self):
        base = {'x': {'a': 1, 'b': 2}, 'y': 10}
        result = deep_merge(base, {'x': {'b': 3, 'c': 4}})
        assert result == {'x': {'a': 1, 'b': 3, 'c': 4}, 'y': 10}

    def test_override_dict_with_scalar(self):
        base = {'growth_dw': {'name': 'bioenergetic_growth_dw'}}
        assert deep_merge(base, {'growth_dw': 'fdlpf_growth_dw'}) == \
            {'growth_dw': 'fdlpf_growth_dw'}


# ── defaults ──────────────────────────────────────────────────────────

class TestDefaultConfig:
    def test_five_stages_in_order(self):
        with pytest.warns(UserWarning, match="settlement_check_offset"):
            config = default_config()
        assert list(config.stages) == ['Egg', 'YSL', 'FDLpf', 'Epijuv',
                                       'BenthicJuv']
        assert next_types(config)['FDLpf'] == 'Epijuv'
        assert next_types(config)['BenthicJuv'] is None

    def test_simulation_defaults(self):
        config = _quiet_config()
        assert config.simulation.time_step == 10800.0
        assert start_datetime(config).month == 3

    def test_matching_offsets_do_not_warn(self):
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            validate_config(_quiet_config())


# ── validation ────────────────────────────────────────────────────────

class TestValidation:
    def test_zero_time_step(self):
        config = _quiet_config()
        config.simulation.time_step = 0
        with pytest.raises(ValueError, match="time_step"):
            validate_config(config)

    def test_negative_steps(self):
        config = _quiet_config()
        config.simulation.n_steps = -1
        with pytest.raises(ValueError, match="n_steps"):
            validate_config(config)

    def test_bad_start_date(self):
        config = _quiet_config()
        config.simulation.start_date = 'March'
        with pytest.raises(ValueError, match="ISO 8601"):
            validate_config(config)

    def test_no_stages(self):
        config = _quiet_config()
        config.stages = {}
        with pytest.raises(ValueError, match="At least one stage"):
            validate_config(config)

    def test_unknown_stage_kind(self):
        config = _quiet_config()
        config.stages['Adult'] = StageSection(stage='ADULT')
        with pytest.raises(ValueError, match="Unknown stage 'ADULT'"):
            validate_config(config)

    def test_unknown_successor(self):
        config = _quiet_config()
        config.stages['BenthicJuv'].next = 'Adult'
        with pytest.raises(UnknownStage, match="Adult"):
            validate_config(config)

    def test_unknown_parameter(self):
        config = _quiet_config()
        config.stages['Egg'].parameters['max_length'] = 10.0
        with pytest.raises(ValueError, match="unknown parameter 'max_length'"):
            validate_config(config)

    def test_durations_ordered(self):
        config = _quiet_config()
        config.stages['YSL'].parameters.update(min_stage_duration=10.0,
                                               max_stage_duration=5.0)
        with pytest.raises(ValueError, match="min_stage_duration"):
            validate_config(config)

    def test_negative_rate(self):
        config = _quiet_config()
        config.stages['Egg'].parameters['stage_transition_rate'] = -0.1
        with pytest.raises(ValueError, match="stage_transition_rate"):
            validate_config(config)

    def test_settlement_depths_ordered(self):
        config = _quiet_config()
        config.stages['Epijuv'].parameters.update(min_settlement_depth=200.0)
        with pytest.raises(ValueError, match="settlement_depth"):
            validate_config(config)

    def test_unknown_category(self):
        config = _quiet_config()
        config.stages['Egg'].functions['swimming'] = FunctionSpec('x')
        with pytest.raises(UnknownFunction, match="unknown category"):
            validate_config(config)

    def test_category_not_used_by_stage(self):
        config = _quiet_config()
        config.stages['Egg'].functions['vertical_movement'] = \
            FunctionSpec('dvm_fixed_depth_ranges')
        with pytest.raises(UnknownFunction, match="no 'vertical_movement'"):
            validate_config(config)

    def test_function_not_a_candidate(self):
        config = _quiet_config()
        config.stages['Egg'].functions['growth_sl'] = \
            FunctionSpec('fdlpf_growth_sl')
        with pytest.raises(UnknownFunction, match="fdlpf_growth_sl"):
            validate_config(config)

    def test_unknown_function_parameter(self):
        config = _quiet_config()
        config.stages['Egg'].functions['mortality'] = \
            FunctionSpec('constant_mortality', {'c': 1.0})
        with pytest.raises(UnknownFunction, match="no parameter 'c'"):
            validate_config(config)


# ── YAML loading ──────────────────────────────────────────────────────

class TestLoadConfig:
    def test_base_config(self):
        with pytest.warns(UserWarning):
            config = load_config(BASE_CONFIG)
        assert config.simulation.n_steps == 1200
        fdl = config.stages['FDLpf']
        assert fdl.functions['growth_dw'].name == 'bioenergetic_growth_dw'
        assert fdl.functions['mortality'].params['reference_size'] == 5.0
        assert config.output.write_tracks is True

    def test_sweep_overrides(self):
        overrides = deep_merge(
            {'simulation': {'seed': 7},
             'stages': {'FDLpf': {'functions': {'growth_dw': 'fdlpf_growth_dw'}}}},
            SAME_OFFSETS,
        )
        config = load_config(BASE_CONFIG, sweep_overrides=overrides)
        assert config.simulation.seed == 7
        assert config.simulation.time_step == 10800
        assert config.stages['FDLpf'].functions['growth_dw'].name == \
            'fdlpf_growth_dw'
        assert config.stages['FDLpf'].functions['mortality'].name == \
            'inverse_power_law_mortality'

    def test_scenario_file(self, tmp_path):
        scenario = tmp_path / 'cold.yaml'
        scenario.write_text(yaml.dump({'simulation': {'n_steps': 10},
                                       **SAME_OFFSETS}))
        config = load_config(BASE_CONFIG, scenario)
        assert config.simulation.n_steps == 10
        assert config.stages['Egg'].parameters['max_stage_duration'] == 60.0

    def test_stage_inferred_from_name(self, tmp_path):
        path = tmp_path / 'eggs.yaml'
        path.write_text(yaml.dump({'stages': {'Egg': {'next': None}}}))
        config = load_config(path)
        assert list(config.stages) == ['Egg']
        assert config.stages['Egg'].stage == 'EGG'

    def test_malformed_function_entry(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text(yaml.dump(
            {'stages': {'Egg': {'functions': {'mortality': 3}}}}))
        with pytest.raises(ValueError, match="must be a name"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'absent.yaml')


# ── parameter sets ────────────────────────────────────────────────────

class TestBuildParameterSets:
    def test_selection_and_parameters(self):
        config = load_config(BASE_CONFIG, sweep_overrides=SAME_OFFSETS)
        sets = build_parameter_sets(config)
        assert set(sets) == set(config.stages)
        egg = sets['Egg']
        assert egg.stage is StageType.EGG
        assert egg.get_scalar('max_stage_duration') == 60.0
        assert egg.get_selected_function(FunctionCategory.MORTALITY).compute() == 0.05
        fdl = sets['FDLpf']
        assert fdl.selected_name(FunctionCategory.MORTALITY) == \
            'inverse_power_law_mortality'
        assert fdl.get_selected_function(FunctionCategory.MORTALITY) \
            .compute(5.0) == pytest.approx(0.2)

    def test_habitat_grid_file(self, tmp_path):
        np.savez(tmp_path / 'hsi.npz', lon=np.array([-161.0, -159.0]),
                 lat=np.array([54.0, 56.0]), hsi=np.full((2, 2), 0.4))
        config = _quiet_config()
        config.stages['Epijuv'].functions['habitat'] = FunctionSpec(
            'gridded_habitat', {'outside_value': -1.0}, 'hsi.npz')
        validate_config(config)
        sets = build_parameter_sets(config, base_dir=tmp_path)
        hsi = sets['Epijuv'].get_selected_function(FunctionCategory.HABITAT)
        assert isinstance(hsi, GriddedHabitatSuitability)
        assert hsi.compute(-160.0, 55.0) == pytest.approx(0.4)
        assert hsi.compute(0.0, 0.0) == -1.0

    def test_file_for_non_gridded_function(self, tmp_path):
        config = _quiet_config()
        config.stages['Epijuv'].functions['habitat'] = FunctionSpec(
            'constant_habitat', {}, 'hsi.npz')
        with pytest.raises(ValueError, match="does not read a file"):
            build_parameter_sets(config, base_dir=tmp_path)
