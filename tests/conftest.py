"""Shared fixtures: a small uniform ocean box and a seeded stage factory."""

import numpy as np
import pytest

from pcod_lhs.environment import GriddedEnvironment
from pcod_lhs.factory import StageFactory
from pcod_lhs.parameters import default_parameter_set
from pcod_lhs.types import STAGE_NAMES, StageType


@pytest.fixture
def environment():
    """10 x 10 box, 100 m deep, 11 levels, 8 °C everywhere."""
    return GriddedEnvironment.uniform(values={'temp': 8.0, 'salt': 32.0})


@pytest.fixture
def parameter_sets():
    return {STAGE_NAMES[stage]: default_parameter_set(stage)
            for stage in StageType}


@pytest.fixture
def factory(environment, parameter_sets):
    return StageFactory(
        parameter_sets,
        environment,
        rng=np.random.default_rng(1),
        transition_rng=np.random.default_rng(2),
    )


@pytest.fixture
def centre():
    """Grid-index position in the middle of the box, 20 m deep."""
    return {'horizType': 0, 'horizPos1': 4.5, 'horizPos2': 4.5,
            'vertType': 2, 'vertPos': 20.0}
