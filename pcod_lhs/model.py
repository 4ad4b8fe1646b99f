"""Simulation driver.

Single-threaded: each timestep steps every active individual to
completion, then offers each one its stage transition. Successors join
the roster after the transition pass and are first stepped on the next
timestep. Inactive individuals stay in the roster so they can still be
reported.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional

from pcod_lhs.config import (
    SimulationConfig,
    build_parameter_sets,
    next_types,
    start_datetime,
)
from pcod_lhs.environment import PhysicalEnvironment
from pcod_lhs.factory import StageFactory
from pcod_lhs.report import StageReportWriter
from pcod_lhs.rng import create_rng_hierarchy
from pcod_lhs.stages import StageIndividual

logger = logging.getLogger(__name__)


class Simulation:
    """Roster of individuals advanced with a fixed time step.

    Args:
        config: Validated configuration.
        environment: Physical environment shared by all individuals.
        factory: Stage factory; built from `config` when omitted.
    """

    def __init__(self, config: SimulationConfig,
                 environment: PhysicalEnvironment,
                 factory: Optional[StageFactory] = None):
        self.config = config
        self.environment = environment
        self.rngs = create_rng_hierarchy(config.simulation.seed)
        start = start_datetime(config)
        environment.set_reference_time(start)
        logger.info("model time 0 is %s", start.isoformat())
        if factory is None:
            factory = StageFactory(
                build_parameter_sets(config),
                environment,
                rng=self.rngs['movement'],
                transition_rng=self.rngs['transitions'],
                next_types=next_types(config),
                grid_edge_tolerance=config.simulation.grid_edge_tolerance,
                record_tracks=config.output.write_tracks,
            )
        self.factory = factory
        self.individuals: List[StageIndividual] = []
        self.time = 0.0
        self.steps_done = 0
        self.n_transitions = 0

    @property
    def dt(self) -> float:
        return self.config.simulation.time_step

    def add(self, individuals: Iterable[StageIndividual]) -> None:
        for ind in individuals:
            if ind.tracker is None and ind.state['active']:
                ind.initialize()
            self.individuals.append(ind)

    def step(self) -> List[StageIndividual]:
        """Advance one timestep.

        Returns:
            Individuals stepped or created during this timestep.
        """
        dt = self.dt
        stepped = [ind for ind in self.individuals if ind.active]
        for ind in stepped:
            ind.step(dt)
        spawned: List[StageIndividual] = []
        for ind in stepped:
            spawned.extend(ind.check_metamorphosis(dt))
        self.individuals.extend(spawned)
        self.n_transitions += len(spawned)
        self.time += dt
        self.steps_done += 1
        logger.debug("step %d: t=%.0f s, %d stepped, %d spawned",
                     self.steps_done, self.time, len(stepped), len(spawned))
        return stepped + spawned

    def run(self, n_steps: Optional[int] = None,
            writer: Optional[StageReportWriter] = None) -> Dict[str, float]:
        """Run `n_steps` timesteps (default from configuration).

        Args:
            n_steps: Number of timesteps.
            writer: Optional report writer; receives every individual
                stepped or created in each timestep. When omitted, a
                writer on `output.directory` is opened and closed here
                unless that directory is None.

        Returns:
            Summary of the final roster (see `summary`).
        """
        n_steps = self.config.simulation.n_steps if n_steps is None else n_steps
        logger.info("running %d steps of %.0f s with %d individuals",
                    n_steps, self.dt, len(self.individuals))
        output = self.config.output
        owned = writer is None and output.directory is not None
        if owned:
            writer = StageReportWriter(output.directory,
                                       short_names=output.short_names)
            logger.info("writing reports to %s", writer.directory)
        try:
            if writer is not None:
                writer.write_all(self.individuals)
            for _ in range(n_steps):
                touched = self.step()
                if writer is not None:
                    writer.write_all(touched)
                if self.alive_count() == 0:
                    logger.info("no live individuals left after step %d",
                                self.steps_done)
                    break
        finally:
            if owned:
                writer.close()
        summary = self.summary()
        logger.info("finished at t=%.0f s: %s", self.time, summary)
        return summary

    def alive_count(self) -> int:
        return sum(1 for ind in self.individuals if ind.alive)

    def summary(self) -> Dict[str, float]:
        """Live individual counts per type name, plus abundance and transitions."""
        counts = Counter(ind.type_name for ind in self.individuals if ind.alive)
        summary: Dict[str, float] = dict(counts)
        summary['abundance'] = sum(ind.number for ind in self.individuals
                                   if ind.alive)
        summary['transitions'] = self.n_transitions
        return summary
