from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pygame.math import Vector2

from .agent import Cell, CellType
from .config import SimulationConfig, TickParams, sanitize_targets
from .rng import DeterministicRng
from .spatial_grid import SpatialGrid
from .state import SimulationState
from .vessel import Vessel
from ..systems import boundaries, collisions, forces, lifecycle, metrics as metrics_system
from ..systems.collisions import CollisionReport
from ..systems.neighbors import NeighborIndex
from ..systems.policy import PolicyWeights, TumorPolicy
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotVessel

logger = logging.getLogger(__name__)

PointLike = Union[Vector2, Tuple[float, float]]


class World:
    """Owns the cell collection and advances it one tick at a time.

    External callers may read :attr:`agents` or take a :meth:`snapshot`
    between steps, and may change parameters with :meth:`set_params`; they
    never mutate cells while :meth:`step` runs.
    """

    def __init__(self, config: SimulationConfig, policy: Optional[TumorPolicy] = None):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._vessel = Vessel.from_viewport(config.viewport)
        self._cell_types: Dict[str, CellType] = {
            key: CellType.from_config(key, type_config) for key, type_config in config.cell_types.items()
        }
        self._policy = policy if policy is not None else TumorPolicy(PolicyWeights.from_config(config.policy))
        max_radius = max((cell_type.radius for cell_type in self._cell_types.values()), default=0.0)
        self._grid = SpatialGrid(collisions.grid_cell_size(config.collision, max_radius))
        self._max_immune_radius = max(
            (cell_type.radius for cell_type in self._cell_types.values() if cell_type.immune), default=0.0
        )
        self._params: TickParams = config.params
        self._metrics: TickMetrics | None = None
        self._state = SimulationState(targets=sanitize_targets(config.population, {}, self._cell_types))
        self._reseed_state(self._state.targets)

    @property
    def agents(self) -> List[Cell]:
        return self._state.agents

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def vessel(self) -> Vessel:
        return self._vessel

    @property
    def params(self) -> TickParams:
        return self._params

    @property
    def policy(self) -> TumorPolicy:
        return self._policy

    @property
    def cell_types(self) -> Dict[str, CellType]:
        return self._cell_types

    @property
    def max_immune_radius(self) -> float:
        return self._max_immune_radius

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def tick(self) -> int:
        return self._state.tick

    @property
    def lost_notice_ticks(self) -> int:
        return self._state.lost_notice_ticks

    def set_params(self, **values: Any) -> TickParams:
        self._params = self._params.updated(**values)
        return self._params

    def reseed(self, targets: Optional[Mapping[str, Any]] = None) -> None:
        """Clear the vessel and repopulate it; counts missing from ``targets`` keep their last value."""
        merged = sanitize_targets(targets or {}, self._state.targets, self._cell_types)
        self._reseed_state(merged)
        logger.info("reseeded %d cells at tick %d", len(self._state.agents), self._state.tick)

    def reset(self) -> None:
        """Restart from tick zero with the last targets and the original seed."""
        targets = dict(self._state.targets)
        self._rng.reset()
        self._state = SimulationState(targets=targets)
        self._metrics = None
        self._reseed_state(targets)

    def spawn(
        self,
        type_key: str,
        position: PointLike,
        velocity: Optional[PointLike] = None,
        **fields: Any,
    ) -> Cell:
        cell = Cell(
            id=self._state.allocate_id(),
            cell_type=self._cell_types[type_key],
            position=Vector2(position),
            velocity=Vector2(velocity) if velocity is not None else Vector2(),
            **fields,
        )
        self._state.agents.append(cell)
        return cell

    def apply_disturbance(self, center: PointLike, radius: Optional[float] = None) -> int:
        if radius is None:
            radius = self._config.flow.disturbance_radius
        if not math.isfinite(radius) or radius <= 0.0:
            logger.warning("ignoring disturbance with invalid radius %r", radius)
            return 0
        return forces.apply_disturbance(
            self._state.agents, Vector2(center), radius, self._config.flow.swirl_gain
        )

    def step(self, dt: Optional[float] = None) -> TickMetrics:
        """Advance one tick.

        ``dt`` is the elapsed time in seconds the pulse phase advances by; the
        fixed ``time_step`` is used when it is omitted or not a positive
        finite number.
        """

        start = perf_counter()
        config = self._config
        flow = config.flow
        params = self._params
        state = self._state
        vessel = self._vessel

        if state.lost_notice_ticks > 0:
            state.lost_notice_ticks -= 1

        agents = state.agents
        neighbors = NeighborIndex(agents, self._grid if params.use_spatial_hash else None)
        umax = forces.peak_flow_speed(flow, params, state.sim_time)

        for cell in agents:
            if not cell.alive:
                continue
            reading = forces.accumulate_forces(self, cell, umax, neighbors)
            if reading is not None:
                lifecycle.score_fitness(self, cell, reading, neighbors)

        lifecycle.apply_immune_contacts(self, agents, neighbors)

        children, deaths = lifecycle.resolve_reproduction_and_death(self, agents)
        agents.extend(children)
        overflow_reset = lifecycle.check_overflow(self)
        births = len(children)
        if overflow_reset:
            # Births and deaths of the discarded population are not reported.
            births = deaths = 0
        # A reset swaps in a new collection; everything below works on the current one.
        agents = state.agents

        report = CollisionReport()
        if params.collide_strength > config.collision.min_collide_strength:
            if params.use_spatial_hash:
                report = collisions.resolve_with_grid(agents, self._grid, params.collide_strength, config.collision)
            else:
                report = collisions.resolve_quadratic(agents, params.collide_strength, config.collision)

        for cell in agents:
            if not cell.alive:
                continue
            cell.integrate(flow.damping, flow.max_speed)
            boundaries.reflect_from_walls(cell, vessel, flow.wall_restitution)
            boundaries.wrap_along_axis(cell, vessel, self._rng)

        lifecycle.decrement_cooldowns(agents)
        if (state.tick + 1) % max(1, config.lifecycle.compaction_interval) == 0:
            survivors, _ = lifecycle.compact(agents)
            state.replace_agents(survivors)

        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(
            state,
            births=births,
            deaths=deaths,
            overflow_reset=overflow_reset,
            pair_checks=report.pair_checks,
            contacts=report.contacts,
            duration_ms=elapsed_ms,
        )
        state.tick += 1
        state.sim_time += self._elapsed(dt)
        self._metrics = metrics
        return metrics

    def snapshot(self) -> Snapshot:
        state = self._state
        metrics = self._metrics
        if metrics is None:
            metrics = metrics_system.create_metrics(
                state, births=0, deaths=0, overflow_reset=False, pair_checks=0, contacts=0, duration_ms=0.0
            )
        time_step = self._config.time_step
        metadata = SnapshotMetadata(
            sim_dt=time_step,
            tick_rate=0.0 if time_step <= 0 else 1.0 / time_step,
            seed=self._config.seed,
            config_version=self._config.config_version,
            sim_time=state.sim_time,
        )
        vessel = self._vessel
        return Snapshot(
            tick=state.tick,
            metrics=metrics,
            agents=[self._agent_snapshot(cell) for cell in state.agents if cell.alive],
            vessel=SnapshotVessel(x0=vessel.x0, x1=vessel.x1, y0=vessel.y0, radius=vessel.R),
            metadata=metadata,
            lost_notice_ticks=state.lost_notice_ticks,
        )

    def _elapsed(self, dt: Optional[float]) -> float:
        if dt is None:
            return self._config.time_step
        if not math.isfinite(dt) or dt <= 0.0:
            logger.warning("ignoring step dt %r; using the fixed time step", dt)
            return self._config.time_step
        return dt

    def _reseed_state(self, targets: Mapping[str, int]) -> None:
        state = self._state
        state.targets = dict(targets)
        fresh: List[Cell] = []
        for key, cell_type in self._cell_types.items():
            for _ in range(state.targets.get(key, 0)):
                fresh.append(self._seed_cell(cell_type))
        state.replace_agents(fresh)

    def _seed_cell(self, cell_type: CellType) -> Cell:
        flow = self._config.flow
        vessel = self._vessel
        position = Vector2(
            self._rng.next_range(vessel.x0, vessel.x1),
            boundaries.random_lane(vessel, cell_type.radius, self._rng),
        )
        velocity = Vector2(
            self._rng.next_range(flow.seed_speed_min, flow.seed_speed_max),
            self._rng.next_range(-flow.seed_vertical_jitter, flow.seed_vertical_jitter),
        )
        return Cell(id=self._state.allocate_id(), cell_type=cell_type, position=position, velocity=velocity)

    @staticmethod
    def _agent_snapshot(cell: Cell) -> Dict[str, Any]:
        return {
            "id": cell.id,
            "type": cell.cell_type.key,
            "x": cell.position.x,
            "y": cell.position.y,
            "vx": cell.velocity.x,
            "vy": cell.velocity.y,
            "radius": cell.radius,
            "color": list(cell.cell_type.color),
            "alive": cell.alive,
            "fitness": cell.fitness,
            "generation": cell.generation,
        }
