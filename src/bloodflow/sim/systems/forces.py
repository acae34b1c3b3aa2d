from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from pygame.math import Vector2

from ..core.config import FlowConfig, TickParams
from ..utils.math2d import _clamp_value, _safe_normalize_xy, _sign

if TYPE_CHECKING:
    from ..core.agent import Cell
    from ..core.vessel import Vessel
    from ..core.world import World
    from .neighbors import NeighborIndex


@dataclass(frozen=True, slots=True)
class PolicyReading:
    shear: float
    wall_distance: float
    density: float

    def as_inputs(self) -> tuple[float, float, float]:
        return (self.shear, self.wall_distance, self.density)


def peak_flow_speed(flow: FlowConfig, params: TickParams, sim_time: float) -> float:
    """Centerline speed for this tick.

    The pulse phase follows simulated seconds, not tick count, so the beat
    rate does not depend on how often ``step`` runs.
    """

    umax = flow.base_speed * params.speed_scale
    if params.pulsatile:
        omega = (params.bpm / 60.0) * 2.0 * math.pi
        umax *= flow.pulse_base + flow.pulse_amplitude * math.sin(omega * sim_time)
    return umax


def flow_velocity(vessel: Vessel, y: float, umax: float) -> Vector2:
    r_norm = _clamp_value(vessel.normalized_offset(y), -1.0, 1.0)
    return Vector2(umax * (1.0 - r_norm * r_norm), 0.0)


def accumulate_forces(
    world: World, cell: Cell, umax: float, neighbors: NeighborIndex
) -> Optional[PolicyReading]:
    """Apply drag, margination, jitter and, for policy-driven cells, the steering force.

    Returns the policy inputs for policy-driven cells so lifecycle scoring can
    reuse them, ``None`` otherwise.
    """

    config = world._config
    flow = config.flow
    params = world.params
    vessel = world.vessel
    cell_type = cell.cell_type

    dy = cell.position.y - vessel.y0
    flow_vel = flow_velocity(vessel, cell.position.y, umax)

    cell.apply_force((flow_vel - cell.velocity) * flow.drag_gain)
    cell.apply_force(Vector2(0.0, _sign(dy)) * (params.margin_strength * cell_type.margin_bias * flow.margin_gain))
    jitter_scale = params.brown_strength * flow.jitter_gain / max(flow.min_mass_floor, cell_type.mass)
    cell.apply_force(world._rng.next_unit_circle() * jitter_scale)

    if not cell_type.policy_driven:
        return None

    policy_config = config.policy
    reading = PolicyReading(
        shear=abs(cell.velocity.x - flow_vel.x) * policy_config.shear_factor,
        wall_distance=abs(dy / vessel.R),
        density=neighbors.count_within(cell.position, policy_config.density_radius)
        / policy_config.density_normalizer,
    )
    cell.apply_force(world.policy.evaluate(reading.as_inputs()) * policy_config.gain)
    return reading


def apply_disturbance(
    cells: Iterable[Cell], center: Vector2, radius: float, swirl_gain: float
) -> int:
    """Add a tangential swirl to every live cell within ``radius`` of ``center``.

    The kick grows linearly toward the center. Returns the number of cells touched.
    """

    touched = 0
    for cell in cells:
        if not cell.alive:
            continue
        offset_x = cell.position.x - center.x
        offset_y = cell.position.y - center.y
        distance = math.hypot(offset_x, offset_y)
        if distance <= 0.0 or distance >= radius:
            continue
        swirl = _safe_normalize_xy(-offset_y, offset_x)
        cell.velocity += swirl * ((radius - distance) * swirl_gain)
        touched += 1
    return touched
