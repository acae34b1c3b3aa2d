from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence

from ..core.config import CollisionConfig

if TYPE_CHECKING:
    from ..core.agent import Cell
    from ..core.spatial_grid import SpatialGrid


@dataclass(slots=True)
class CollisionReport:
    pair_checks: int = 0
    contacts: int = 0


def repel_pair(first: Cell, second: Cell, collide_strength: float, config: CollisionConfig) -> bool:
    """Push two overlapping cells apart; heavier cells move less.

    Penalty-based rather than impulse-exact: the push scales with relative
    overlap, is applied to positions inversely by mass, and a fraction of it
    deflects velocities. Returns True when the pair overlapped.
    """

    offset_x = first.position.x - second.position.x
    offset_y = first.position.y - second.position.y
    distance = math.hypot(offset_x, offset_y)
    min_distance = first.radius + second.radius
    if distance <= 0.0 or distance >= min_distance:
        return False

    overlap = (min_distance - distance) / min_distance
    scale = overlap * collide_strength * config.push_gain / distance
    push_x = offset_x * scale
    push_y = offset_y * scale

    inv_first = 1.0 / first.mass
    inv_second = 1.0 / second.mass
    first.position.update(first.position.x + push_x * inv_first, first.position.y + push_y * inv_first)
    second.position.update(second.position.x - push_x * inv_second, second.position.y - push_y * inv_second)

    deflect_first = config.velocity_deflection * inv_first
    deflect_second = config.velocity_deflection * inv_second
    first.velocity.update(first.velocity.x + push_x * deflect_first, first.velocity.y + push_y * deflect_first)
    second.velocity.update(
        second.velocity.x - push_x * deflect_second, second.velocity.y - push_y * deflect_second
    )
    return True


def resolve_quadratic(cells: Sequence[Cell], collide_strength: float, config: CollisionConfig) -> CollisionReport:
    report = CollisionReport()
    live: List[Cell] = [cell for cell in cells if cell.alive]
    count = len(live)
    for i in range(count):
        first = live[i]
        for j in range(i + 1, count):
            report.pair_checks += 1
            if repel_pair(first, live[j], collide_strength, config):
                report.contacts += 1
    return report


def resolve_with_grid(
    cells: Sequence[Cell], grid: SpatialGrid, collide_strength: float, config: CollisionConfig
) -> CollisionReport:
    report = CollisionReport()
    grid.rebuild(cells)
    for first, second in grid.candidate_pairs():
        report.pair_checks += 1
        if repel_pair(first, second, collide_strength, config):
            report.contacts += 1
    return report


def grid_cell_size(config: CollisionConfig, max_radius: float) -> float:
    return max(config.cell_size, 2.0 * max_radius)
