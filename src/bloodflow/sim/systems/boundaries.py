from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.agent import Cell
    from ..core.rng import DeterministicRng
    from ..core.vessel import Vessel


def random_lane(vessel: Vessel, radius: float, rng: DeterministicRng) -> float:
    """A vertical position whose whole cell fits inside the lumen."""
    limit = max(0.0, vessel.R - radius)
    return vessel.y0 + rng.next_range(-limit, limit)


def reflect_from_walls(cell: Cell, vessel: Vessel, restitution: float) -> bool:
    limit = max(0.0, vessel.R - cell.radius)
    dy = cell.position.y - vessel.y0
    if dy > limit:
        cell.position.y = vessel.y0 + limit
    elif dy < -limit:
        cell.position.y = vessel.y0 - limit
    else:
        return False
    cell.velocity.y *= -restitution
    return True


def wrap_along_axis(cell: Cell, vessel: Vessel, rng: DeterministicRng) -> bool:
    """Send a cell leaving one end of the vessel back in at the other end on a fresh lane."""
    radius = cell.radius
    if cell.position.x > vessel.x1 + radius:
        cell.position.x = vessel.x0 - radius
    elif cell.position.x < vessel.x0 - radius:
        cell.position.x = vessel.x1 + radius
    else:
        return False
    cell.position.y = random_lane(vessel, radius, rng)
    return True
