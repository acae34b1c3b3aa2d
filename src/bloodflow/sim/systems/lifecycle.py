from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Sequence, Tuple

from ..core.agent import Cell

if TYPE_CHECKING:
    from ..core.world import World
    from .forces import PolicyReading
    from .neighbors import NeighborIndex

logger = logging.getLogger(__name__)


def score_fitness(world: World, cell: Cell, reading: PolicyReading, neighbors: NeighborIndex) -> None:
    lifecycle = world._config.lifecycle
    if not cell.alive:
        return
    nearby_same = neighbors.count_type_within(cell.position, cell.cell_type.key, lifecycle.cluster_radius)
    cell.fitness += nearby_same * lifecycle.cluster_reward
    if reading.wall_distance > lifecycle.wall_reward_threshold:
        cell.fitness += lifecycle.wall_reward
    if reading.shear > lifecycle.shear_penalty_threshold:
        cell.fitness -= lifecycle.shear_penalty


def apply_immune_contacts(world: World, cells: Sequence[Cell], neighbors: NeighborIndex) -> int:
    """Charge every policy-driven cell for each immune cell touching it. Returns the contact count."""
    lifecycle = world._config.lifecycle
    margin = lifecycle.immune_contact_margin
    max_immune_radius = world.max_immune_radius
    if max_immune_radius <= 0.0:
        return 0
    contacts = 0
    for cell in cells:
        if not cell.alive or not cell.cell_type.policy_driven:
            continue
        reach = cell.radius + max_immune_radius + margin
        for other in neighbors.within(cell.position, reach):
            if not other.cell_type.immune:
                continue
            limit = cell.radius + other.radius + margin
            if cell.position.distance_squared_to(other.position) < limit * limit:
                cell.fitness -= lifecycle.immune_contact_penalty
                contacts += 1
    return contacts


def resolve_reproduction_and_death(world: World, cells: Sequence[Cell]) -> Tuple[List[Cell], int]:
    """Split fit cells and flag unfit ones. Returns the children and the number of deaths."""
    lifecycle = world._config.lifecycle
    children: List[Cell] = []
    deaths = 0
    for cell in cells:
        if not cell.alive or not cell.cell_type.policy_driven:
            continue
        if cell.fitness > lifecycle.reproduction_threshold and cell.reproduction_cooldown == 0:
            cell.fitness = 0.0
            cell.reproduction_cooldown = lifecycle.reproduction_cooldown_ticks
            children.append(spawn_child(world, cell))
        if cell.fitness < lifecycle.death_threshold:
            cell.alive = False
            deaths += 1
    return children, deaths


def spawn_child(world: World, parent: Cell) -> Cell:
    lifecycle = world._config.lifecycle
    return Cell(
        id=world._state.allocate_id(),
        cell_type=parent.cell_type,
        position=parent.position + world._rng.next_unit_circle() * lifecycle.spawn_offset,
        velocity=parent.velocity * lifecycle.child_velocity_factor,
        reproduction_cooldown=lifecycle.reproduction_cooldown_ticks,
        generation=parent.generation + 1,
    )


def decrement_cooldowns(cells: Sequence[Cell]) -> None:
    for cell in cells:
        if cell.reproduction_cooldown > 0:
            cell.reproduction_cooldown -= 1


def compact(cells: Sequence[Cell]) -> Tuple[List[Cell], int]:
    survivors = [cell for cell in cells if cell.alive]
    return survivors, len(cells) - len(survivors)


def check_overflow(world: World) -> bool:
    """Reset the whole simulation once the policy-driven population hits the ceiling."""
    lifecycle = world._config.lifecycle
    state = world._state
    policy_count = sum(1 for cell in state.agents if cell.alive and cell.cell_type.policy_driven)
    if policy_count < lifecycle.overflow_ceiling:
        return False
    logger.warning(
        "tick %d: %d policy-driven cells reached the limit of %d; resetting simulation",
        state.tick,
        policy_count,
        lifecycle.overflow_ceiling,
    )
    world._reseed_state(state.targets)
    state.lost_notice_ticks = lifecycle.lost_notice_ticks
    state.resets += 1
    return True
