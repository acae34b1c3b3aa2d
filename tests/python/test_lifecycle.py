from __future__ import annotations

from pygame.math import Vector2
from pytest import approx

from bloodflow.sim.systems import lifecycle
from bloodflow.sim.systems.forces import PolicyReading
from bloodflow.sim.systems.neighbors import NeighborIndex


def test_fitness_rewards_clusters_and_walls_and_penalizes_shear(empty_world):
    vessel = empty_world.vessel
    tumor = empty_world.spawn("CTC", (400.0, vessel.y0))
    empty_world.spawn("CTC", (410.0, vessel.y0))
    empty_world.spawn("CTC", (460.0, vessel.y0))
    neighbors = NeighborIndex(empty_world.agents)

    lifecycle.score_fitness(empty_world, tumor, PolicyReading(shear=0.1, wall_distance=0.1, density=0.0), neighbors)
    assert tumor.fitness == approx(2 * 0.0004)

    tumor.fitness = 0.0
    lifecycle.score_fitness(empty_world, tumor, PolicyReading(shear=1.5, wall_distance=0.9, density=0.0), neighbors)
    assert tumor.fitness == approx(2 * 0.0004 + 0.0006 - 0.003)


def test_immune_contact_penalizes_each_touching_predator(empty_world):
    vessel = empty_world.vessel
    tumor = empty_world.spawn("CTC", (400.0, vessel.y0))
    empty_world.spawn("NEU", (400.0 + 7.8 + 8.5 + 1.5, vessel.y0))
    empty_world.spawn("MONO", (400.0, vessel.y0 - 7.8 - 9.5 - 1.0))
    empty_world.spawn("MONO", (400.0, vessel.y0 + 7.8 + 9.5 + 2.5))
    empty_world.spawn("LYM", (395.0, vessel.y0 + 2.0))

    contacts = lifecycle.apply_immune_contacts(empty_world, empty_world.agents, NeighborIndex(empty_world.agents))

    assert contacts == 2
    assert tumor.fitness == approx(-0.04)


def test_reproduction_resets_parent_and_spawns_nearby_child(empty_world):
    vessel = empty_world.vessel
    parent = empty_world.spawn("CTC", (400.0, vessel.y0), velocity=(2.0, 1.0), fitness=1.01)

    children, deaths = lifecycle.resolve_reproduction_and_death(empty_world, empty_world.agents)

    assert deaths == 0
    assert len(children) == 1
    child = children[0]
    assert parent.fitness == 0.0
    assert parent.reproduction_cooldown == 200
    assert child.reproduction_cooldown == 200
    assert child.cell_type is parent.cell_type
    assert child.generation == 1
    assert child.id != parent.id
    assert child.position.distance_to(parent.position) == approx(5.0)
    assert child.velocity == Vector2(1.6, 0.8)


def test_cooldown_blocks_reproduction(empty_world):
    vessel = empty_world.vessel
    empty_world.spawn("CTC", (400.0, vessel.y0), fitness=3.0, reproduction_cooldown=1)

    children, _ = lifecycle.resolve_reproduction_and_death(empty_world, empty_world.agents)

    assert children == []


def test_passive_types_never_reproduce_or_die(empty_world):
    vessel = empty_world.vessel
    rbc = empty_world.spawn("RBC", (400.0, vessel.y0), fitness=-3.0)
    empty_world.spawn("PLT", (420.0, vessel.y0), fitness=3.0)

    children, deaths = lifecycle.resolve_reproduction_and_death(empty_world, empty_world.agents)

    assert children == [] and deaths == 0
    assert rbc.alive


def test_low_fitness_marks_cell_dead(empty_world):
    vessel = empty_world.vessel
    tumor = empty_world.spawn("CTC", (400.0, vessel.y0), fitness=-0.51)

    _, deaths = lifecycle.resolve_reproduction_and_death(empty_world, empty_world.agents)

    assert deaths == 1
    assert not tumor.alive


def test_decrement_and_compact(empty_world):
    vessel = empty_world.vessel
    cooling = empty_world.spawn("CTC", (400.0, vessel.y0), reproduction_cooldown=2)
    idle = empty_world.spawn("RBC", (420.0, vessel.y0))
    dead = empty_world.spawn("RBC", (440.0, vessel.y0), alive=False)

    lifecycle.decrement_cooldowns(empty_world.agents)
    survivors, removed = lifecycle.compact(empty_world.agents)

    assert cooling.reproduction_cooldown == 1
    assert idle.reproduction_cooldown == 0
    assert removed == 1
    assert dead not in survivors
