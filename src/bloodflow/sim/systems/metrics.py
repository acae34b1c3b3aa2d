from __future__ import annotations

from typing import TYPE_CHECKING, Dict

from ..types.metrics import TickMetrics

if TYPE_CHECKING:
    from ..core.state import SimulationState


def count_types(state: SimulationState) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for cell in state.agents:
        if not cell.alive:
            continue
        key = cell.cell_type.key
        counts[key] = counts.get(key, 0) + 1
    return counts


def create_metrics(
    state: SimulationState,
    births: int,
    deaths: int,
    overflow_reset: bool,
    pair_checks: int,
    contacts: int,
    duration_ms: float,
) -> TickMetrics:
    population = 0
    policy_population = 0
    fitness_sum = 0.0
    for cell in state.agents:
        if not cell.alive:
            continue
        population += 1
        if cell.cell_type.policy_driven:
            policy_population += 1
            fitness_sum += cell.fitness
    average_fitness = 0.0 if policy_population == 0 else fitness_sum / policy_population
    return TickMetrics(
        tick=state.tick,
        population=population,
        policy_population=policy_population,
        births=births,
        deaths=deaths,
        overflow_reset=overflow_reset,
        pair_checks=pair_checks,
        contacts=contacts,
        average_fitness=average_fitness,
        type_counts=count_types(state),
        tick_duration_ms=duration_ms,
    )
