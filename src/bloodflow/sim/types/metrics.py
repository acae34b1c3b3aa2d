from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    policy_population: int
    births: int
    deaths: int
    overflow_reset: bool
    pair_checks: int
    contacts: int
    average_fitness: float
    type_counts: Dict[str, int] = field(default_factory=dict)
    tick_duration_ms: float = 0.0
