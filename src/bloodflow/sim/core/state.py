from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from .agent import Cell


@dataclass(slots=True)
class SimulationState:
    """Everything that changes from tick to tick, owned by :class:`World`.

    ``agents`` grows in place when cells are spawned or born during a tick.
    A reset, reseed or compaction swaps in a new list instead of editing the
    old one, so a caller holding the previous list keeps a stale view.
    """

    agents: List[Cell] = field(default_factory=list)
    targets: Dict[str, int] = field(default_factory=dict)
    tick: int = 0
    sim_time: float = 0.0
    next_id: int = 0
    lost_notice_ticks: int = 0
    resets: int = 0

    def allocate_id(self) -> int:
        cell_id = self.next_id
        self.next_id += 1
        return cell_id

    def replace_agents(self, agents: List[Cell]) -> None:
        self.agents = agents
