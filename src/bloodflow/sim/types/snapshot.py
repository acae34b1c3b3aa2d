from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from .metrics import TickMetrics


@dataclass(slots=True)
class Snapshot:
    tick: int
    metrics: TickMetrics
    agents: List[Dict[str, Any]]
    vessel: "SnapshotVessel"
    metadata: "SnapshotMetadata"
    lost_notice_ticks: int


@dataclass(slots=True)
class SnapshotVessel:
    x0: float
    x1: float
    y0: float
    radius: float


@dataclass(slots=True)
class SnapshotMetadata:
    sim_dt: float
    tick_rate: float
    seed: int
    config_version: str
    sim_time: float
