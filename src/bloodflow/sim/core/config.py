from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)


@dataclass
class CellTypeConfig:
    name: str
    radius: float
    mass: float
    margin_bias: float
    color: Tuple[int, int, int] = (200, 200, 200)
    adhesion: Optional[float] = None
    policy_driven: bool = False
    immune: bool = False


def _default_cell_types() -> Dict[str, CellTypeConfig]:
    return {
        "RBC": CellTypeConfig(name="RBC", radius=5.0, mass=1.0, margin_bias=0.12, color=(231, 76, 60)),
        "PLT": CellTypeConfig(name="PLT", radius=3.2, mass=0.55, margin_bias=0.55, color=(241, 196, 15)),
        "NEU": CellTypeConfig(
            name="Neutrophil",
            radius=8.5,
            mass=2.5,
            margin_bias=0.35,
            color=(210, 210, 255),
            adhesion=0.35,
            immune=True,
        ),
        "LYM": CellTypeConfig(
            name="Lymphocyte", radius=7.0, mass=1.8, margin_bias=0.15, color=(180, 200, 255), adhesion=0.05
        ),
        "MONO": CellTypeConfig(
            name="Monocyte",
            radius=9.5,
            mass=3.0,
            margin_bias=0.45,
            color=(160, 180, 220),
            adhesion=0.45,
            immune=True,
        ),
        "CTC": CellTypeConfig(
            name="Tumor Cell",
            radius=7.8,
            mass=2.6,
            margin_bias=0.30,
            color=(180, 80, 200),
            policy_driven=True,
        ),
    }


def _default_population() -> Dict[str, int]:
    return {"RBC": 220, "PLT": 60, "NEU": 6, "LYM": 6, "MONO": 4, "CTC": 6}


@dataclass
class ViewportConfig:
    width: float = 1280.0
    height: float = 720.0
    padding: float = 80.0
    max_radius_fraction: float = 0.32
    max_radius: float = 220.0


@dataclass
class FlowConfig:
    base_speed: float = 3.2
    pulse_base: float = 0.55
    pulse_amplitude: float = 0.45
    drag_gain: float = 0.08
    margin_gain: float = 0.08
    jitter_gain: float = 0.04
    min_mass_floor: float = 0.4
    damping: float = 0.995
    max_speed: float = 8.0
    wall_restitution: float = 0.65
    seed_speed_min: float = 0.6
    seed_speed_max: float = 2.0
    seed_vertical_jitter: float = 0.4
    disturbance_radius: float = 120.0
    swirl_gain: float = 0.002


@dataclass
class CollisionConfig:
    # Raised to twice the largest cell radius at runtime so 3x3 lookups never miss a contact.
    cell_size: float = 20.0
    push_gain: float = 0.9
    velocity_deflection: float = 0.2
    min_collide_strength: float = 0.001


@dataclass
class PolicyConfig:
    gain: float = 0.12
    shear_factor: float = 0.5
    density_radius: float = 35.0
    density_normalizer: float = 10.0
    hidden_weights: List[List[float]] = field(default_factory=lambda: [[0.8, -0.6, 0.3], [-0.4, 0.9, 0.2]])
    hidden_bias: List[float] = field(default_factory=lambda: [0.1, -0.1])
    output_weights: List[List[float]] = field(default_factory=lambda: [[0.6, -0.7], [0.3, 0.4]])


@dataclass
class LifecycleConfig:
    cluster_radius: float = 30.0
    cluster_reward: float = 0.0004
    wall_reward_threshold: float = 0.75
    wall_reward: float = 0.0006
    shear_penalty_threshold: float = 1.2
    shear_penalty: float = 0.003
    immune_contact_margin: float = 2.0
    immune_contact_penalty: float = 0.02
    reproduction_threshold: float = 1.0
    reproduction_cooldown_ticks: int = 200
    spawn_offset: float = 5.0
    child_velocity_factor: float = 0.8
    death_threshold: float = -0.5
    overflow_ceiling: int = 150
    lost_notice_ticks: int = 240
    compaction_interval: int = 1


_NON_NEGATIVE_PARAMS = ("collide_strength", "margin_strength", "brown_strength")
_BOOL_PARAMS = ("pulsatile", "use_spatial_hash")
BPM_RANGE = (20.0, 220.0)


@dataclass(frozen=True)
class TickParams:
    """Control values read once at the start of every tick.

    Instances are immutable; use :meth:`updated` to derive a sanitized copy.
    Malformed values never raise: the previous value is kept and a warning is
    logged so one bad update cannot corrupt agent state.
    """

    speed_scale: float = 1.0
    pulsatile: bool = False
    bpm: float = 72.0
    collide_strength: float = 1.0
    margin_strength: float = 1.0
    brown_strength: float = 1.0
    use_spatial_hash: bool = True

    def updated(self, **values: Any) -> "TickParams":
        known = {f.name for f in fields(self)}
        accepted: Dict[str, Any] = {}
        for name, value in values.items():
            if name not in known:
                logger.warning("ignoring unknown tick parameter %r", name)
                continue
            previous = getattr(self, name)
            if name in _BOOL_PARAMS:
                if isinstance(value, bool):
                    accepted[name] = value
                else:
                    logger.warning("tick parameter %s=%r is not a bool; keeping %r", name, value, previous)
                continue
            number = _finite_float(value)
            if number is None:
                logger.warning("tick parameter %s=%r is not a finite number; keeping %r", name, value, previous)
                continue
            if name == "bpm":
                number = max(BPM_RANGE[0], min(BPM_RANGE[1], number))
            elif name == "speed_scale" and number <= 0.0:
                logger.warning("speed_scale must be positive, got %r; keeping %r", number, previous)
                continue
            elif name in _NON_NEGATIVE_PARAMS and number < 0.0:
                logger.warning("tick parameter %s=%r is negative; keeping %r", name, number, previous)
                continue
            accepted[name] = number
        return replace(self, **accepted)


def _finite_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def sanitize_targets(
    targets: Mapping[str, Any], previous: Mapping[str, int], known_types: Mapping[str, Any]
) -> Dict[str, int]:
    """Merge requested per-type counts over ``previous``.

    Unknown type keys raise ``KeyError``; negative or non-integral counts keep
    the previous count for that type, and a ``targets`` that is not a mapping
    keeps all of them.
    """

    merged = {key: int(previous.get(key, 0)) for key in known_types}
    if not isinstance(targets, Mapping):
        logger.warning("population targets %r are not a mapping; keeping %r", targets, merged)
        return merged
    for key, value in targets.items():
        if key not in known_types:
            raise KeyError(f"unknown cell type {key!r}")
        number = _finite_float(value)
        if number is None or number < 0 or number != int(number):
            logger.warning("population target %s=%r is invalid; keeping %d", key, value, merged[key])
            continue
        merged[key] = int(number)
    return merged


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 60.0
    seed: int = 42
    config_version: str = "v1"
    viewport: ViewportConfig = field(default_factory=ViewportConfig)
    flow: FlowConfig = field(default_factory=FlowConfig)
    collision: CollisionConfig = field(default_factory=CollisionConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    params: TickParams = field(default_factory=TickParams)
    population: Dict[str, int] = field(default_factory=_default_population)
    cell_types: Dict[str, CellTypeConfig] = field(default_factory=_default_cell_types)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)


def load_config(raw: dict) -> SimulationConfig:
    cell_types = _default_cell_types()
    for key, values in raw.get("cell_types", {}).items():
        values = dict(values)
        if "color" in values:
            values["color"] = tuple(int(channel) for channel in values["color"])
        if key in cell_types:
            cell_types[key] = replace(cell_types[key], **values)
        else:
            cell_types[key] = CellTypeConfig(**values)

    population = _default_population()
    population.update({key: int(value) for key, value in raw.get("population", {}).items()})
    params = TickParams().updated(**raw.get("params", {}))

    sections = {"viewport", "flow", "collision", "policy", "lifecycle", "params", "population", "cell_types"}
    sim_values = {k: v for k, v in raw.items() if k not in sections}
    return SimulationConfig(
        viewport=ViewportConfig(**raw.get("viewport", {})),
        flow=FlowConfig(**raw.get("flow", {})),
        collision=CollisionConfig(**raw.get("collision", {})),
        policy=PolicyConfig(**raw.get("policy", {})),
        lifecycle=LifecycleConfig(**raw.get("lifecycle", {})),
        params=params,
        population=population,
        cell_types=cell_types,
        **sim_values,
    )
