import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
src_root = ROOT / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

from bloodflow.sim.core.config import LifecycleConfig, SimulationConfig, TickParams  # noqa: E402
from bloodflow.sim.core.world import World  # noqa: E402


@pytest.fixture
def quiet_config() -> SimulationConfig:
    """A config with no cells and no random forcing, for hand-placed scenarios."""
    return SimulationConfig(
        seed=11,
        population={key: 0 for key in ("RBC", "PLT", "NEU", "LYM", "MONO", "CTC")},
        params=TickParams(brown_strength=0.0, margin_strength=0.0, collide_strength=0.0),
        lifecycle=LifecycleConfig(),
    )


@pytest.fixture
def empty_world(quiet_config: SimulationConfig) -> World:
    return World(quiet_config)
