import logging

import pytest

from bloodflow.sim.core.config import (
    SimulationConfig,
    TickParams,
    load_config,
    sanitize_targets,
)


def test_defaults_describe_the_catalog():
    config = SimulationConfig()
    assert list(config.cell_types) == ["RBC", "PLT", "NEU", "LYM", "MONO", "CTC"]
    assert config.population["RBC"] == 220
    assert config.cell_types["CTC"].policy_driven
    assert config.time_step == pytest.approx(1.0 / 60.0)


def test_load_config_overrides_sections_and_cell_types():
    config = load_config(
        {
            "seed": 7,
            "flow": {"base_speed": 2.0},
            "lifecycle": {"overflow_ceiling": 40},
            "population": {"CTC": 12},
            "params": {"bpm": 90, "pulsatile": True},
            "cell_types": {"RBC": {"radius": 4.5, "color": [1, 2, 3]}},
        }
    )
    assert config.seed == 7
    assert config.flow.base_speed == 2.0
    assert config.flow.damping == 0.995
    assert config.lifecycle.overflow_ceiling == 40
    assert config.population["CTC"] == 12
    assert config.population["RBC"] == 220
    assert config.params.bpm == 90.0
    assert config.params.pulsatile is True
    assert config.cell_types["RBC"].radius == 4.5
    assert config.cell_types["RBC"].color == (1, 2, 3)
    assert config.cell_types["RBC"].mass == 1.0


def test_from_yaml_reads_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("seed: 99\nviewport:\n  width: 800\n  height: 400\n")
    config = SimulationConfig.from_yaml(path)
    assert config.seed == 99
    assert config.viewport.width == 800
    assert config.viewport.height == 400


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    config = SimulationConfig.from_yaml(path)
    assert config.seed == 42


def test_tick_params_updated_keeps_previous_on_bad_values(caplog):
    params = TickParams()
    with caplog.at_level(logging.WARNING):
        updated = params.updated(
            speed_scale=0.0,
            pulsatile="yes",
            brown_strength=float("inf"),
            margin_strength=-2,
            nonsense=3,
        )
    assert updated == params
    assert "nonsense" in caplog.text


def test_tick_params_updated_accepts_good_values():
    params = TickParams().updated(speed_scale="2.5", bpm=10, use_spatial_hash=False, collide_strength=0)
    assert params.speed_scale == 2.5
    assert params.bpm == 20.0
    assert params.use_spatial_hash is False
    assert params.collide_strength == 0.0


def test_tick_params_are_immutable():
    params = TickParams()
    with pytest.raises(AttributeError):
        params.bpm = 100.0


def test_sanitize_targets_merges_and_validates():
    known = {"RBC": None, "CTC": None}
    merged = sanitize_targets({"CTC": 4, "RBC": 2.5}, {"RBC": 10, "CTC": 1}, known)
    assert merged == {"RBC": 10, "CTC": 4}

    assert sanitize_targets({"RBC": -1}, {"RBC": 3}, known) == {"RBC": 3, "CTC": 0}
    assert sanitize_targets({"RBC": 5.0}, {}, known) == {"RBC": 5, "CTC": 0}

    with pytest.raises(KeyError):
        sanitize_targets({"XYZ": 1}, {}, known)


def test_sanitize_targets_ignores_non_mapping(caplog):
    known = {"RBC": None, "CTC": None}
    with caplog.at_level(logging.WARNING):
        merged = sanitize_targets([["RBC", 3]], {"RBC": 7}, known)
    assert merged == {"RBC": 7, "CTC": 0}
    assert "not a mapping" in caplog.text
