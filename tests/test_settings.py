import copy
import json

import pytest

from track_rig.config import DEFAULT_CONFIG_JSON, REPO_ROOT
from track_rig.cosim import build_driver
from track_rig.errors import ConfigurationError
from track_rig.settings import build_rig_config, load_json, load_rig_config, read_config


def base_cfg():
    return load_json(DEFAULT_CONFIG_JSON)


def test_repo_config_parses():
    config = load_rig_config()

    assert config.fixed_step_size == pytest.approx(1e-3)
    assert config.render_interval == pytest.approx(2e-3)
    assert config.track_variant == "bushing"
    assert config.integrator.alpha == pytest.approx(-0.2)
    assert config.integrator.max_newton_iterations == 200
    assert config.attach_location == (0.0, 1.0, 0.0)
    assert config.pose_location == (0.0, 0.0, 2.0)
    assert config.t_end == pytest.approx(3.0)
    assert config.snapshot.output_dir == REPO_ROOT / "output" / "track_test_rig"
    assert set(config.assembly) == {"bushing", "band_fe"}


def test_deltas_follow_ramp_times():
    driver = build_driver(load_rig_config())
    assert driver.throttle_delta == pytest.approx(2e-3 / 1.0)
    assert driver.displacement_delta == pytest.approx(2e-3 / 2.0 * 0.2)


def test_schedule_is_sorted():
    cfg = base_cfg()
    cfg["driver"]["schedule"] = [[2.0, 0.5, 0.0], [0.0, 1.0, 0.1]]
    config = build_rig_config(cfg)
    assert config.driver_schedule == [(0.0, 1.0, 0.1), (2.0, 0.5, 0.0)]


@pytest.mark.parametrize(
    "path",
    [
        ["solver", "step_size_s"],
        ["driver", "post_limit_m"],
        ["track", "variant"],
        ["integrator", "alpha"],
        ["rig", "attach_location_m"],
        ["output", "dir"],
    ],
)
def test_missing_key_is_reported(path):
    cfg = base_cfg()
    del cfg[path[0]][path[1]]
    with pytest.raises(ConfigurationError, match=".".join(path)):
        build_rig_config(cfg)


def test_bool_is_not_a_number():
    cfg = base_cfg()
    cfg["integrator"]["max_newton_iter"] = True
    with pytest.raises(ConfigurationError):
        build_rig_config(cfg)


def test_number_is_not_a_bool():
    cfg = base_cfg()
    cfg["integrator"]["scaling"] = 1
    with pytest.raises(ConfigurationError):
        build_rig_config(cfg)


@pytest.mark.parametrize(
    "section, key, value",
    [
        ("solver", "step_size_s", 0.0),
        ("solver", "render_step_s", -1.0),
        ("driver", "post_limit_m", -0.1),
        ("driver", "steering_time_s", 0.0),
    ],
)
def test_bad_values_rejected(section, key, value):
    cfg = copy.deepcopy(base_cfg())
    cfg[section][key] = value
    with pytest.raises(ConfigurationError):
        build_rig_config(cfg)


def test_bad_vector_rejected():
    cfg = base_cfg()
    cfg["rig"]["pose_location_m"] = [0.0, 1.0]
    with pytest.raises(ConfigurationError):
        build_rig_config(cfg)


def test_bad_schedule_row_rejected():
    cfg = base_cfg()
    cfg["driver"]["schedule"] = [[0.0, 1.0]]
    with pytest.raises(ConfigurationError):
        build_rig_config(cfg)


@pytest.mark.parametrize("value", ["abc", [1.0], True, 0.0, -1.0])
def test_bad_t_end_rejected(value):
    cfg = base_cfg()
    cfg["solver"]["t_end_s"] = value
    with pytest.raises(ConfigurationError, match="solver.t_end_s"):
        build_rig_config(cfg)


def test_t_end_is_optional():
    cfg = base_cfg()
    del cfg["solver"]["t_end_s"]
    assert build_rig_config(cfg).t_end is None
    cfg["solver"]["t_end_s"] = None
    assert build_rig_config(cfg).t_end is None


@pytest.mark.parametrize("row", [["x", 1, 0], [0.0, None, 0.0], [0.0, True, 0.0]])
def test_non_numeric_schedule_row_rejected(row):
    cfg = base_cfg()
    cfg["driver"]["schedule"] = [[0.0, 1.0, 0.0], row]
    with pytest.raises(ConfigurationError, match=r"driver\.schedule\[1\]"):
        build_rig_config(cfg)


def test_read_config_from_file(tmp_path):
    cfg = base_cfg()
    cfg["track"]["variant"] = "band_fe"
    path = tmp_path / "config.json"
    path.write_text(json.dumps(cfg), encoding="utf-8")

    assert read_config(path)["track"]["variant"] == "band_fe"
    assert load_rig_config(path).track_variant == "band_fe"
