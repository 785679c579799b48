"""Single source of truth for config.json parsing.

Policy:
- No fallback/default values for the core surface (solver, driver, track, integrator).
- If required config keys are missing, terminate with a clear error.
- Per-variant assembly blocks are optional; their defaults live with the variant.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from track_rig.config import (
    DEFAULT_CONFIG_JSON,
    IntegratorSettings,
    RigConfig,
    SnapshotSettings,
    resolve_path,
)
from track_rig.errors import ConfigurationError


def load_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding='utf-8'))


def _require_path(cfg: dict, keys: list[str]) -> Any:
    cur: Any = cfg
    prefix: list[str] = []
    for k in keys:
        prefix.append(k)
        if not isinstance(cur, dict) or k not in cur:
            raise ConfigurationError(f'Missing required config key: {".".join(prefix)}')
        cur = cur[k]
    return cur


def req_str(cfg: dict, keys: list[str]) -> str:
    v = _require_path(cfg, keys)
    if not isinstance(v, str) or not v.strip():
        raise ConfigurationError(f'Config key {".".join(keys)} must be a non-empty string.')
    return v


def req_float(cfg: dict, keys: list[str]) -> float:
    v = _require_path(cfg, keys)
    if isinstance(v, bool):
        raise ConfigurationError(f'Config key {".".join(keys)} must be a float-like value.')
    try:
        return float(v)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f'Config key {".".join(keys)} must be a float-like value.') from e


def req_int(cfg: dict, keys: list[str]) -> int:
    v = _require_path(cfg, keys)
    if isinstance(v, bool):
        raise ConfigurationError(f'Config key {".".join(keys)} must be an int-like value.')
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f'Config key {".".join(keys)} must be an int-like value.') from e


def req_bool(cfg: dict, keys: list[str]) -> bool:
    v = _require_path(cfg, keys)
    if not isinstance(v, bool):
        raise ConfigurationError(f'Config key {".".join(keys)} must be true or false.')
    return v


def req_vec3(cfg: dict, keys: list[str]) -> tuple[float, float, float]:
    v = _require_path(cfg, keys)
    if not isinstance(v, (list, tuple)) or len(v) != 3:
        raise ConfigurationError(f'Config key {".".join(keys)} must be a 3-element list.')
    try:
        return (float(v[0]), float(v[1]), float(v[2]))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f'Config key {".".join(keys)} must hold numbers.') from e


def read_config(path: Path = DEFAULT_CONFIG_JSON) -> dict:
    cfg = load_json(path)
    validate_config(cfg)
    return cfg


def validate_config(cfg: dict) -> None:
    # Existence/type checks (no defaults).
    req_float(cfg, ['solver', 'step_size_s'])
    req_float(cfg, ['solver', 'render_step_s'])

    req_float(cfg, ['driver', 'post_limit_m'])
    req_float(cfg, ['driver', 'steering_time_s'])
    req_float(cfg, ['driver', 'displacement_time_s'])

    req_str(cfg, ['track', 'variant'])

    req_float(cfg, ['integrator', 'alpha'])
    req_int(cfg, ['integrator', 'max_newton_iter'])
    req_float(cfg, ['integrator', 'abs_tol'])
    req_bool(cfg, ['integrator', 'step_control'])
    req_bool(cfg, ['integrator', 'scaling'])
    req_bool(cfg, ['integrator', 'modified_newton'])
    req_int(cfg, ['integrator', 'max_step_halvings'])
    req_bool(cfg, ['integrator', 'verbose'])

    req_vec3(cfg, ['rig', 'attach_location_m'])
    req_vec3(cfg, ['rig', 'pose_location_m'])

    req_str(cfg, ['output', 'dir'])
    req_bool(cfg, ['output', 'snapshots'])
    req_int(cfg, ['output', 'snapshot_start_step'])

    # Value checks
    if req_float(cfg, ['solver', 'step_size_s']) <= 0.0:
        raise ConfigurationError('solver.step_size_s must be > 0.')
    if req_float(cfg, ['solver', 'render_step_s']) <= 0.0:
        raise ConfigurationError('solver.render_step_s must be > 0.')
    if req_float(cfg, ['driver', 'post_limit_m']) < 0.0:
        raise ConfigurationError('driver.post_limit_m must be >= 0.')
    if req_float(cfg, ['driver', 'steering_time_s']) <= 0.0:
        raise ConfigurationError('driver.steering_time_s must be > 0.')
    if req_float(cfg, ['driver', 'displacement_time_s']) <= 0.0:
        raise ConfigurationError('driver.displacement_time_s must be > 0.')
    t_end = _opt_t_end(cfg)
    if t_end is not None and t_end <= 0.0:
        raise ConfigurationError('solver.t_end_s must be > 0.')
    _parse_schedule(cfg)


def _opt_t_end(cfg: dict) -> float | None:
    # Optional: absent or null means the host decides when to stop.
    if cfg.get('solver', {}).get('t_end_s') is None:
        return None
    return req_float(cfg, ['solver', 't_end_s'])


def _parse_schedule(cfg: dict) -> list[tuple[float, float, float]]:
    raw = cfg.get('driver', {}).get('schedule', [])
    if not isinstance(raw, list):
        raise ConfigurationError('driver.schedule must be a list of [time_s, throttle, post_m].')
    schedule: list[tuple[float, float, float]] = []
    for i, row in enumerate(raw):
        if not isinstance(row, (list, tuple)) or len(row) != 3:
            raise ConfigurationError(f'driver.schedule[{i}] must be [time_s, throttle, post_m].')
        if any(isinstance(x, bool) for x in row):
            raise ConfigurationError(f'driver.schedule[{i}] must hold numbers.')
        try:
            schedule.append((float(row[0]), float(row[1]), float(row[2])))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f'driver.schedule[{i}] must hold numbers.') from e
    return sorted(schedule, key=lambda r: r[0])


def build_rig_config(cfg: dict) -> RigConfig:
    """Turn a validated config.json document into the RigConfig struct."""
    validate_config(cfg)

    integrator = IntegratorSettings(
        alpha=req_float(cfg, ['integrator', 'alpha']),
        max_newton_iterations=req_int(cfg, ['integrator', 'max_newton_iter']),
        abs_tolerance=req_float(cfg, ['integrator', 'abs_tol']),
        step_control=req_bool(cfg, ['integrator', 'step_control']),
        scaling=req_bool(cfg, ['integrator', 'scaling']),
        modified_newton=req_bool(cfg, ['integrator', 'modified_newton']),
        max_step_halvings=req_int(cfg, ['integrator', 'max_step_halvings']),
        verbose=req_bool(cfg, ['integrator', 'verbose']),
    )

    snapshot = SnapshotSettings(
        enabled=req_bool(cfg, ['output', 'snapshots']),
        start_step=req_int(cfg, ['output', 'snapshot_start_step']),
        output_dir=resolve_path(req_str(cfg, ['output', 'dir'])),
    )

    return RigConfig(
        fixed_step_size=req_float(cfg, ['solver', 'step_size_s']),
        render_interval=req_float(cfg, ['solver', 'render_step_s']),
        post_displacement_limit=req_float(cfg, ['driver', 'post_limit_m']),
        steering_ramp_time=req_float(cfg, ['driver', 'steering_time_s']),
        displacement_ramp_time=req_float(cfg, ['driver', 'displacement_time_s']),
        track_variant=req_str(cfg, ['track', 'variant']).strip().lower(),
        integrator=integrator,
        snapshot=snapshot,
        attach_location=req_vec3(cfg, ['rig', 'attach_location_m']),
        pose_location=req_vec3(cfg, ['rig', 'pose_location_m']),
        driver_schedule=_parse_schedule(cfg),
        t_end=_opt_t_end(cfg),
        assembly={k: cfg[k] for k in ('bushing', 'band_fe', 'geometry') if isinstance(cfg.get(k), dict)},
    )


def load_rig_config(path: Path = DEFAULT_CONFIG_JSON) -> RigConfig:
    return build_rig_config(load_json(path))
