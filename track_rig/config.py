"""Configuration structs and path utilities for the track test rig."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

REPO_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG_JSON = REPO_ROOT / "config.json"

# Output defaults
DEFAULT_OUTPUT_DIR = REPO_ROOT / "output" / "track_test_rig"
SNAPSHOT_PATTERN = "img_{frame:03d}.png"


def resolve_path(p: str) -> Path:
    path = Path(p)
    return path if path.is_absolute() else (REPO_ROOT / path)


@dataclass
class IntegratorSettings:
    """HHT-α / Newton settings.

    alpha in [-1/3, 0]; more negative means more numerical damping.
    """

    alpha: float = -0.2
    max_newton_iterations: int = 200
    abs_tolerance: float = 1e-2
    step_control: bool = True
    scaling: bool = True
    modified_newton: bool = False
    max_step_halvings: int = 6
    verbose: bool = False


@dataclass
class SnapshotSettings:
    enabled: bool = False
    start_step: int = 1000
    output_dir: Path = DEFAULT_OUTPUT_DIR


@dataclass
class RigConfig:
    """Everything the co-simulation loop needs, passed in explicitly."""

    fixed_step_size: float = 1e-3
    render_interval: float = 1e-3
    post_displacement_limit: float = 0.2
    steering_ramp_time: float = 1.0
    displacement_ramp_time: float = 2.0
    track_variant: str = "bushing"
    integrator: IntegratorSettings = field(default_factory=IntegratorSettings)
    snapshot: SnapshotSettings = field(default_factory=SnapshotSettings)

    # Where the track assembly attaches on the chassis, and where the fixture sits.
    attach_location: tuple[float, float, float] = (0.0, 1.0, 0.0)
    pose_location: tuple[float, float, float] = (0.0, 0.0, 2.0)

    # Piecewise-constant driver targets: (time_s, throttle, post_displacement_m).
    driver_schedule: list[tuple[float, float, float]] = field(default_factory=list)

    # Host stop condition for batch runs (None: run until the observer stops).
    t_end: float | None = None

    # Raw per-variant assembly blocks ("bushing", "band_fe"); defaults live in the variants.
    assembly: dict = field(default_factory=dict)
