"""Track test rig entry points.

Re-exports the pieces a host script needs so it can import from one place.
"""

from __future__ import annotations

# Config and path utilities
from track_rig.config import (
    DEFAULT_CONFIG_JSON,
    REPO_ROOT,
    IntegratorSettings,
    RigConfig,
    SnapshotSettings,
    resolve_path,
)
from track_rig.settings import build_rig_config, load_rig_config, read_config

# Loop and components
from track_rig.cosim import CoSimulationLoop, build_driver, render_cadence
from track_rig.driver import ControlSignal, DriverModel, ScheduledDriver
from track_rig.errors import (
    ConfigurationError,
    IntegratorDivergence,
    OrderingError,
    ResourceError,
    TrackRigError,
)
from track_rig.loads import CsvLoadSource, ForceExchangeBuffer, TerrainForce, ZeroLoadSource
from track_rig.observer import (
    Observer,
    ObserverGroup,
    RecordingObserver,
    SnapshotObserver,
    TimeLimitObserver,
)
from track_rig.rig import RigFixture
from track_rig.track_variants import TRACK_VARIANTS, build_track_assembly, get_track_variant

# Commands
from track_rig.rig_commands import run_simulate_rig


__all__ = [
    # Config
    'REPO_ROOT',
    'DEFAULT_CONFIG_JSON',
    'IntegratorSettings',
    'RigConfig',
    'SnapshotSettings',
    'resolve_path',
    'read_config',
    'build_rig_config',
    'load_rig_config',
    # Components
    'CoSimulationLoop',
    'build_driver',
    'render_cadence',
    'ControlSignal',
    'DriverModel',
    'ScheduledDriver',
    'RigFixture',
    'TRACK_VARIANTS',
    'build_track_assembly',
    'get_track_variant',
    # Loads
    'CsvLoadSource',
    'ForceExchangeBuffer',
    'TerrainForce',
    'ZeroLoadSource',
    # Observers
    'Observer',
    'ObserverGroup',
    'RecordingObserver',
    'SnapshotObserver',
    'TimeLimitObserver',
    # Errors
    'TrackRigError',
    'OrderingError',
    'ConfigurationError',
    'IntegratorDivergence',
    'ResourceError',
    # Commands
    'run_simulate_rig',
]
