"""Track test rig fixture: chassis, one track assembly and a post actuator under the road wheels."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

import numpy as np

from track_rig.config import RigConfig
from track_rig.errors import ConfigurationError, IntegratorDivergence, OrderingError
from track_rig.integrator import (
    GeneralizedState,
    HHTIntegrator,
    IntegratorDiagnostics,
    initial_acceleration,
    static_equilibrium,
)
from track_rig.loads import ForceExchangeBuffer
from track_rig.track_assembly import BodyPose, TrackAssembly
from track_rig.track_variants import build_geometry, get_track_variant

logger = logging.getLogger(__name__)


class RigState(enum.Enum):
    UNCONSTRUCTED = 'unconstructed'
    INITIALIZED = 'initialized'
    RUNNING = 'running'


@dataclass
class Frame:
    """Rigid frame: parent = origin + rotation @ local."""

    origin: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=float))
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3, dtype=float))

    def to_parent(self, p: np.ndarray) -> np.ndarray:
        return self.origin + self.rotation @ np.asarray(p, dtype=float)

    def to_local(self, p: np.ndarray) -> np.ndarray:
        return self.rotation.T @ (np.asarray(p, dtype=float) - self.origin)

    def vector_to_local(self, v: np.ndarray) -> np.ndarray:
        return self.rotation.T @ np.asarray(v, dtype=float)

    def copy(self) -> Frame:
        return Frame(self.origin.copy(), self.rotation.copy())


def _as_rotation(rotation) -> np.ndarray:
    if rotation is None:
        return np.eye(3, dtype=float)
    R = np.asarray(rotation, dtype=float)
    if R.shape != (3, 3):
        raise ConfigurationError(f'Chassis rotation must be a 3x3 matrix, got shape {R.shape}.')
    if not np.allclose(R.T @ R, np.eye(3), atol=1e-9) or np.linalg.det(R) <= 0.0:
        raise ConfigurationError('Chassis rotation must be a proper rotation matrix.')
    return R.copy()


class RigFixture:
    """
    The chassis is fixed to ground at the pose location; the track assembly hangs
    off it at the attach location; the post platform moves vertically under the
    road wheels following the commanded displacement.

    Lifecycle: construct -> initialize(pose) -> (synchronize, advance)*.
    """

    def __init__(self, config: RigConfig, track_index: int = 0):
        # Unknown tags fail here, before anything is assembled.
        self.variant = get_track_variant(config.track_variant)
        self.config = config
        self.track_index = int(track_index)
        self.integrator = HHTIntegrator(config.integrator)

        self.phase = RigState.UNCONSTRUCTED
        self.assembly: TrackAssembly | None = None
        self._chassis = Frame()
        self._attach = np.asarray(config.attach_location, dtype=float)
        self._M: np.ndarray | None = None
        self._state: GeneralizedState | None = None
        self._last_diagnostics: IntegratorDiagnostics | None = None

        # Inputs held over the next step
        self._throttle = 0.0
        self._drive_torque = 0.0
        self._post_cmd = 0.0
        self._post_vel = 0.0
        self._post_cmd_time: float | None = None
        self._forces = ForceExchangeBuffer(max(1, self.track_index + 1))
        self._f_ext: np.ndarray | None = None

    # --- Lifecycle ---

    def initialize(
        self,
        pose: tuple[float, float, float] | None = None,
        *,
        rotation: np.ndarray | None = None,
        settle: bool = True,
    ) -> None:
        """
        Assemble the system at `pose` (default: config.pose_location) and find initial conditions.

        `rotation` orients the chassis in the absolute frame (default: identity). The track
        dynamics run in the chassis frame with gravity along its -z axis; the rotation
        applies to reported poses and to incoming external loads.
        """
        origin = self.config.pose_location if pose is None else pose
        self._chassis = Frame(
            origin=np.asarray(origin, dtype=float).reshape(3).copy(),
            rotation=_as_rotation(rotation),
        )

        geometry = build_geometry(self.config.assembly)
        self.assembly = self.variant.build_assembly(self.config.assembly, geometry)
        asm = self.assembly

        self._M = np.diag(asm.mass_diagonal())
        self._f_ext = np.zeros(asm.num_dofs, dtype=float)
        self._throttle = 0.0
        self._drive_torque = 0.0
        self._post_cmd = 0.0
        self._post_vel = 0.0
        self._post_cmd_time = None
        self._forces.reset()

        q0 = asm.initial_coordinates()
        if settle:
            q0 = static_equilibrium(self._evaluate, q0)
        v0 = np.zeros_like(q0)
        a0 = initial_acceleration(self._evaluate, self._M, q0, v0)

        self._state = GeneralizedState(time_s=0.0, q=q0, v=v0, a=a0)
        self._last_diagnostics = None
        self.phase = RigState.INITIALIZED

        logger.info(
            'Rig initialized: variant=%s dofs=%d shoes=%d idler_travel=%.4f m',
            asm.variant,
            asm.num_dofs,
            asm.shoe_count,
            float(q0[1]),
        )

    def _require_initialized(self, what: str) -> None:
        if self.phase is RigState.UNCONSTRUCTED:
            raise OrderingError(f'RigFixture.{what} called before initialize().')

    def synchronize(
        self,
        time: float,
        post_displacement: float,
        throttle: float,
        forces: ForceExchangeBuffer,
    ) -> None:
        """Latch the inputs for the next advance. Does not move time."""
        self._require_initialized('synchronize')
        asm = self.assembly

        time = float(time)
        post_displacement = float(post_displacement)
        if self._post_cmd_time is not None and time > self._post_cmd_time:
            self._post_vel = (post_displacement - self._post_cmd) / (time - self._post_cmd_time)
        else:
            self._post_vel = 0.0
        self._post_cmd = post_displacement
        self._post_cmd_time = time

        self._throttle = float(throttle)
        self._drive_torque = self._throttle * asm.geometry.max_drive_torque_nm

        self._forces = forces.copy()
        self._f_ext = np.zeros(asm.num_dofs, dtype=float)
        if self.track_index < len(self._forces):
            tf = self._forces[self.track_index]
            if not tf.is_zero():
                # Absolute frame -> chassis frame -> relative to the attach location.
                force = self._chassis.vector_to_local(tf.force)
                moment = self._chassis.vector_to_local(tf.moment)
                point = self._chassis.to_local(tf.point) - self._attach
                self._f_ext = asm.external_load_vector(force, moment, point)

    def advance(self, step: float) -> None:
        """One integrator call over [t, t + step]; the state is committed only on success."""
        self._require_initialized('advance')

        new_state, diag = self.integrator.step(self._evaluate, self._M, self._state, float(step))
        self._last_diagnostics = diag

        if new_state is None:
            logger.warning(
                'Integrator diverged at t=%.6f s after %d Newton iterations (residual=%.3e)',
                self._state.time_s,
                diag.iteration_count,
                diag.residual_norm,
            )
            raise IntegratorDivergence(
                f'Newton did not converge at t={self._state.time_s:.6f} s '
                f'(iterations={diag.iteration_count}, residual={diag.residual_norm:.3e})',
                diagnostics=diag,
                time_s=self._state.time_s,
            )

        self._state = new_state
        self.phase = RigState.RUNNING

    # --- Assembled system ---

    def _evaluate(self, q: np.ndarray, v: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        asm = self.assembly
        f, K, C = asm.evaluate(q, v)
        f = f + asm.drive_torque_vector(self._drive_torque) + self._f_ext

        f_post, K_post, C_post, _ = asm.post_contact(q, v, self._post_cmd, self._post_vel)
        return f + f_post, K + K_post, C + C_post

    # --- Accessors ---

    @property
    def time(self) -> float:
        self._require_initialized('time')
        return float(self._state.time_s)

    @property
    def state(self) -> GeneralizedState:
        self._require_initialized('state')
        return self._state.copy()

    @property
    def last_diagnostics(self) -> IntegratorDiagnostics | None:
        self._require_initialized('last_diagnostics')
        return self._last_diagnostics

    @property
    def chassis_frame(self) -> Frame:
        self._require_initialized('chassis_frame')
        return self._chassis.copy()

    def chassis_to_local(self, point: np.ndarray) -> np.ndarray:
        self._require_initialized('chassis_to_local')
        return self._chassis.to_local(point)

    def _absolute(self, pose: BodyPose) -> BodyPose:
        return BodyPose(position=self._chassis.to_parent(self._attach + pose.position), angle=pose.angle)

    def sprocket_pose(self) -> BodyPose:
        self._require_initialized('sprocket_pose')
        return self._absolute(self.assembly.sprocket_pose(self._state.q))

    def idler_pose(self) -> BodyPose:
        self._require_initialized('idler_pose')
        return self._absolute(self.assembly.idler_pose(self._state.q))

    def road_wheel_poses(self) -> list[BodyPose]:
        self._require_initialized('road_wheel_poses')
        return [self._absolute(p) for p in self.assembly.road_wheel_poses(self._state.q)]

    def post_position(self) -> np.ndarray:
        """Absolute position of the post platform top, under the road wheel centroid."""
        self._require_initialized('post_position')
        g = self.assembly.geometry
        local = np.array(
            [float(np.mean(g.wheel_x)), 0.0, self.assembly.post_rest_height() + self._post_cmd],
            dtype=float,
        )
        return self._chassis.to_parent(self._attach + local)

    def post_contact_forces(self) -> np.ndarray:
        self._require_initialized('post_contact_forces')
        _, _, _, forces = self.assembly.post_contact(
            self._state.q, self._state.v, self._post_cmd, self._post_vel
        )
        return forces

    def sprocket_speed(self) -> float:
        self._require_initialized('sprocket_speed')
        return float(self._state.v[0])

    @property
    def throttle(self) -> float:
        return self._throttle

    @property
    def post_command(self) -> float:
        return self._post_cmd
