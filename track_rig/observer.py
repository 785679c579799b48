"""Observers notified by the co-simulation loop.

Observers see copies of the rig state and only through these hooks:
  render(frame), synchronize(time, control), advance(step), is_running()

reset(time) is called when the loop is (re)initialized.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from track_rig.config import SNAPSHOT_PATTERN
from track_rig.driver import ControlSignal
from track_rig.errors import ResourceError
from track_rig.plotting import draw_rig_snapshot
from track_rig.rig import Frame, RigFixture
from track_rig.track_assembly import BodyPose

logger = logging.getLogger(__name__)


@dataclass
class ObservedFrame:
    time_s: float
    step: int
    render_frame: int
    chassis: Frame
    sprocket: BodyPose
    idler: BodyPose
    road_wheels: list[BodyPose]
    post_position: np.ndarray
    control: ControlSignal
    idler_local: np.ndarray  # idler center in the chassis frame
    sprocket_speed: float = 0.0
    newton_iterations: int = 0
    wheel_radius_m: float = 0.25
    road_wheel_travel: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=float))
    max_belt_tension_n: float = 0.0


def observe(fixture: RigFixture, step: int, render_frame: int, control: ControlSignal) -> ObservedFrame:
    """Snapshot of everything an observer may look at, as fresh copies."""
    idler = fixture.idler_pose()
    state = fixture.state
    diag = fixture.last_diagnostics
    asm = fixture.assembly
    return ObservedFrame(
        time_s=fixture.time,
        step=int(step),
        render_frame=int(render_frame),
        chassis=fixture.chassis_frame,
        sprocket=fixture.sprocket_pose(),
        idler=idler,
        road_wheels=fixture.road_wheel_poses(),
        post_position=fixture.post_position(),
        control=ControlSignal(control.throttle, control.post_displacement),
        idler_local=fixture.chassis_to_local(idler.position),
        sprocket_speed=float(state.v[0]),
        newton_iterations=0 if diag is None else int(diag.iteration_count),
        wheel_radius_m=float(asm.geometry.wheel_radius_m),
        road_wheel_travel=state.q[asm.wheel_dofs].copy(),
        max_belt_tension_n=float(np.max(asm.element_tension(state.q, state.v))),
    )


class Observer:
    """Base observer: runs forever and ignores everything."""

    def reset(self, time: float) -> None:
        pass

    def render(self, frame: ObservedFrame) -> None:
        pass

    def synchronize(self, time: float, control: ControlSignal) -> None:
        pass

    def advance(self, step: float) -> None:
        pass

    def is_running(self) -> bool:
        return True


class RecordingObserver(Observer):
    def __init__(self):
        self.frames: list[ObservedFrame] = []

    def render(self, frame: ObservedFrame) -> None:
        self.frames.append(frame)


class TimeLimitObserver(Observer):
    """Stops the loop once the synchronized time plus the advanced step reaches t_end."""

    def __init__(self, t_end: float):
        self.t_end = float(t_end)
        self._time = 0.0

    def reset(self, time: float) -> None:
        self._time = float(time)

    def synchronize(self, time: float, control: ControlSignal) -> None:
        self._time = float(time)

    def advance(self, step: float) -> None:
        self._time += float(step)

    def is_running(self) -> bool:
        return self._time < self.t_end - 1e-12


class ObserverGroup(Observer):
    def __init__(self, observers: list[Observer]):
        self.observers = list(observers)

    def reset(self, time: float) -> None:
        for o in self.observers:
            o.reset(time)

    def render(self, frame: ObservedFrame) -> None:
        for o in self.observers:
            o.render(frame)

    def synchronize(self, time: float, control: ControlSignal) -> None:
        for o in self.observers:
            o.synchronize(time, control)

    def advance(self, step: float) -> None:
        for o in self.observers:
            o.advance(step)

    def is_running(self) -> bool:
        return all(o.is_running() for o in self.observers)


class SnapshotObserver(Observer):
    """
    Writes img_NNN.png (NNN = render frame + 1) for each render after `start_step`
    macro-steps. The output directory is prepared at construction.
    """

    def __init__(self, output_dir: Path, start_step: int = 1000):
        self.output_dir = Path(output_dir)
        self.start_step = int(start_step)
        self.written: list[Path] = []
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ResourceError(f'Cannot create snapshot directory {self.output_dir}: {e}') from e

    def render(self, frame: ObservedFrame) -> None:
        if frame.step <= self.start_step:
            return
        out_path = self.output_dir / SNAPSHOT_PATTERN.format(frame=frame.render_frame + 1)
        draw_rig_snapshot(frame, out_path)
        self.written.append(out_path)
        logger.debug('Snapshot written: %s', out_path)
