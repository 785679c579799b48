"""Fixed-step co-simulation loop: driver, rig fixture and observer in lockstep."""

from __future__ import annotations

import logging
import math

from track_rig.config import RigConfig
from track_rig.driver import ControlSignal, DriverModel, ScheduledDriver
from track_rig.errors import ConfigurationError
from track_rig.loads import ForceExchangeBuffer, ZeroLoadSource
from track_rig.observer import Observer, ObserverGroup, SnapshotObserver, TimeLimitObserver, observe
from track_rig.rig import RigFixture, RigState

logger = logging.getLogger(__name__)


def render_cadence(render_interval: float, step_size: float) -> int:
    """Macro-steps between renders: ceil(render / step), guarded against round-up, at least 1."""
    return max(1, int(math.ceil(render_interval / step_size - 1e-9)))


def build_driver(config: RigConfig) -> DriverModel:
    if config.driver_schedule:
        return ScheduledDriver.from_ramp_times(
            config.post_displacement_limit,
            config.render_interval,
            config.steering_ramp_time,
            config.displacement_ramp_time,
            schedule=config.driver_schedule,
        )
    return DriverModel.from_ramp_times(
        config.post_displacement_limit,
        config.render_interval,
        config.steering_ramp_time,
        config.displacement_ramp_time,
    )


class CoSimulationLoop:
    """
    Each step():
      1. render on cadence boundaries
      2. read throttle / post displacement from the driver
      3. load source fills the force buffer at t
      4. synchronize driver, fixture, observer
      5. advance driver, fixture, observer
      6. bump the step counter and re-read t from the fixture

    The observer is the only thing that stops run().
    """

    def __init__(
        self,
        config: RigConfig,
        *,
        driver: DriverModel | None = None,
        observer: Observer | None = None,
        load_source=None,
        fixture: RigFixture | None = None,
    ):
        if config.fixed_step_size <= 0.0:
            raise ConfigurationError(f'fixed_step_size must be > 0, got {config.fixed_step_size}.')
        self.config = config
        self.step_size = float(config.fixed_step_size)
        self.render_cadence = render_cadence(config.render_interval, self.step_size)

        # Unknown variants and bad integrator settings fail here.
        self.fixture = fixture if fixture is not None else RigFixture(config)
        self.driver = driver if driver is not None else build_driver(config)
        self.load_source = load_source if load_source is not None else ZeroLoadSource()
        self.forces = ForceExchangeBuffer(max(1, self.fixture.track_index + 1))

        observers: list[Observer] = []
        if observer is not None:
            observers.append(observer)
        if config.t_end is not None:
            observers.append(TimeLimitObserver(config.t_end))
        if config.snapshot.enabled:
            observers.append(SnapshotObserver(config.snapshot.output_dir, config.snapshot.start_step))
        if len(observers) == 1:
            self.observer = observers[0]
        elif observers:
            self.observer = ObserverGroup(observers)
        else:
            self.observer = Observer()

        self.step_number = 0
        self.render_frame = 0
        self.time = 0.0

    def initialize(
        self,
        pose: tuple[float, float, float] | None = None,
        *,
        rotation=None,
        settle: bool = True,
    ) -> None:
        """Restart from t = 0. Observer clocks are reset along with the step counters."""
        self.fixture.initialize(pose, rotation=rotation, settle=settle)
        self.driver.initialize()
        self.step_number = 0
        self.render_frame = 0
        self.time = self.fixture.time
        self.observer.reset(self.time)

    def step(self) -> None:
        t = self.time

        if self.step_number % self.render_cadence == 0:
            self.observer.render(observe(self.fixture, self.step_number, self.render_frame, self.driver.control()))
            self.render_frame += 1

        throttle = self.driver.throttle
        post = self.driver.displacement

        self.load_source.fill(t, self.forces)

        self.driver.synchronize(t)
        self.fixture.synchronize(t, post, throttle, self.forces)
        self.observer.synchronize(t, ControlSignal(throttle, post))

        self.driver.advance(self.step_size)
        self.fixture.advance(self.step_size)
        self.observer.advance(self.step_size)

        self.step_number += 1
        self.time = self.fixture.time

        diag = self.fixture.last_diagnostics
        logger.debug(
            'Step: %d   Time: %.6f   Iterations: %d',
            self.step_number,
            self.time,
            0 if diag is None else diag.iteration_count,
        )

    def run(self, max_steps: int | None = None) -> int:
        """Step until the observer stops (or max_steps). Returns the number of steps taken."""
        if self.fixture.phase is RigState.UNCONSTRUCTED:
            self.initialize()

        taken = 0
        while self.observer.is_running():
            if max_steps is not None and taken >= max_steps:
                break
            self.step()
            taken += 1

        logger.info('Loop finished: %d steps, t=%.4f s, %d render frames', self.step_number, self.time, self.render_frame)
        return taken
