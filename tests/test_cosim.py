import pytest

from track_rig.config import IntegratorSettings, RigConfig, SnapshotSettings
from track_rig.cosim import CoSimulationLoop, build_driver, render_cadence
from track_rig.driver import DriverModel, ScheduledDriver, ramp_deltas
from track_rig.errors import ConfigurationError, IntegratorDivergence, OrderingError, ResourceError
from track_rig.loads import ZeroLoadSource
from track_rig.observer import Observer, RecordingObserver, TimeLimitObserver
from track_rig.rig import RigFixture


def make_config(**kwargs):
    kwargs.setdefault("fixed_step_size", 1e-3)
    kwargs.setdefault("render_interval", 1e-3)
    return RigConfig(**kwargs)


class CallLog:
    def __init__(self):
        self.calls = []


class SpyDriver(DriverModel):
    def __init__(self, log, *args):
        super().__init__(*args)
        self.log = log

    def synchronize(self, time):
        self.log.calls.append("driver.synchronize")
        super().synchronize(time)

    def advance(self, step):
        self.log.calls.append("driver.advance")
        super().advance(step)


class SpyFixture(RigFixture):
    def __init__(self, log, config):
        super().__init__(config)
        self.log = log

    def synchronize(self, time, post_displacement, throttle, forces):
        self.log.calls.append("fixture.synchronize")
        super().synchronize(time, post_displacement, throttle, forces)

    def advance(self, step):
        self.log.calls.append("fixture.advance")
        super().advance(step)


class SpyObserver(Observer):
    def __init__(self, log):
        self.log = log
        self.sync_args = []

    def render(self, frame):
        self.log.calls.append("observer.render")

    def synchronize(self, time, control):
        self.log.calls.append("observer.synchronize")
        self.sync_args.append((time, control))

    def advance(self, step):
        self.log.calls.append("observer.advance")


class SpyLoads(ZeroLoadSource):
    def __init__(self, log):
        self.log = log
        self.times = []

    def fill(self, time, buffer):
        self.log.calls.append("loads.fill")
        self.times.append(time)
        super().fill(time, buffer)


@pytest.mark.parametrize(
    "render, step, expected",
    [(1e-3, 1e-3, 1), (2e-3, 1e-3, 2), (3e-3, 1e-3, 3), (0.1, 0.01, 10), (5e-4, 1e-3, 1), (2.5e-3, 1e-3, 3)],
)
def test_render_cadence(render, step, expected):
    assert render_cadence(render, step) == expected


def test_step_ordering():
    log = CallLog()
    config = make_config(render_interval=2e-3)
    loop = CoSimulationLoop(
        config,
        driver=SpyDriver(log, 0.2, 1e-3, 1e-4),
        observer=SpyObserver(log),
        load_source=SpyLoads(log),
        fixture=SpyFixture(log, config),
    )
    loop.initialize()

    loop.step()
    loop.step()

    body = [
        "loads.fill",
        "driver.synchronize",
        "fixture.synchronize",
        "observer.synchronize",
        "driver.advance",
        "fixture.advance",
        "observer.advance",
    ]
    assert log.calls == ["observer.render"] + body + body
    assert loop.step_number == 2
    assert loop.render_frame == 1


def test_time_is_reread_from_fixture():
    log = CallLog()
    loads = SpyLoads(log)
    loop = CoSimulationLoop(make_config(), load_source=loads)
    loop.initialize()
    for _ in range(3):
        loop.step()

    assert loads.times == pytest.approx([0.0, 1e-3, 2e-3])
    assert loop.time == loop.fixture.time


def test_driver_values_are_read_before_driver_advances():
    log = CallLog()
    observer = SpyObserver(log)
    driver = DriverModel(0.2, 0.1, 0.01)
    loop = CoSimulationLoop(make_config(), driver=driver, observer=observer)
    loop.initialize()
    driver.set_targets(throttle=1.0)

    loop.step()
    loop.step()

    assert observer.sync_args[0][1].throttle == 0.0
    assert observer.sync_args[1][1].throttle == pytest.approx(0.1)


def test_one_render_per_step_when_intervals_match():
    recorder = RecordingObserver()
    loop = CoSimulationLoop(make_config(), observer=recorder)
    loop.initialize()
    for _ in range(10):
        loop.step()

    assert len(recorder.frames) == 10
    assert [f.step for f in recorder.frames] == list(range(10))
    assert [f.render_frame for f in recorder.frames] == list(range(10))


def test_render_on_cadence_boundaries_only():
    recorder = RecordingObserver()
    loop = CoSimulationLoop(make_config(render_interval=3e-3), observer=recorder)
    loop.initialize()
    for _ in range(10):
        loop.step()

    assert [f.step for f in recorder.frames] == [0, 3, 6, 9]


def test_run_stops_when_observer_stops():
    loop = CoSimulationLoop(make_config(), observer=TimeLimitObserver(0.01))
    taken = loop.run()

    assert taken == 10
    assert loop.time == pytest.approx(0.01)


def test_t_end_in_config_bounds_run():
    recorder = RecordingObserver()
    loop = CoSimulationLoop(make_config(t_end=0.005), observer=recorder)
    assert loop.run() == 5
    assert len(recorder.frames) == 5


def test_reinitialize_restarts_time_limit():
    recorder = RecordingObserver()
    loop = CoSimulationLoop(make_config(t_end=0.005), observer=recorder)

    assert loop.run() == 5
    loop.initialize()
    assert loop.step_number == 0
    assert loop.time == 0.0
    assert loop.observer.is_running()
    assert loop.run() == 5
    assert [f.step for f in recorder.frames] == [0, 1, 2, 3, 4] * 2


def test_reinitialize_resets_user_time_limit():
    loop = CoSimulationLoop(make_config(), observer=TimeLimitObserver(0.003))
    assert loop.run() == 3
    loop.initialize()
    assert loop.run() == 3


def test_run_max_steps():
    loop = CoSimulationLoop(make_config())
    assert loop.run(max_steps=4) == 4
    assert loop.step_number == 4


@pytest.mark.parametrize("step", [0.0, -1e-3])
def test_non_positive_step_is_configuration_error(step):
    with pytest.raises(ConfigurationError, match="fixed_step_size"):
        CoSimulationLoop(make_config(fixed_step_size=step))


def test_step_before_initialize_is_ordering_error():
    loop = CoSimulationLoop(make_config())
    with pytest.raises(OrderingError):
        loop.step()


def test_unknown_variant_fails_before_loop_starts():
    with pytest.raises(ConfigurationError):
        CoSimulationLoop(make_config(track_variant="rubber_band"))


def test_unusable_snapshot_dir_fails_before_loop_starts(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x", encoding="utf-8")

    config = make_config(snapshot=SnapshotSettings(enabled=True, start_step=0, output_dir=blocker / "frames"))
    with pytest.raises(ResourceError):
        CoSimulationLoop(config)
    with pytest.raises(OSError):
        CoSimulationLoop(config)


def test_divergence_is_fatal_for_the_step():
    loop = CoSimulationLoop(make_config(integrator=IntegratorSettings(max_newton_iterations=0)))
    loop.initialize()

    with pytest.raises(IntegratorDivergence):
        loop.step()
    assert loop.step_number == 0
    assert loop.fixture.time == 0.0


def test_build_driver_uses_schedule_when_present():
    assert type(build_driver(make_config())) is DriverModel
    driver = build_driver(make_config(driver_schedule=[(0.0, 1.0, 0.0)]))
    assert isinstance(driver, ScheduledDriver)
    assert driver.throttle_delta == pytest.approx(1e-3 / 1.0)


@pytest.mark.parametrize("schedule", [[], [(0.0, 1.0, 0.0)]])
def test_build_driver_deltas_come_from_ramp_times(schedule):
    config = make_config(
        render_interval=2e-3,
        steering_ramp_time=0.5,
        displacement_ramp_time=4.0,
        post_displacement_limit=0.1,
        driver_schedule=schedule,
    )
    driver = build_driver(config)
    assert (driver.throttle_delta, driver.displacement_delta) == pytest.approx(
        ramp_deltas(0.1, 2e-3, 0.5, 4.0)
    )
    assert driver.throttle_delta == pytest.approx(4e-3)
    assert driver.displacement_delta == pytest.approx(5e-5)


def test_scheduled_throttle_ramps_through_loop():
    recorder = RecordingObserver()
    config = make_config(driver_schedule=[(0.0, 1.0, 0.0)], steering_ramp_time=0.01)
    loop = CoSimulationLoop(config, observer=recorder)
    loop.initialize()
    for _ in range(20):
        loop.step()

    throttles = [f.control.throttle for f in recorder.frames]
    assert throttles[0] == 0.0
    assert throttles[5] == pytest.approx(0.5)
    assert throttles[-1] == pytest.approx(1.0)
