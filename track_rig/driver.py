"""Driver model for the track test rig: throttle and post displacement.

Both signals chase externally latched targets under a fixed per-step rate limit.
Out-of-range inputs are clamped, never rejected.
"""

from __future__ import annotations

from dataclasses import dataclass


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _step_toward(current: float, target: float, delta: float) -> float:
    if target > current:
        return min(current + delta, target)
    if target < current:
        return max(current - delta, target)
    return current


def ramp_deltas(
    post_limit: float, render_step: float, steering_time: float, displacement_time: float
) -> tuple[float, float]:
    """
    Per-advance deltas as the interactive rig sets them:
      throttle:     render_step / steering_time
      displacement: render_step / displacement_time * post_limit

    The delta is applied once per advance() call (one macro-step), not once per render
    interval, so a full 0 -> 1 throttle ramp takes steering_time * step / render_step.
    """
    return render_step / steering_time, render_step / displacement_time * post_limit


@dataclass
class ControlSignal:
    throttle: float = 0.0
    post_displacement: float = 0.0


class DriverModel:
    def __init__(self, post_limit: float, throttle_delta: float, displacement_delta: float):
        if post_limit < 0.0:
            raise ValueError('post_limit must be >= 0.')
        self.post_limit = float(post_limit)
        self.throttle_delta = abs(float(throttle_delta))
        self.displacement_delta = abs(float(displacement_delta))

        self._throttle = 0.0
        self._displacement = 0.0
        self._throttle_target = 0.0
        self._displacement_target = 0.0

    @classmethod
    def from_ramp_times(
        cls,
        post_limit: float,
        render_step: float,
        steering_time: float,
        displacement_time: float,
    ) -> DriverModel:
        """Rate limits from ramp times; see ramp_deltas() for how they scale with the step."""
        throttle_delta, displacement_delta = ramp_deltas(post_limit, render_step, steering_time, displacement_time)
        return cls(post_limit, throttle_delta, displacement_delta)

    def initialize(self) -> None:
        self._throttle = 0.0
        self._displacement = 0.0
        self._throttle_target = 0.0
        self._displacement_target = 0.0

    def set_targets(self, throttle: float | None = None, displacement: float | None = None) -> None:
        if throttle is not None:
            self._throttle_target = _clamp(float(throttle), 0.0, 1.0)
        if displacement is not None:
            self._displacement_target = _clamp(float(displacement), -self.post_limit, self.post_limit)

    def synchronize(self, time: float) -> None:
        # No input device to sample here; subclasses latch targets.
        pass

    def advance(self, step: float) -> None:
        self._throttle = _clamp(
            _step_toward(self._throttle, self._throttle_target, self.throttle_delta), 0.0, 1.0
        )
        self._displacement = _clamp(
            _step_toward(self._displacement, self._displacement_target, self.displacement_delta),
            -self.post_limit,
            self.post_limit,
        )

    @property
    def throttle(self) -> float:
        return self._throttle

    @property
    def displacement(self) -> float:
        return self._displacement

    @property
    def targets(self) -> ControlSignal:
        return ControlSignal(self._throttle_target, self._displacement_target)

    def control(self) -> ControlSignal:
        return ControlSignal(self._throttle, self._displacement)


class ScheduledDriver(DriverModel):
    """
    Piecewise-constant targets from (time_s, throttle, post_displacement_m) keyframes.

    The keyframe active at time t is the last one with time_s <= t; before the first
    keyframe the targets stay neutral.
    """

    def __init__(
        self,
        post_limit: float,
        throttle_delta: float,
        displacement_delta: float,
        schedule: list[tuple[float, float, float]],
    ):
        super().__init__(post_limit, throttle_delta, displacement_delta)
        self.schedule = sorted((float(t), float(th), float(d)) for t, th, d in schedule)

    @classmethod
    def from_ramp_times(
        cls,
        post_limit: float,
        render_step: float,
        steering_time: float,
        displacement_time: float,
        schedule: list[tuple[float, float, float]] | None = None,
    ) -> ScheduledDriver:
        throttle_delta, displacement_delta = ramp_deltas(post_limit, render_step, steering_time, displacement_time)
        return cls(post_limit, throttle_delta, displacement_delta, schedule=list(schedule or []))

    def synchronize(self, time: float) -> None:
        active = None
        for row in self.schedule:
            if row[0] <= time:
                active = row
            else:
                break
        if active is not None:
            self.set_targets(throttle=active[1], displacement=active[2])
