import numpy as np
import pytest

from track_rig.config import IntegratorSettings, RigConfig
from track_rig.errors import ConfigurationError, IntegratorDivergence, OrderingError
from track_rig.loads import ForceExchangeBuffer
from track_rig.rig import RigFixture, RigState


def make_config(**kwargs):
    kwargs.setdefault("fixed_step_size", 1e-3)
    kwargs.setdefault("render_interval", 1e-3)
    return RigConfig(**kwargs)


def make_fixture(variant="bushing", **kwargs):
    fixture = RigFixture(make_config(track_variant=variant, **kwargs))
    fixture.initialize()
    return fixture


def run_steps(fixture, n, *, throttle=0.0, post=0.0, forces=None, dt=1e-3):
    forces = forces if forces is not None else ForceExchangeBuffer()
    for _ in range(n):
        fixture.synchronize(fixture.time, post, throttle, forces)
        fixture.advance(dt)


def test_unknown_variant_fails_at_construction():
    with pytest.raises(ConfigurationError):
        RigFixture(make_config(track_variant="rubber_band"))


def test_invalid_integrator_settings_fail_at_construction():
    with pytest.raises(ConfigurationError):
        RigFixture(make_config(integrator=IntegratorSettings(alpha=0.5)))


def test_everything_but_initialize_requires_initialize():
    fixture = RigFixture(make_config())
    assert fixture.phase is RigState.UNCONSTRUCTED

    with pytest.raises(OrderingError):
        fixture.synchronize(0.0, 0.0, 0.0, ForceExchangeBuffer())
    with pytest.raises(OrderingError):
        fixture.advance(1e-3)
    with pytest.raises(OrderingError):
        fixture.sprocket_pose()
    with pytest.raises(OrderingError):
        _ = fixture.time


def test_initialize_then_advance_transitions():
    fixture = make_fixture()
    assert fixture.phase is RigState.INITIALIZED
    assert fixture.time == 0.0

    run_steps(fixture, 1)
    assert fixture.phase is RigState.RUNNING
    assert fixture.time == pytest.approx(1e-3)


def test_synchronize_does_not_move_time():
    fixture = make_fixture()
    fixture.synchronize(0.0, 0.05, 0.5, ForceExchangeBuffer())
    assert fixture.time == 0.0
    assert fixture.throttle == 0.5
    assert fixture.post_command == 0.05


@pytest.mark.parametrize("variant", ["bushing", "band_fe"])
def test_static_equilibrium_is_preserved_with_zero_inputs(variant):
    fixture = make_fixture(variant)
    q0 = fixture.state.q.copy()

    f, _, _ = fixture._evaluate(q0, np.zeros_like(q0))
    assert np.linalg.norm(f) < 1e-6

    run_steps(fixture, 100)

    state = fixture.state
    np.testing.assert_allclose(state.q, q0, atol=1e-6)
    assert np.max(np.abs(state.v)) < 1e-4
    assert fixture.last_diagnostics.converged


@pytest.mark.parametrize("variant", ["bushing", "band_fe"])
def test_idler_is_pretensioned(variant):
    fixture = make_fixture(variant)
    xi = fixture.state.q[1]
    assert 0.02 < xi < 0.03
    assert fixture.state.q[0] == pytest.approx(0.0, abs=1e-9)


def test_variants_agree_at_rest():
    a = make_fixture("bushing")
    b = make_fixture("band_fe")
    run_steps(a, 100)
    run_steps(b, 100)

    np.testing.assert_allclose(a.idler_pose().position, b.idler_pose().position, atol=1e-3)
    np.testing.assert_allclose(a.sprocket_pose().position, b.sprocket_pose().position, atol=1e-9)
    assert a.sprocket_pose().angle == pytest.approx(b.sprocket_pose().angle, abs=1e-3)


def test_variants_agree_under_light_throttle():
    a = make_fixture("bushing")
    b = make_fixture("band_fe")
    run_steps(a, 200, throttle=0.1)
    run_steps(b, 200, throttle=0.1)

    assert a.sprocket_pose().angle > 0.01
    assert a.sprocket_pose().angle == pytest.approx(b.sprocket_pose().angle, abs=5e-3)
    np.testing.assert_allclose(a.idler_pose().position, b.idler_pose().position, atol=1e-3)


def test_throttle_spins_sprocket_forward():
    fixture = make_fixture()
    run_steps(fixture, 50, throttle=0.5)
    assert fixture.sprocket_speed() > 0.0


def test_downward_load_pushes_road_wheels_down():
    fixture = make_fixture()
    wheel_dofs = fixture.assembly.wheel_dofs
    eta0 = fixture.state.q[wheel_dofs].copy()

    forces = ForceExchangeBuffer()
    forces.set(0, [0.0, 0.0, -1000.0])
    run_steps(fixture, 200, forces=forces)

    delta = fixture.state.q[wheel_dofs] - eta0
    assert float(np.mean(delta)) < -1.5e-3


def test_buffer_is_copied_at_synchronize():
    fixture = make_fixture()
    forces = ForceExchangeBuffer()
    fixture.synchronize(0.0, 0.0, 0.0, forces)

    # Writing after synchronize must not reach the step.
    forces.set(0, [0.0, 0.0, -1.0e6])
    fixture.advance(1e-3)
    assert np.max(np.abs(fixture.state.v)) < 1e-3


def test_raised_post_contacts_road_wheels():
    fixture = make_fixture()
    run_steps(fixture, 300, post=0.08)
    assert np.all(fixture.post_contact_forces() > 0.0)


def test_divergence_raises_and_leaves_state_untouched():
    fixture = make_fixture(integrator=IntegratorSettings(max_newton_iterations=0))
    before = fixture.state

    fixture.synchronize(0.0, 0.0, 0.0, ForceExchangeBuffer())
    with pytest.raises(IntegratorDivergence) as excinfo:
        fixture.advance(1e-3)

    assert excinfo.value.diagnostics.converged is False
    assert excinfo.value.time_s == 0.0
    assert fixture.time == 0.0
    np.testing.assert_array_equal(fixture.state.q, before.q)
    assert fixture.last_diagnostics.converged is False


def test_poses_are_absolute():
    fixture = make_fixture(pose_location=(1.0, 0.0, 2.0), attach_location=(0.0, 1.0, 0.0))
    sprocket = fixture.sprocket_pose()
    np.testing.assert_allclose(sprocket.position, [1.0, 1.0, 2.0])

    idler = fixture.idler_pose()
    local = fixture.chassis_to_local(idler.position)
    xi = fixture.state.q[1]
    np.testing.assert_allclose(local, [-3.0 - xi, 1.0, 0.0], atol=1e-12)

    wheels = fixture.road_wheel_poses()
    assert len(wheels) == 5
    assert all(w.position[2] < sprocket.position[2] for w in wheels)
    assert fixture.post_position()[2] < min(w.position[2] for w in wheels)


def test_initialize_with_explicit_pose():
    fixture = RigFixture(make_config())
    fixture.initialize((5.0, 0.0, 0.0))
    np.testing.assert_allclose(fixture.chassis_frame.origin, [5.0, 0.0, 0.0])


YAW_90 = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])


def test_rotated_chassis_poses():
    fixture = RigFixture(make_config(pose_location=(1.0, 0.0, 2.0), attach_location=(0.0, 1.0, 0.0)))
    fixture.initialize(rotation=YAW_90)

    np.testing.assert_allclose(fixture.chassis_frame.rotation, YAW_90)
    np.testing.assert_allclose(fixture.sprocket_pose().position, [0.0, 0.0, 2.0], atol=1e-12)

    idler = fixture.idler_pose()
    xi = fixture.state.q[1]
    np.testing.assert_allclose(idler.position, [0.0, -3.0 - xi, 2.0], atol=1e-12)
    # chassis-local coordinates do not depend on the chassis orientation
    np.testing.assert_allclose(fixture.chassis_to_local(idler.position), [-3.0 - xi, 1.0, 0.0], atol=1e-12)


def test_rotated_chassis_maps_external_load():
    plain = make_fixture()
    rotated = RigFixture(make_config())
    rotated.initialize(rotation=YAW_90)

    local_force = np.array([300.0, 0.0, -1000.0])
    local_point = np.array([-1.0, 1.0, -0.5])

    plain_forces = ForceExchangeBuffer()
    plain_forces.set(0, local_force, point=plain.chassis_frame.to_parent(local_point))
    rotated_forces = ForceExchangeBuffer()
    rotated_forces.set(0, YAW_90 @ local_force, point=rotated.chassis_frame.to_parent(local_point))

    run_steps(plain, 20, forces=plain_forces)
    run_steps(rotated, 20, forces=rotated_forces)

    np.testing.assert_allclose(rotated.state.q, plain.state.q, atol=1e-10)


@pytest.mark.parametrize(
    "rotation",
    [np.eye(2), np.diag([1.0, 1.0, -1.0]), 2.0 * np.eye(3)],
)
def test_bad_chassis_rotation_rejected(rotation):
    fixture = RigFixture(make_config())
    with pytest.raises(ConfigurationError):
        fixture.initialize(rotation=rotation)
    assert fixture.phase is RigState.UNCONSTRUCTED


def test_state_accessor_returns_copy():
    fixture = make_fixture()
    s = fixture.state
    s.q[:] = 123.0
    assert not np.any(fixture.state.q == 123.0)
