import numpy as np
import jax.numpy as jnp
import pytest

from treedyn import OrderingError, Pendulum, Stage, State


def test_smoke():
    pendulum = Pendulum()
    state = pendulum.new_state(0.1)
    pendulum.step(state, 1e-3)
    assert state.stage == Stage.MODELED


def test_euler_angle_option():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    state = State()
    subsystem.realize(state, Stage.BUILT)
    assert not subsystem.get_use_euler_angles(state)
    subsystem.set_use_euler_angles(state, True)
    subsystem.realize(state, Stage.MODELED)
    assert subsystem.get_use_euler_angles(state)
    assert state.nq == 6
    with pytest.raises(OrderingError):
        subsystem.set_use_euler_angles(state, False)

    other = State()
    subsystem.realize(other, Stage.MODELED)
    assert other.nq == 7
    assert jnp.allclose(subsystem.get_joint_q(other, pendulum.body, 0), 1.0)


def test_reference_driver_sequence():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    body = pendulum.body
    state = pendulum.new_state(0.0)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.enforce_configuration_constraints(state)
    subsystem.realize(state, Stage.CONFIGURED)
    F = jnp.zeros((2, 6)).at[body, 4].set(-3.0 * 9.8)
    assert subsystem.calc_internal_gradient_from_spatial(state, F).shape == (6,)

    subsystem.set_joint_u(state, body, 0, 10.0)
    subsystem.clear_applied_forces(state)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.apply_gravity(state, pendulum.gravity_vector)
    subsystem.apply_joint_force(state, body, 0, 147.0)
    subsystem.realize(state, Stage.DYNAMICS)
    assert float(subsystem.get_kinetic_energy(state)) > 0.0
    tau = subsystem.calc_tree_equivalent_joint_forces(state, subsystem.get_applied_body_forces(state))
    assert jnp.all(jnp.isfinite(tau))
    subsystem.realize(state, Stage.REACTING)
    assert jnp.all(jnp.isfinite(subsystem.get_udot(state)))


def test_euler_and_quaternion_runs_agree():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    positions = []
    for use_euler_angles in (True, False):
        state = pendulum.new_state(0.3, use_euler_angles)
        for _ in range(50):
            pendulum.step(state, 1e-3)
        subsystem.realize(state, Stage.CONFIGURED)
        positions.append(pendulum.bob_position(state))
    assert jnp.allclose(positions[0], positions[1], atol=1e-8)


def test_pendulum_period():
    pendulum = Pendulum(length=5.0, mass=3.0, gravity=9.8)
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.05, use_euler_angles=True)

    dtime = 1e-3
    numsteps = 10000
    qs = []
    for _ in range(numsteps):
        pendulum.step(state, dtime)
        qs.append(subsystem.get_q(state))

    # swing angle measured from hanging straight down
    theta = np.asarray(jnp.stack(qs))[:, 2] + 0.5 * np.pi
    times = dtime * np.arange(1, numsteps + 1)
    crossings = []
    for i in np.nonzero(np.sign(theta[:-1]) != np.sign(theta[1:]))[0]:
        crossings.append(times[i] + dtime * theta[i] / (theta[i] - theta[i + 1]))
    assert len(crossings) >= 3

    period = 2.0 * np.mean(np.diff(crossings))
    expected = pendulum.small_oscillation_period()
    assert abs(expected - 2.0 * np.pi * np.sqrt(5.0 / 9.8)) < 1e-3
    assert abs(period - expected) / expected < 0.01


def test_step_enforces_after_direct_q_write():
    # A Q written between steps is projected before the next step uses it.
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.2)
    q = subsystem.get_q(state).at[3:6].set(jnp.array([0.1, -0.05, 0.02]))
    subsystem.set_q(state, q)
    pendulum.step(state, 1e-3)
    assert jnp.allclose(subsystem.get_q(state)[3:6], jnp.zeros(3), atol=1e-9)


def test_invalidating_below_built_keeps_allocation():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    state = State()
    flag = state.allocate_discrete_variable(Stage.BUILT, 0)
    subsystem.realize(state, Stage.MODELED)
    pendulum.set_angle(state, 0.3)
    subsystem.realize(state, Stage.CONFIGURED)
    q = subsystem.get_q(state)
    nq, nu = state.nq, state.nu
    bob = pendulum.bob_position(state)

    state.set_discrete_variable(flag, 1)
    assert state.stage == Stage.EMPTY
    subsystem.realize(state, Stage.CONFIGURED)
    assert (state.nq, state.nu) == (nq, nu)
    assert jnp.allclose(subsystem.get_q(state), q)
    assert jnp.allclose(pendulum.bob_position(state), bob)

    # the Euler option can still be chosen again, but not changed under Q
    state.set_discrete_variable(flag, 2)
    subsystem.realize(state, Stage.BUILT)
    subsystem.set_use_euler_angles(state, True)
    with pytest.raises(OrderingError):
        subsystem.realize(state, Stage.MODELED)


@pytest.mark.slow
def test_pendulum_period_fine_step():
    pendulum = Pendulum(length=5.0, mass=3.0, gravity=9.8)
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.05, use_euler_angles=True)

    dtime = 1e-4
    numsteps = 100000
    theta = np.empty(numsteps)
    for i in range(numsteps):
        pendulum.step(state, dtime)
        theta[i] = float(subsystem.get_q(state)[2]) + 0.5 * np.pi

    times = dtime * np.arange(1, numsteps + 1)
    crossings = []
    for i in np.nonzero(np.sign(theta[:-1]) != np.sign(theta[1:]))[0]:
        crossings.append(times[i] + dtime * theta[i] / (theta[i] - theta[i + 1]))
    period = 2.0 * np.mean(np.diff(crossings))
    expected = pendulum.small_oscillation_period()
    assert abs(period - expected) / expected < 0.01
