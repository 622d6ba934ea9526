import numpy as np
import jax.numpy as jnp
import pytest

from treedyn import (
    JointType,
    MassProperties,
    MultibodySubsystem,
    NotRealizedError,
    Pendulum,
    SingularMassMatrixError,
    Stage,
    State,
    transform,
)
from treedyn.utils.rotation import body_fixed_123_to_rotmat

from conftest import build_chain, modeled_state, randomize


GRAVITY = jnp.array([0.0, -9.8, 0.0])


def free_body(mass=2.0):
    subsystem = MultibodySubsystem()
    subsystem.add_rigid_body(
        MassProperties(mass, jnp.array([0.3, 0.0, 0.0]), jnp.array([0.5, 0.8, 0.8])),
        None,
        0,
        transform(R=body_fixed_123_to_rotmat(jnp.array([0.2, -0.1, 0.4]))),
        JointType.FREE,
    )
    return subsystem


def test_free_body_falls(use_euler_angles):
    subsystem = free_body()
    state = modeled_state(subsystem, use_euler_angles)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.apply_gravity(state, GRAVITY)
    subsystem.realize(state, Stage.REACTING)
    # u is expressed in the (rotated) parent joint frame
    R_GJb = body_fixed_123_to_rotmat(jnp.array([0.2, -0.1, 0.4]))
    expected = jnp.concatenate([jnp.zeros(3), R_GJb.T @ GRAVITY])
    assert jnp.allclose(subsystem.get_udot(state), expected, atol=1e-10)
    assert jnp.allclose(subsystem.get_body_acceleration(state, 1), jnp.concatenate([jnp.zeros(3), GRAVITY]))
    assert subsystem.get_multipliers(state).shape == (0,)


def test_horizontal_pin_pendulum():
    pendulum = Pendulum(length=2.0, mass=3.0, gravity=9.8, radius=0.0, joint_type=JointType.PIN)
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.5 * np.pi)
    assert jnp.allclose(subsystem.get_q(state), jnp.zeros(1))
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.apply_gravity(state, pendulum.gravity_vector)
    subsystem.realize(state, Stage.REACTING)
    assert jnp.allclose(subsystem.get_udot(state), jnp.array([-9.8 / 2.0]))


def test_equivalent_joint_force_of_gravity():
    pendulum = Pendulum(length=2.0, mass=3.0, gravity=9.8, joint_type=JointType.PIN)
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.5 * np.pi)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.apply_gravity(state, pendulum.gravity_vector)
    F = subsystem.get_applied_body_forces(state)
    # the weight acts at distance L from the pivot
    gradient = subsystem.calc_internal_gradient_from_spatial(state, F)
    assert jnp.allclose(gradient, jnp.array([-3.0 * 9.8 * 2.0]))
    subsystem.realize(state, Stage.MOVING)
    assert jnp.allclose(subsystem.calc_tree_equivalent_joint_forces(state, F), gradient)


def test_forward_and_inverse_dynamics_agree(use_euler_angles):
    subsystem = build_chain()
    state = modeled_state(subsystem, use_euler_angles)
    randomize(subsystem, state, seed=3)
    subsystem.realize(state, Stage.MOVING)

    rng = np.random.default_rng(4)
    tau = jnp.array(rng.standard_normal(state.nu))
    F = jnp.array(rng.standard_normal((subsystem.get_n_bodies(), 6)))
    udot = subsystem.calc_tree_udot(state, tau, F, constrained=False)
    assert jnp.allclose(subsystem.calc_tree_inverse_dynamics(state, udot, F), tau, atol=1e-9)


def test_joint_forces_are_power_conjugate(use_euler_angles):
    subsystem = build_chain()
    state = modeled_state(subsystem, use_euler_angles)
    randomize(subsystem, state, seed=5)
    subsystem.realize(state, Stage.MOVING)

    rng = np.random.default_rng(6)
    F = jnp.array(rng.standard_normal((subsystem.get_n_bodies(), 6)))
    tau = subsystem.calc_tree_equivalent_joint_forces(state, F)
    power = sum(jnp.dot(F[b], subsystem.get_body_velocity(state, b)) for b in range(subsystem.get_n_bodies()))
    assert jnp.allclose(power, jnp.dot(tau, subsystem.get_u(state)))


def test_applied_forces_drive_reacting(use_euler_angles):
    # realize(REACTING) uses the accumulated forces; calc_tree_udot takes them explicitly.
    subsystem = build_chain()
    state = modeled_state(subsystem, use_euler_angles)
    randomize(subsystem, state, seed=7)
    subsystem.realize(state, Stage.MOVING)
    subsystem.apply_gravity(state, GRAVITY)
    subsystem.apply_joint_force(state, 2, 0, 1.5)
    subsystem.apply_point_force(state, 3, jnp.array([0.0, 0.2, 0.1]), jnp.array([1.0, 0.0, -2.0]))
    subsystem.realize(state, Stage.REACTING)
    udot = subsystem.calc_tree_udot(
        state, subsystem.get_applied_joint_forces(state), subsystem.get_applied_body_forces(state)
    )
    assert jnp.allclose(subsystem.get_udot(state), udot)


def test_massless_tip_is_singular():
    subsystem = free_body(mass=0.0)
    state = modeled_state(subsystem, False)
    subsystem.realize(state, Stage.DYNAMICS)
    with pytest.raises(SingularMassMatrixError):
        subsystem.realize(state, Stage.REACTING)
    assert state.stage == Stage.DYNAMICS
    with pytest.raises(SingularMassMatrixError):
        subsystem.calc_tree_udot(state, jnp.zeros(6), None, constrained=False)


def test_operators_need_moving():
    subsystem = build_chain()
    state = modeled_state(subsystem, False)
    subsystem.realize(state, Stage.CONFIGURED)
    F = jnp.zeros((subsystem.get_n_bodies(), 6))
    with pytest.raises(NotRealizedError):
        subsystem.calc_tree_udot(state, jnp.zeros(state.nu), F)
    with pytest.raises(NotRealizedError):
        subsystem.calc_tree_equivalent_joint_forces(state, F)
    with pytest.raises(NotRealizedError):
        subsystem.calc_tree_inverse_dynamics(state, jnp.zeros(state.nu), F)
    with pytest.raises(NotRealizedError):
        subsystem.calc_internal_gradient_from_spatial(State(), F)


def test_constrained_pendulum_accelerations():
    # A free joint held at the pivot behaves like a pin.
    pendulum = Pendulum(length=2.0, mass=3.0, gravity=9.8)
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.5 * np.pi, use_euler_angles=False)
    subsystem.realize(state, Stage.MOVING)
    subsystem.apply_gravity(state, pendulum.gravity_vector)
    subsystem.realize(state, Stage.REACTING)

    udot = subsystem.get_udot(state)
    inertia_pivot = 3.0 * 2.0 ** 2 + 0.4 * 3.0 * pendulum.radius ** 2
    assert jnp.allclose(udot[2], -3.0 * 9.8 * 2.0 / inertia_pivot)
    assert jnp.allclose(udot[3:6], jnp.zeros(3), atol=1e-10)
    assert subsystem.get_multipliers(state).shape == (3,)

    solver = subsystem.get_solver(state)
    aerr = solver.acceleration_errors(subsystem.get_q(state), subsystem.get_u(state), udot)
    assert jnp.allclose(aerr, jnp.zeros(3), atol=1e-10)


def test_constrained_accelerations_while_moving():
    pendulum = Pendulum(length=2.0, mass=3.0, gravity=9.8)
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.3)
    subsystem.set_joint_u(state, pendulum.body, 2, 1.2)
    subsystem.set_joint_u(state, pendulum.body, 0, 0.4)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.enforce_motion_constraints(state)
    subsystem.realize(state, Stage.MOVING)
    subsystem.apply_gravity(state, pendulum.gravity_vector)
    subsystem.realize(state, Stage.REACTING)

    solver = subsystem.get_solver(state)
    aerr = solver.acceleration_errors(
        subsystem.get_q(state), subsystem.get_u(state), subsystem.get_udot(state)
    )
    assert jnp.allclose(aerr, jnp.zeros(3), atol=1e-9)
