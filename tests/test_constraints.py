import logging

import jax.numpy as jnp
import pytest

from treedyn import (
    ConvergenceError,
    JointType,
    MassProperties,
    MultibodySubsystem,
    NotRealizedError,
    Pendulum,
    Stage,
    transform,
)
from treedyn.utils.rotation import rotmat_about_z

from conftest import modeled_state


def max_error(errors):
    return float(jnp.max(jnp.abs(errors)))


def test_enforce_from_separated_pivot():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.0)
    subsystem.set_joint_q(state, pendulum.body, 3, 0.1)
    subsystem.realize(state, Stage.CONFIGURED)
    assert jnp.allclose(subsystem.get_position_errors(state), jnp.array([-0.1, 0.0, 0.0]))

    subsystem.enforce_configuration_constraints(state)
    assert state.stage == Stage.MODELED
    subsystem.realize(state, Stage.CONFIGURED)
    assert max_error(subsystem.get_position_errors(state)) <= 1e-10


def test_enforce_keeps_satisfied_state():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.2)
    subsystem.realize(state, Stage.CONFIGURED)
    q = subsystem.get_q(state)
    subsystem.enforce_configuration_constraints(state)
    # nothing to correct, so Q was not written
    assert state.stage == Stage.CONFIGURED
    assert jnp.array_equal(subsystem.get_q(state), q)


def test_enforce_normalizes_quaternions():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.2, use_euler_angles=False)
    subsystem.set_joint_q(state, pendulum.body, 0, 2.0)
    subsystem.set_joint_q(state, pendulum.body, 5, -0.3)
    subsystem.enforce_configuration_constraints(state)
    quat = subsystem.get_joint_q(state, pendulum.body)[0:4]
    assert jnp.allclose(jnp.linalg.norm(quat), 1.0)
    subsystem.realize(state, Stage.CONFIGURED)
    assert max_error(subsystem.get_position_errors(state)) <= 1e-10


def test_convergence_error():
    pendulum = Pendulum(max_constraint_iterations=0)
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.0)
    subsystem.set_joint_q(state, pendulum.body, 3, 0.1)
    with pytest.raises(ConvergenceError):
        subsystem.enforce_configuration_constraints(state)


def test_project_velocities():
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    state = pendulum.new_state(0.4)
    subsystem.set_joint_u(state, pendulum.body, 2, 0.5)
    subsystem.set_joint_u(state, pendulum.body, 3, 1.0)
    with pytest.raises(NotRealizedError):
        subsystem.enforce_motion_constraints(state)

    subsystem.realize(state, Stage.MOVING)
    assert max_error(subsystem.get_velocity_errors(state)) > 0.5
    subsystem.enforce_motion_constraints(state)
    assert state.stage == Stage.CONFIGURED
    subsystem.realize(state, Stage.MOVING)
    assert max_error(subsystem.get_velocity_errors(state)) <= 1e-12
    # the swing about Z is not affected by the pivot
    assert jnp.allclose(subsystem.get_joint_u(state, pendulum.body, 2), 0.5)


def free_block(**kwargs):
    subsystem = MultibodySubsystem(**kwargs)
    body = subsystem.add_rigid_body(
        MassProperties(1.0, None, jnp.array([0.1, 0.2, 0.3])), None, 0, None, JointType.FREE
    )
    return subsystem, body


def test_weld_constraint(use_euler_angles):
    subsystem, body = free_block()
    frame = transform(jnp.array([1.0, 2.0, 3.0]), rotmat_about_z(0.3))
    subsystem.add_weld_constraint(0, frame, body, None)
    state = modeled_state(subsystem, use_euler_angles)
    subsystem.enforce_configuration_constraints(state)
    subsystem.realize(state, Stage.CONFIGURED)
    X = subsystem.get_body_configuration(state, body)
    assert jnp.allclose(X.R, frame.R, atol=1e-9)
    assert jnp.allclose(X.p, frame.p, atol=1e-9)

    subsystem.set_joint_u(state, body, 0, 1.0)
    subsystem.set_joint_u(state, body, 4, 2.0)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.enforce_motion_constraints(state)
    assert jnp.allclose(subsystem.get_u(state), jnp.zeros(6), atol=1e-10)


def test_constant_distance_constraint():
    subsystem, body = free_block()
    subsystem.add_constant_distance_constraint(0, jnp.zeros(3), body, jnp.zeros(3), 2.0)
    state = modeled_state(subsystem, False)
    subsystem.set_joint_q(state, body, 4, 1.0)
    subsystem.set_joint_q(state, body, 5, 0.5)
    subsystem.enforce_configuration_constraints(state)
    subsystem.realize(state, Stage.CONFIGURED)
    assert jnp.allclose(jnp.linalg.norm(subsystem.get_body_configuration(state, body).p), 2.0)

    # the block may still slide around the sphere but not away from its center
    subsystem.set_joint_u(state, body, 3, 1.0)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.enforce_motion_constraints(state)
    subsystem.realize(state, Stage.MOVING)
    p = subsystem.get_body_configuration(state, body).p
    v = subsystem.get_body_velocity(state, body)[3:6]
    assert jnp.allclose(jnp.dot(p, v), 0.0, atol=1e-10)
    assert jnp.linalg.norm(v) > 0.1


def test_redundant_constraints(caplog):
    pendulum = Pendulum()
    subsystem = pendulum.subsystem
    # a second copy of the pivot
    subsystem.add_coincident_stations_constraint(0, jnp.zeros(3), pendulum.body, pendulum.joint_station)
    state = pendulum.new_state(0.1)
    subsystem.set_joint_q(state, pendulum.body, 3, 0.1)
    with caplog.at_level(logging.WARNING, logger="treedyn.constraints"):
        subsystem.enforce_configuration_constraints(state)
    assert "rank deficient" in caplog.text

    subsystem.realize(state, Stage.CONFIGURED)
    assert max_error(subsystem.get_position_errors(state)) <= 1e-10
    subsystem.realize(state, Stage.MOVING)
    subsystem.apply_gravity(state, pendulum.gravity_vector)
    subsystem.realize(state, Stage.REACTING)
    udot = subsystem.get_udot(state)
    assert jnp.all(jnp.isfinite(udot))
    assert subsystem.get_multipliers(state).shape == (6,)
    aerr = subsystem.get_solver(state).acceleration_errors(
        subsystem.get_q(state), subsystem.get_u(state), udot
    )
    assert jnp.allclose(aerr, jnp.zeros(6), atol=1e-9)
