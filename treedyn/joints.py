import enum

import jax.numpy as jnp

from .utils import quaternion
from .utils.rotation import body_fixed_123_rate_matrix, body_fixed_123_to_rotmat, rotmat_about_z
from .utils.spatial import Transform, transform_identity


class JointType(enum.IntEnum):
    PIN = 0        # rotation about the common Z axis
    SLIDING = 1    # translation along the common X axis
    CARTESIAN = 2  # translation along X, Y, Z
    BALL = 3       # free rotation
    FREE = 4       # free rotation and translation
    WELD = 5       # no relative motion


# Conventions shared by every joint type
# ======================================
#
# A joint connects frame Jb, fixed on the parent, to frame J, fixed on the
# child. q parametrizes X_JbJ. u is the relative spatial velocity of J in Jb,
# expressed in Jb, projected on the joint's motion subspace (the hinge); for
# BALL and FREE the rotational u are angular velocity components, not angle
# rates, so qdot != u for those joints.
#
# BALL and FREE orientations are a unit quaternion (scalar first) unless the
# model uses Euler angles, in which case they are body-fixed 1-2-3 angles.


def orientation_q_count(use_euler_angles):
    return 3 if use_euler_angles else 4


def joint_q_count(joint_type, use_euler_angles=False):
    """Number of generalized coordinates contributed by a joint."""
    if joint_type == JointType.PIN or joint_type == JointType.SLIDING:
        return 1
    if joint_type == JointType.CARTESIAN:
        return 3
    if joint_type == JointType.BALL:
        return orientation_q_count(use_euler_angles)
    if joint_type == JointType.FREE:
        return orientation_q_count(use_euler_angles) + 3
    if joint_type == JointType.WELD:
        return 0
    raise ValueError(f"Unknown joint type {joint_type}")


def joint_u_count(joint_type):
    """Number of mobilities (generalized speeds) contributed by a joint."""
    if joint_type == JointType.PIN or joint_type == JointType.SLIDING:
        return 1
    if joint_type == JointType.CARTESIAN or joint_type == JointType.BALL:
        return 3
    if joint_type == JointType.FREE:
        return 6
    if joint_type == JointType.WELD:
        return 0
    raise ValueError(f"Unknown joint type {joint_type}")


def uses_quaternion(joint_type, use_euler_angles):
    return not use_euler_angles and joint_type in (JointType.BALL, JointType.FREE)


def jcalc_default_q(joint_type, use_euler_angles=False):
    """Reference configuration: X_JbJ is the identity."""
    q = jnp.zeros(joint_q_count(joint_type, use_euler_angles))
    if uses_quaternion(joint_type, use_euler_angles):
        q = q.at[0].set(1.0)
    return q


def _rotation(joint_q, use_euler_angles):
    if use_euler_angles:
        return body_fixed_123_to_rotmat(joint_q[0:3])
    return quaternion.quaternion_to_rotmat(quaternion.normalize(joint_q[0:4]))


def _rotation_rate(joint_q, w, use_euler_angles):
    if use_euler_angles:
        return jnp.linalg.solve(body_fixed_123_rate_matrix(joint_q[0:3]), w)
    return quaternion.derivative(joint_q[0:4], w)


# compute transform across a joint
def jcalc_transform(joint_type, joint_q, use_euler_angles=False):

    if joint_type == JointType.PIN:
        return Transform(rotmat_about_z(joint_q[0]), jnp.zeros(3))

    if joint_type == JointType.SLIDING:
        return Transform(jnp.eye(3), joint_q[0] * jnp.array([1.0, 0.0, 0.0]))

    if joint_type == JointType.CARTESIAN:
        return Transform(jnp.eye(3), joint_q[0:3])

    if joint_type == JointType.BALL:
        return Transform(_rotation(joint_q, use_euler_angles), jnp.zeros(3))

    if joint_type == JointType.FREE:
        n = orientation_q_count(use_euler_angles)
        return Transform(_rotation(joint_q, use_euler_angles), joint_q[n:n + 3])

    if joint_type == JointType.WELD:
        return transform_identity()

    raise ValueError(f"Unknown joint type {joint_type}")


# motion subspace of a joint, in Jb, about the origin of J
def jcalc_hinge(joint_type):

    eye = jnp.eye(3)
    zero = jnp.zeros((3, 3))

    if joint_type == JointType.PIN:
        return jnp.array([[0.0, 0.0, 1.0, 0.0, 0.0, 0.0]]).T

    if joint_type == JointType.SLIDING:
        return jnp.array([[0.0, 0.0, 0.0, 1.0, 0.0, 0.0]]).T

    if joint_type == JointType.CARTESIAN:
        return jnp.concatenate([zero, eye], axis=0)

    if joint_type == JointType.BALL:
        return jnp.concatenate([eye, zero], axis=0)

    if joint_type == JointType.FREE:
        return jnp.eye(6)

    if joint_type == JointType.WELD:
        return jnp.zeros((6, 0))

    raise ValueError(f"Unknown joint type {joint_type}")


# time derivative of the joint coordinates
def jcalc_qdot(joint_type, joint_q, joint_u, use_euler_angles=False):

    if joint_type in (JointType.PIN, JointType.SLIDING, JointType.CARTESIAN):
        return joint_u

    if joint_type == JointType.BALL:
        return _rotation_rate(joint_q, joint_u, use_euler_angles)

    if joint_type == JointType.FREE:
        return jnp.concatenate([
            _rotation_rate(joint_q, joint_u[0:3], use_euler_angles),
            joint_u[3:6],
        ])

    if joint_type == JointType.WELD:
        return jnp.zeros(0)

    raise ValueError(f"Unknown joint type {joint_type}")


# true where the coordinates of a joint cannot represent its angular velocity
def jcalc_rate_singular(joint_type, joint_q, use_euler_angles=False, tolerance=1e-8):
    if use_euler_angles and joint_type in (JointType.BALL, JointType.FREE):
        return jnp.abs(jnp.cos(joint_q[1])) < tolerance
    return jnp.array(False)


# project quaternion coordinates back onto the unit sphere
def jcalc_normalize(joint_type, joint_q, use_euler_angles=False):
    if uses_quaternion(joint_type, use_euler_angles):
        return joint_q.at[0:4].set(quaternion.normalize(joint_q[0:4]))
    return joint_q


# computes joint space forces/torques from a spatial force on the child
def jcalc_tau(hinge, body_f):
    return hinge.T @ body_f
