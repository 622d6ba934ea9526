import jax.numpy as jnp


def identity():
    r"""Returns the identity quaternion (shape: :math:`(4)`)."""
    return jnp.array([1.0, 0.0, 0.0, 0.0])


def normalize(quaternion):
    r"""Normalizes a quaternion to unit norm.

    Args:
        quaternion (jnp.ndarray): Quaternion to normalize (shape: :math:`(4)`)
            (Assumes (r, i, j, k) convention, with :math:`r` being the scalar).

    Returns:
        (jnp.ndarray): Normalized quaternion (shape: :math:`(4)`).
    """
    return quaternion / jnp.linalg.norm(quaternion)


def quaternion_to_rotmat(quaternion):
    r"""Converts a unit quaternion to a :math:`3 \times 3` rotation matrix.

    Args:
        quaternion (jnp.ndarray): Quaternion to convert (shape: :math:`(4)`)
            (Assumes (r, i, j, k) convention, with :math:`r` being the scalar).

    Returns:
        (jnp.ndarray): rotation matrix (shape: :math:`(3, 3)`).
    """
    r, i, j, k = quaternion[0], quaternion[1], quaternion[2], quaternion[3]
    twoisq = 2 * i * i
    twojsq = 2 * j * j
    twoksq = 2 * k * k
    twoij = 2 * i * j
    twoik = 2 * i * k
    twojk = 2 * j * k
    twori = 2 * r * i
    tworj = 2 * r * j
    twork = 2 * r * k
    return jnp.array([
        [1 - twojsq - twoksq, twoij - twork, twoik + tworj],
        [twoij + twork, 1 - twoisq - twoksq, twojk - twori],
        [twoik - tworj, twojk + twori, 1 - twoisq - twojsq],
    ])


def multiply(q1, q2):
    r"""Multiply two quaternions `q1`, `q2` (Hamilton product, scalar first)."""
    r1, v1 = q1[0], q1[1:]
    r2, v2 = q2[0], q2[1:]
    return jnp.concatenate(
        [
            (r1 * r2 - jnp.dot(v1, v2)).reshape(1),
            r1 * v2 + r2 * v1 + jnp.cross(v1, v2),
        ],
        axis=0,
    )


def derivative(quaternion, angular_velocity):
    r"""Time derivative of an orientation quaternion.

    The derivative of :math:`q(t)` is :math:`0.5 \omega(t) \circ q(t)`, where
    :math:`\omega(t)` is the angular velocity, expressed in the frame the
    quaternion rotates into, promoted to a pure quaternion.

    Args:
        quaternion (jnp.ndarray): Orientation (shape: :math:`(4)`).
        angular_velocity (jnp.ndarray): Angular velocity (shape: :math:`(3)`).

    Returns:
        (jnp.ndarray): :math:`\dot{q}` (shape: :math:`(4)`).
    """
    omega = jnp.concatenate([jnp.zeros(1, dtype=angular_velocity.dtype), angular_velocity])
    return 0.5 * multiply(omega, quaternion)
